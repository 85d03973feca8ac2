"""
In-memory state cache and derived view publisher.

The cache holds the latest known ``State`` (compiled data + rows) together
with a version number. Every accepted replacement bumps the version,
recomputes the derived views and notifies subscribers.

Replacement supports compare-and-swap: a writer that read the cache at
version N can ask for its new state to be applied only if the cache is still
at version N. The full re-fetch triggered by the external build relies on it
so that a slow re-fetch never overwrites a mutation committed meanwhile.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, TypeVar

from sill.domain.models import CompiledReferent, PublicCompiledData, State
from sill.domain.projections import referents_by_software_id, remove_referents

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[T], None]
Unsubscribe = Callable[[], None]


class StateCache:
    def __init__(self, state: State):
        self._state = state
        self._version = 0
        self._referents_by_software_id = referents_by_software_id(state.compiled_data)
        self._compiled_data_without_referents = remove_referents(state.compiled_data)

        self._state_listeners: List[Listener[State]] = []
        self._referents_listeners: List[Listener[Dict[int, List[CompiledReferent]]]] = []
        self._public_listeners: List[Listener[PublicCompiledData]] = []

    @property
    def state(self) -> State:
        return self._state

    @property
    def version(self) -> int:
        return self._version

    @property
    def referents_by_software_id(self) -> Dict[int, List[CompiledReferent]]:
        return self._referents_by_software_id

    @property
    def compiled_data_without_referents(self) -> PublicCompiledData:
        return self._compiled_data_without_referents

    def replace(self, state: State, expected_version: Optional[int] = None) -> bool:
        """
        Swap in a new state wholesale.

        Returns False (and changes nothing) when ``expected_version`` is given
        and the cache has moved on since.
        """
        if expected_version is not None and expected_version != self._version:
            logger.warning(
                f"Rejected stale state (expected version {expected_version}, current {self._version})"
            )
            return False

        self._state = state
        self._version += 1
        self._referents_by_software_id = referents_by_software_id(state.compiled_data)
        self._compiled_data_without_referents = remove_referents(state.compiled_data)

        logger.debug(f"State cache now at version {self._version}")

        self._notify(self._state_listeners, self._state)
        self._notify(self._referents_listeners, self._referents_by_software_id)
        self._notify(self._public_listeners, self._compiled_data_without_referents)
        return True

    def subscribe(self, listener: Listener[State]) -> Unsubscribe:
        return self._add(self._state_listeners, listener)

    def subscribe_referents_by_software_id(
        self, listener: Listener[Dict[int, List[CompiledReferent]]]
    ) -> Unsubscribe:
        return self._add(self._referents_listeners, listener)

    def subscribe_compiled_data_without_referents(
        self, listener: Listener[PublicCompiledData]
    ) -> Unsubscribe:
        return self._add(self._public_listeners, listener)

    @staticmethod
    def _add(listeners: List[Listener[T]], listener: Listener[T]) -> Unsubscribe:
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    @staticmethod
    def _notify(listeners: List[Listener[T]], value: T) -> None:
        for listener in list(listeners):
            try:
                listener(value)
            except Exception as e:
                # Keep notifying the remaining listeners
                logger.error(f"State listener {listener!r} failed: {e}", exc_info=True)

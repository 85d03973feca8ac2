"""
Composition root of the core: state cache + mutation engine + triggers.

``create_data_api`` performs the initial fetch (compiled data from the build
location and rows from the main data location, concurrently; both must
succeed), then wires the mutation engine and the recomputation triggers.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from sill.domain.catalog import CatalogBuilder, build_catalog
from sill.domain.models import AuditRecord, State
from sill.services.compile_trigger import CompileTrigger, periodic_trigger_loop
from sill.services.mutations import MutationEngine
from sill.services.state_cache import StateCache
from sill.storage.row_store import RowStore

logger = logging.getLogger(__name__)

AUDIT_HISTORY_SIZE = 1000
MAX_REFETCH_ATTEMPTS = 3


async def fetch_state(row_store: RowStore) -> State:
    compiled_data, rows = await asyncio.gather(
        row_store.fetch_compiled_data(),
        row_store.fetch_rows(),
    )
    return State(compiled_data=compiled_data, rows=rows)


class DataApi:
    def __init__(
        self,
        row_store: RowStore,
        state: State,
        catalog_builder: CatalogBuilder = build_catalog,
        compile_trigger: Optional[CompileTrigger] = None,
        periodic_compile_interval: Optional[float] = None,
    ):
        self.row_store = row_store
        self.state_cache = StateCache(state)
        self.mutations = MutationEngine(row_store, self.state_cache, catalog_builder)
        self.compile_trigger = compile_trigger
        self.periodic_compile_interval = periodic_compile_interval
        self.audit_records: Deque[AuditRecord] = deque(maxlen=AUDIT_HISTORY_SIZE)
        self.mutations.add_audit_sink(self.audit_records.append)
        self._periodic_task: Optional[asyncio.Task] = None
        self._refetch_lock = asyncio.Lock()

    async def on_data_updated(self) -> bool:
        """
        Handle the "data updated" signal: re-fetch everything and replace the
        cache wholesale.

        Refetches run one at a time, so a later signal always reads storage
        after an earlier one was applied. When a mutation is committed while
        fetching, the fetched state is discarded and storage is read again.
        Returns whether the cache was replaced.
        """
        async with self._refetch_lock:
            for attempt in range(1, MAX_REFETCH_ATTEMPTS + 1):
                version = self.state_cache.version
                state = await fetch_state(self.row_store)
                if self.state_cache.replace(state, expected_version=version):
                    logger.info(f"State refreshed from storage (version {self.state_cache.version})")
                    return True
                logger.info(f"A mutation was committed while fetching (attempt {attempt}), fetching again")

        logger.warning(f"Gave up refreshing state after {MAX_REFETCH_ATTEMPTS} attempts")
        return False

    async def trigger_compilation(self) -> None:
        """Manually request a full out-of-band compilation."""
        if self.compile_trigger is None:
            raise RuntimeError("No compile trigger configured")
        await self.compile_trigger.trigger()

    def start(self) -> None:
        """Start the periodic compile trigger, if configured."""
        if self.compile_trigger is None or not self.periodic_compile_interval:
            return
        if self._periodic_task is None:
            self._periodic_task = asyncio.create_task(
                periodic_trigger_loop(self.compile_trigger, self.periodic_compile_interval)
            )

    async def stop(self) -> None:
        if self._periodic_task is None:
            return
        self._periodic_task.cancel()
        try:
            await self._periodic_task
        except asyncio.CancelledError:
            pass
        self._periodic_task = None


async def create_data_api(
    row_store: RowStore,
    catalog_builder: CatalogBuilder = build_catalog,
    compile_trigger: Optional[CompileTrigger] = None,
    periodic_compile_interval: Optional[float] = None,
) -> DataApi:
    state = await fetch_state(row_store)
    logger.info(
        f"Loaded {len(state.rows.software_rows)} software rows and "
        f"{len(state.compiled_data.catalog)} catalog entries"
    )
    return DataApi(
        row_store,
        state,
        catalog_builder=catalog_builder,
        compile_trigger=compile_trigger,
        periodic_compile_interval=periodic_compile_interval,
    )

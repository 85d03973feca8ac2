"""
Mutation engine: the write operations on the row collections.

Every operation follows the same protocol:
1. Take the latest committed snapshot from the state cache.
2. Build new rows copy-on-write (untouched rows are shared with the snapshot,
   changed rows are new model instances), checking preconditions on the way.
3. Persist the four collections in one commit through the row store.
4. Recompute the catalog from the current catalog and the new rows. A
   "data updated" refetch may have replaced it while the commit was pending;
   its enrichment is carried forward.
5. Replace the cached state (rows and compiled data) in one step.

A failure before step 5 leaves the cache untouched. Mutations are serialized
through a single lock, so each one starts from the result of the previous one.
"""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from sill.domain.catalog import CatalogBuilder, build_catalog
from sill.domain.errors import (
    ConflictError,
    ConsistencyError,
    ForbiddenError,
    InvalidSoftwareError,
    NotFoundError,
)
from sill.domain.models import (
    AuditRecord,
    CompiledSoftware,
    MimGroup,
    MutationResult,
    PartialSoftwareRow,
    ReferentRow,
    Rows,
    SoftwareReferentRow,
    SoftwareRow,
    State,
)
from sill.services.state_cache import StateCache
from sill.storage.row_store import RowStore

logger = logging.getLogger(__name__)

AuditSink = Callable[[AuditRecord], None]


def _now_ms() -> int:
    return int(time.time() * 1000)


def normalize_software_name(name: str) -> str:
    return name.lower().replace(" ", "-")


def next_software_id(software_rows: List[SoftwareRow]) -> int:
    return max((row.id for row in software_rows), default=0) + 1


def _find_software_row(rows: Rows, software_id: int) -> Optional[SoftwareRow]:
    for row in rows.software_rows:
        if row.id == software_id:
            return row
    return None


def _find_relation_index(
    relations: List[SoftwareReferentRow], software_id: int, email: str
) -> Optional[int]:
    for i, relation in enumerate(relations):
        if relation.software_id == software_id and relation.referent_email == email:
            return i
    return None


def _with_referent(referent_rows: List[ReferentRow], referent: ReferentRow) -> List[ReferentRow]:
    """Referents are deduplicated by email; an already known referent is kept as is."""
    if any(r.email == referent.email for r in referent_rows):
        return referent_rows
    return [*referent_rows, referent]


class MutationEngine:
    def __init__(
        self,
        row_store: RowStore,
        state_cache: StateCache,
        catalog_builder: CatalogBuilder = build_catalog,
        clock: Callable[[], int] = _now_ms,
    ):
        self._row_store = row_store
        self._cache = state_cache
        self._catalog_builder = catalog_builder
        self._clock = clock
        self._lock = asyncio.Lock()
        self._audit_sinks: List[AuditSink] = []

    def add_audit_sink(self, sink: AuditSink) -> None:
        self._audit_sinks.append(sink)

    # ------------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------------

    async def create_referent_link(
        self,
        referent: ReferentRow,
        software_id: int,
        is_expert: bool,
        use_case_description: str,
    ) -> MutationResult:
        async with self._lock:
            before_version = self._cache.version
            rows = self._cache.state.rows

            software_row = _find_software_row(rows, software_id)
            if software_row is None:
                raise NotFoundError(f"There is no software with id {software_id}")

            relations = list(rows.software_referent_rows)
            index = _find_relation_index(relations, software_id, referent.email)

            if index is not None:
                if relations[index].is_expert == is_expert:
                    return MutationResult(changed=False)
                relations[index] = relations[index].model_copy(update={"is_expert": is_expert})
            else:
                relations.append(
                    SoftwareReferentRow(
                        software_id=software_id,
                        referent_email=referent.email,
                        is_expert=is_expert,
                        use_case_description=use_case_description,
                    )
                )

            new_rows = rows.model_copy(
                update={
                    "referent_rows": _with_referent(rows.referent_rows, referent),
                    "software_referent_rows": relations,
                }
            )

            state = await self._commit(
                operation="create_referent_link",
                actor=referent.email,
                before_version=before_version,
                rows=new_rows,
                commit_message=f"Add referent {referent.email} to software {software_row.name}",
            )
            return MutationResult(changed=True, software=self._compiled(state, software_id))

    async def remove_referent_link(self, email: str, software_id: int) -> MutationResult:
        async with self._lock:
            before_version = self._cache.version
            rows = self._cache.state.rows

            software_row = _find_software_row(rows, software_id)
            if software_row is None:
                raise NotFoundError(f"There is no software with id {software_id}")

            index = _find_relation_index(rows.software_referent_rows, software_id, email)
            if index is None:
                return MutationResult(changed=False)

            relations = [r for i, r in enumerate(rows.software_referent_rows) if i != index]

            referent_rows = rows.referent_rows
            if not any(r.referent_email == email for r in relations):
                # That was the referent's last relation
                referent_rows = [r for r in referent_rows if r.email != email]

            new_rows = rows.model_copy(
                update={
                    "referent_rows": referent_rows,
                    "software_referent_rows": relations,
                }
            )

            state = await self._commit(
                operation="remove_referent_link",
                actor=email,
                before_version=before_version,
                rows=new_rows,
                commit_message=f"Remove referent {email} from software {software_row.name}",
            )
            return MutationResult(changed=True, software=self._compiled(state, software_id))

    async def add_software(
        self,
        partial_software_row: PartialSoftwareRow,
        referent: ReferentRow,
        is_expert: bool,
        use_case_description: str,
    ) -> MutationResult:
        name = partial_software_row.name
        if not name:
            raise InvalidSoftwareError("A software name is required")

        async with self._lock:
            before_version = self._cache.version
            rows = self._cache.state.rows

            normalized = normalize_software_name(name)
            if any(normalize_software_name(s.name) == normalized for s in rows.software_rows):
                raise ConflictError("There is already a software with this name")

            software_id = next_software_id(rows.software_rows)

            defaults: Dict[str, Any] = {
                "function": "",
                "referenced_since_time": self._clock(),
                "is_still_in_observation": False,
                "is_from_french_public_service": False,
                "is_present_in_support_contract": False,
                "alike_softwares": [],
                "license": "",
                "mim_group": MimGroup.MIMO,
                "version_min": "",
                "workshop_urls": [],
                "test_urls": [],
                "use_case_urls": [],
                "agent_workstation": False,
            }
            supplied = {
                k: v
                for k, v in partial_software_row.model_dump(exclude_unset=True).items()
                if v is not None
            }

            try:
                software_row = SoftwareRow.model_validate({**defaults, **supplied, "id": software_id})
            except ValidationError as e:
                raise InvalidSoftwareError(f"Invalid software: {e}") from e

            new_rows = rows.model_copy(
                update={
                    "software_rows": [*rows.software_rows, software_row],
                    "referent_rows": _with_referent(rows.referent_rows, referent),
                    "software_referent_rows": [
                        *rows.software_referent_rows,
                        SoftwareReferentRow(
                            software_id=software_id,
                            referent_email=referent.email,
                            is_expert=is_expert,
                            use_case_description=use_case_description,
                        ),
                    ],
                }
            )

            state = await self._commit(
                operation="add_software",
                actor=referent.email,
                before_version=before_version,
                rows=new_rows,
                commit_message=f"Add {software_row.name} and {referent.email} as referent",
            )
            return MutationResult(changed=True, software=self._require_compiled(state, software_id))

    async def update_software(
        self,
        software_id: int,
        email: str,
        partial_software_row: PartialSoftwareRow,
    ) -> MutationResult:
        async with self._lock:
            before_version = self._cache.version
            rows = self._cache.state.rows

            # Any referent may edit any software, not only the ones they refer
            if not any(r.referent_email == email for r in rows.software_referent_rows):
                raise ForbiddenError("The user is not a referent of this software")

            index = next(
                (i for i, row in enumerate(rows.software_rows) if row.id == software_id),
                None,
            )
            if index is None:
                raise NotFoundError("The software does not exist")

            current = rows.software_rows[index]
            try:
                updated = SoftwareRow.model_validate(
                    {
                        **current.model_dump(),
                        **partial_software_row.model_dump(exclude_unset=True),
                        "id": software_id,
                    }
                )
            except ValidationError as e:
                raise InvalidSoftwareError(f"Invalid software: {e}") from e

            software_rows = list(rows.software_rows)
            software_rows[index] = updated

            state = await self._commit(
                operation="update_software",
                actor=email,
                before_version=before_version,
                rows=rows.model_copy(update={"software_rows": software_rows}),
                commit_message=f"Update {updated.name}",
            )
            return MutationResult(changed=True, software=self._require_compiled(state, software_id))

    # ------------------------------------------------------------------------
    # Commit protocol
    # ------------------------------------------------------------------------

    async def _commit(
        self,
        operation: str,
        actor: Optional[str],
        before_version: int,
        rows: Rows,
        commit_message: str,
    ) -> State:
        # Raises on failure; the cache has not been touched yet
        await self._row_store.write_rows(rows, commit_message)

        compiled = self._cache.state.compiled_data
        catalog = self._catalog_builder(compiled.catalog, rows)
        state = State(
            compiled_data=compiled.model_copy(update={"catalog": catalog}),
            rows=rows,
        )
        self._cache.replace(state)

        record = AuditRecord(
            operation=operation,
            actor=actor,
            timestamp=datetime.now(timezone.utc),
            before_version=before_version,
            after_version=self._cache.version,
            commit_message=commit_message,
        )
        logger.info(
            f"{operation} by {actor}: {commit_message} "
            f"(version {record.before_version} -> {record.after_version})"
        )
        for sink in self._audit_sinks:
            try:
                sink(record)
            except Exception as e:
                logger.error(f"Audit sink {sink!r} failed: {e}", exc_info=True)

        return state

    @staticmethod
    def _compiled(state: State, software_id: int) -> Optional[CompiledSoftware]:
        for software in state.compiled_data.catalog:
            if software.id == software_id:
                return software
        return None

    def _require_compiled(self, state: State, software_id: int) -> CompiledSoftware:
        software = self._compiled(state, software_id)
        if software is None:
            raise ConsistencyError(f"Software {software_id} is missing from the recomputed catalog")
        return software

"""
Local catalog builder.

Given the previous catalog and the raw rows, produce one compiled entry per
software row. Enrichment that only the external build can compute (wikidata,
comptoir du libre, service providers) is carried over from the previous
catalog entry with the same id.
"""

from __future__ import annotations

from typing import Dict, List, Protocol

from sill.domain.models import (
    ENRICHMENT_FIELDS,
    CompiledReferent,
    CompiledSoftware,
    ReferentRow,
    Rows,
)


class CatalogBuilder(Protocol):
    def __call__(
        self, current_catalog: List[CompiledSoftware], rows: Rows
    ) -> List[CompiledSoftware]:
        ...


def build_catalog(current_catalog: List[CompiledSoftware], rows: Rows) -> List[CompiledSoftware]:
    previous_by_id: Dict[int, CompiledSoftware] = {s.id: s for s in current_catalog}
    referent_by_email: Dict[str, ReferentRow] = {r.email: r for r in rows.referent_rows}

    catalog: List[CompiledSoftware] = []
    for software_row in rows.software_rows:
        referents: List[CompiledReferent] = []
        for relation in rows.software_referent_rows:
            if relation.software_id != software_row.id:
                continue
            referent_row = referent_by_email.get(relation.referent_email)
            if referent_row is None:
                continue
            referents.append(
                CompiledReferent(
                    **referent_row.model_dump(),
                    is_expert=relation.is_expert,
                    use_case_description=relation.use_case_description,
                )
            )

        enrichment = {}
        previous = previous_by_id.get(software_row.id)
        if previous is not None:
            enrichment = {field: getattr(previous, field) for field in ENRICHMENT_FIELDS}

        catalog.append(
            CompiledSoftware(
                **software_row.model_dump(),
                **enrichment,
                referents=referents,
            )
        )

    return catalog

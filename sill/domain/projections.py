"""
Read-only projections derived from the compiled data.

Both are pure functions of the compiled data and are recomputed by the state
cache every time the state changes.
"""

from __future__ import annotations

from typing import Dict, List

from sill.domain.models import (
    CompiledData,
    CompiledReferent,
    CompiledSoftware,
    PublicCompiledData,
    PublicCompiledSoftware,
)


def referents_by_software_id(compiled_data: CompiledData) -> Dict[int, List[CompiledReferent]]:
    return {software.id: software.referents for software in compiled_data.catalog}


def remove_referent(software: CompiledSoftware) -> PublicCompiledSoftware:
    """Strip referent identities, keeping only aggregate information."""
    data = software.model_dump(exclude={"referents"})
    return PublicCompiledSoftware(
        **data,
        has_expert_referent=any(r.is_expert for r in software.referents),
        referent_count=len(software.referents),
    )


def remove_referents(compiled_data: CompiledData) -> PublicCompiledData:
    extra = compiled_data.model_extra or {}
    return PublicCompiledData(
        **extra,
        catalog=[remove_referent(software) for software in compiled_data.catalog],
        services=compiled_data.services,
    )

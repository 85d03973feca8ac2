from __future__ import annotations

import logging
from typing import Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from sill.core.dependencies import get_data_api
from sill.domain.models import PartialSoftwareRow, ReferentRow, SillModel
from sill.services.data_api import DataApi

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


class AddSoftwareRequest(SillModel):
    partial_software_row: PartialSoftwareRow
    referent_row: ReferentRow
    is_expert: bool
    use_case_description: str = ""


class UpdateSoftwareRequest(SillModel):
    email: str
    partial_software_row: PartialSoftwareRow


class CreateReferentRequest(SillModel):
    referent_row: ReferentRow
    is_expert: bool
    use_case_description: str = ""


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

@router.get("/compiled-data")
async def get_compiled_data(api: DataApi = Depends(get_data_api)) -> dict:
    """Compiled data with referent identities removed."""
    return api.state_cache.compiled_data_without_referents.to_json_dict()


@router.get("/referents")
async def get_referents(api: DataApi = Depends(get_data_api)) -> Dict[str, List[dict]]:
    return {
        str(software_id): [r.to_json_dict() for r in referents]
        for software_id, referents in api.state_cache.referents_by_software_id.items()
    }


@router.get("/rows")
async def get_rows(api: DataApi = Depends(get_data_api)) -> dict:
    return api.state_cache.state.rows.to_json_dict()


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------

@router.post("/software", status_code=status.HTTP_201_CREATED)
async def add_software(body: AddSoftwareRequest, api: DataApi = Depends(get_data_api)) -> dict:
    result = await api.mutations.add_software(
        body.partial_software_row,
        body.referent_row,
        body.is_expert,
        body.use_case_description,
    )
    return result.to_json_dict()


@router.patch("/software/{software_id}")
async def update_software(
    software_id: int,
    body: UpdateSoftwareRequest,
    api: DataApi = Depends(get_data_api),
) -> dict:
    result = await api.mutations.update_software(software_id, body.email, body.partial_software_row)
    return result.to_json_dict()


@router.put("/software/{software_id}/referents")
async def create_referent(
    software_id: int,
    body: CreateReferentRequest,
    api: DataApi = Depends(get_data_api),
) -> dict:
    result = await api.mutations.create_referent_link(
        body.referent_row,
        software_id,
        body.is_expert,
        body.use_case_description,
    )
    return result.to_json_dict()


@router.delete("/software/{software_id}/referents/{email}")
async def remove_referent(
    software_id: int,
    email: str,
    api: DataApi = Depends(get_data_api),
) -> dict:
    result = await api.mutations.remove_referent_link(email, software_id)
    return result.to_json_dict()


# ---------------------------------------------------------------------------
# Recomputation
# ---------------------------------------------------------------------------

@router.post("/data-updated", status_code=status.HTTP_202_ACCEPTED)
async def data_updated(background_tasks: BackgroundTasks, api: DataApi = Depends(get_data_api)) -> dict:
    """Signal sent once the external build has published new compiled data."""
    background_tasks.add_task(_refresh_state, api)
    return {"status": "accepted"}


@router.post("/compile", status_code=status.HTTP_202_ACCEPTED)
async def compile_data(background_tasks: BackgroundTasks, api: DataApi = Depends(get_data_api)) -> dict:
    if api.compile_trigger is None:
        raise HTTPException(status_code=409, detail="No compile trigger configured")
    background_tasks.add_task(_trigger_compilation, api)
    return {"status": "accepted"}


async def _refresh_state(api: DataApi) -> None:
    try:
        await api.on_data_updated()
    except Exception as e:
        logger.error(f"Refreshing state after data update failed: {e}", exc_info=True)


async def _trigger_compilation(api: DataApi) -> None:
    # Fire-and-forget: the caller already got its response
    try:
        await api.trigger_compilation()
    except Exception as e:
        logger.error(f"Manual compile trigger failed: {e}")

"""
Pydantic models for the SILL data service.

This module defines all data models used throughout the application, including:
- The four persisted row collections (software, referent, relation, service)
- The compiled catalog produced by the catalog builder
- The cached state and the results/audit records of mutations

Python attribute names are snake_case; the JSON representation (files in the
data repository and HTTP payloads) uses the camelCase aliases.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SillModel(BaseModel):
    """Base model: camelCase aliases on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        """Serialize the way rows are stored: aliases, no null values."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Software rows (software.json)
# ---------------------------------------------------------------------------


class KnownSoftwareRef(SillModel):
    """Reference to another software row of the catalog."""

    is_known: Literal[True] = True
    software_id: int


class UnknownSoftwareRef(SillModel):
    """Free-text placeholder for a software that is not catalogued yet."""

    is_known: Literal[False] = False
    software_name: str


SoftwareRef = Union[KnownSoftwareRef, UnknownSoftwareRef]


class Dereferencing(SillModel):
    reason: Optional[str] = None
    time: int = Field(description="Epoch milliseconds of the dereferencing.")
    last_recommended_version: Optional[str] = None


class SoftwareTestUrl(SillModel):
    description: str
    url: str


class MimGroup(str, Enum):
    MIMO = "MIMO"
    MIMDEV = "MIMDEV"
    MIMPROD = "MIMPROD"
    MIMDEVOPS = "MIMDEVOPS"


class SoftwareRow(SillModel):
    """
    A single entry of software.json.

    Field declaration order is the serialization order of the file.
    """

    id: int = Field(description="Unique, monotonically allocated identifier.")
    name: str
    function: str = Field(description="What the software is used for.")
    referenced_since_time: int = Field(
        description="Epoch milliseconds of the referencing.",
    )
    dereferencing: Optional[Dereferencing] = None
    is_still_in_observation: bool
    parent_software: Optional[SoftwareRef] = None
    is_from_french_public_service: bool
    is_present_in_support_contract: bool
    alike_softwares: List[SoftwareRef] = Field(default_factory=list)
    wikidata_id: Optional[str] = None
    comptoir_du_libre_id: Optional[int] = None
    license: str
    context_of_use: Optional[str] = None
    catalog_numerique_gouv_fr_id: Optional[str] = None
    mim_group: MimGroup
    version_min: str
    workshop_urls: List[str] = Field(default_factory=list)
    test_urls: List[SoftwareTestUrl] = Field(default_factory=list)
    use_case_urls: List[str] = Field(default_factory=list)
    agent_workstation: bool


class PartialSoftwareRow(SillModel):
    """
    Caller-supplied subset of a software row.

    Fields absent from the payload are "no change"; the set of fields the
    caller actually supplied is available through ``model_fields_set``, so an
    explicit ``null`` is distinguishable from an omitted field.
    """

    name: Optional[str] = None
    function: Optional[str] = None
    referenced_since_time: Optional[int] = None
    dereferencing: Optional[Dereferencing] = None
    is_still_in_observation: Optional[bool] = None
    parent_software: Optional[SoftwareRef] = None
    is_from_french_public_service: Optional[bool] = None
    is_present_in_support_contract: Optional[bool] = None
    alike_softwares: Optional[List[SoftwareRef]] = None
    wikidata_id: Optional[str] = None
    comptoir_du_libre_id: Optional[int] = None
    license: Optional[str] = None
    context_of_use: Optional[str] = None
    catalog_numerique_gouv_fr_id: Optional[str] = None
    mim_group: Optional[MimGroup] = None
    version_min: Optional[str] = None
    workshop_urls: Optional[List[str]] = None
    test_urls: Optional[List[SoftwareTestUrl]] = None
    use_case_urls: Optional[List[str]] = None
    agent_workstation: Optional[bool] = None


# ---------------------------------------------------------------------------
# Referent, relation and service rows
# ---------------------------------------------------------------------------


class ReferentRow(SillModel):
    """A person identified by email, associated with one or more software rows."""

    model_config = ConfigDict(extra="allow")

    email: str = Field(description="Unique key of the referent.")
    agency_name: Optional[str] = None
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    email_alt: Optional[str] = None


class SoftwareReferentRow(SillModel):
    """Join row: this referent is associated with this software."""

    software_id: int
    referent_email: str
    is_expert: bool
    use_case_description: str = ""


# Service rows are opaque to the mutation engine: read and written verbatim.
ServiceRow = Dict[str, Any]


class Rows(SillModel):
    """The system of record: the four collections persisted together."""

    software_rows: List[SoftwareRow] = Field(default_factory=list)
    referent_rows: List[ReferentRow] = Field(default_factory=list)
    software_referent_rows: List[SoftwareReferentRow] = Field(default_factory=list)
    service_rows: List[ServiceRow] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Compiled data (compiledData.json on the build branch)
# ---------------------------------------------------------------------------

# Fields only the external build can populate; carried over between local
# recomputations of the catalog.
ENRICHMENT_FIELDS = (
    "wikidata_data",
    "comptoir_du_libre_software",
    "annuaire_cnll_service_providers",
)


class CompiledReferent(ReferentRow):
    is_expert: bool
    use_case_description: str = ""


class CompiledSoftwareBase(SoftwareRow):
    wikidata_data: Optional[Dict[str, Any]] = None
    comptoir_du_libre_software: Optional[Dict[str, Any]] = None
    annuaire_cnll_service_providers: Optional[List[Dict[str, Any]]] = None


class CompiledSoftware(CompiledSoftwareBase):
    """Catalog entry enriched with its referents."""

    referents: List[CompiledReferent] = Field(default_factory=list)


class PublicCompiledSoftware(CompiledSoftwareBase):
    """Catalog entry safe to expose: referent identities removed."""

    has_expert_referent: bool = False
    referent_count: int = 0


class CompiledData(SillModel):
    model_config = ConfigDict(extra="allow")

    catalog: List[CompiledSoftware] = Field(default_factory=list)
    services: List[Dict[str, Any]] = Field(default_factory=list)


class PublicCompiledData(SillModel):
    model_config = ConfigDict(extra="allow")

    catalog: List[PublicCompiledSoftware] = Field(default_factory=list)
    services: List[Dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Cached state, mutation results and audit records
# ---------------------------------------------------------------------------


class State(SillModel):
    """The unit held by the state cache."""

    compiled_data: CompiledData
    rows: Rows


class MutationResult(SillModel):
    """
    Outcome of a mutation.

    ``changed`` is False for benign no-ops (the relation was already in the
    requested state, or there was nothing to remove); nothing was committed.
    """

    changed: bool
    software: Optional[CompiledSoftware] = None


class AuditRecord(SillModel):
    """Structured trace of a committed mutation."""

    operation: str
    actor: Optional[str] = None
    timestamp: datetime
    before_version: int
    after_version: Optional[int] = None
    commit_message: str

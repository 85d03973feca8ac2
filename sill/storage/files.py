"""
On-disk representation of the row collections and of the compiled data.

Each collection is a JSON array in its own file, pretty-printed with 4 spaces,
camelCase keys in the field order of the models and without null values.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from sill.domain.models import (
    CompiledData,
    ReferentRow,
    Rows,
    SoftwareReferentRow,
    SoftwareRow,
)

SOFTWARE_JSON = "software.json"
REFERENT_JSON = "referent.json"
SOFTWARE_REFERENT_JSON = "softwareReferent.json"
SERVICE_JSON = "service.json"
COMPILED_DATA_JSON = "compiledData.json"

ROW_FILES = (SOFTWARE_JSON, REFERENT_JSON, SOFTWARE_REFERENT_JSON, SERVICE_JSON)


def dumps_rows(rows: List[Any]) -> str:
    return json.dumps(rows, indent=4, ensure_ascii=False) + "\n"


def serialize_rows(rows: Rows) -> Dict[str, str]:
    """Map each row file name to its text content."""
    return {
        SOFTWARE_JSON: dumps_rows([r.to_json_dict() for r in rows.software_rows]),
        REFERENT_JSON: dumps_rows([r.to_json_dict() for r in rows.referent_rows]),
        SOFTWARE_REFERENT_JSON: dumps_rows([r.to_json_dict() for r in rows.software_referent_rows]),
        SERVICE_JSON: dumps_rows(rows.service_rows),
    }


def parse_rows(contents: Dict[str, str]) -> Rows:
    """Inverse of ``serialize_rows``; every row is validated."""
    return Rows(
        software_rows=[SoftwareRow.model_validate(r) for r in json.loads(contents[SOFTWARE_JSON])],
        referent_rows=[ReferentRow.model_validate(r) for r in json.loads(contents[REFERENT_JSON])],
        software_referent_rows=[
            SoftwareReferentRow.model_validate(r)
            for r in json.loads(contents[SOFTWARE_REFERENT_JSON])
        ],
        service_rows=json.loads(contents[SERVICE_JSON]),
    )


def parse_compiled_data(content: str) -> CompiledData:
    return CompiledData.model_validate(json.loads(content))


def serialize_compiled_data(compiled_data: CompiledData) -> str:
    return json.dumps(compiled_data.to_json_dict(), indent=4, ensure_ascii=False) + "\n"

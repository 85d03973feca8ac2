"""
Validate and reformat a software.json file.

Every row must match the software schema exactly (no unknown fields). On
success the file is rewritten with the canonical field order and
indentation used by the data service, so hand edits produce minimal diffs.

Usage:
    python -m sill.tools.edit_software [path/to/software.json]
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import List

from pydantic import ConfigDict, ValidationError

from sill.domain.models import SoftwareRow
from sill.storage.files import dumps_rows

logger = logging.getLogger(__name__)


class StrictSoftwareRow(SoftwareRow):
    model_config = ConfigDict(extra="forbid")


def reformat_software_file(path: Path) -> int:
    """Rewrite ``path`` in canonical form. Returns the number of rows."""
    raw_rows = json.loads(path.read_text(encoding="utf-8"))

    rows: List[StrictSoftwareRow] = []
    for raw in raw_rows:
        try:
            rows.append(StrictSoftwareRow.model_validate(raw))
        except ValidationError:
            logger.error(f"Invalid software row: {json.dumps(raw, ensure_ascii=False)}")
            raise

    path.write_text(dumps_rows([row.to_json_dict() for row in rows]), encoding="utf-8")
    return len(rows)


def main(argv: List[str]) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")

    path = Path(argv[1]) if len(argv) > 1 else Path.cwd() / "software.json"
    try:
        count = reformat_software_file(path)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to reformat {path}: {e}")
        return 1

    logger.info(f"Reformatted {count} software rows in {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))

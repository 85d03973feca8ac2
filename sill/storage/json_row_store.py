import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List

import aiofiles

from sill.domain.models import CompiledData, Rows
from sill.storage.files import (
    COMPILED_DATA_JSON,
    ROW_FILES,
    parse_compiled_data,
    parse_rows,
    serialize_compiled_data,
    serialize_rows,
)
from sill.storage.row_store import RowStore

logger = logging.getLogger(__name__)

BUILD_DIR_NAME = "build"
COMMIT_LOG_NAME = "commits.log"


def _backup_path(path: Path) -> Path:
    return path.with_name(f".{path.name}.bak")


class JsonRowStore(RowStore):
    """
    Row store backed by a plain directory.

    Layout:
        <data_dir>/software.json, referent.json, softwareReferent.json, service.json
        <data_dir>/build/compiledData.json
        <data_dir>/commits.log
    """

    def __init__(self, data_dir: Path):
        self._data_dir = data_dir

        # Ensure data directory exists
        if not self._data_dir.exists():
            self._data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def initialize(self) -> None:
        """Create empty collections (and an empty compiled data) where missing."""
        for file_name in ROW_FILES:
            path = self._data_dir / file_name
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

        compiled_data_path = self._data_dir / BUILD_DIR_NAME / COMPILED_DATA_JSON
        if not compiled_data_path.exists():
            compiled_data_path.parent.mkdir(parents=True, exist_ok=True)
            compiled_data_path.write_text('{\n    "catalog": [],\n    "services": []\n}\n', encoding="utf-8")

    def save_compiled_data(self, compiled_data: CompiledData) -> None:
        """Publish a compiled data, standing in for the external build output."""
        path = self._data_dir / BUILD_DIR_NAME / COMPILED_DATA_JSON
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(serialize_compiled_data(compiled_data), encoding="utf-8")

    async def fetch_compiled_data(self) -> CompiledData:
        path = self._data_dir / BUILD_DIR_NAME / COMPILED_DATA_JSON
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return parse_compiled_data(await f.read())

    async def fetch_rows(self) -> Rows:
        contents: Dict[str, str] = {}
        for file_name in ROW_FILES:
            async with aiofiles.open(self._data_dir / file_name, "r", encoding="utf-8") as f:
                contents[file_name] = await f.read()
        return parse_rows(contents)

    async def write_rows(self, rows: Rows, commit_message: str) -> None:
        contents = serialize_rows(rows)

        # Stage everything first so a failure leaves the current files untouched
        staged: Dict[Path, Path] = {}
        try:
            for file_name, text in contents.items():
                tmp_path = self._data_dir / f".{file_name}.tmp"
                async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                    await f.write(text)
                staged[tmp_path] = self._data_dir / file_name
        except Exception:
            for tmp_path in staged:
                tmp_path.unlink(missing_ok=True)
            raise

        # Keep the current files until all four are in place
        swapped: List[Path] = []
        try:
            for tmp_path, target in staged.items():
                if target.exists():
                    shutil.copy2(target, _backup_path(target))
                tmp_path.replace(target)
                swapped.append(target)
        except OSError:
            logger.error(f"Failed to replace row files in {self._data_dir}, restoring previous content")
            for target in swapped:
                backup = _backup_path(target)
                if backup.exists():
                    backup.replace(target)
                else:
                    target.unlink(missing_ok=True)
            for tmp_path in staged:
                tmp_path.unlink(missing_ok=True)
            raise
        finally:
            for target in staged.values():
                _backup_path(target).unlink(missing_ok=True)

        timestamp = datetime.now(timezone.utc).isoformat()
        async with aiofiles.open(self._data_dir / COMMIT_LOG_NAME, "a", encoding="utf-8") as f:
            await f.write(f"{timestamp}\t{commit_message}\n")

        logger.info(f"Committed rows to {self._data_dir}: {commit_message}")

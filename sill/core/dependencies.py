from typing import Optional

from sill.core.config import Settings
from sill.services.compile_trigger import CompileTrigger
from sill.services.data_api import DataApi, create_data_api
from sill.storage.git_row_store import GitRowStore
from sill.storage.json_row_store import JsonRowStore
from sill.storage.row_store import RowStore

_settings: Optional[Settings] = None
_data_api: Optional[DataApi] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def build_row_store(settings: Settings) -> RowStore:
    if settings.data_dir is not None:
        store = JsonRowStore(settings.data_dir.expanduser())
        store.initialize()
        return store
    if settings.data_repo_url:
        return GitRowStore(settings.data_repo_url, settings.github_token)
    raise RuntimeError("Either SILL_DATA_DIR or SILL_DATA_REPO_URL must be set")


def build_compile_trigger(settings: Settings) -> Optional[CompileTrigger]:
    if not settings.data_repo_url:
        return None
    return CompileTrigger(
        settings.data_repo_url,
        settings.github_token,
        build_repository=settings.build_repository,
    )


async def initialize_data_api() -> DataApi:
    """Called on startup: fetch the initial state and start the triggers."""
    global _data_api
    if _data_api is None:
        settings = get_settings()
        _data_api = await create_data_api(
            build_row_store(settings),
            compile_trigger=build_compile_trigger(settings),
            periodic_compile_interval=(
                settings.compile_interval_seconds if settings.periodic_compile else None
            ),
        )
        _data_api.start()
    return _data_api


def get_data_api() -> DataApi:
    if _data_api is None:
        raise RuntimeError("The data API has not been initialized")
    return _data_api


async def shutdown_data_api() -> None:
    global _data_api
    if _data_api is not None:
        await _data_api.stop()
        _data_api = None

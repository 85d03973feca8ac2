"""Root conftest: a directory-backed data API per test."""

import pytest

from sill.domain.models import Rows
from sill.services.data_api import create_data_api
from tests.factories import RecordingRowStore, make_software_row, seed_store


@pytest.fixture
def default_rows() -> Rows:
    return Rows(software_rows=[make_software_row(1, "Foo")])


@pytest.fixture
async def store(tmp_path, default_rows) -> RecordingRowStore:
    store = RecordingRowStore(tmp_path / "data")
    await seed_store(store, default_rows)
    return store


@pytest.fixture
async def data_api(store):
    return await create_data_api(store)

"""Mutation engine: tests for the four write operations.

Tests cover:
    - Referent links: creation, idempotence, expert flag update, removal with
      referent garbage collection
    - Software creation: id allocation, defaults, name conflicts
    - Software update: partial merge, authorization, not found
    - Failure handling: commit failure leaves the cache untouched
"""

import asyncio

import pytest

from sill.domain.errors import (
    ConflictError,
    ConsistencyError,
    ForbiddenError,
    InvalidSoftwareError,
    NotFoundError,
)
from sill.domain.models import MimGroup, PartialSoftwareRow, Rows
from sill.services.data_api import create_data_api
from tests.factories import (
    RecordingRowStore,
    make_referent,
    make_relation,
    make_software_row,
    seed_store,
)


async def make_api(tmp_path, rows: Rows):
    store = RecordingRowStore(tmp_path / "seeded")
    await seed_store(store, rows)
    return store, await create_data_api(store)


# ---------------------------------------------------------------------------
# create_referent_link
# ---------------------------------------------------------------------------


async def test_create_referent_link_adds_relation_and_referent(data_api, store):
    result = await data_api.mutations.create_referent_link(
        make_referent("alice@example.org"), 1, is_expert=True, use_case_description="daily use",
    )

    assert result.changed
    rows = data_api.state_cache.state.rows
    assert [r.email for r in rows.referent_rows] == ["alice@example.org"]
    assert len(rows.software_referent_rows) == 1
    relation = rows.software_referent_rows[0]
    assert relation.software_id == 1
    assert relation.is_expert is True
    assert relation.use_case_description == "daily use"
    assert store.commit_messages == ["Add referent alice@example.org to software Foo"]


async def test_create_referent_link_twice_commits_once(data_api, store):
    referent = make_referent("alice@example.org")

    first = await data_api.mutations.create_referent_link(referent, 1, False, "")
    second = await data_api.mutations.create_referent_link(referent, 1, False, "")

    assert first.changed
    assert not second.changed
    assert len(store.commit_messages) == 1


async def test_create_referent_link_updates_expert_flag_in_place(data_api, store):
    referent = make_referent("alice@example.org")
    await data_api.mutations.create_referent_link(referent, 1, False, "first")

    result = await data_api.mutations.create_referent_link(referent, 1, True, "second")

    assert result.changed
    relations = data_api.state_cache.state.rows.software_referent_rows
    assert len(relations) == 1
    assert relations[0].is_expert is True
    # Only the flag changes
    assert relations[0].use_case_description == "first"
    assert len(store.commit_messages) == 2


async def test_create_referent_link_does_not_duplicate_known_referent(tmp_path):
    rows = Rows(
        software_rows=[make_software_row(1, "Foo"), make_software_row(2, "Bar")],
        referent_rows=[make_referent("alice@example.org")],
        software_referent_rows=[make_relation(1, "alice@example.org")],
    )
    _, api = await make_api(tmp_path, rows)

    await api.mutations.create_referent_link(make_referent("alice@example.org"), 2, False, "")

    state_rows = api.state_cache.state.rows
    assert [r.email for r in state_rows.referent_rows] == ["alice@example.org"]
    assert len(state_rows.software_referent_rows) == 2


async def test_create_referent_link_unknown_software_fails(data_api, store):
    with pytest.raises(NotFoundError):
        await data_api.mutations.create_referent_link(make_referent("a@example.org"), 42, False, "")
    assert store.commit_messages == []


async def test_create_referent_link_result_carries_compiled_software(data_api):
    result = await data_api.mutations.create_referent_link(
        make_referent("alice@example.org"), 1, True, "",
    )

    assert result.software is not None
    assert result.software.id == 1
    assert [r.email for r in result.software.referents] == ["alice@example.org"]
    assert data_api.state_cache.referents_by_software_id[1][0].is_expert is True


# ---------------------------------------------------------------------------
# remove_referent_link
# ---------------------------------------------------------------------------


@pytest.fixture
def two_links_rows() -> Rows:
    return Rows(
        software_rows=[make_software_row(1, "Foo"), make_software_row(2, "Bar")],
        referent_rows=[make_referent("alice@example.org")],
        software_referent_rows=[
            make_relation(1, "alice@example.org"),
            make_relation(2, "alice@example.org", is_expert=True),
        ],
    )


async def test_remove_referent_link_keeps_referent_with_other_relations(tmp_path, two_links_rows):
    store, api = await make_api(tmp_path, two_links_rows)

    result = await api.mutations.remove_referent_link("alice@example.org", 1)

    assert result.changed
    rows = api.state_cache.state.rows
    assert [(r.software_id, r.referent_email) for r in rows.software_referent_rows] == [
        (2, "alice@example.org")
    ]
    assert [r.email for r in rows.referent_rows] == ["alice@example.org"]
    assert store.commit_messages == ["Remove referent alice@example.org from software Foo"]


async def test_remove_last_referent_link_deletes_referent(tmp_path, two_links_rows):
    _, api = await make_api(tmp_path, two_links_rows)

    await api.mutations.remove_referent_link("alice@example.org", 1)
    await api.mutations.remove_referent_link("alice@example.org", 2)

    rows = api.state_cache.state.rows
    assert rows.software_referent_rows == []
    assert rows.referent_rows == []


async def test_remove_missing_referent_link_is_a_no_op(data_api, store):
    result = await data_api.mutations.remove_referent_link("nobody@example.org", 1)

    assert not result.changed
    assert store.commit_messages == []


async def test_remove_referent_link_unknown_software_fails(data_api):
    with pytest.raises(NotFoundError):
        await data_api.mutations.remove_referent_link("alice@example.org", 99)


# ---------------------------------------------------------------------------
# add_software
# ---------------------------------------------------------------------------


async def test_add_software_scenario(data_api, store):
    referent = make_referent("a@example.org")

    result = await data_api.mutations.add_software(
        PartialSoftwareRow(name="Bar"), referent, is_expert=False, use_case_description="",
    )

    rows = data_api.state_cache.state.rows
    assert {s.id for s in rows.software_rows} == {1, 2}
    assert result.changed
    assert result.software.id == 2
    catalog = {s.id: s for s in data_api.state_cache.state.compiled_data.catalog}
    assert "a@example.org" in [r.email for r in catalog[2].referents]
    assert store.commit_messages == ["Add Bar and a@example.org as referent"]


async def test_add_software_allocates_id_after_max(tmp_path):
    rows = Rows(
        software_rows=[
            make_software_row(1, "One"),
            make_software_row(5, "Five"),
            make_software_row(7, "Seven"),
        ]
    )
    _, api = await make_api(tmp_path, rows)

    result = await api.mutations.add_software(
        PartialSoftwareRow(name="Eight"), make_referent("a@example.org"), False, "",
    )

    assert result.software.id == 8


async def test_add_software_on_empty_rows_starts_at_one(tmp_path):
    _, api = await make_api(tmp_path, Rows())

    result = await api.mutations.add_software(
        PartialSoftwareRow(name="First"), make_referent("a@example.org"), False, "",
    )

    assert result.software.id == 1


@pytest.mark.parametrize("name", ["foo", "FOO", "Foo Bar", "foo bar"])
async def test_add_software_name_conflict(tmp_path, name):
    rows = Rows(software_rows=[make_software_row(1, "Foo"), make_software_row(2, "foo-bar")])
    store, api = await make_api(tmp_path, rows)

    with pytest.raises(ConflictError):
        await api.mutations.add_software(
            PartialSoftwareRow(name=name), make_referent("a@example.org"), False, "",
        )
    assert store.commit_messages == []
    assert len(api.state_cache.state.rows.software_rows) == 2


async def test_add_software_seeds_defaults(store):
    api = await create_data_api(store)
    api.mutations._clock = lambda: 1_700_000_000_000

    result = await api.mutations.add_software(
        PartialSoftwareRow(name="Bar", license="GPL-3.0", mim_group=MimGroup.MIMDEV),
        make_referent("a@example.org"),
        True,
        "",
    )

    software = result.software
    assert software.referenced_since_time == 1_700_000_000_000
    assert software.is_still_in_observation is False
    assert software.is_present_in_support_contract is False
    assert software.alike_softwares == []
    assert software.workshop_urls == []
    assert software.test_urls == []
    assert software.use_case_urls == []
    # Caller-supplied values win over the defaults
    assert software.license == "GPL-3.0"
    assert software.mim_group == MimGroup.MIMDEV


async def test_add_software_requires_a_name(data_api):
    with pytest.raises(InvalidSoftwareError):
        await data_api.mutations.add_software(
            PartialSoftwareRow(), make_referent("a@example.org"), False, "",
        )


async def test_add_software_missing_from_catalog_is_a_consistency_error(store):
    api = await create_data_api(store, catalog_builder=lambda current, rows: [])

    with pytest.raises(ConsistencyError):
        await api.mutations.add_software(
            PartialSoftwareRow(name="Bar"), make_referent("a@example.org"), False, "",
        )


# ---------------------------------------------------------------------------
# update_software
# ---------------------------------------------------------------------------


@pytest.fixture
def referenced_rows() -> Rows:
    return Rows(
        software_rows=[
            make_software_row(1, "Foo", wikidata_id="Q1", context_of_use="Office"),
            make_software_row(2, "Bar"),
        ],
        referent_rows=[make_referent("alice@example.org")],
        software_referent_rows=[make_relation(2, "alice@example.org")],
    )


async def test_update_software_leaves_omitted_fields_unchanged(tmp_path, referenced_rows):
    store, api = await make_api(tmp_path, referenced_rows)

    result = await api.mutations.update_software(
        1, "alice@example.org", PartialSoftwareRow(function="Word processing"),
    )

    software = result.software
    assert software.function == "Word processing"
    assert software.name == "Foo"
    assert software.wikidata_id == "Q1"
    assert software.context_of_use == "Office"
    assert store.commit_messages == ["Update Foo"]


async def test_update_software_explicit_null_clears_optional_field(tmp_path, referenced_rows):
    _, api = await make_api(tmp_path, referenced_rows)

    partial = PartialSoftwareRow.model_validate({"contextOfUse": None})
    result = await api.mutations.update_software(1, "alice@example.org", partial)

    assert result.software.context_of_use is None
    assert result.software.wikidata_id == "Q1"


async def test_update_software_rejects_clearing_required_field(tmp_path, referenced_rows):
    store, api = await make_api(tmp_path, referenced_rows)

    partial = PartialSoftwareRow.model_validate({"name": None})
    with pytest.raises(InvalidSoftwareError):
        await api.mutations.update_software(1, "alice@example.org", partial)
    assert store.commit_messages == []


async def test_update_software_requires_a_referent(tmp_path, referenced_rows):
    _, api = await make_api(tmp_path, referenced_rows)

    with pytest.raises(ForbiddenError):
        await api.mutations.update_software(1, "mallory@example.org", PartialSoftwareRow(name="X"))


async def test_update_software_unknown_id(tmp_path, referenced_rows):
    _, api = await make_api(tmp_path, referenced_rows)

    with pytest.raises(NotFoundError):
        await api.mutations.update_software(99, "alice@example.org", PartialSoftwareRow(name="X"))


# ---------------------------------------------------------------------------
# Failure handling and serialization
# ---------------------------------------------------------------------------


async def test_commit_failure_leaves_cache_untouched(data_api, store):
    state_before = data_api.state_cache.state
    version_before = data_api.state_cache.version
    store.fail_writes = True

    with pytest.raises(OSError):
        await data_api.mutations.add_software(
            PartialSoftwareRow(name="Bar"), make_referent("a@example.org"), False, "",
        )

    assert data_api.state_cache.state is state_before
    assert data_api.state_cache.version == version_before


async def test_snapshot_held_by_reader_is_not_mutated(data_api):
    snapshot = data_api.state_cache.state

    await data_api.mutations.create_referent_link(make_referent("a@example.org"), 1, False, "")

    assert snapshot.rows.software_referent_rows == []
    assert snapshot.rows.referent_rows == []
    assert data_api.state_cache.state is not snapshot


async def test_concurrent_mutations_do_not_lose_updates(data_api, store):
    await asyncio.gather(
        data_api.mutations.create_referent_link(make_referent("a@example.org"), 1, False, ""),
        data_api.mutations.create_referent_link(make_referent("b@example.org"), 1, False, ""),
        data_api.mutations.add_software(
            PartialSoftwareRow(name="Bar"), make_referent("c@example.org"), False, "",
        ),
    )

    rows = data_api.state_cache.state.rows
    assert {r.email for r in rows.referent_rows} == {"a@example.org", "b@example.org", "c@example.org"}
    assert len(rows.software_referent_rows) == 3
    assert len(store.commit_messages) == 3

    persisted = await store.fetch_rows()
    assert persisted == rows


async def test_audit_record_emitted_per_commit(data_api):
    await data_api.mutations.create_referent_link(make_referent("a@example.org"), 1, False, "")

    assert len(data_api.audit_records) == 1
    record = data_api.audit_records[0]
    assert record.operation == "create_referent_link"
    assert record.actor == "a@example.org"
    assert record.before_version == 0
    assert record.after_version == 1
    assert record.commit_message == "Add referent a@example.org to software Foo"

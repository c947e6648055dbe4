"""
Tests for ChunkedStore loading, lookup and writes.
"""

from datetime import datetime, timezone

import pytest

from chunkstore.core.errors import ConfigurationError, PreconditionError
from chunkstore.core.models import StructuredFile
from chunkstore.infrastructure.fakes import InMemoryRemoteFetcher
from chunkstore.services import ChunkedStore, DiagnosticKind, StoreState
from tests.chunked_store_test_utils import (
    NAMESPACE,
    SUMMARY_PATH,
    create_remote,
    create_store,
)

NEW_FILE = StructuredFile(
    name="mock-4",
    path="src/component/added.js",
    content={"description": "Additional duck"},
)
UPDATED_FILE = StructuredFile(
    name="mock-5",
    path="src/component/added.js",
    content={"description": "Updated duck"},
)


# ─────────────────────────────────────────────────────────────────
# Construction
# ─────────────────────────────────────────────────────────────────


def test_creates_an_empty_store() -> None:
    store = ChunkedStore(NAMESPACE, InMemoryRemoteFetcher())

    summary = store.output_summary()

    assert summary["lookup"] == []
    assert summary["meta"]["version"] == "1"
    assert store.state is StoreState.EMPTY
    assert store.chunk_size == 40


def test_summary_path_is_derived_from_namespace() -> None:
    store = ChunkedStore(NAMESPACE, InMemoryRemoteFetcher())

    assert store.summary_path == ".duck/duck.json"
    assert store.chunk_path(0) == ".duck/00000.json"
    assert store.chunk_path(17) == ".duck/00017.json"


def test_empty_namespace_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="namespace"):
        ChunkedStore("", InMemoryRemoteFetcher())


def test_missing_fetch_function_is_rejected() -> None:
    with pytest.raises(ConfigurationError, match="remote"):
        ChunkedStore(NAMESPACE, None)


def test_non_callable_remote_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        ChunkedStore(NAMESPACE, "not-a-function")


@pytest.mark.parametrize("chunk_size", [0, -3, 2.5, True])
def test_invalid_chunk_size_is_rejected(chunk_size) -> None:
    with pytest.raises(ConfigurationError, match="chunk_size"):
        ChunkedStore(NAMESPACE, InMemoryRemoteFetcher(), chunk_size=chunk_size)


def test_chunk_size_is_read_only() -> None:
    store = create_store()

    with pytest.raises(AttributeError):
        store.chunk_size = 10  # type: ignore[misc]


def test_meta_template_fills_initial_meta() -> None:
    store = ChunkedStore(NAMESPACE, InMemoryRemoteFetcher(), {"pipelines": [], "owner": "qa"})

    meta = store.output_summary()["meta"]

    assert meta["pipelines"] == []
    assert meta["owner"] == "qa"


# ─────────────────────────────────────────────────────────────────
# Summary loading
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_loads_a_summary() -> None:
    store = create_store()

    await store.load_summary()

    summary = store.output_summary()
    assert len(summary["lookup"]) == 2
    assert summary["meta"]["pipelines"] == ["cd1d3bab-03db-494c-9e03-16ee456964fb"]
    assert store.meta.created_at == datetime(2024, 4, 8, 13, 50, 2, 790000, tzinfo=timezone.utc)
    assert store.state is StoreState.SUMMARY_LOADED


@pytest.mark.asyncio
async def test_plain_async_function_can_be_the_remote() -> None:
    remote = create_remote()

    async def fetch(path: str):
        return await remote.fetch(path)

    store = ChunkedStore(NAMESPACE, fetch, chunk_size=2)
    await store.load()

    assert (await store.get_file("src/database.js")).name == "mock-2"


@pytest.mark.asyncio
async def test_summary_failure_degrades_to_empty_store() -> None:
    remote = create_remote()
    remote.fail(SUMMARY_PATH)
    store = create_store(remote)

    await store.load_summary()

    assert store.output_summary()["lookup"] == []
    assert store.output_summary()["meta"]["pipelines"] == []
    assert store.status.summary_loaded
    assert [d.kind for d in store.diagnostics] == [DiagnosticKind.SUMMARY_UNAVAILABLE]


@pytest.mark.asyncio
async def test_empty_remote_summary_uses_defaults() -> None:
    store = create_store(InMemoryRemoteFetcher())

    await store.load_summary()

    meta = store.output_summary()["meta"]
    assert meta["version"] == "1"
    assert meta["pipelines"] == []
    assert store.lookup == []


@pytest.mark.asyncio
async def test_template_keys_missing_remotely_keep_their_default() -> None:
    store = ChunkedStore(NAMESPACE, create_remote(), {"pipelines": [], "owner": "qa"})

    await store.load_summary()

    assert store.meta.get("owner") == "qa"
    assert store.meta.get("pipelines") == ["cd1d3bab-03db-494c-9e03-16ee456964fb"]


@pytest.mark.asyncio
async def test_reloading_summary_fetches_again() -> None:
    remote = create_remote()
    store = create_store(remote)

    await store.load_summary()
    await store.load_summary()

    assert remote.fetch_count(SUMMARY_PATH) == 2


# ─────────────────────────────────────────────────────────────────
# Chunk loading
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_loads_all_chunks() -> None:
    store = create_store()

    await store.load()

    assert len(store.output_summary()["lookup"]) == 2
    assert len(store.output_chunks()) == 2
    assert store.state is StoreState.CHUNKS_LOADED


@pytest.mark.asyncio
async def test_load_fetches_chunks_in_ascending_order() -> None:
    remote = create_remote()
    store = create_store(remote)

    await store.load()

    assert remote.fetched == [SUMMARY_PATH, ".duck/00000.json", ".duck/00001.json"]


@pytest.mark.asyncio
async def test_load_chunk_is_memoized() -> None:
    remote = create_remote()
    store = create_store(remote)
    await store.load_summary()

    assert await store.load_chunk(1)
    assert await store.load_chunk(1)

    assert remote.fetch_count(".duck/00001.json") == 1


@pytest.mark.asyncio
async def test_failed_chunk_leaves_store_untouched() -> None:
    remote = create_remote()
    remote.fail(".duck/00000.json")
    store = create_store(remote)
    await store.load_summary()

    assert not await store.load_chunk(0)

    assert store.files == []
    assert not store.is_chunk_loaded(0)
    assert store.diagnostics[-1].kind is DiagnosticKind.CHUNK_UNAVAILABLE
    assert store.diagnostics[-1].chunk_index == 0


@pytest.mark.asyncio
async def test_load_completes_when_a_chunk_fails_and_retries_on_access() -> None:
    remote = create_remote()
    remote.fail(".duck/00001.json")
    store = create_store(remote)

    await store.load()

    assert store.status.chunks_loaded
    assert await store.get_file("src/component/index.js") is None

    remote.recover(".duck/00001.json")
    record = await store.get_file("src/component/index.js")

    assert record is not None
    assert record.name == "mock-3"
    assert [f.path for f in store.files] == [
        "src/index.js",
        "src/database.js",
        "src/component/index.js",
    ]


@pytest.mark.asyncio
async def test_malformed_chunk_document_is_treated_as_unavailable() -> None:
    remote = create_remote()
    remote.put(".duck/00000.json", {"unexpected": True})
    store = create_store(remote)
    await store.load_summary()

    assert not await store.load_chunk(0)
    assert store.files == []


# ─────────────────────────────────────────────────────────────────
# Reading
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_get_file_by_path() -> None:
    store = create_store()
    await store.load()

    record = await store.get_file("src/database.js")

    assert record is not None
    assert record.path == "src/database.js"
    assert record.content == {"description": "duckDB"}


@pytest.mark.asyncio
async def test_get_file_before_loading_summary_raises() -> None:
    store = create_store()

    with pytest.raises(PreconditionError):
        await store.get_file("src/index.js")


@pytest.mark.asyncio
async def test_get_file_unknown_path_returns_none() -> None:
    store = create_store()
    await store.load()

    assert await store.get_file("src/missing.js") is None
    assert store.diagnostics == ()


@pytest.mark.asyncio
async def test_get_file_pages_in_only_its_chunk() -> None:
    remote = create_remote()
    store = create_store(remote)
    await store.load_summary()

    assert store.output_chunks() == {}

    record = await store.get_file("src/component/index.js")

    assert record.name == "mock-3"
    assert remote.fetch_count(".duck/00001.json") == 1
    assert remote.fetch_count(".duck/00000.json") == 0
    assert store.is_chunk_loaded(1)
    assert not store.is_chunk_loaded(0)


@pytest.mark.asyncio
async def test_lazy_paging_keeps_content_in_chunk_order() -> None:
    store = create_store()
    await store.load_summary()

    await store.get_file("src/component/index.js")
    await store.get_file("src/index.js")

    assert [f.path for f in store.files] == [
        "src/index.js",
        "src/database.js",
        "src/component/index.js",
    ]


@pytest.mark.asyncio
async def test_mismatched_record_is_returned_with_a_consistency_fault(caplog) -> None:
    remote = create_remote()
    remote.put(
        ".duck/00000.json",
        [
            {"name": "mock-2", "path": "src/database.js", "content": {}},
            {"name": "mock-1", "path": "src/index.js", "content": {}},
        ],
    )
    store = create_store(remote)
    await store.load()

    with caplog.at_level("ERROR", logger="chunkstore"):
        result = await store.get_file_result("src/index.js")

    assert result.file.path == "src/database.js"
    assert result.diagnostic.kind is DiagnosticKind.CONSISTENCY_FAULT
    assert "Rebuild?" in caplog.text


@pytest.mark.asyncio
async def test_short_chunk_reports_consistency_fault() -> None:
    remote = create_remote()
    remote.put(".duck/00000.json", [{"name": "mock-1", "path": "src/index.js", "content": {}}])
    store = create_store(remote)
    await store.load()

    result = await store.get_file_result("src/database.js")

    assert result.file is None
    assert result.diagnostic.kind is DiagnosticKind.CONSISTENCY_FAULT


@pytest.mark.asyncio
async def test_short_chunk_is_reported_when_it_loads() -> None:
    remote = create_remote()
    remote.put(".duck/00000.json", [{"name": "mock-1", "path": "src/index.js", "content": {}}])
    store = create_store(remote)

    await store.load()

    faults = [d for d in store.diagnostics if d.kind is DiagnosticKind.CONSISTENCY_FAULT]
    assert [d.chunk_index for d in faults] == [0]
    assert "has 1 records" in faults[0].message
    assert store.chunks[0] == [StructuredFile(name="mock-1", path="src/index.js", content={})]


@pytest.mark.asyncio
async def test_reordered_chunk_is_reported_when_it_loads(caplog) -> None:
    remote = create_remote()
    remote.put(
        ".duck/00000.json",
        [
            {"name": "mock-2", "path": "src/database.js", "content": {}},
            {"name": "mock-1", "path": "src/index.js", "content": {}},
        ],
    )
    store = create_store(remote)
    await store.load_summary()

    with caplog.at_level("ERROR", logger="chunkstore"):
        assert await store.load_chunk(0)

    assert store.diagnostics[-1].kind is DiagnosticKind.CONSISTENCY_FAULT
    assert store.diagnostics[-1].chunk_index == 0
    assert [f.path for f in store.chunks[0]] == ["src/database.js", "src/index.js"]
    assert "Rebuild?" in caplog.text


# ─────────────────────────────────────────────────────────────────
# Writing
# ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_add_a_new_file() -> None:
    store = create_store()
    await store.load()

    assert store.add_file(NEW_FILE)

    assert await store.get_file(NEW_FILE.path) is NEW_FILE
    assert store.lookup == [
        ["src/index.js", "src/database.js"],
        ["src/component/index.js", "src/component/added.js"],
    ]


@pytest.mark.asyncio
async def test_add_file_opens_a_new_chunk_when_tail_is_full() -> None:
    store = create_store()
    await store.load()

    store.add_file(NEW_FILE)
    store.add_file(StructuredFile(name="x", path="src/x.js", content=None))

    assert store.lookup[-1] == ["src/x.js"]
    assert list(store.output_chunks()) == [
        ".duck/00000.json",
        ".duck/00001.json",
        ".duck/00002.json",
    ]


@pytest.mark.asyncio
async def test_add_file_accepts_mappings() -> None:
    store = create_store()
    await store.load()

    assert store.add_file({"name": "d", "path": "d.js", "content": {"v": 1}})

    record = await store.get_file("d.js")
    assert record == StructuredFile(name="d", path="d.js", content={"v": 1})


@pytest.mark.asyncio
async def test_add_file_rejects_missing_or_pathless_files() -> None:
    store = create_store()
    await store.load()

    assert not store.add_file(None)
    assert not store.add_file(StructuredFile(name="nameless", path="", content=None))
    assert sum(len(bucket) for bucket in store.lookup) == 3


@pytest.mark.asyncio
async def test_add_file_before_load_raises() -> None:
    store = create_store()
    await store.load_summary()

    with pytest.raises(PreconditionError):
        store.add_file(NEW_FILE)


@pytest.mark.asyncio
async def test_update_file_before_load_raises() -> None:
    store = create_store()

    with pytest.raises(PreconditionError):
        await store.update_file(NEW_FILE)


@pytest.mark.asyncio
async def test_updating_a_missing_file_adds_it() -> None:
    store = create_store()
    await store.load()

    assert await store.update_file(NEW_FILE)

    assert (await store.get_file(NEW_FILE.path)).path == NEW_FILE.path


@pytest.mark.asyncio
async def test_update_an_existing_file() -> None:
    store = create_store()
    await store.load()
    store.add_file(StructuredFile(name="x", path="x.js", content={"v": 1}))

    assert await store.update_file(StructuredFile(name="x", path="x.js", content={"v": 2}))

    assert (await store.get_file("x.js")).content == {"v": 2}
    assert sum(1 for f in store.files if f.path == "x.js") == 1


@pytest.mark.asyncio
async def test_adding_an_existing_file_updates_it() -> None:
    store = create_store()
    await store.load()
    store.add_file(NEW_FILE)

    assert store.add_file(UPDATED_FILE)

    record = await store.get_file(UPDATED_FILE.path)
    assert record.content["description"] == "Updated duck"
    assert store.output_chunks()[".duck/00001.json"][1]["name"] == "mock-5"


@pytest.mark.asyncio
async def test_update_file_rejects_none() -> None:
    store = create_store()
    await store.load()

    assert not await store.update_file(None)


@pytest.mark.asyncio
async def test_update_file_pages_in_an_unloaded_chunk() -> None:
    remote = create_remote()
    remote.fail(".duck/00000.json")
    store = create_store(remote)
    await store.load()
    remote.recover(".duck/00000.json")

    replacement = StructuredFile(name="new", path="src/index.js", content={"v": 2})
    assert await store.update_file(replacement)

    assert store.files[0] is replacement
    assert store.output_chunks()[".duck/00000.json"][0]["name"] == "new"


@pytest.mark.asyncio
async def test_update_file_fails_when_chunk_stays_unavailable() -> None:
    remote = create_remote()
    remote.fail(".duck/00000.json")
    store = create_store(remote)
    await store.load()

    replacement = StructuredFile(name="new", path="src/index.js", content={})

    assert not await store.update_file(replacement)
    assert not store.add_file(replacement)
    assert store.diagnostics[-1].kind is DiagnosticKind.WRITE_REJECTED


@pytest.mark.asyncio
async def test_add_file_skips_an_unloaded_tail_chunk() -> None:
    remote = create_remote()
    remote.fail(".duck/00001.json")
    store = create_store(remote)
    await store.load()

    store.add_file(NEW_FILE)

    assert store.lookup == [
        ["src/index.js", "src/database.js"],
        ["src/component/index.js"],
        ["src/component/added.js"],
    ]
    assert store.chunks[1] is None
    assert store.chunks[2] == [NEW_FILE]


@pytest.mark.asyncio
async def test_export_after_an_unloaded_tail_keeps_the_stored_chunk() -> None:
    remote = create_remote()
    remote.fail(".duck/00001.json")
    store = create_store(remote)
    await store.load()
    store.add_file(NEW_FILE)

    documents = store.export()

    assert ".duck/00001.json" not in documents
    assert documents[".duck/00002.json"] == [NEW_FILE.to_dict()]
    assert store.diagnostics[-1].kind is DiagnosticKind.CONSISTENCY_FAULT

    remote.put_many(documents)
    remote.recover(".duck/00001.json")
    reloaded = create_store(remote)
    await reloaded.load()

    assert reloaded.lookup == store.lookup
    assert (await reloaded.get_file("src/component/index.js")).name == "mock-3"
    assert (await reloaded.get_file(NEW_FILE.path)) == NEW_FILE
    assert [f.path for f in reloaded.files] == [
        "src/index.js",
        "src/database.js",
        "src/component/index.js",
        NEW_FILE.path,
    ]


@pytest.mark.asyncio
async def test_add_file_rejects_an_unloaded_chunk_that_update_file_pages_in() -> None:
    remote = create_remote()
    remote.fail(".duck/00000.json")
    store = create_store(remote)
    await store.load()
    remote.recover(".duck/00000.json")
    replacement = StructuredFile(name="new", path="src/database.js", content={"v": 2})

    assert not store.add_file(replacement)
    assert store.diagnostics[-1].kind is DiagnosticKind.WRITE_REJECTED
    assert not store.is_chunk_loaded(0)

    assert await store.update_file(replacement)
    assert (await store.get_file("src/database.js")) is replacement


@pytest.mark.asyncio
async def test_key_function_is_applied_to_lookup() -> None:
    remote = InMemoryRemoteFetcher()
    store = ChunkedStore(NAMESPACE, remote, chunk_size=2, key_func=str.upper)
    await store.load()

    store.add_file(StructuredFile(name="a", path="a.js", content=1))

    assert store.lookup == [["A.JS"]]
    assert (await store.get_file("a.js")).content == 1


# ─────────────────────────────────────────────────────────────────
# Metadata and output
# ─────────────────────────────────────────────────────────────────


def test_update_metadata_merges_fields() -> None:
    store = create_store()

    store.update_metadata({"pipelines": ["p1"], "version": "2"})

    meta = store.output_summary()["meta"]
    assert meta["pipelines"] == ["p1"]
    assert meta["version"] == "2"


def test_set_updated_at() -> None:
    store = create_store()
    moment = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    store.set_updated_at(moment)

    assert store.meta.updated_at == moment
    assert store.output_summary()["meta"]["updated_at"] == "2025-01-02T03:04:05+00:00"


def test_set_updated_at_rejects_garbage() -> None:
    store = create_store()

    with pytest.raises(ValueError):
        store.set_updated_at("not a date")


@pytest.mark.asyncio
async def test_export_round_trips_through_a_fresh_store() -> None:
    store = create_store()
    await store.load()
    store.add_file(NEW_FILE)

    remote = InMemoryRemoteFetcher()
    remote.put_many(store.export())
    reloaded = create_store(remote)
    await reloaded.load()

    assert reloaded.lookup == store.lookup
    assert reloaded.output_chunks() == store.output_chunks()
    assert (await reloaded.get_file(NEW_FILE.path)) == NEW_FILE

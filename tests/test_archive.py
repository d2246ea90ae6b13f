"""
Tests for blob stores and engine persistence.
"""

import pytest

from statevc.config.schema import VersionControlConfig
from statevc.vc import StateVersionControl
from statevc.vc.archive import (
    INDEX_KEY,
    FileBlobStore,
    MemoryBlobStore,
    load_engine,
    save_engine,
)
from statevc.vc.errors import IntegrityFailure
from tests.fixtures.game_states import make_game_state


CONFIG = VersionControlConfig(cleanup_interval_ms=0, enable_auto_tagging=False)


async def build_engine() -> StateVersionControl:
    vc = StateVersionControl(CONFIG)
    await vc.commit(make_game_state(round_number=1), "start", "alice", tags=["opening"])
    await vc.commit(make_game_state(round_number=2), "round two", "bob")
    await vc.create_branch("what-if", 1, "alternative line")
    vc.switch_branch("what-if")
    await vc.commit(make_game_state(round_number=3, status="finished"), "ending", "alice")
    return vc


class TestBlobStores:
    """Memory and file blob stores."""

    def test_memory_store_compresses_large_blobs(self):
        store = MemoryBlobStore(compression_threshold=16)
        small, large = b"tiny", b"x" * 1000

        store.put("small", small)
        store.put("large", large)

        assert store.raw("small") == small
        assert store.raw("large").startswith(b"SVCZ")
        assert len(store.raw("large")) < len(large)
        assert store.get("large") == large
        assert store.get("missing") is None

    def test_file_store(self, tmp_path):
        store = FileBlobStore(tmp_path / "blobs", compression_threshold=16)

        store.put("index", b"{}")
        store.put("payloads/1", b"y" * 500)

        assert store.keys() == ["index", "payloads/1"]
        assert store.get("payloads/1") == b"y" * 500
        assert (tmp_path / "blobs" / "payloads" / "1.blob").read_bytes().startswith(b"SVCZ")

        store.delete("index")
        store.delete("index")
        assert store.get("index") is None

    def test_file_store_rejects_escaping_keys(self, tmp_path):
        store = FileBlobStore(tmp_path / "blobs")
        with pytest.raises(ValueError):
            store.put("../outside", b"data")


class TestPersistence:
    """save_engine / load_engine round trips."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path):
        vc = await build_engine()
        store = FileBlobStore(tmp_path / "store")

        assert save_engine(vc, store) == 3
        loaded = load_engine(store, CONFIG)

        assert loaded.get_current_branch() == "what-if"
        assert [b.name for b in loaded.get_branches()] == ["main", "what-if"]
        assert loaded.branches.get_branch("what-if").versions == [1, 3]
        assert loaded.branches.get_branch("what-if").description == "alternative line"
        assert loaded.tags.get_tag("opening").version == 1
        assert (await loaded.checkout("opening")).document == make_game_state(round_number=1)
        assert (await loaded.checkout(3)).document["status"] == "finished"

        history = loaded.get_version_history(author="bob")
        assert [(v.version, v.message) for v in history] == [(2, "round two")]
        assert history[0].id == vc.store.get_info(2).id

    @pytest.mark.asyncio
    async def test_numbering_continues_after_load(self):
        vc = await build_engine()
        store = MemoryBlobStore()
        save_engine(vc, store)

        loaded = load_engine(store, CONFIG)
        result = await loaded.commit({"round": 4}, "more", "alice")

        assert result.version == 4
        assert loaded.store.get_info(4).parent_version == 3

    @pytest.mark.asyncio
    async def test_pruned_payloads_are_deleted_on_save(self):
        vc = await build_engine()
        store = MemoryBlobStore()
        save_engine(vc, store)

        vc.switch_branch("main")
        await vc.delete_branch("what-if")
        await vc.delete_tag("opening")
        await vc.prune(now=vc.store.get_info(3).timestamp.replace(year=2100))
        save_engine(vc, store)

        assert store.keys() == [INDEX_KEY, "payloads/2"]

    def test_empty_store_gives_fresh_engine(self):
        engine = load_engine(MemoryBlobStore(), CONFIG)

        assert engine.store.count() == 0
        assert engine.get_current_branch() == "main"

    @pytest.mark.asyncio
    async def test_corrupted_payload_is_detected_on_checkout(self):
        vc = await build_engine()
        store = MemoryBlobStore()
        save_engine(vc, store)
        store.put("payloads/2", b'{"round": 200}')

        loaded = load_engine(store, CONFIG)

        result = await loaded.checkout(2)
        assert isinstance(result.error, IntegrityFailure)
        assert (await loaded.checkout(1)).success

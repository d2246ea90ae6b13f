"""
Tests for the version-control engine.
Covers commit/checkout, branches, tags, auto-tagging, history queries and diffs.
"""

import json
from datetime import datetime, timedelta

import pytest

from statevc.config.schema import VersionControlConfig
from statevc.vc import StateVersionControl, VersionQuery
from statevc.vc.autotag import derive_tags
from statevc.vc.errors import (
    AlreadyExists,
    CommitFailure,
    IntegrityFailure,
    LimitExceeded,
    NotFound,
    VersionControlError,
)
from tests.fixtures.game_states import BASIC_STATE, evolve, make_game_state


def make_engine(**overrides) -> StateVersionControl:
    """Engine without background retention or document-based labels."""
    settings = {"cleanup_interval_ms": 0, "enable_auto_tagging": False}
    settings.update(overrides)
    return StateVersionControl(VersionControlConfig(**settings))


@pytest.fixture
def vc():
    return make_engine()


# A Wednesday, so no weekend label
WEEKDAY = datetime(2024, 5, 15, 12, 0)
SATURDAY = datetime(2024, 5, 18, 12, 0)


class TestCommitCheckout:
    """Commit and checkout round trips."""

    @pytest.mark.asyncio
    async def test_commit_then_checkout(self, vc):
        result = await vc.commit(BASIC_STATE, "initial", "alice")

        assert result.success
        assert result.version == 1

        checkout = await vc.checkout(1)
        assert checkout.success
        assert checkout.document == BASIC_STATE
        assert checkout.version == 1

    @pytest.mark.asyncio
    async def test_version_numbers_increase_across_branches(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.create_branch("side")
        vc.switch_branch("side")
        second = await vc.commit({"n": 2}, "two", "bob")
        vc.switch_branch("main")
        third = await vc.commit({"n": 3}, "three", "alice")

        assert (second.version, third.version) == (2, 3)

    @pytest.mark.asyncio
    async def test_parent_version_links_branch_history(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.commit({"n": 2}, "two", "alice")

        info = vc.store.get_info(2)
        assert info.parent_version == 1
        assert vc.store.get_info(1).parent_version is None
        assert info.branch_name == "main"
        assert info.size == len('{"n":2}')

    @pytest.mark.asyncio
    async def test_stored_payload_is_isolated_from_caller(self, vc):
        state = make_game_state()
        await vc.commit(state, "start", "alice")

        state["players"][0]["money"] = 0
        first = (await vc.checkout(1)).document
        first["round"] = 99

        again = (await vc.checkout(1)).document
        assert again["players"][0]["money"] == 1500
        assert again["round"] == 1

    @pytest.mark.asyncio
    async def test_tampered_payload_fails_integrity_check(self, vc):
        await vc.commit(BASIC_STATE, "initial", "alice")
        vc.store.get_payload(1)["money"] = 0

        result = await vc.checkout(1)

        assert not result.success
        assert isinstance(result.error, IntegrityFailure)
        assert result.document is None

    @pytest.mark.asyncio
    async def test_checkout_unknown_targets(self, vc):
        await vc.commit(BASIC_STATE, "initial", "alice")

        for target in (42, "no-such-branch"):
            result = await vc.checkout(target)
            assert not result.success
            assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_checkout_branch_switches_active_branch(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.create_branch("side")
        vc.switch_branch("side")
        await vc.commit({"n": 2}, "two", "alice")
        vc.switch_branch("main")

        result = await vc.checkout("side")

        assert result.document == {"n": 2}
        assert vc.get_current_branch() == "side"

    @pytest.mark.asyncio
    async def test_checkout_tag_keeps_active_branch(self, vc):
        await vc.commit({"n": 1}, "one", "alice", tags=["start"])
        await vc.create_branch("side")

        result = await vc.checkout("start")

        assert result.version == 1
        assert vc.get_current_branch() == "main"

    @pytest.mark.asyncio
    async def test_checkout_empty_branch(self, vc):
        result = await vc.checkout("main")
        assert isinstance(result.error, NotFound)

    @pytest.mark.asyncio
    async def test_unsnapshottable_document_leaves_no_trace(self, vc):
        result = await vc.commit({"callback": object()}, "bad", "alice")

        assert not result.success
        assert isinstance(result.error, CommitFailure)
        assert vc.store.count() == 0
        assert vc.branches.get_current_branch().current_version is None

        ok = await vc.commit(BASIC_STATE, "good", "alice")
        assert ok.version == 1

    @pytest.mark.asyncio
    async def test_unwrap_raises_carried_error(self, vc):
        result = await vc.checkout(7)
        with pytest.raises(NotFound):
            result.unwrap()
        assert "7" in result.message


class TestBranches:
    """Branch creation, switching and deletion."""

    @pytest.mark.asyncio
    async def test_create_branch_from_active_head(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.commit({"n": 2}, "two", "alice")

        result = await vc.create_branch("side", description="experiment")

        assert result.success
        side = vc.branches.get_branch("side")
        assert side.base_version == 2
        assert side.current_version == 2
        assert side.versions == [2]
        assert side.description == "experiment"

    @pytest.mark.asyncio
    async def test_create_branch_failures(self, vc):
        empty = await vc.create_branch("early")
        assert isinstance(empty.error, NotFound)

        await vc.commit({"n": 1}, "one", "alice")
        await vc.create_branch("side")

        duplicate = await vc.create_branch("side")
        assert isinstance(duplicate.error, AlreadyExists)

        missing = await vc.create_branch("other", base_version=99)
        assert isinstance(missing.error, NotFound)

    @pytest.mark.asyncio
    async def test_branch_limit(self):
        vc = make_engine(max_branches=2)
        await vc.commit({"n": 1}, "one", "alice")

        assert (await vc.create_branch("b1")).success
        result = await vc.create_branch("b2")

        assert isinstance(result.error, LimitExceeded)
        assert len(vc.get_branches()) == 2

    def test_switch_to_missing_branch(self, vc):
        result = vc.switch_branch("nowhere")
        assert isinstance(result.error, NotFound)
        assert vc.get_current_branch() == "main"

    @pytest.mark.asyncio
    async def test_delete_branch_rules(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.create_branch("side")

        assert isinstance((await vc.delete_branch("main")).error, VersionControlError)

        vc.switch_branch("side")
        assert not (await vc.delete_branch("side")).success

        vc.switch_branch("main")
        assert (await vc.delete_branch("side")).success
        assert [b.name for b in vc.get_branches()] == ["main"]

    @pytest.mark.asyncio
    async def test_protected_branch_blocks_direct_commits(self):
        vc = make_engine(enable_branch_protection=True, block_commits_to_protected=True)

        result = await vc.commit(BASIC_STATE, "direct", "alice")

        assert isinstance(result.error, CommitFailure)
        assert vc.store.count() == 0


class TestTags:
    """User tags and automatic labels."""

    @pytest.mark.asyncio
    async def test_create_tag(self, vc):
        await vc.commit({"n": 1}, "one", "alice")

        result = await vc.create_tag("milestone", 1, "first")

        assert result.success
        assert vc.tags.get_tag("milestone").version == 1
        assert "milestone" in vc.store.get_info(1).tags

    @pytest.mark.asyncio
    async def test_create_tag_failures(self, vc):
        await vc.commit({"n": 1}, "one", "alice", tags=["start"])

        assert isinstance((await vc.create_tag("start", 1)).error, AlreadyExists)
        assert isinstance((await vc.create_tag("late", 5)).error, NotFound)
        assert isinstance((await vc.delete_tag("late")).error, NotFound)

    @pytest.mark.asyncio
    async def test_commit_with_taken_tag_still_commits(self, vc):
        await vc.commit({"n": 1}, "one", "alice", tags=["save"])
        result = await vc.commit({"n": 2}, "two", "alice", tags=["save"])

        assert result.success
        assert vc.tags.get_tag("save").version == 1
        assert "save" in vc.store.get_info(2).tags

    @pytest.mark.asyncio
    async def test_single_string_tag(self, vc):
        await vc.commit({"n": 1}, "one", "alice", tags="checkpoint")

        assert [t.name for t in vc.get_tags()] == ["checkpoint"]
        assert vc.store.get_info(1).tags == ["checkpoint"]

    @pytest.mark.asyncio
    async def test_deleting_tag_removes_its_label(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.commit({"n": 2}, "two", "alice", tags=["saved"])
        await vc.create_tag("checkpoint", 1)

        await vc.delete_tag("checkpoint")
        await vc.delete_tag("saved")

        assert vc.store.get_info(1).tags == []
        assert vc.store.get_info(2).tags == []
        assert vc.get_version_history(tags=["checkpoint"]) == []
        assert vc.get_version_history(tags=["saved"]) == []

    @pytest.mark.asyncio
    async def test_deleting_tag_keeps_automatic_label(self):
        vc = make_engine(enable_auto_tagging=True)
        await vc.commit(make_game_state(round_number=10), "round ten", "alice")

        await vc.create_tag("round-10", 1)
        await vc.delete_tag("round-10")

        assert "round-10" in vc.store.get_info(1).tags

    @pytest.mark.asyncio
    async def test_tags_are_listed_newest_first(self, vc):
        await vc.commit({"n": 1}, "one", "alice")
        await vc.create_tag("first", 1)
        await vc.create_tag("second", 1)
        vc.tags.get_tag("first").created -= timedelta(minutes=1)

        assert [t.name for t in vc.get_tags()] == ["second", "first"]

    def test_derived_labels(self):
        state = evolve(make_game_state(round_number=20), status="finished")
        state["players"][1]["money"] = -50

        assert derive_tags(state, WEEKDAY) == ["round-20", "game-end", "bankruptcy"]
        assert derive_tags(make_game_state(round_number=7), WEEKDAY) == []
        assert derive_tags(make_game_state(round_number=0), WEEKDAY) == []
        assert derive_tags({"round": True}, WEEKDAY) == []
        assert derive_tags([1, 2, 3], SATURDAY) == ["weekend-save"]

    @pytest.mark.asyncio
    async def test_auto_tagging_labels_versions(self):
        vc = make_engine(enable_auto_tagging=True)
        await vc.commit(make_game_state(round_number=10), "round ten", "alice", tags=["mine"])

        labels = vc.store.get_info(1).tags
        assert {"mine", "round-10"} <= set(labels)
        # Labels are not tag records
        assert vc.tags.find_tag("round-10") is None
        assert vc.get_version_history(tags=["round-10"])[0].version == 1

    @pytest.mark.asyncio
    async def test_auto_tagging_disabled(self, vc):
        await vc.commit(make_game_state(round_number=10), "round ten", "alice")
        assert vc.store.get_info(1).tags == []


class TestHistory:
    """Version history queries."""

    @pytest.fixture
    async def history_vc(self):
        vc = make_engine()
        await vc.commit({"n": 1}, "one", "alice")
        await vc.commit({"n": 2}, "two", "bob", tags=["checkpoint"])
        await vc.create_branch("side")
        vc.switch_branch("side")
        await vc.commit({"n": 3}, "three", "alice")
        vc.switch_branch("main")
        await vc.commit({"n": 4}, "four", "bob")
        return vc

    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, history_vc):
        versions = [v.version for v in history_vc.get_version_history()]
        assert versions == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_history_filters(self, history_vc):
        def versions(**criteria):
            return [v.version for v in history_vc.get_version_history(**criteria)]

        assert versions(branch="main") == [4, 2, 1]
        assert versions(branch="side") == [3, 2]
        assert versions(branch="missing") == []
        assert versions(author="alice") == [3, 1]
        assert versions(from_version=2, to_version=3) == [3, 2]
        assert versions(tags=["checkpoint"]) == [2]
        assert versions(offset=1, limit=2) == [3, 2]
        assert versions(limit=0) == [4, 3, 2, 1]

    @pytest.mark.asyncio
    async def test_history_by_date(self, history_vc):
        future = datetime.now() + timedelta(days=1)
        assert history_vc.get_version_history(from_date=future) == []

        query = VersionQuery(to_date=future, limit=1)
        assert [v.version for v in history_vc.get_version_history(query)] == [4]


class TestEngineDiff:
    """Diffs between stored versions."""

    @pytest.mark.asyncio
    async def test_diff_between_versions(self, vc):
        await vc.commit({"money": 1500}, "one", "alice")
        await vc.commit({"money": 1500, "position": 12}, "two", "alice")

        result = vc.diff(1, 2)

        assert result.success
        version_diff = result.diff
        assert [(c.type, c.path) for c in version_diff.changes] == [("add", "position")]
        assert version_diff.modified_count == 1
        assert version_diff.added_size == len(',"position":12')
        assert version_diff.removed_size == 0

        reverse = vc.diff(2, 1).diff
        assert reverse.added_size == 0
        assert reverse.removed_size == len(',"position":12')

    @pytest.mark.asyncio
    async def test_diff_size_limit(self):
        vc = make_engine(max_diff_size=2)
        await vc.commit({"a": 1, "b": 1, "c": 1}, "one", "alice")
        await vc.commit({"a": 2, "b": 2, "c": 2}, "two", "alice")

        result = vc.diff(1, 2)

        assert isinstance(result.error, LimitExceeded)

    @pytest.mark.asyncio
    async def test_diff_missing_version(self, vc):
        await vc.commit({"a": 1}, "one", "alice")
        assert isinstance(vc.diff(1, 9).error, NotFound)


class TestSnapshots:
    """Single-version export and import."""

    @pytest.mark.asyncio
    async def test_export_import_between_engines(self, vc):
        await vc.commit(make_game_state(round_number=4), "round four", "alice")
        blob = vc.export_snapshot(1)

        other = make_engine()
        result = await other.import_snapshot(blob)

        assert result.success
        assert (await other.checkout(result.version)).document == make_game_state(round_number=4)
        assert other.store.get_info(1).author == "alice"

    @pytest.mark.asyncio
    async def test_import_rejects_tampered_snapshot(self, vc):
        await vc.commit({"money": 1500}, "one", "alice")
        envelope = json.loads(vc.export_snapshot(1))
        envelope["document"]["money"] = 9999

        result = await make_engine().import_snapshot(json.dumps(envelope).encode("utf-8"))

        assert isinstance(result.error, IntegrityFailure)

    @pytest.mark.asyncio
    async def test_import_rejects_garbage(self, vc):
        result = await vc.import_snapshot(b"not json")
        assert isinstance(result.error, CommitFailure)

    @pytest.mark.asyncio
    async def test_cleanup_discards_everything(self, vc):
        await vc.commit({"n": 1}, "one", "alice", tags=["t"])

        await vc.cleanup()

        assert vc.store.count() == 0
        assert vc.get_tags() == []
        assert vc.get_branches() == []

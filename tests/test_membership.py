"""Tests for the read-modify-write team membership merge."""

import asyncio

import pytest

from fundsync.core.errors import TeamResolutionError
from fundsync.models.profile_models import TeamRef
from fundsync.sync.membership import TeamMembershipMerger
from fundsync.sync.resolver import ResolverContext, TreeResolver

RED = TeamRef(name="Red Team", path="red-team", slug="red-team", raisely_id="raisely-red")
TEAM_PATH = "fundraisers/walk/team/red-team"


@pytest.fixture
def merger(store):
    return TeamMembershipMerger(store, TreeResolver(store, ResolverContext()))


@pytest.fixture
def campaign(store):
    store.add("fundraisers", is_folder=True)
    node = store.add("fundraisers/walk", is_folder=True)
    store.add("fundraisers/walk/team", is_folder=True)
    return node


@pytest.fixture
def red_team(store, campaign):
    return store.add(
        TEAM_PATH,
        content={"component": "team", "name": "Red Team", "raised_amount": 25.0, "team": ["A", "B"]},
    )


class TestAddMember:
    """Single merges."""

    def test_appends_and_keeps_other_fields(self, store, merger, campaign, red_team):
        assert asyncio.run(merger.add_member(RED, campaign, "C")) is True

        content = store.at(TEAM_PATH).content
        assert content["team"] == ["A", "B", "C"]
        assert content["raised_amount"] == 25.0
        assert store.published == [TEAM_PATH]

    def test_existing_member_is_noop_but_published(self, store, merger, campaign, red_team):
        assert asyncio.run(merger.add_member(RED, campaign, "A")) is False
        assert store.updated == []
        assert store.published == [TEAM_PATH]

    def test_missing_team_raises(self, store, merger, campaign):
        with pytest.raises(TeamResolutionError):
            asyncio.run(merger.add_member(RED, campaign, "C"))

    def test_publish_failure_is_not_fatal(self, store, merger, campaign, red_team):
        store.fail_publish = True
        assert asyncio.run(merger.add_member(RED, campaign, "C")) is True
        assert store.at(TEAM_PATH).content["team"] == ["A", "B", "C"]

    def test_reads_fresh_content_before_writing(self, store, merger, campaign, red_team):
        # A write that lands after resolution must not be clobbered
        store.nodes[red_team.id]["content"]["team"].append("X")

        asyncio.run(merger.add_member(RED, campaign, "C"))

        assert store.at(TEAM_PATH).content["team"] == ["A", "B", "X", "C"]


class TestConcurrentMerges:
    """Why merges into one team must be serialized."""

    def test_sequential_merges_keep_every_member(self, store, merger, campaign, red_team):
        async def run():
            await merger.add_member(RED, campaign, "C")
            await merger.add_member(RED, campaign, "D")

        asyncio.run(run())

        assert set(store.at(TEAM_PATH).content["team"]) == {"A", "B", "C", "D"}

    def test_parallel_merges_lose_an_update(self, store, merger, campaign, red_team):
        async def run():
            await asyncio.gather(
                merger.add_member(RED, campaign, "C"),
                merger.add_member(RED, campaign, "D"),
            )

        asyncio.run(run())

        members = set(store.at(TEAM_PATH).content["team"])
        assert {"A", "B"} <= members
        assert members != {"A", "B", "C", "D"}


class TestEnsureTeamNode:
    """Minimal team nodes created ahead of the team's own sync."""

    def test_creates_minimal_node(self, store, merger, campaign):
        event = store.add("events/walk", content={"component": "event"})

        node = asyncio.run(merger.ensure_team_node(RED, campaign, event))

        assert node.full_path == TEAM_PATH
        content = store.at(TEAM_PATH).content
        assert content["component"] == "team"
        assert content["team"] == []
        assert content["campaign"] == event.uuid
        assert content["raisely_id"] == "raisely-red"

    def test_returns_existing(self, store, merger, campaign, red_team):
        node = asyncio.run(merger.ensure_team_node(RED, campaign, None))
        assert node.id == red_team.id
        assert store.created == []

    def test_missing_team_folder(self, store, merger):
        store.add("fundraisers", is_folder=True)
        campaign = store.add("fundraisers/walk", is_folder=True)

        with pytest.raises(TeamResolutionError):
            asyncio.run(merger.ensure_team_node(RED, campaign, None))

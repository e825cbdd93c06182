"""Shared fixtures: an in-memory Storyblok stand-in and profile builders."""

import asyncio
import copy
import itertools
from typing import Any, Dict, List, Optional, Set

import pytest

from fundsync.config import settings
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.slug import join_path
from fundsync.models.store_models import StoreResult, StoreResultKind, TreeNode
from fundsync.sync.orchestrator import SyncOrchestrator
from fundsync.sync.resolver import ResolverContext


class InMemoryStore(BaseStore):
    """Store fake with a unique-slug constraint and call recording.

    Every call yields to the event loop before acting, so concurrent callers
    interleave the way they would against a real HTTP store.
    """

    def __init__(self):
        self.nodes: Dict[int, Dict[str, Any]] = {}
        self._ids = itertools.count(1)
        self.created: List[str] = []
        self.updated: List[str] = []
        self.published: List[str] = []
        self.unpublished: List[str] = []
        # Paths passed to find_by_slug / list_by_prefix, in call order
        self.lookups: List[str] = []
        # Ids hidden from the slug lookup / listing (search index lag)
        self.hidden_from_slug: Set[int] = set()
        self.hidden_from_listing: Set[int] = set()
        # Paths whose next create fails with a conflict after another "writer" created them
        self.race_on_create: Set[str] = set()
        self.fail_publish = False
        self.fail_create: Set[str] = set()

    # ── helpers ──

    def add(
        self,
        full_path: str,
        is_folder: bool = False,
        content: Optional[Dict[str, Any]] = None,
        name: str = "",
        published: bool = False,
    ) -> TreeNode:
        parent_path, _, slug = full_path.rpartition("/")
        parent = self.at(parent_path) if parent_path else None
        node_id = next(self._ids)
        self.nodes[node_id] = {
            "id": node_id,
            "uuid": f"uuid-{node_id}",
            "name": name or slug,
            "slug": slug,
            "full_slug": full_path,
            "is_folder": is_folder,
            "parent_id": parent.id if parent else None,
            "published": published,
            "content": copy.deepcopy(content or {}),
        }
        return TreeNode.model_validate(self.nodes[node_id])

    def at(self, full_path: str) -> Optional[TreeNode]:
        for raw in self.nodes.values():
            if raw["full_slug"] == full_path:
                return TreeNode.model_validate(copy.deepcopy(raw))
        return None

    def paths(self) -> List[str]:
        return sorted(raw["full_slug"] for raw in self.nodes.values())

    def _node(self, node_id: int) -> TreeNode:
        return TreeNode.model_validate(copy.deepcopy(self.nodes[node_id]))

    # ── BaseStore ──

    async def find_by_slug(self, full_slug: str) -> StoreResult:
        await asyncio.sleep(0)
        self.lookups.append(full_slug)
        for node_id, raw in self.nodes.items():
            if raw["full_slug"] == full_slug and node_id not in self.hidden_from_slug:
                return StoreResult.found(self._node(node_id))
        return StoreResult.missing()

    async def list_by_prefix(self, prefix, is_folder=None, per_page=100) -> StoreResult:
        await asyncio.sleep(0)
        self.lookups.append(prefix)
        matches = [
            self._node(node_id)
            for node_id, raw in self.nodes.items()
            if raw["full_slug"].startswith(prefix)
            and node_id not in self.hidden_from_listing
            and (is_folder is None or raw["is_folder"] == is_folder)
        ]
        return StoreResult.listing(matches[:per_page])

    async def get_story(self, story_id: int) -> StoreResult:
        await asyncio.sleep(0)
        if story_id not in self.nodes:
            return StoreResult.missing()
        return StoreResult.found(self._node(story_id))

    async def create_story(self, story: Dict[str, Any]) -> StoreResult:
        await asyncio.sleep(0)
        parent_id = story.get("parent_id")
        parent_path = self.nodes[parent_id]["full_slug"] if parent_id else ""
        full_path = join_path(parent_path, story["slug"])

        if full_path in self.fail_create:
            return StoreResult(kind=StoreResultKind.FATAL, status_code=400, detail="boom")
        if full_path in self.race_on_create:
            self.race_on_create.discard(full_path)
            self.add(full_path, bool(story.get("is_folder")), story.get("content"), story["name"])
            return StoreResult(
                kind=StoreResultKind.CONFLICT, status_code=422, detail="slug: has already been taken"
            )
        if self.at(full_path) is not None:
            return StoreResult(
                kind=StoreResultKind.CONFLICT, status_code=422, detail="slug: has already been taken"
            )

        node = self.add(
            full_path, bool(story.get("is_folder")), story.get("content"), story["name"]
        )
        self.created.append(full_path)
        return StoreResult.found(node)

    async def update_story(self, story_id: int, story: Dict[str, Any]) -> StoreResult:
        await asyncio.sleep(0)
        raw = self.nodes[story_id]
        raw["name"] = story.get("name", raw["name"])
        if "content" in story:
            raw["content"] = copy.deepcopy(story["content"])
        self.updated.append(raw["full_slug"])
        return StoreResult.found(self._node(story_id))

    async def publish(self, story_id: int) -> StoreResult:
        await asyncio.sleep(0)
        if self.fail_publish:
            return StoreResult(kind=StoreResultKind.TRANSIENT, status_code=503, detail="down")
        self.nodes[story_id]["published"] = True
        self.published.append(self.nodes[story_id]["full_slug"])
        return StoreResult.found(self._node(story_id))

    async def unpublish(self, story_id: int) -> StoreResult:
        await asyncio.sleep(0)
        self.nodes[story_id]["published"] = False
        self.unpublished.append(self.nodes[story_id]["full_slug"])
        return StoreResult.found(self._node(story_id))


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    """Conflict backoff would only slow the suite down."""
    monkeypatch.setattr(settings, "conflict_backoff_seconds", 0)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def orchestrator(store):
    return SyncOrchestrator(store, ResolverContext())


def make_profile(
    name: str,
    path: str,
    status: str = "ACTIVE",
    parent: Optional[Dict[str, Any]] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Raw Raisely individual profile."""
    profile = {
        "uuid": f"raisely-{path}",
        "name": name,
        "path": path,
        "type": "INDIVIDUAL",
        "isCampaignProfile": False,
        "status": status,
        "goal": 50000,
        "total": 15000,
    }
    if parent is not None:
        profile["parent"] = parent
    profile.update(extra)
    return profile


def make_campaign(name: str = "Sunderland 10K") -> Dict[str, Any]:
    return {
        "uuid": "raisely-campaign",
        "name": name,
        "path": "sunderland-10k",
        "type": "GROUP",
        "isCampaignProfile": True,
    }


def make_team(
    name: str, path: str, status: str = "ACTIVE", campaign: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    return {
        "uuid": f"raisely-{path}",
        "name": name,
        "path": path,
        "type": "GROUP",
        "isCampaignProfile": False,
        "status": status,
        "goal": 100000,
        "total": 2500,
        "parent": campaign if campaign is not None else make_campaign(),
    }


@pytest.fixture
def profiles():
    """Builders for raw feed profiles."""

    class Builders:
        individual = staticmethod(make_profile)
        team = staticmethod(make_team)
        campaign = staticmethod(make_campaign)

    return Builders

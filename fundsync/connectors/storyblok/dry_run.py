"""FundSync - Dry-Run Store Wrapper.

Reads go to the wrapped store; mutations are recorded as planned actions and
answered with synthetic nodes (negative ids) so the engine can run end to end
without touching Storyblok.
"""

import itertools
from typing import Any, Dict, List, Optional

from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.logging import get_logger
from fundsync.core.slug import join_path
from fundsync.models.store_models import StoreResult, StoreResultKind, TreeNode
from fundsync.models.sync_models import PlannedAction

logger = get_logger("storyblok.dry_run")


class DryRunStore(BaseStore):
    """Pass-through reads, recorded writes."""

    def __init__(self, inner: BaseStore):
        self.inner = inner
        self.planned: List[PlannedAction] = []
        self._ids = itertools.count(1)
        self._nodes: Dict[int, TreeNode] = {}
        # Planned content of real (positive-id) nodes, layered over the inner store
        self._updated: Dict[int, TreeNode] = {}

    def _plan(self, operation: str, full_path: str, name: str = "") -> None:
        self.planned.append(
            PlannedAction(operation=operation, full_path=full_path, name=name)
        )
        logger.info(
            f"[DRY RUN] Would {operation}: {full_path}",
            extra={"action": operation, "full_path": full_path},
        )

    def _planned_at(self, full_path: str) -> Optional[TreeNode]:
        for node in self._nodes.values():
            if node.same_entity(full_path):
                return node
        return None

    def _path_of(self, story_id: int) -> str:
        node = self._nodes.get(story_id) or self._updated.get(story_id)
        return node.full_path if node else str(story_id)

    # ── Reads ──

    async def find_by_slug(self, full_slug: str) -> StoreResult:
        planned = self._planned_at(full_slug)
        if planned is not None:
            return StoreResult.found(planned)
        return await self.inner.find_by_slug(full_slug)

    async def list_by_prefix(
        self,
        prefix: str,
        is_folder: Optional[bool] = None,
        per_page: int = 100,
    ) -> StoreResult:
        result = await self.inner.list_by_prefix(prefix, is_folder, per_page)
        if not result.ok:
            return result
        planned = [
            n
            for n in self._nodes.values()
            if n.full_path.startswith(prefix)
            and (is_folder is None or n.is_folder == is_folder)
        ]
        return StoreResult.listing(result.nodes + planned)

    async def get_story(self, story_id: int) -> StoreResult:
        if story_id in self._nodes:
            return StoreResult.found(self._nodes[story_id])
        if story_id in self._updated:
            return StoreResult.found(self._updated[story_id])
        return await self.inner.get_story(story_id)

    # ── Mutations (recorded only) ──

    def _ack(self, story_id: int) -> StoreResult:
        if story_id in self._nodes:
            return StoreResult.found(self._nodes[story_id])
        return StoreResult(kind=StoreResultKind.OK)

    async def _parent_path(self, parent_id: Optional[int]) -> str:
        if not parent_id:
            return ""
        if parent_id in self._nodes:
            return self._nodes[parent_id].full_path
        parent = await self.inner.get_story(parent_id)
        return parent.node.full_path if parent.ok and parent.node else ""

    async def create_story(self, story: Dict[str, Any]) -> StoreResult:
        parent_path = await self._parent_path(story.get("parent_id"))
        full_path = join_path(parent_path, story["slug"])
        synthetic_id = -next(self._ids)
        node = TreeNode(
            id=synthetic_id,
            uuid=f"dry-run-{-synthetic_id}",
            name=story.get("name", ""),
            slug=story["slug"],
            full_path=full_path,
            is_folder=bool(story.get("is_folder")),
            parent_id=story.get("parent_id"),
            content=dict(story.get("content") or {}),
        )
        self._nodes[synthetic_id] = node
        self._plan("create", full_path, node.name)
        return StoreResult.found(node)

    async def update_story(self, story_id: int, story: Dict[str, Any]) -> StoreResult:
        current = await self.get_story(story_id)
        if not current.ok or current.node is None:
            return current
        node = current.node.model_copy(
            update={"content": dict(story.get("content") or current.node.content)}
        )
        if story_id < 0:
            self._nodes[story_id] = node
        else:
            self._updated[story_id] = node
        self._plan("update", node.full_path, node.name)
        return StoreResult.found(node)

    async def publish(self, story_id: int) -> StoreResult:
        self._plan("publish", self._path_of(story_id))
        return self._ack(story_id)

    async def unpublish(self, story_id: int) -> StoreResult:
        self._plan("unpublish", self._path_of(story_id))
        return self._ack(story_id)

    async def close(self) -> None:
        await self.inner.close()

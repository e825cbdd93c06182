"""FundSync - Entity Upserter.

Idempotent create-or-update of fundraiser and team leaf nodes, keyed by full
path, followed by the publish/unpublish transition driven by the feed status.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fundsync.config import settings
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.errors import PathConflictError
from fundsync.core.logging import get_logger
from fundsync.core.slug import join_path
from fundsync.models.profile_models import NormalizedProfile, ProfileKind
from fundsync.models.store_models import StoreResultKind, TreeNode
from fundsync.models.sync_models import SyncAction, UpsertResult
from fundsync.sync.resolver import TreeResolver

logger = get_logger("sync.upserter")

FUNDRAISER_COMPONENT = "fundraiser"
TEAM_COMPONENT = "team"


def component_for(kind: ProfileKind) -> str:
    return TEAM_COMPONENT if kind == ProfileKind.TEAM else FUNDRAISER_COMPONENT


def build_content(
    kind: ProfileKind,
    profile: NormalizedProfile,
    event: Optional[TreeNode],
    team_ref: Optional[TreeNode] = None,
) -> Dict[str, Any]:
    """Desired story content for a profile, before preserved fields."""
    return {
        "component": component_for(kind),
        "name": profile.name,
        "campaign": event.uuid if event else None,
        "description": profile.description,
        "target_amount": profile.target_amount,
        "raised_amount": profile.raised_amount,
        "profile_url": profile.profile_url,
        "raisely_id": profile.raisely_id,
        "team": [team_ref.uuid] if team_ref else [],
        "last_updated": datetime.now(timezone.utc).isoformat(),
    }


def merge_preserved(
    kind: ProfileKind,
    desired: Dict[str, Any],
    current: Dict[str, Any],
    team_ref: Optional[TreeNode] = None,
) -> Dict[str, Any]:
    """Carry over fields an update must not overwrite.

    A team's member list only grows through the membership merger; a
    fundraiser keeps its team link unless a new one is supplied. The existing
    component marker always wins.
    """
    merged = dict(desired)
    if current.get("component"):
        merged["component"] = current["component"]
    existing_team: List[str] = list(current.get("team") or [])
    if kind == ProfileKind.TEAM or team_ref is None:
        merged["team"] = existing_team
    return merged


class EntityUpserter:
    """Create-or-update of leaf nodes."""

    def __init__(self, store: BaseStore, resolver: TreeResolver):
        self.store = store
        self.resolver = resolver

    async def upsert(
        self,
        kind: ProfileKind,
        profile: NormalizedProfile,
        parent_folder: TreeNode,
        event: Optional[TreeNode],
        team_ref: Optional[TreeNode] = None,
        skip_if_found: bool = False,
    ) -> UpsertResult:
        """Create or update the leaf node for ``profile`` under ``parent_folder``.

        Args:
            kind: ``INDIVIDUAL`` (fundraiser) or ``TEAM``.
            profile: Normalized feed fields.
            parent_folder: Campaign folder (fundraisers) or its team subfolder.
            event: Campaign event node referenced by the ``campaign`` field.
            team_ref: Team node a fundraiser belongs to.
            skip_if_found: Leave an existing node untouched (``action=found``).

        Raises:
            PathConflictError: A folder occupies the leaf's path.
            StoreError: The content write failed.
        """
        full_path = join_path(parent_folder.full_path, profile.slug)
        existing = await self._find_leaf(full_path)

        if existing is not None and skip_if_found:
            logger.info(
                f"⏭️  '{profile.name}' already exists, skipping",
                extra={"profile": profile.name, "full_path": full_path, "action": "found"},
            )
            return UpsertResult(node=existing, action=SyncAction.FOUND)

        desired = build_content(kind, profile, event, team_ref)
        story = {
            "name": profile.name,
            "slug": profile.slug,
            "parent_id": parent_folder.id,
        }

        if existing is None:
            result = await self.store.create_story({**story, "content": desired})
            if result.ok and result.node is not None:
                node = result.node
                action = SyncAction.CREATED
            elif result.kind == StoreResultKind.CONFLICT:
                # Another writer created it between lookup and create
                await asyncio.sleep(settings.conflict_backoff_seconds)
                existing = await self._find_leaf(full_path)
                if existing is None:
                    result.unwrap(f"creating '{full_path}'")
                node = await self._update(kind, existing, story, desired, team_ref)
                action = SyncAction.UPDATED
            else:
                node = result.unwrap(f"creating '{full_path}'")
                action = SyncAction.CREATED
        else:
            node = await self._update(kind, existing, story, desired, team_ref)
            action = SyncAction.UPDATED

        logger.info(
            f"{'✅ Created' if action == SyncAction.CREATED else '🔄 Updated'} "
            f"{component_for(kind)}: {profile.name}",
            extra={"profile": profile.name, "full_path": full_path, "action": action.value},
        )
        await self.apply_status(node, profile, existed=action == SyncAction.UPDATED)
        return UpsertResult(node=node, action=action)

    async def _find_leaf(self, full_path: str) -> Optional[TreeNode]:
        existing = await self.resolver.find_by_path(full_path)
        if existing is not None and existing.is_folder:
            raise PathConflictError(full_path)
        return existing

    async def _update(
        self,
        kind: ProfileKind,
        existing: TreeNode,
        story: Dict[str, Any],
        desired: Dict[str, Any],
        team_ref: Optional[TreeNode],
    ) -> TreeNode:
        # Search results may omit content; preserved fields come from a fresh read
        current = (await self.store.get_story(existing.id)).unwrap(
            f"loading '{existing.full_path}'"
        )
        content = merge_preserved(kind, desired, current.content, team_ref)
        result = await self.store.update_story(existing.id, {**story, "content": content})
        return result.unwrap(f"updating '{existing.full_path}'")

    async def apply_status(
        self, node: TreeNode, profile: NormalizedProfile, existed: bool
    ) -> None:
        """Publish active profiles; unpublish existing non-active ones.

        A brand-new non-active node is already a draft, so nothing is called.
        Failures are logged and never raised: the content is already saved.
        """
        if profile.is_active:
            result = await self.store.publish(node.id)
            operation = "publish"
        elif existed:
            result = await self.store.unpublish(node.id)
            operation = "unpublish"
        else:
            logger.info(
                f"📝 Saved as draft: {profile.name} (status: {profile.raw_status})",
                extra={"profile": profile.name},
            )
            return

        if result.ok:
            logger.info(
                f"📢 {operation.capitalize()}ed {profile.name} (status: {profile.raw_status})",
                extra={"profile": profile.name, "action": operation},
            )
        else:
            logger.warning(
                f"❌ Failed to {operation} {profile.name}: {result.kind.value} {result.detail}",
                extra={"profile": profile.name, "action": operation},
            )

"""FundSync - Team Membership Merger.

Adds a fundraiser's UUID to its team node's ``team`` list. The store has no
atomic append, so this is a read-modify-write:

  1. resolve the team node by path
  2. re-fetch the full current node by id right before mutating
  3. append to a copy of ``content.team`` (no-op if already present)
  4. write back the previous content with only ``team`` replaced
  5. publish the team node (best-effort)

Step 4 keeps unrelated concurrent edits intact but does not protect two
concurrent appends from each other: callers must serialize merges per team
(see ``fundsync.sync.bulk``).
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from fundsync.config import settings
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.errors import TeamResolutionError
from fundsync.core.logging import get_logger
from fundsync.core.slug import join_path
from fundsync.models.profile_models import TeamRef
from fundsync.models.store_models import StoreResultKind, TreeNode
from fundsync.sync.resolver import TEAM_FOLDER_SLUG, TreeResolver
from fundsync.sync.upserter import TEAM_COMPONENT

logger = get_logger("sync.membership")


def team_node_path(campaign: TreeNode, team_slug: str) -> str:
    return join_path(campaign.full_path, TEAM_FOLDER_SLUG, team_slug)


class TeamMembershipMerger:
    """Additive, read-modify-write merge of team member references."""

    def __init__(self, store: BaseStore, resolver: TreeResolver):
        self.store = store
        self.resolver = resolver

    async def find_team_node(self, campaign: TreeNode, team_slug: str) -> Optional[TreeNode]:
        return await self.resolver.find_by_path(
            team_node_path(campaign, team_slug), is_folder=False
        )

    async def ensure_team_node(
        self, team: TeamRef, campaign: TreeNode, event: Optional[TreeNode]
    ) -> TreeNode:
        """Return the team node, creating a minimal one if it does not exist yet.

        Covers individuals whose webhook arrives before their team's; the
        team's own sync later fills in the remaining fields.
        """
        existing = await self.find_team_node(campaign, team.slug)
        if existing is not None:
            return existing

        team_folder = await self.resolver.resolve_team_folder(campaign)
        if team_folder is None:
            raise TeamResolutionError(
                f"Team folder missing for campaign '{campaign.name}'"
            )

        full_path = team_node_path(campaign, team.slug)
        result = await self.store.create_story(
            {
                "name": team.name,
                "slug": team.slug,
                "parent_id": team_folder.id,
                "content": {
                    "component": TEAM_COMPONENT,
                    "name": team.name,
                    "campaign": event.uuid if event else None,
                    "raisely_id": team.raisely_id,
                    "team": [],
                    "last_updated": datetime.now(timezone.utc).isoformat(),
                },
            }
        )
        if result.ok and result.node is not None:
            logger.info(
                f"🩹 Auto-created team '{team.name}' ahead of its own sync",
                extra={"full_path": full_path, "campaign": campaign.name},
            )
            return result.node

        if result.kind == StoreResultKind.CONFLICT:
            await asyncio.sleep(settings.conflict_backoff_seconds)
            existing = await self.find_team_node(campaign, team.slug)
            if existing is not None:
                return existing
        return result.unwrap(f"creating team '{full_path}'")

    async def add_member(self, team: TeamRef, campaign: TreeNode, member_uuid: str) -> bool:
        """Append ``member_uuid`` to the team's member list.

        Returns ``True`` if the list was written, ``False`` if the member was
        already present. Resolution and write failures are raised; a failed
        publish is only logged.
        """
        node = await self.find_team_node(campaign, team.slug)
        if node is None:
            raise TeamResolutionError(
                f"Team '{team.name}' not found at "
                f"'{team_node_path(campaign, team.slug)}'"
            )

        # Never reuse an earlier snapshot: another writer may have changed it
        current = (await self.store.get_story(node.id)).unwrap(
            f"loading team '{node.full_path}'"
        )
        content = dict(current.content)
        members = list(content.get("team") or [])

        appended = member_uuid not in members
        if appended:
            result = await self.store.update_story(
                current.id,
                {
                    "name": current.name,
                    "slug": current.slug,
                    "content": {**content, "team": members + [member_uuid]},
                },
            )
            result.unwrap(f"writing members of '{current.full_path}'")
            logger.info(
                f"👥 Added member to team '{team.name}' ({len(members) + 1} members)",
                extra={"full_path": current.full_path},
            )
        else:
            logger.info(
                f"Member already in team '{team.name}'",
                extra={"full_path": current.full_path},
            )

        published = await self.store.publish(current.id)
        if not published.ok:
            logger.warning(
                f"❌ Failed to publish team '{team.name}': "
                f"{published.kind.value} {published.detail}",
                extra={"full_path": current.full_path},
            )
        return appended

"""FundSync - Tree Resolver.

Finds-or-creates the folder hierarchy ``fundraisers → <campaign> → team`` and
the per-campaign event node under ``events/``.

Lookups go through two strategies because the store's search index lags
behind writes: an exact ``with_slug`` lookup, then a bounded prefix listing
filtered client-side on the exact full path. Creation conflicts (another
resolver won the race) back off once and re-resolve.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from fundsync.config import settings
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.errors import ProfileValidationError
from fundsync.core.logging import get_logger
from fundsync.core.slug import join_path, slugify
from fundsync.models.store_models import StoreResultKind, TreeNode

logger = get_logger("sync.resolver")

FUNDRAISERS_ROOT = "fundraisers"
EVENTS_ROOT = "events"
TEAM_FOLDER_SLUG = "team"

CAMPAIGN_COMPONENT = "campaign"
EVENT_COMPONENT = "event"
FOLDER_COMPONENT = "folder"


@dataclass
class ResolverContext:
    """Ids that stay fixed for the lifetime of a run.

    Holds the root folder ids and resolved campaign folders. Each key is
    written once; concurrent resolvers racing on a key resolve the same node,
    so the first stored value wins.
    """

    root_ids: Dict[str, int] = field(default_factory=dict)
    campaign_folders: Dict[str, TreeNode] = field(default_factory=dict)

    def remember_root(self, slug: str, node_id: int) -> int:
        return self.root_ids.setdefault(slug, node_id)

    def remember_campaign(self, node: TreeNode) -> TreeNode:
        return self.campaign_folders.setdefault(node.full_path, node)


class TreeResolver:
    """Resolve-or-create for folders and event nodes."""

    def __init__(self, store: BaseStore, context: Optional[ResolverContext] = None):
        self.store = store
        self.context = context if context is not None else ResolverContext()

    # ── Lookup ──

    async def find_by_path(
        self, full_path: str, is_folder: Optional[bool] = None
    ) -> Optional[TreeNode]:
        """Find the node at ``full_path`` using both lookup strategies.

        With ``is_folder`` set, a node at the path with the other folder-ness
        is not a match. Raises ``StoreError`` if the listing itself fails.
        """
        result = await self.store.find_by_slug(full_path)
        if result.ok and result.node is not None:
            if result.node.same_entity(full_path, is_folder):
                return result.node
        elif result.kind != StoreResultKind.NOT_FOUND:
            logger.warning(
                f"Slug lookup for '{full_path}' failed ({result.kind.value}), "
                "falling back to listing",
                extra={"full_path": full_path},
            )

        listing = await self.store.list_by_prefix(
            full_path, is_folder=is_folder, per_page=settings.store_list_page_size
        )
        if not listing.ok:
            listing.unwrap(f"listing '{full_path}'")
        for node in listing.nodes:
            if node.same_entity(full_path, is_folder):
                logger.info(
                    f"🔍 Found '{full_path}' via listing (index lag on slug lookup)",
                    extra={"full_path": full_path},
                )
                return node
        return None

    # ── Resolve-or-create ──

    async def _resolve_or_create(
        self,
        full_path: str,
        story: Dict[str, Any],
        is_folder: bool,
    ) -> Tuple[TreeNode, bool]:
        """Return ``(node, created)`` for ``full_path``, creating it if absent."""
        existing = await self.find_by_path(full_path, is_folder=is_folder)
        if existing is not None:
            return existing, False

        result = await self.store.create_story(story)
        if result.ok and result.node is not None:
            logger.info(f"📁 Created '{full_path}'", extra={"full_path": full_path})
            return result.node, True

        if result.kind == StoreResultKind.CONFLICT:
            logger.warning(
                f"Create conflict on '{full_path}', re-resolving in "
                f"{settings.conflict_backoff_seconds}s",
                extra={"full_path": full_path},
            )
            await asyncio.sleep(settings.conflict_backoff_seconds)
            existing = await self.find_by_path(full_path, is_folder=is_folder)
            if existing is not None:
                return existing, False

        return result.unwrap(f"creating '{full_path}'"), True

    async def _root_id(self, slug: str, name: str) -> int:
        cached = self.context.root_ids.get(slug)
        if cached is not None:
            return cached
        node, _ = await self._resolve_or_create(
            slug,
            {
                "name": name,
                "slug": slug,
                "is_folder": True,
                "content": {"component": FOLDER_COMPONENT},
            },
            is_folder=True,
        )
        return self.context.remember_root(slug, node.id)

    async def fundraisers_root_id(self) -> int:
        """Id of the ``fundraisers`` root; failure here aborts the sync."""
        return await self._root_id(FUNDRAISERS_ROOT, "Fundraisers")

    async def events_root_id(self) -> int:
        return await self._root_id(EVENTS_ROOT, "Events")

    async def resolve_campaign_folder(self, campaign_name: str) -> TreeNode:
        """Find or create ``fundraisers/<campaign-slug>``.

        The ``team`` subfolder is created together with the campaign folder,
        only on first creation.
        """
        slug = slugify(campaign_name)
        if not slug:
            raise ProfileValidationError(
                f"Campaign name '{campaign_name}' does not yield a slug",
                field="campaign",
            )
        full_path = join_path(FUNDRAISERS_ROOT, slug)
        cached = self.context.campaign_folders.get(full_path)
        if cached is not None:
            return cached

        root_id = await self.fundraisers_root_id()
        node, created = await self._resolve_or_create(
            full_path,
            {
                "name": campaign_name,
                "slug": slug,
                "parent_id": root_id,
                "is_folder": True,
                "content": {"component": CAMPAIGN_COMPONENT, "events": []},
            },
            is_folder=True,
        )
        if created:
            await self._create_team_folder(node)
        return self.context.remember_campaign(node)

    async def _create_team_folder(self, campaign: TreeNode) -> TreeNode:
        full_path = join_path(campaign.full_path, TEAM_FOLDER_SLUG)
        node, _ = await self._resolve_or_create(
            full_path,
            {
                "name": "Team",
                "slug": TEAM_FOLDER_SLUG,
                "parent_id": campaign.id,
                "is_folder": True,
                "content": {"component": FOLDER_COMPONENT},
            },
            is_folder=True,
        )
        logger.info(
            f"👥 Team folder ready for campaign '{campaign.name}'",
            extra={"full_path": full_path},
        )
        return node

    async def resolve_team_folder(self, campaign: TreeNode) -> Optional[TreeNode]:
        """The campaign's ``team`` subfolder, or ``None`` if it is missing.

        A miss is retried once after the conflict backoff: a concurrent request
        that won the campaign-folder create may still be creating it.
        """
        full_path = join_path(campaign.full_path, TEAM_FOLDER_SLUG)
        node = await self.find_by_path(full_path, is_folder=True)
        if node is None:
            logger.info(
                f"Team folder for '{campaign.name}' not found, retrying in "
                f"{settings.conflict_backoff_seconds}s",
                extra={"full_path": full_path},
            )
            await asyncio.sleep(settings.conflict_backoff_seconds)
            node = await self.find_by_path(full_path, is_folder=True)
        return node

    async def resolve_or_create_event(self, campaign_name: str) -> Tuple[TreeNode, bool]:
        """Find or create the campaign's event node; returns ``(node, created)``."""
        slug = slugify(campaign_name)
        full_path = join_path(EVENTS_ROOT, slug)
        root_id = await self.events_root_id()
        node, created = await self._resolve_or_create(
            full_path,
            {
                "name": campaign_name,
                "slug": slug,
                "parent_id": root_id,
                "content": {"component": EVENT_COMPONENT, "name": campaign_name},
            },
            is_folder=False,
        )
        if created:
            logger.info(
                f"📅 Created event for campaign '{campaign_name}'",
                extra={"campaign": campaign_name, "full_path": full_path},
            )
        return node, created

    async def link_event(self, campaign: TreeNode, event: TreeNode) -> bool:
        """Record the event's UUID on the campaign folder (best-effort).

        Returns ``True`` when the back-reference was written.
        """
        current = await self.store.get_story(campaign.id)
        if not current.ok or current.node is None:
            logger.warning(
                f"Could not load campaign '{campaign.name}' to link event: "
                f"{current.kind.value}",
                extra={"campaign": campaign.name},
            )
            return False

        content = dict(current.node.content)
        events = list(content.get("events") or [])
        if event.uuid in events:
            return False
        events.append(event.uuid)

        result = await self.store.update_story(
            campaign.id,
            {
                "name": current.node.name,
                "slug": current.node.slug,
                "content": {**content, "events": events},
            },
        )
        if not result.ok:
            logger.warning(
                f"Failed to link event to campaign '{campaign.name}': "
                f"{result.kind.value} {result.detail}",
                extra={"campaign": campaign.name},
            )
            return False
        logger.info(
            f"🔗 Linked event to campaign '{campaign.name}'",
            extra={"campaign": campaign.name},
        )
        return True

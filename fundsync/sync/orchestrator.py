"""FundSync - Sync Orchestrator.

Runs one profile through the reconciliation states:

  classify → resolve campaign → resolve event → upsert → merge team → done

Used per webhook event and per profile by the bulk runner.
"""

from typing import Any, Dict, Optional, Tuple

from fundsync.connectors.raisely.transformer import normalize_profile, parse_profile
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.core.errors import TeamResolutionError
from fundsync.core.logging import get_logger
from fundsync.models.profile_models import ProfileKind, ProfileRecord, SyncEvent
from fundsync.models.store_models import TreeNode
from fundsync.models.sync_models import SyncAction, SyncOutcome
from fundsync.sync.membership import TeamMembershipMerger
from fundsync.sync.resolver import ResolverContext, TreeResolver
from fundsync.sync.upserter import EntityUpserter

logger = get_logger("sync.orchestrator")


class SyncOrchestrator:
    """Per-profile sync procedure over a store and a resolver context."""

    def __init__(self, store: BaseStore, context: Optional[ResolverContext] = None):
        self.store = store
        self.resolver = TreeResolver(store, context)
        self.upserter = EntityUpserter(store, self.resolver)
        self.merger = TeamMembershipMerger(store, self.resolver)

    async def prepare_campaign(self, campaign_name: str) -> Tuple[TreeNode, TreeNode]:
        """Resolve the campaign folder and its event node.

        The campaign's back-reference to the event is only written when the
        event had to be created here.
        """
        campaign = await self.resolver.resolve_campaign_folder(campaign_name)
        event, created = await self.resolver.resolve_or_create_event(campaign_name)
        if created:
            await self.resolver.link_event(campaign, event)
        return campaign, event

    async def sync_raw(
        self,
        raw: Dict[str, Any],
        event: SyncEvent = SyncEvent.UPDATED,
        force_update: bool = False,
    ) -> SyncOutcome:
        """Parse a raw feed profile and sync it."""
        return await self.sync_profile(parse_profile(raw), event, force_update)

    async def sync_profile(
        self,
        record: ProfileRecord,
        event: SyncEvent = SyncEvent.UPDATED,
        force_update: bool = False,
    ) -> SyncOutcome:
        """Sync one profile into the store.

        For ``profile.created`` events an existing node is left untouched
        unless ``force_update`` is set; team linkage runs either way.

        Raises:
            SyncError: Any failure that aborts this profile's sync.
        """
        if record.kind == ProfileKind.CAMPAIGN:
            logger.info(
                f"Ignoring campaign profile '{record.name}'",
                extra={"profile": record.name, "action": SyncAction.IGNORED.value},
            )
            return SyncOutcome(
                profile_name=record.name,
                kind=record.kind,
                action=SyncAction.IGNORED,
                campaign=record.name,
            )

        profile = normalize_profile(record)
        logger.info(
            f"🔄 Syncing {profile.kind.value}: {profile.name} → {profile.campaign}",
            extra={"profile": profile.name, "campaign": profile.campaign},
        )
        skip_if_found = event == SyncEvent.CREATED and not force_update

        campaign, event_node = await self.prepare_campaign(profile.campaign)

        if profile.kind == ProfileKind.TEAM:
            team_folder = await self.resolver.resolve_team_folder(campaign)
            if team_folder is None:
                raise TeamResolutionError(
                    f"Team folder missing for campaign '{profile.campaign}'"
                )
            result = await self.upserter.upsert(
                ProfileKind.TEAM,
                profile,
                team_folder,
                event_node,
                skip_if_found=skip_if_found,
            )
            return SyncOutcome(
                profile_name=profile.name,
                kind=profile.kind,
                action=result.action,
                campaign=profile.campaign,
                node_path=result.node.full_path,
                node_uuid=result.node.uuid,
            )

        team_node = None
        if profile.team is not None:
            team_node = await self.merger.ensure_team_node(
                profile.team, campaign, event_node
            )

        result = await self.upserter.upsert(
            ProfileKind.INDIVIDUAL,
            profile,
            campaign,
            event_node,
            team_ref=team_node,
            skip_if_found=skip_if_found,
        )

        if profile.team is not None:
            await self.merger.add_member(profile.team, campaign, result.node.uuid)

        return SyncOutcome(
            profile_name=profile.name,
            kind=profile.kind,
            action=result.action,
            campaign=profile.campaign,
            node_path=result.node.full_path,
            node_uuid=result.node.uuid,
            team=profile.team.name if profile.team else None,
        )

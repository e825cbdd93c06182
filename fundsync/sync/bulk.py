"""FundSync - Bulk Sync Runner.

Processes a fixed list of feed profiles in batches:

  filter → teams first → prepare campaigns → per batch:
      partition → parallel group (gather) → one queue-draining task per team

Individuals sharing a team are never processed concurrently: the membership
merge is a read-modify-write, and two concurrent appends to the same team
would each overwrite the other's addition.
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from fundsync.connectors.raisely.transformer import (
    derive_campaign_name,
    leaf_slug,
    normalize_profile,
    parse_profile,
)
from fundsync.connectors.storyblok.base import BaseStore
from fundsync.connectors.storyblok.dry_run import DryRunStore
from fundsync.core.errors import SyncError
from fundsync.core.logging import get_logger
from fundsync.core.slug import join_path, slugify
from fundsync.models.profile_models import ProfileKind, ProfileRecord, SyncEvent
from fundsync.models.sync_models import BulkOptions, BulkSummary, ProfileFilters
from fundsync.sync.orchestrator import SyncOrchestrator
from fundsync.sync.resolver import TEAM_FOLDER_SLUG, ResolverContext

logger = get_logger("sync.bulk")


def is_team_member(record: ProfileRecord) -> bool:
    """An individual whose immediate parent is a team."""
    return (
        record.kind == ProfileKind.INDIVIDUAL
        and record.parent is not None
        and record.parent.kind == ProfileKind.TEAM
    )


def team_key(record: ProfileRecord) -> str:
    """Path of the team node the member merge writes to, below ``fundraisers``.

    Built from the campaign and path slugs, never the team name: two snapshots
    of a renamed team still land in the same chain.
    """
    parent = record.parent
    if parent is None:
        return ""
    return join_path(
        slugify(derive_campaign_name(record)), TEAM_FOLDER_SLUG, leaf_slug(parent.path)
    )


@dataclass
class BatchPartition:
    """A batch split into work that may run concurrently and per-team chains."""

    parallel: List[ProfileRecord] = field(default_factory=list)
    sequential: Dict[str, List[ProfileRecord]] = field(default_factory=OrderedDict)


def partition_batch(batch: Iterable[ProfileRecord]) -> BatchPartition:
    """Group team members by team key, keeping list order within each team."""
    partition = BatchPartition()
    for record in batch:
        if is_team_member(record):
            partition.sequential.setdefault(team_key(record), []).append(record)
        else:
            partition.parallel.append(record)
    return partition


def filter_profiles(
    records: List[ProfileRecord], filters: ProfileFilters
) -> List[ProfileRecord]:
    """Apply kind, status, campaign-substring and limit filters in that order."""
    filtered = records

    if filters.kind == "teams":
        filtered = [r for r in filtered if r.kind == ProfileKind.TEAM]
        logger.info(f"Filtered to teams only: {len(filtered)} profiles")
    elif filters.kind == "individuals":
        filtered = [r for r in filtered if r.kind != ProfileKind.TEAM]
        logger.info(f"Filtered to individuals only: {len(filtered)} profiles")

    if filters.status:
        wanted = filters.status.upper()
        filtered = [r for r in filtered if r.raw_status == wanted]
        logger.info(f"Filtered by status '{wanted}': {len(filtered)} profiles")

    if filters.campaign:
        needle = filters.campaign.lower()
        filtered = [r for r in filtered if needle in derive_campaign_name(r).lower()]
        logger.info(f"Filtered by campaign '{filters.campaign}': {len(filtered)} profiles")

    if filters.limit and filters.limit > 0:
        filtered = filtered[: filters.limit]
        logger.info(f"Limited to first {filters.limit} profiles")

    return filtered


class BulkRunner:
    """One bulk sync run over a list of raw feed profiles."""

    def __init__(
        self,
        store: BaseStore,
        options: Optional[BulkOptions] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ):
        self.options = options or BulkOptions()
        self.store: BaseStore = DryRunStore(store) if self.options.dry_run else store
        self.orchestrator = SyncOrchestrator(self.store, ResolverContext())
        self.summary = BulkSummary(dry_run=self.options.dry_run)
        self.cancel_event = cancel_event or asyncio.Event()

    def cancel(self) -> None:
        """Stop after the current batch (and current member of each team chain)."""
        logger.warning("Cancellation requested, finishing in-flight work")
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    async def run(self, raw_profiles: List[Dict[str, Any]]) -> BulkSummary:
        """Sync every selected profile; per-profile errors land in the summary."""
        if self.options.dry_run:
            logger.warning("DRY RUN MODE - No changes will be made to Storyblok")

        records: List[ProfileRecord] = []
        for raw in raw_profiles:
            if isinstance(raw, dict):
                records.append(parse_profile(raw))
            else:
                self.summary.record_error("Unknown", f"Not a profile object: {raw!r:.80}")

        records = filter_profiles(records, self.options.filters)
        self.summary.total = len(records)
        if not records:
            logger.warning("No profiles to process after filtering")
            return self._finish()

        if self.options.filters.kind:
            groups = [records]
        else:
            teams = [r for r in records if r.kind == ProfileKind.TEAM]
            individuals = [r for r in records if r.kind != ProfileKind.TEAM]
            logger.info(
                f"Processing {len(teams)} teams first, then {len(individuals)} individuals"
            )
            groups = [teams, individuals]

        for group in groups:
            if not group:
                continue
            if self.cancelled:
                self.summary.cancelled = True
                break
            await self.prepare_campaigns(group)
            await self.process_group(group)

        return self._finish()

    def _finish(self) -> BulkSummary:
        if isinstance(self.store, DryRunStore):
            self.summary.planned_actions = list(self.store.planned)
        return self.summary

    async def prepare_campaigns(self, records: List[ProfileRecord]) -> None:
        """Resolve each distinct campaign once, sequentially, before fan-out."""
        campaigns: List[str] = []
        for record in records:
            if record.kind == ProfileKind.CAMPAIGN:
                continue
            try:
                name = normalize_profile(record).campaign
            except SyncError:
                continue
            if name not in campaigns:
                campaigns.append(name)

        logger.info(f"Found {len(campaigns)} unique campaigns: {', '.join(campaigns)}")
        for name in campaigns:
            try:
                campaign, _ = await self.orchestrator.prepare_campaign(name)
                logger.info(
                    f"✓ Campaign ready: {name} (ID: {campaign.id})",
                    extra={"campaign": name},
                )
            except SyncError as e:
                # Each profile of this campaign will fail and be recorded on its own
                logger.error(f"✗ Error setting up {name}: {e}", extra={"campaign": name})

    async def process_group(self, records: List[ProfileRecord]) -> None:
        batch_size = max(1, self.options.batch_size)
        total_batches = (len(records) + batch_size - 1) // batch_size
        logger.info(f"Processing {len(records)} profiles in batches of {batch_size}")

        for index in range(0, len(records), batch_size):
            if self.cancelled:
                self.summary.cancelled = True
                logger.warning("Bulk run cancelled between batches")
                return

            batch_num = index // batch_size + 1
            logger.info(f"Batch {batch_num}/{total_batches}")
            await self.run_partition(partition_batch(records[index : index + batch_size]))

            processed = min(index + batch_size, len(records))
            logger.info(
                f"Progress: {processed}/{len(records)} "
                f"({round(processed / len(records) * 100)}%)"
            )

            if processed < len(records) and self.options.delay_seconds > 0:
                await self._pause(self.options.delay_seconds)

    async def _pause(self, seconds: float) -> None:
        """Inter-batch rate-limit pacing; returns early on cancellation."""
        try:
            await asyncio.wait_for(self.cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_partition(self, partition: BatchPartition) -> None:
        if partition.parallel:
            await asyncio.gather(*(self.process_profile(r) for r in partition.parallel))

        chains = [
            asyncio.create_task(self._drain_team_chain(key, members))
            for key, members in partition.sequential.items()
        ]
        if chains:
            await asyncio.gather(*chains)

    async def _drain_team_chain(self, key: str, members: List[ProfileRecord]) -> None:
        """Process one team's members strictly one at a time, in list order."""
        queue: asyncio.Queue = asyncio.Queue()
        for member in members:
            queue.put_nowait(member)

        logger.info(f"Processing {len(members)} members for team: {key}")
        while not queue.empty():
            if self.cancelled:
                logger.warning(
                    f"Stopping team chain '{key}' with {queue.qsize()} members left"
                )
                self.summary.cancelled = True
                return
            member = queue.get_nowait()
            await self.process_profile(member)
            queue.task_done()

    async def process_profile(self, record: ProfileRecord) -> None:
        name = record.name or record.path or "Unknown"
        try:
            outcome = await self.orchestrator.sync_profile(
                record, SyncEvent.CREATED, force_update=self.options.force_update
            )
        except SyncError as e:
            logger.error(f"✗ Failed to process profile: {name}: {e}", extra={"profile": name})
            self.summary.record_error(name, str(e))
            return
        except Exception as e:
            logger.exception(f"✗ Unexpected error processing {name}", extra={"profile": name})
            self.summary.record_error(name, f"Unexpected error: {e}")
            return
        self.summary.record(outcome)


def format_summary(summary: BulkSummary) -> str:
    """Human-readable end-of-run report."""
    lines = [
        "Import Complete" + (" (dry run)" if summary.dry_run else ""),
        f"✓ Total Processed: {summary.processed}/{summary.total}",
        f"✓ Created: {summary.created}",
        f"✓ Updated: {summary.updated}",
        f"⚠ Skipped: {summary.skipped}",
        f"✗ Errors: {summary.errors}",
    ]
    for detail in summary.error_details:
        lines.append(f"  • {detail.profile}: {detail.error}")
    if summary.dry_run:
        lines.append(f"Planned store mutations: {len(summary.planned_actions)}")
        for action in summary.planned_actions:
            lines.append(f"  - {action.operation} {action.full_path}")
    if summary.cancelled:
        lines.append("Run was cancelled before all profiles were processed")
    return "\n".join(lines)

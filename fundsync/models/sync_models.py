"""FundSync - Sync Outcome & Bulk Report Models."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from fundsync.models.profile_models import ProfileKind
from fundsync.models.store_models import TreeNode


class SyncAction(str, Enum):
    """What a sync did to the profile's leaf node."""

    CREATED = "created"
    UPDATED = "updated"
    FOUND = "found"  # existed, left untouched (creation event, no force)
    IGNORED = "ignored"  # campaign profiles are never synced as leaves


class UpsertResult(BaseModel):
    """Result of an entity upsert."""

    node: TreeNode
    action: SyncAction


class SyncOutcome(BaseModel):
    """Result of syncing one profile."""

    profile_name: str
    kind: ProfileKind
    action: SyncAction
    campaign: str = ""
    node_path: str = ""
    node_uuid: str = ""
    team: Optional[str] = None


class PlannedAction(BaseModel):
    """A store mutation a dry run would have issued."""

    operation: str  # create | update | publish | unpublish
    full_path: str
    name: str = ""


class ProfileFilters(BaseModel):
    """Bulk-run profile selection."""

    kind: Optional[str] = None  # "individuals" | "teams"
    status: Optional[str] = None
    campaign: Optional[str] = None
    limit: Optional[int] = None


class BulkOptions(BaseModel):
    """Bulk-run parameters."""

    dry_run: bool = False
    force_update: bool = False
    batch_size: int = 5
    delay_seconds: float = 1.0
    filters: ProfileFilters = ProfileFilters()


class ProfileError(BaseModel):
    """A per-profile failure recorded in the bulk summary."""

    profile: str
    error: str


class BulkSummary(BaseModel):
    """Counts and error details of a bulk run."""

    total: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: List[ProfileError] = []
    cancelled: bool = False
    dry_run: bool = False
    planned_actions: List[PlannedAction] = []

    def record(self, outcome: SyncOutcome) -> None:
        self.processed += 1
        if outcome.action == SyncAction.CREATED:
            self.created += 1
        elif outcome.action == SyncAction.UPDATED:
            self.updated += 1
        else:
            self.skipped += 1

    def record_error(self, profile: str, error: str) -> None:
        self.errors += 1
        self.error_details.append(ProfileError(profile=profile, error=error))

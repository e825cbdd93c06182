"""FundSync - Sync Error Types."""

from typing import Optional

from fundsync.models.store_models import StoreResultKind


class SyncError(Exception):
    """Base class for failures that abort the sync of a single profile."""


class ProfileValidationError(SyncError):
    """Raised when a feed profile lacks the fields needed to place it in the tree."""

    def __init__(self, message: str, field: str = ""):
        self.field = field
        super().__init__(message)


class StoreError(SyncError):
    """Raised when a store call ends in anything other than a usable result."""

    def __init__(
        self,
        message: str,
        kind: StoreResultKind = StoreResultKind.FATAL,
        status_code: int = 0,
        detail: Optional[str] = None,
    ):
        self.kind = kind
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class PathConflictError(SyncError):
    """A folder already occupies the path a leaf node should live at."""

    def __init__(self, full_path: str):
        self.full_path = full_path
        super().__init__(f"Folder already exists at leaf path '{full_path}'")


class TeamResolutionError(SyncError):
    """The team node a member should be merged into could not be found."""

"""FundSync - Abstract Content Store."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from fundsync.models.store_models import StoreResult


class BaseStore(ABC):
    """Abstract CRUD-over-HTTP interface to the destination content tree.

    Every method returns a ``StoreResult``; none raise for HTTP-level failures.
    Searches are eventually consistent: a just-created node may be missing
    from ``list_by_prefix`` (and briefly from ``find_by_slug``).
    """

    @abstractmethod
    async def find_by_slug(self, full_slug: str) -> StoreResult:
        """Exact lookup by ``full_slug``; ``NOT_FOUND`` when absent."""
        ...

    @abstractmethod
    async def list_by_prefix(
        self,
        prefix: str,
        is_folder: Optional[bool] = None,
        per_page: int = 100,
    ) -> StoreResult:
        """Bounded listing of nodes whose ``full_slug`` starts with ``prefix``.

        The matches are returned in ``StoreResult.nodes``.
        """
        ...

    @abstractmethod
    async def get_story(self, story_id: int) -> StoreResult:
        """Fetch the full, current node (including content) by id."""
        ...

    @abstractmethod
    async def create_story(self, story: Dict[str, Any]) -> StoreResult:
        """Create a node; ``CONFLICT`` when the slug is already taken."""
        ...

    @abstractmethod
    async def update_story(self, story_id: int, story: Dict[str, Any]) -> StoreResult:
        """Replace a node's fields. Content merging is the caller's job."""
        ...

    @abstractmethod
    async def publish(self, story_id: int) -> StoreResult:
        ...

    @abstractmethod
    async def unpublish(self, story_id: int) -> StoreResult:
        ...

    async def close(self) -> None:
        """Release any held connections."""
        return None

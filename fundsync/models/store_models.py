"""FundSync - Store Tree Models.

A ``TreeNode`` mirrors a Storyblok story (folder or leaf). Every store call
returns a ``StoreResult`` tagged with its outcome so callers branch on the
kind instead of inspecting HTTP error shapes.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TreeNode(BaseModel):
    """One addressable node in the store's content tree."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    uuid: str = ""
    name: str = ""
    slug: str = ""
    full_path: str = Field(default="", alias="full_slug")
    is_folder: bool = False
    parent_id: Optional[int] = None
    published: bool = False
    content: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content", mode="before")
    @classmethod
    def _empty_content(cls, value: Any) -> Any:
        return value or {}

    def same_entity(self, full_path: str, is_folder: Optional[bool] = None) -> bool:
        """Identity is the exact full path, plus folder-ness when asked."""
        if self.full_path.strip("/") != full_path.strip("/"):
            return False
        return is_folder is None or self.is_folder == is_folder


class StoreResultKind(str, Enum):
    """Outcome of a single store call."""

    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    FATAL = "fatal"


class StoreResult(BaseModel):
    """Tagged result of a store call."""

    kind: StoreResultKind
    node: Optional[TreeNode] = None
    nodes: List[TreeNode] = []
    status_code: int = 0
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == StoreResultKind.OK

    @classmethod
    def found(cls, node: TreeNode) -> "StoreResult":
        return cls(kind=StoreResultKind.OK, node=node)

    @classmethod
    def listing(cls, nodes: List[TreeNode]) -> "StoreResult":
        return cls(kind=StoreResultKind.OK, nodes=nodes)

    @classmethod
    def missing(cls, detail: str = "") -> "StoreResult":
        return cls(kind=StoreResultKind.NOT_FOUND, status_code=404, detail=detail)

    def unwrap(self, action: str = "store call") -> TreeNode:
        """Return the node or raise ``StoreError`` describing the failure."""
        from fundsync.core.errors import StoreError

        if self.ok and self.node is not None:
            return self.node
        raise StoreError(
            f"{action} failed: {self.kind.value}"
            + (f" ({self.detail})" if self.detail else ""),
            kind=self.kind,
            status_code=self.status_code,
            detail=self.detail,
        )

"""FundSync - Feed Profile Models.

``ProfileRecord`` is what the feed delivers (after parsing); ``NormalizedProfile``
is what the reconciliation engine consumes: amounts already in major units,
campaign name derived, leaf slug computed.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ProfileKind(str, Enum):
    """Feed profile type."""

    INDIVIDUAL = "individual"
    TEAM = "team"
    CAMPAIGN = "campaign"


class ProfileStatus(str, Enum):
    """Feed profile status, collapsed to what drives publishing."""

    ACTIVE = "ACTIVE"
    DRAFT = "DRAFT"
    OTHER = "OTHER"


class SyncEvent(str, Enum):
    """Webhook event label."""

    CREATED = "profile.created"
    UPDATED = "profile.updated"


class ProfileRecord(BaseModel):
    """A single profile as delivered by the feed."""

    id: str = ""
    name: str = ""
    path: str = ""
    kind: ProfileKind = ProfileKind.INDIVIDUAL
    parent: Optional["ProfileRecord"] = None
    description: str = ""
    target_amount_minor: Optional[float] = None
    raised_amount_minor: Optional[float] = None
    status: ProfileStatus = ProfileStatus.DRAFT
    raw_status: str = "DRAFT"
    url: Optional[str] = None

    # Hints carried by some payloads; take precedence over parent-chain lookup
    campaign_hint: Optional[str] = None
    campaign_url: Optional[str] = None


class TeamRef(BaseModel):
    """Identity of the team an individual belongs to."""

    name: str
    path: str
    slug: str
    raisely_id: str = ""


class NormalizedProfile(BaseModel):
    """Profile fields in the shape the store content needs."""

    kind: ProfileKind
    name: str
    slug: str
    path: str
    campaign: str
    description: str = ""
    target_amount: float = 0.0
    raised_amount: float = 0.0
    profile_url: str = ""
    raisely_id: str = ""
    status: ProfileStatus = ProfileStatus.DRAFT
    raw_status: str = "DRAFT"
    team: Optional[TeamRef] = None

    @property
    def is_active(self) -> bool:
        return self.status == ProfileStatus.ACTIVE


ProfileRecord.model_rebuild()

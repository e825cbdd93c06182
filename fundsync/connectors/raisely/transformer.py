"""FundSync - Raisely Raw → Normalized Transformer.

Parses raw Raisely profile payloads into ``ProfileRecord`` values and
normalizes them into the fields the reconciliation engine writes to the store.
Amounts arrive in the smallest currency unit and are converted to major units
here, exactly once.
"""

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from fundsync.config import settings
from fundsync.core.errors import ProfileValidationError
from fundsync.core.logging import get_logger
from fundsync.core.slug import slugify
from fundsync.models.profile_models import (
    NormalizedProfile,
    ProfileKind,
    ProfileRecord,
    ProfileStatus,
    SyncEvent,
    TeamRef,
)

logger = get_logger("raisely.transformer")

# Parent chains deeper than this are cut off (guards against cyclic input)
MAX_PARENT_DEPTH = 8

TARGET_AMOUNT_FIELDS = ("goal", "target", "targetAmount")
RAISED_AMOUNT_FIELDS = ("total", "raisedAmount")


def _first_truthy(raw: Dict[str, Any], fields: Tuple[str, ...]) -> Any:
    for field in fields:
        value = raw.get(field)
        if value:
            return value
    return None


def _classify(raw: Dict[str, Any]) -> ProfileKind:
    """Campaign profiles flag themselves; teams are non-campaign GROUPs."""
    if raw.get("isCampaignProfile") is True:
        return ProfileKind.CAMPAIGN
    if raw.get("type") == "GROUP" and raw.get("isCampaignProfile") is False:
        return ProfileKind.TEAM
    return ProfileKind.INDIVIDUAL


def _parse_status(raw_status: Any) -> Tuple[ProfileStatus, str]:
    label = str(raw_status or "DRAFT").upper()
    if label == ProfileStatus.ACTIVE.value:
        return ProfileStatus.ACTIVE, label
    if label == ProfileStatus.DRAFT.value:
        return ProfileStatus.DRAFT, label
    return ProfileStatus.OTHER, label


def _campaign_hint(raw: Dict[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Explicit campaign name/url carried on the payload, if any."""
    campaign = raw.get("campaign")
    if isinstance(campaign, dict):
        name = campaign.get("name") or campaign.get("title")
        return (str(name) if name else None), campaign.get("url")
    if isinstance(campaign, str) and campaign:
        return campaign, None
    if raw.get("campaignName"):
        return str(raw["campaignName"]), None
    return None, None


def _amount(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_profile(raw: Dict[str, Any], depth: int = 0) -> ProfileRecord:
    """Build a ``ProfileRecord`` from a raw Raisely profile dict.

    The ``parent`` chain is parsed recursively up to ``MAX_PARENT_DEPTH``.
    """
    status, raw_status = _parse_status(raw.get("status"))
    campaign_name, campaign_url = _campaign_hint(raw)

    parent = None
    raw_parent = raw.get("parent")
    if isinstance(raw_parent, dict) and depth < MAX_PARENT_DEPTH:
        parent = parse_profile(raw_parent, depth + 1)

    return ProfileRecord(
        id=str(raw.get("uuid") or raw.get("id") or ""),
        name=str(raw.get("name") or ""),
        path=str(raw.get("path") or ""),
        kind=_classify(raw),
        parent=parent,
        description=str(raw.get("description") or raw.get("story") or ""),
        target_amount_minor=_amount(_first_truthy(raw, TARGET_AMOUNT_FIELDS)),
        raised_amount_minor=_amount(_first_truthy(raw, RAISED_AMOUNT_FIELDS)),
        status=status,
        raw_status=raw_status,
        url=raw.get("url") or None,
        campaign_hint=campaign_name,
        campaign_url=campaign_url,
    )


def normalize_amount(amount: Any) -> float:
    """Convert a minor-unit amount (pence/cents) to major units, 2 dp.

    ``0``, ``None``, ``NaN`` and non-numeric values become ``0``.
    """
    value = _amount(amount)
    if not value or math.isnan(value) or math.isinf(value):
        return 0.0
    return round(value / 100, 2)


def derive_campaign_name(profile: ProfileRecord) -> str:
    """Name of the campaign a profile belongs to.

    Explicit hint first, then the nearest ``CAMPAIGN`` ancestor, then the
    first segment of a multi-segment path, then the configured default.
    """
    if profile.campaign_hint:
        return profile.campaign_hint

    ancestor = profile.parent
    depth = 0
    while ancestor is not None and depth < MAX_PARENT_DEPTH:
        if ancestor.kind == ProfileKind.CAMPAIGN and ancestor.name:
            return ancestor.name
        ancestor = ancestor.parent
        depth += 1

    segments = [s for s in profile.path.split("/") if s]
    if len(segments) > 1:
        return segments[0]
    return settings.default_campaign_name


def _profile_url(profile: ProfileRecord) -> str:
    if profile.url:
        return profile.url
    if profile.campaign_url and profile.path:
        return f"{profile.campaign_url.rstrip('/')}/{profile.path}"
    if settings.profile_base_url and profile.path:
        return f"{settings.profile_base_url.rstrip('/')}/{profile.path}"
    return profile.path


def leaf_slug(path: str) -> str:
    """Store slug for a leaf node: the slug of the last feed path segment."""
    segments = [s for s in path.split("/") if s]
    return slugify(segments[-1]) if segments else ""


def team_ref(profile: ProfileRecord) -> Optional[TeamRef]:
    """The team an individual belongs to, when its immediate parent is a team."""
    parent = profile.parent
    if parent is None or parent.kind != ProfileKind.TEAM:
        return None
    if not parent.name or not parent.path:
        return None
    return TeamRef(
        name=parent.name,
        path=parent.path,
        slug=leaf_slug(parent.path),
        raisely_id=parent.id,
    )


def normalize_profile(profile: ProfileRecord) -> NormalizedProfile:
    """Validate and normalize a profile for the reconciliation engine.

    Raises:
        ProfileValidationError: ``name`` or ``path`` missing, or the path
            does not produce a usable slug.
    """
    if not profile.name:
        raise ProfileValidationError("Missing required field: name", field="name")
    if not profile.path:
        raise ProfileValidationError(
            f"Missing required field: path (profile '{profile.name}')", field="path"
        )
    slug = leaf_slug(profile.path)
    if not slug:
        raise ProfileValidationError(
            f"Path '{profile.path}' does not yield a slug", field="path"
        )

    return NormalizedProfile(
        kind=profile.kind,
        name=profile.name,
        slug=slug,
        path=profile.path,
        campaign=derive_campaign_name(profile),
        description=profile.description,
        target_amount=normalize_amount(profile.target_amount_minor),
        raised_amount=normalize_amount(profile.raised_amount_minor),
        profile_url=_profile_url(profile),
        raisely_id=profile.id,
        status=profile.status,
        raw_status=profile.raw_status,
        team=team_ref(profile) if profile.kind == ProfileKind.INDIVIDUAL else None,
    )


# ── Webhook payloads ──


def extract_webhook_profile(
    body: Dict[str, Any],
) -> Tuple[Optional[Dict[str, Any]], SyncEvent]:
    """Pull the raw profile and event label out of a webhook body.

    Real Raisely webhooks nest the profile at ``data.data``; test payloads use
    ``data.profile``; some deliver the profile directly under ``data``.
    """
    data = body.get("data")
    if not isinstance(data, dict):
        return None, SyncEvent.UPDATED

    label = data.get("type") or body.get("type") or ""
    event = SyncEvent.CREATED if label == SyncEvent.CREATED.value else SyncEvent.UPDATED

    profile = data.get("data") or data.get("profile") or data
    if isinstance(profile, dict) and isinstance(profile.get("profile"), dict):
        profile = profile["profile"]
    if not isinstance(profile, dict):
        return None, event
    return profile, event


# ── Bulk export files ──


def load_export(path: str | Path) -> List[Dict[str, Any]]:
    """Load raw profiles from a Raisely export (``{"data": [...]}`` or a list)."""
    data_path = Path(path)
    if not data_path.exists():
        raise FileNotFoundError(f"Data file not found: {data_path}")

    with data_path.open(encoding="utf-8") as fh:
        payload = json.load(fh)

    if isinstance(payload, dict):
        payload = payload.get("data")
    if not isinstance(payload, list):
        raise ValueError("Invalid data format. Expected { data: [...] } or [...]")

    logger.info(f"Loaded {len(payload)} profiles from {data_path}")
    return payload

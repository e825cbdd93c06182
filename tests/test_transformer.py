"""Tests for Raisely profile parsing and normalization."""

import json

import pytest

from fundsync.config import settings
from fundsync.connectors.raisely.transformer import (
    MAX_PARENT_DEPTH,
    derive_campaign_name,
    extract_webhook_profile,
    load_export,
    normalize_amount,
    normalize_profile,
    parse_profile,
)
from fundsync.core.errors import ProfileValidationError
from fundsync.models.profile_models import ProfileKind, ProfileStatus, SyncEvent


class TestNormalizeAmount:
    """Minor → major unit conversion."""

    @pytest.mark.parametrize(
        "minor, major",
        [(500, 5.0), (15000, 150.0), (1999, 19.99), (1, 0.01), ("2500", 25.0)],
    )
    def test_converts(self, minor, major):
        assert normalize_amount(minor) == major

    @pytest.mark.parametrize("value", [0, None, float("nan"), "abc", ""])
    def test_empty_values_are_zero(self, value):
        assert normalize_amount(value) == 0


class TestParseProfile:
    """Raw feed dict → ProfileRecord."""

    def test_classifies_kinds(self, profiles):
        assert parse_profile(profiles.campaign()).kind == ProfileKind.CAMPAIGN
        assert parse_profile(profiles.team("Red", "red")).kind == ProfileKind.TEAM
        assert parse_profile(profiles.individual("Jane", "jane")).kind == ProfileKind.INDIVIDUAL

    def test_group_without_campaign_flag_is_individual(self):
        record = parse_profile({"name": "Odd", "path": "odd", "type": "GROUP"})
        assert record.kind == ProfileKind.INDIVIDUAL

    def test_status_mapping(self):
        assert parse_profile({"status": "active"}).status == ProfileStatus.ACTIVE
        assert parse_profile({}).status == ProfileStatus.DRAFT
        archived = parse_profile({"status": "ARCHIVED"})
        assert archived.status == ProfileStatus.OTHER
        assert archived.raw_status == "ARCHIVED"

    def test_amount_aliases(self):
        record = parse_profile({"target": 1000, "raisedAmount": 250})
        assert record.target_amount_minor == 1000
        assert record.raised_amount_minor == 250

    def test_id_prefers_uuid(self):
        assert parse_profile({"uuid": "abc", "id": 7}).id == "abc"
        assert parse_profile({"id": 7}).id == "7"

    def test_parent_chain_is_bounded(self):
        raw = {"name": "loop", "path": "loop"}
        raw["parent"] = raw  # cyclic
        record = parse_profile(raw)
        depth = 0
        while record.parent is not None:
            record = record.parent
            depth += 1
        assert depth == MAX_PARENT_DEPTH


class TestCampaignName:
    """Campaign-name derivation order."""

    def test_nearest_campaign_ancestor(self, profiles):
        team = profiles.team("Red", "red", campaign=profiles.campaign("Great Run"))
        record = parse_profile(profiles.individual("Jane", "jane", parent=team))
        assert derive_campaign_name(record) == "Great Run"

    def test_explicit_campaign_hint_wins(self, profiles):
        raw = profiles.individual(
            "Jane", "jane", parent=profiles.campaign("Great Run"), campaign={"name": "Override"}
        )
        assert derive_campaign_name(parse_profile(raw)) == "Override"

    def test_path_segment_fallback(self):
        record = parse_profile({"name": "Jane", "path": "spring-walk/jane"})
        assert derive_campaign_name(record) == "spring-walk"

    def test_default_label(self):
        record = parse_profile({"name": "Jane", "path": "jane"})
        assert derive_campaign_name(record) == settings.default_campaign_name


class TestNormalizeProfile:
    """Validation and field shaping."""

    def test_full_individual(self, profiles):
        team = profiles.team("Red Team", "red-team")
        raw = profiles.individual("Jane Doe", "jane-doe", parent=team, url="https://x/jane")
        profile = normalize_profile(parse_profile(raw))

        assert profile.slug == "jane-doe"
        assert profile.campaign == "Sunderland 10K"
        assert profile.target_amount == 500.0
        assert profile.raised_amount == 150.0
        assert profile.profile_url == "https://x/jane"
        assert profile.team is not None
        assert profile.team.slug == "red-team"

    def test_slug_uses_last_path_segment(self):
        profile = normalize_profile(parse_profile({"name": "Jane", "path": "walk/Jane-Doe"}))
        assert profile.slug == "jane-doe"

    def test_url_built_from_campaign_url(self):
        raw = {"name": "Jane", "path": "jane", "campaign": {"name": "C", "url": "https://c.org/"}}
        assert normalize_profile(parse_profile(raw)).profile_url == "https://c.org/jane"

    def test_teams_carry_no_team_ref(self, profiles):
        profile = normalize_profile(parse_profile(profiles.team("Red", "red")))
        assert profile.team is None

    def test_missing_name(self):
        with pytest.raises(ProfileValidationError) as exc:
            normalize_profile(parse_profile({"path": "x"}))
        assert exc.value.field == "name"

    def test_missing_path(self):
        with pytest.raises(ProfileValidationError) as exc:
            normalize_profile(parse_profile({"name": "Jane"}))
        assert exc.value.field == "path"


class TestWebhookPayload:
    """Locating the profile inside webhook bodies."""

    def test_real_raisely_shape(self):
        body = {"data": {"type": "profile.created", "data": {"name": "Jane"}}}
        profile, event = extract_webhook_profile(body)
        assert profile == {"name": "Jane"}
        assert event == SyncEvent.CREATED

    def test_test_shape(self):
        body = {"type": "profile.updated", "data": {"profile": {"name": "Jane"}}}
        profile, event = extract_webhook_profile(body)
        assert profile == {"name": "Jane"}
        assert event == SyncEvent.UPDATED

    def test_missing_data(self):
        profile, _ = extract_webhook_profile({"type": "profile.created"})
        assert profile is None


class TestLoadExport:
    """Bulk export files."""

    def test_wrapped_and_bare(self, tmp_path):
        wrapped = tmp_path / "wrapped.json"
        wrapped.write_text(json.dumps({"data": [{"name": "a"}]}))
        bare = tmp_path / "bare.json"
        bare.write_text(json.dumps([{"name": "a"}, {"name": "b"}]))

        assert len(load_export(wrapped)) == 1
        assert len(load_export(bare)) == 2

    def test_invalid_format(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"items": []}))
        with pytest.raises(ValueError):
            load_export(bad)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_export(tmp_path / "nope.json")

"""Tests for the slug normalizer."""

import re

import pytest

from fundsync.core.slug import join_path, slugify

SAMPLES = [
    "Sunderland 10K",
    "  Leading and trailing  ",
    "Jane O'Brien's Run!!",
    "multiple   spaces\tand\ttabs",
    "--already--hyphenated--",
    "Café & Crème 2024",
    "UPPER lower MiXeD",
    "!!!",
    "a - b - c",
    "",
]


class TestSlugify:
    """Basic transform behaviour."""

    def test_lowercases_and_hyphenates(self):
        assert slugify("Sunderland 10K") == "sunderland-10k"

    def test_strips_punctuation(self):
        assert slugify("Jane O'Brien's Run!!") == "jane-obriens-run"

    def test_collapses_whitespace_and_hyphens(self):
        assert slugify("a  -  b\t\tc") == "a-b-c"

    def test_trims_edge_hyphens(self):
        assert slugify("--team--") == "team"

    def test_non_ascii_dropped(self):
        assert slugify("Café & Crème") == "caf-crme"

    def test_none_and_empty(self):
        assert slugify(None) == ""
        assert slugify("") == ""
        assert slugify("!!!") == ""


class TestSlugProperties:
    """Idempotence and output charset."""

    @pytest.mark.parametrize("text", SAMPLES)
    def test_idempotent(self, text):
        assert slugify(slugify(text)) == slugify(text)

    @pytest.mark.parametrize("text", SAMPLES)
    def test_charset(self, text):
        slug = slugify(text)
        assert re.fullmatch(r"[a-z0-9-]*", slug)
        assert "--" not in slug
        assert not slug.startswith("-")
        assert not slug.endswith("-")


def test_join_path_skips_empty_segments():
    assert join_path("fundraisers", "", "team/", "/jane") == "fundraisers/team/jane"

"""Tests for content-policy prompt rewriting."""

import pytest

from ytassets.dispatch.prompt_transform import (
    DEFAULT_BANNED_TERMS,
    FALLBACK_PROMPT,
    SafetyFramingTransform,
)


class TestSafetyFramingTransform:
    @pytest.fixture
    def transform(self):
        return SafetyFramingTransform()

    def test_strips_banned_terms_case_insensitive(self, transform):
        assert transform.strip("A VIOLENT storm with Blood red skies") == "A storm with red skies"

    def test_whole_words_only(self, transform):
        # "skill" contains "kill", "gunther" contains "gun"
        assert transform.strip("a skill contest by gunther") == "a skill contest by gunther"

    def test_first_rewrite(self, transform):
        assert transform("a knife on a table", 1) == "a safe and family-friendly a on a table"

    def test_later_rewrites_add_artistic_framing(self, transform):
        expected = "a safe and peaceful artistic representation of a safe and family-friendly an old castle"
        assert transform("an old castle", 2) == expected
        assert transform("an old castle", 3) == expected

    def test_fallback_when_nothing_left(self, transform):
        assert transform("violence, blood", 1) == FALLBACK_PROMPT
        assert transform("gun", 2).endswith(FALLBACK_PROMPT)

    def test_custom_terms(self):
        transform = SafetyFramingTransform(["storm", " ", "Lightning"])
        assert transform.banned_terms == ["lightning", "storm"]
        assert transform.strip("lightning over a storm at sea") == "over a at sea"

    def test_no_terms(self):
        transform = SafetyFramingTransform([])
        assert transform.strip("blood moon") == "blood moon"

    def test_default_terms_match_settings(self):
        from ytassets.core.config import Settings

        assert Settings().banned_terms_list == list(DEFAULT_BANNED_TERMS)

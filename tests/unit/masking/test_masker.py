"""
Tests for sensitive substring masking.

Tests preserve modes, pattern ordering and the runtime toggle.
"""

import pytest

from mqttsight.core.masking import Masker, mask_match, mask_text
from mqttsight.models.message import PreserveMode


class TestMaskMatch:
    """Test masking of a single matched substring."""

    @pytest.mark.parametrize(
        "preserve,expected",
        [
            (PreserveMode.NONE, "******"),
            (PreserveMode.FIRST4, "secr**"),
            (PreserveMode.LAST4, "**cret"),
            (PreserveMode.BOTH4, "secret"),
        ],
    )
    def test_six_character_match(self, preserve: PreserveMode, expected: str) -> None:
        assert mask_match("secret", preserve) == expected

    def test_both4_masks_only_the_middle(self) -> None:
        assert mask_match("supersecret", PreserveMode.BOTH4) == "supe***cret"

    def test_short_matches_left_alone_when_preserving(self) -> None:
        assert mask_match("ok", PreserveMode.FIRST4) == "ok"
        assert mask_match("abcd", PreserveMode.LAST4) == "abcd"
        assert mask_match("abcdefgh", PreserveMode.BOTH4) == "abcdefgh"

    def test_none_masks_everything(self) -> None:
        assert mask_match("ok", PreserveMode.NONE) == "**"


class TestMaskText:
    """Test masking across whole strings."""

    def test_last4_example(self) -> None:
        assert mask_text("mysecretpass", ["secret"], PreserveMode.LAST4) == "my**cretpass"

    def test_short_match_unchanged(self) -> None:
        assert mask_text("ok", ["ok"], PreserveMode.FIRST4) == "ok"

    def test_case_insensitive_every_occurrence(self) -> None:
        assert mask_text("Token=1 token=2", ["token"], PreserveMode.NONE) == "*****=1 *****=2"

    def test_later_patterns_see_earlier_output(self) -> None:
        # "my\*" only exists after the first pattern has run
        assert mask_text("mysecret", ["secret", r"my\*"], PreserveMode.NONE) == "********"
        assert mask_text("mysecret", [r"my\*", "secret"], PreserveMode.NONE) == "my******"

    def test_invalid_pattern_is_skipped(self) -> None:
        assert mask_text("apikey=abc", ["(", "apikey"], PreserveMode.NONE) == "******=abc"


class TestMasker:
    """Test the masker's on/off gate."""

    def test_enabled_when_patterns_configured(self) -> None:
        masker = Masker(["password"])
        assert masker.enabled is True
        assert masker.mask("password=1") == "********=1"

    def test_disabled_without_patterns(self) -> None:
        masker = Masker()
        assert masker.enabled is False
        assert masker.has_patterns is False
        assert masker.mask("password") == "password"

    def test_toggle_returns_identity_when_off(self) -> None:
        masker = Masker(["token"], PreserveMode.FIRST4)
        assert masker.mask("tokenvalue") == "toke*value"
        assert masker.toggle() is False
        assert masker.mask("tokenvalue") == "tokenvalue"
        assert masker.toggle() is True

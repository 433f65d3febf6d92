"""Tests for text sanitization."""

import pytest

from scenario_intel.utils.sanitize import has_digits, has_imperatives, sanitize_text, strip_digits


class TestSanitizeText:
    """Tests for sanitize_text function."""

    def test_sanitize_none(self) -> None:
        """Test sanitize returns None for None input."""
        assert sanitize_text(None) is None

    def test_sanitize_strips_whitespace(self) -> None:
        """Test whitespace is stripped."""
        assert sanitize_text("  Runway holds  ") == "Runway holds"

    def test_sanitize_removes_control_chars(self) -> None:
        """Test control characters are removed."""
        assert sanitize_text("Runway\x00 holds\x1f.") == "Runway holds."

    def test_sanitize_removes_high_control_chars(self) -> None:
        """Test high control characters (0x7f-0x9f) are removed."""
        assert sanitize_text("Burn\x7f eased\x9f.") == "Burn eased."

    def test_sanitize_truncates_long_text(self) -> None:
        """Test long text is truncated."""
        result = sanitize_text("A" * 600, max_length=500)

        assert len(result) == 503  # 500 + "..."
        assert result.endswith("...")

    def test_sanitize_preserves_unicode(self) -> None:
        """Citation separators and deltas survive."""
        assert sanitize_text("72% | ΔS -12.0% · flag") == "72% | ΔS -12.0% · flag"

    def test_sanitize_whitespace_only(self) -> None:
        """Test whitespace-only string."""
        assert sanitize_text("   ") == ""


class TestDigits:
    """Tests for has_digits and strip_digits."""

    def test_has_digits(self) -> None:
        assert has_digits("Runway of 8 months")
        assert not has_digits("Runway is constrained.")

    def test_strip_digits_collapses_whitespace(self) -> None:
        assert strip_digits("Risk rose 15 points to 80 overall") == "Risk rose points to overall"

    def test_strip_digits_only_digits(self) -> None:
        assert strip_digits("2024") == ""


class TestImperatives:
    """Tests for has_imperatives."""

    @pytest.mark.parametrize(
        "text",
        [
            "Management must cut burn.",
            "The team should raise capital.",
            "We recommend a bridge round.",
            "The plan will need to change.",
            "YOU SHOULD reconsider.",
        ],
    )
    def test_detects_advice(self, text: str) -> None:
        assert has_imperatives(text)

    @pytest.mark.parametrize(
        "text",
        [
            "Sensitivity appears tied to runway compression.",
            "Relative to baseline, momentum appears softer.",
            "Recommendations are out of scope here.",
        ],
    )
    def test_neutral_text(self, text: str) -> None:
        assert not has_imperatives(text)

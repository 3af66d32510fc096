"""Tests for internationalization system."""
from premium_bot import i18n


def _leaf_keys(table, prefix=""):
    for key, value in table.items():
        path = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _leaf_keys(value, path + ".")
        else:
            yield path


class TestI18n:
    """Test translation system."""

    def test_get_text_nested_key_id(self):
        """Test getting nested translation key in Indonesian."""
        assert "dibatalkan" in i18n.get_text("order.cancelled", lang="id")

    def test_get_text_nested_key_en(self):
        """Test getting nested translation key in English."""
        assert i18n.get_text("admin.reject_button", lang="en") == "❌ Reject"

    def test_default_language_is_indonesian(self):
        assert i18n.get_text("order.cancelled") == i18n.get_text("order.cancelled", lang="id")

    def test_get_text_with_formatting(self):
        """Test translation with parameter formatting."""
        text = i18n.get_text("order.invalid_subscriber_id", lang="en", min_length=12)
        assert "12 characters" in text

    def test_get_text_missing_parameter(self):
        """Test that a missing parameter returns the raw template."""
        text = i18n.get_text("order.expired", lang="en", unrelated=1)
        assert "{minutes}" in text

    def test_get_text_missing_key(self):
        """Test handling of missing translation key."""
        assert i18n.get_text("nonexistent.key", lang="en") == "nonexistent.key"

    def test_get_text_fallback_to_english(self):
        """Test fallback to English for an unknown language."""
        assert i18n.get_text("order.cancelled", lang="xx") == i18n.get_text("order.cancelled", lang="en")

    def test_get_text_section_key(self):
        """Test that a key naming a whole section is treated as missing."""
        assert i18n.get_text("status", lang="en") == "status"

    def test_languages_have_same_keys(self):
        """Test that both languages translate every key."""
        assert set(_leaf_keys(i18n.TRANSLATIONS["id"])) == set(_leaf_keys(i18n.TRANSLATIONS["en"]))


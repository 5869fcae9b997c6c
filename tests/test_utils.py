"""Tests for shared utility functions."""

from spark_voice.utils import normalize_email, normalize_phone, spoken_digits_to_text


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("07700 900 123") == "07700900123"

    def test_strips_dashes(self):
        assert normalize_phone("07700-900-123") == "07700900123"

    def test_strips_parentheses(self):
        assert normalize_phone("(020) 7946 0000") == "02079460000"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+44 7700 900123") == "+447700900123"

    def test_strips_whitespace(self):
        assert normalize_phone("  07700900123  ") == "07700900123"

    def test_mixed_separators(self):
        assert normalize_phone("+44 (7700) 900-123") == "+447700900123"


class TestSpokenDigits:
    def test_words_to_digits(self):
        assert spoken_digits_to_text("oh seven seven double oh") == "07700"

    def test_triple(self):
        assert spoken_digits_to_text("triple nine") == "999"

    def test_numerals_pass_through(self):
        assert spoken_digits_to_text("07700 900123") == "07700900123"


class TestNormalizeEmail:
    def test_spoken_email(self):
        assert normalize_email("Jane dot Smith at gmail dot com") == "jane.smith@gmail.com"

    def test_written_email(self):
        assert normalize_email(" Jane@Example.com ") == "jane@example.com"

    def test_underscore_and_dash(self):
        assert normalize_email("jane underscore smith dash uk at example dot co dot uk") == (
            "jane_smith-uk@example.co.uk"
        )

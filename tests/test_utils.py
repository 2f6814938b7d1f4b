"""
Tests for validation, cookie and credential helpers.
"""

import hashlib
from uuid import UUID

import pytest

from readycheck.exceptions import ValidationError
from readycheck.utils.crypto_utils import generate_numeric_code, hash_credential
from readycheck.utils.http_utils import is_secure_request, parse_cookie_header
from readycheck.utils.validation import normalize_email, validate_check_id, validate_code, validate_metrics


class TestNormalizeEmail:
    """Test cases for email normalization."""

    @pytest.mark.parametrize("raw, expected", [
        ("alice@example.com", "alice@example.com"),
        ("  Alice@Example.COM\t", "alice@example.com"),
        ("first.last+tag@sub.example.org", "first.last+tag@sub.example.org"),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_email(raw) == expected

    @pytest.mark.parametrize("raw", [
        "",
        "   ",
        "alice",
        "@example.com",
        "alice@",
        "al ice@example.com",
        "a" * 250 + "@example.com",
        None,
        42,
    ])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            normalize_email(raw)


class TestValidateCode:
    """Test cases for sign-in code validation."""

    def test_accepts_exact_length_digits(self):
        assert validate_code(" 004217 ", 6) == "004217"

    @pytest.mark.parametrize("raw", ["00421", "0042171", "00421a", "", None, 123456])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            validate_code(raw, 6)


class TestValidateMetrics:
    """Test cases for metric summary validation."""

    def test_converts_to_floats(self):
        assert validate_metrics({"srt_mean_ms": 312, "wm_error_rate": 0.1}) == {
            "srt_mean_ms": 312.0,
            "wm_error_rate": 0.1,
        }

    @pytest.mark.parametrize("raw", [
        {},
        {"srt_mean_ms": float("nan")},
        {"srt_mean_ms": float("-inf")},
        {"srt_mean_ms": "312"},
        {"srt_mean_ms": True},
        {"": 1.0},
        {"x" * 65: 1.0},
    ])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            validate_metrics(raw)


class TestValidateCheckId:
    """Test cases for check id validation."""

    def test_canonicalizes(self):
        assert validate_check_id(" 5F0C6F0E-8A4E-4C55-9A8F-0D1F6B9D2C11 ") == "5f0c6f0e-8a4e-4c55-9a8f-0d1f6b9d2c11"

    def test_accepts_uuid_instances(self):
        check_id = UUID("5f0c6f0e-8a4e-4c55-9a8f-0d1f6b9d2c11")

        assert validate_check_id(check_id) == str(check_id)

    @pytest.mark.parametrize("raw", ["", "check-1", "5f0c6f0e-8a4e-4c55-9a8f", None, 42])
    def test_rejects(self, raw):
        with pytest.raises(ValidationError):
            validate_check_id(raw)


class TestParseCookieHeader:
    """Test cases for the Cookie header parser."""

    def test_parses_pairs(self):
        assert parse_cookie_header("session=abc; theme=dark") == {"session": "abc", "theme": "dark"}

    def test_ignores_whitespace(self):
        assert parse_cookie_header("  session = abc ;theme=dark  ") == {"session": "abc", "theme": "dark"}

    def test_first_occurrence_wins(self):
        assert parse_cookie_header("session=first; session=second") == {"session": "first"}

    def test_skips_malformed_pairs(self):
        assert parse_cookie_header("garbage; =novalue; ;session=abc") == {"session": "abc"}

    def test_decodes_and_unquotes_values(self):
        assert parse_cookie_header('a="quoted"; b=hello%20world') == {"a": "quoted", "b": "hello world"}

    def test_keeps_equals_inside_value(self):
        assert parse_cookie_header("session=a.b=c") == {"session": "a.b=c"}

    @pytest.mark.parametrize("header", [None, "", ";;;", "==="])
    def test_empty_or_junk_yields_nothing(self, header):
        assert parse_cookie_header(header) == {}


class TestIsSecureRequest:
    """Test cases for TLS detection."""

    @pytest.mark.parametrize("scheme, forwarded, expected", [
        ("https", None, True),
        ("http", None, False),
        ("http", "https", True),
        ("http", "HTTPS, http", True),
        ("https", "http", False),
    ])
    def test_detection(self, scheme, forwarded, expected):
        assert is_secure_request(scheme, forwarded) is expected


class TestCredentialHelpers:
    """Test cases for code generation and digests."""

    def test_generated_codes_are_fixed_length_digits(self):
        for _ in range(200):
            code = generate_numeric_code(6)
            assert len(code) == 6
            assert code.isdigit()

    def test_hash_binds_email_and_code(self):
        digest = hash_credential("alice@example.com", "123456")

        assert digest == hashlib.sha256(b"alice@example.com|123456").hexdigest()
        assert digest != hash_credential("bob@example.com", "123456")
        assert digest != hash_credential("alice@example.com", "123457")

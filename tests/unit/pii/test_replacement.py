"""Unit tests for deterministic replacement generation."""

import re
from datetime import date

import pytest

from pii_proxy.models.enums import PiiType
from pii_proxy.pii.replacement import (
    DOB_EARLIEST,
    DOB_LATEST,
    PASSWORD_MARKER,
    derive_seed,
    get_deterministic_replacement,
    get_simple_redaction,
)

SALT = "replacement-test-salt-42"


class TestDeterminism:
    """Referential integrity of pseudonyms."""

    @pytest.mark.parametrize("pii_type", list(PiiType))
    def test_same_input_same_output(self, pii_type):
        first = get_deterministic_replacement("John Smith 123", pii_type, SALT)
        second = get_deterministic_replacement("John Smith 123", pii_type, SALT)
        assert first == second

    def test_interleaved_calls_do_not_disturb_each_other(self):
        alice = get_deterministic_replacement("Alice", PiiType.PERSON, SALT)
        get_deterministic_replacement("Bob", PiiType.PERSON, SALT)
        assert get_deterministic_replacement("Alice", PiiType.PERSON, SALT) == alice

    def test_different_values_differ(self):
        a = get_deterministic_replacement("alice@example.com", PiiType.EMAIL, SALT)
        b = get_deterministic_replacement("bob@example.com", PiiType.EMAIL, SALT)
        assert a != b

    def test_salt_changes_mapping(self):
        a = get_deterministic_replacement("123-45-6789", PiiType.SSN, SALT)
        b = get_deterministic_replacement("123-45-6789", PiiType.SSN, "another-salt-value-99")
        assert a != b

    def test_seed_is_32_bit(self):
        seed = derive_seed("value", SALT)
        assert 0 <= seed < 2**32
        assert seed == derive_seed("value", SALT)


class TestFormats:
    """Each type keeps the shape of the real value."""

    @pytest.mark.parametrize(
        "pii_type, pattern",
        [
            (PiiType.SSN, r"\d{3}-\d{2}-\d{4}"),
            (PiiType.CREDIT_CARD, r"\d{4}-\d{4}-\d{4}-\d{4}"),
            (PiiType.BANK_ACCOUNT, r"\d{8}"),
            (PiiType.PASSPORT, r"[A-Z]{2}\d{7}"),
            (PiiType.DRIVER_LICENSE, r"[A-Z]\d{7}"),
            (PiiType.MEDICAL_ID, r"MED\d{8}"),
            (PiiType.NATIONAL_ID, r"\d{10}"),
            (PiiType.TAX_ID, r"\d{2}-\d{7}"),
            (PiiType.IP_ADDRESS, r"\d{1,3}(\.\d{1,3}){3}"),
            (PiiType.USERNAME, r"@\S+"),
        ],
    )
    def test_shape(self, pii_type, pattern):
        value = get_deterministic_replacement("original value", pii_type, SALT)
        assert re.fullmatch(pattern, value), value

    def test_email_looks_like_email(self):
        value = get_deterministic_replacement("a@b.co", PiiType.EMAIL, SALT)
        assert re.fullmatch(r"[^@\s]+@[^@\s]+\.[a-z]+", value)

    def test_person_is_a_name(self):
        value = get_deterministic_replacement("Alice", PiiType.PERSON, SALT)
        assert value and value != "Alice"

    def test_date_of_birth_in_fixed_range(self):
        value = get_deterministic_replacement("01/02/1990", PiiType.DATE_OF_BIRTH, SALT)
        month, day, year = (int(part) for part in value.split("/"))
        assert DOB_EARLIEST <= date(year, month, day) <= DOB_LATEST

    def test_password_never_gets_a_plausible_fake(self):
        assert get_deterministic_replacement("hunter2", PiiType.PASSWORD, SALT) == PASSWORD_MARKER
        assert get_deterministic_replacement("s3cret", "PASSWORD", SALT) == PASSWORD_MARKER

    def test_unknown_type_gets_marker(self):
        assert get_deterministic_replacement("x", "FAVORITE_COLOR", SALT) == "[FAVORITE_COLOR]"


class TestSimpleRedaction:
    """Non-deterministic marker mode."""

    def test_marker(self):
        assert get_simple_redaction(PiiType.EMAIL) == "[EMAIL]"
        assert get_simple_redaction("SSN") == "[SSN]"

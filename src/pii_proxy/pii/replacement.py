"""
Deterministic pseudonym generation.

A keyed hash of the original value seeds a Faker instance, so the same
value always maps to the same fake (referential integrity within and
across sessions) without ever storing the original. Changing the salt
changes every mapping.
"""

import hashlib
import hmac
import string
from datetime import date

from faker import Faker

from pii_proxy.models.enums import PiiType


PASSWORD_MARKER = "[REDACTED_PASSWORD]"

# Fixed bounds (ages roughly 18-80) rather than today-relative ones, so a
# birth date maps to the same fake on every day the service runs
DOB_EARLIEST = date(1945, 1, 1)
DOB_LATEST = date(2006, 12, 31)

# One generator, reseeded before every value. Seeding and drawing happen
# without an await in between, so concurrent requests cannot interleave.
_faker = Faker("en_US")


def derive_seed(original_text: str, salt: str) -> int:
    """32-bit seed from the first 8 hex digits of HMAC-SHA256(salt, text)."""
    digest = hmac.new(salt.encode("utf-8"), original_text.encode("utf-8"), hashlib.sha256).hexdigest()
    return int(digest[:8], 16)


def _upper(pattern: str) -> str:
    return _faker.bothify(pattern, letters=string.ascii_uppercase)


def get_deterministic_replacement(original_text: str, pii_type: PiiType | str, salt: str) -> str:
    """
    Fake value of the same semantic type as original_text.

    Same (text, type, salt) always yields the same output. Passwords get a
    fixed marker rather than a plausible fake.
    """
    _faker.seed_instance(derive_seed(original_text, salt))

    try:
        pii_type = PiiType(pii_type)
    except ValueError:
        return f"[{pii_type}]"

    if pii_type is PiiType.PERSON:
        return _faker.name()
    if pii_type is PiiType.EMAIL:
        return _faker.email()
    if pii_type is PiiType.PHONE:
        return _faker.phone_number()
    if pii_type is PiiType.ADDRESS:
        return _faker.street_address()
    if pii_type is PiiType.SSN:
        return _faker.numerify("###-##-####")
    if pii_type is PiiType.CREDIT_CARD:
        return _faker.numerify("####-####-####-####")
    if pii_type is PiiType.BANK_ACCOUNT:
        return _faker.numerify("########")
    if pii_type is PiiType.DATE_OF_BIRTH:
        born = _faker.date_between_dates(date_start=DOB_EARLIEST, date_end=DOB_LATEST)
        return f"{born.month}/{born.day}/{born.year}"
    if pii_type is PiiType.PASSPORT:
        return _upper("??#######")
    if pii_type is PiiType.DRIVER_LICENSE:
        return _upper("?#######")
    if pii_type is PiiType.IP_ADDRESS:
        return _faker.ipv4()
    if pii_type is PiiType.URL:
        return _faker.url()
    if pii_type is PiiType.USERNAME:
        return f"@{_faker.user_name()}"
    if pii_type is PiiType.PASSWORD:
        return PASSWORD_MARKER
    if pii_type is PiiType.MEDICAL_ID:
        return _faker.numerify("MED########")
    if pii_type is PiiType.NATIONAL_ID:
        return _faker.numerify("##########")
    if pii_type is PiiType.TAX_ID:
        return _faker.numerify("##-#######")
    return f"[{pii_type.value}]"


def get_simple_redaction(pii_type: PiiType | str) -> str:
    """Non-deterministic mode: a bracketed type marker, e.g. '[EMAIL]'."""
    value = pii_type.value if isinstance(pii_type, PiiType) else str(pii_type)
    return f"[{value}]"

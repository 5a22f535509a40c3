"""
Enumerations for PII Redaction Proxy data models.

All enums are closed taxonomies - no values outside these sets are permitted.
"""

from enum import Enum


class PiiType(str, Enum):
    """
    Closed taxonomy of PII entity types.

    Classifier labels are mapped onto these types by the entity locator;
    labels that map to nothing are treated as non-PII.
    """

    PERSON = "PERSON"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    ADDRESS = "ADDRESS"
    SSN = "SSN"
    CREDIT_CARD = "CREDIT_CARD"
    BANK_ACCOUNT = "BANK_ACCOUNT"
    DATE_OF_BIRTH = "DATE_OF_BIRTH"
    PASSPORT = "PASSPORT"
    DRIVER_LICENSE = "DRIVER_LICENSE"
    IP_ADDRESS = "IP_ADDRESS"
    URL = "URL"
    USERNAME = "USERNAME"
    PASSWORD = "PASSWORD"
    MEDICAL_ID = "MEDICAL_ID"
    NATIONAL_ID = "NATIONAL_ID"
    TAX_ID = "TAX_ID"


class FailStrategy(str, Enum):
    """
    Policy applied when PII detection exceeds its deadline.

    CLOSED blocks the request (the timeout propagates as an error).
    OPEN forwards the original, unredacted text.
    """

    CLOSED = "closed"
    OPEN = "open"


RISK_POINTS: dict[PiiType, int] = {
    PiiType.PERSON: 5,
    PiiType.EMAIL: 5,
    PiiType.PHONE: 10,
    PiiType.ADDRESS: 10,
    PiiType.SSN: 25,
    PiiType.CREDIT_CARD: 25,
    PiiType.BANK_ACCOUNT: 20,
    PiiType.DATE_OF_BIRTH: 5,
    PiiType.PASSPORT: 20,
    PiiType.DRIVER_LICENSE: 15,
    PiiType.IP_ADDRESS: 5,
    PiiType.URL: 2,
    PiiType.USERNAME: 5,
    PiiType.PASSWORD: 30,
    PiiType.MEDICAL_ID: 20,
    PiiType.NATIONAL_ID: 20,
    PiiType.TAX_ID: 20,
}

DEFAULT_RISK_POINTS = 5


def risk_points_for(pii_type: PiiType | str) -> int:
    """Risk weight of a PII type; unmapped types score DEFAULT_RISK_POINTS."""
    try:
        return RISK_POINTS[PiiType(pii_type)]
    except (KeyError, ValueError):
        return DEFAULT_RISK_POINTS

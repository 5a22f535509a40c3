"""
PII detection and redaction.

- locator.py: Group classifier tokens into character-bounded entities
- replacement.py: Deterministic pseudonyms and type markers
- redactor.py: Detection under a deadline, fail strategy, span replacement
"""

from pii_proxy.pii.locator import locate_entities
from pii_proxy.pii.redactor import RedactionOptions, RedactionService
from pii_proxy.pii.replacement import get_deterministic_replacement, get_simple_redaction

__all__ = [
    "locate_entities",
    "RedactionOptions",
    "RedactionService",
    "get_deterministic_replacement",
    "get_simple_redaction",
]

"""
Entity locator: turns labeled sub-word tokens into character-accurate spans.

Token classifiers label tokens, not characters, and many runtimes do not
report offsets. The locator rebuilds each entity's surface string from its
tokens and searches for it in the original text:

1. Labels are normalized ('B-'/'I-' stripped) and mapped to a PiiType.
   'O' and unknown labels close the current run.
2. Consecutive tokens of the same type with contiguous indices form a run.
   An index gap means an unlabeled token sat between them, so the run ends.
3. The run's fragments are joined ('##' pieces glued, leading-space markers
   kept only after the first fragment) and trimmed; runs under 2 characters
   are noise.
4. The joined string is searched case-insensitively; matches overlapping an
   already accepted span are skipped, so repeated values get distinct spans.
   A run that cannot be found is dropped.

When every token of a run carries offsets, the span comes straight from the
offsets and the search is skipped.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import structlog

from pii_proxy.models.enums import PiiType
from pii_proxy.models.pii_models import PiiEntity, RawToken


logger = structlog.get_logger(__name__)


# Classifier label -> PII type. Covers the piiranha label set plus the
# PiiType names themselves, for models trained on this taxonomy directly.
LABEL_TO_PII_TYPE: dict[str, PiiType] = {
    "ACCOUNTNUM": PiiType.BANK_ACCOUNT,
    "BUILDINGNUM": PiiType.ADDRESS,
    "CITY": PiiType.ADDRESS,
    "CREDITCARDNUMBER": PiiType.CREDIT_CARD,
    "DATEOFBIRTH": PiiType.DATE_OF_BIRTH,
    "DRIVERLICENSENUM": PiiType.DRIVER_LICENSE,
    "EMAIL": PiiType.EMAIL,
    "GIVENNAME": PiiType.PERSON,
    "IDCARDNUM": PiiType.NATIONAL_ID,
    "PASSWORD": PiiType.PASSWORD,
    "SOCIALNUM": PiiType.SSN,
    "STREET": PiiType.ADDRESS,
    "SURNAME": PiiType.PERSON,
    "TAXNUM": PiiType.TAX_ID,
    "TELEPHONENUM": PiiType.PHONE,
    "USERNAME": PiiType.USERNAME,
    "ZIPCODE": PiiType.ADDRESS,
    **{pii_type.value: pii_type for pii_type in PiiType},
}

CONTINUATION_MARKER = "##"
# Plain space (decoded tokens), SentencePiece and byte-level BPE word starts
SPACE_MARKERS = (" ", "▁", "Ġ")
MIN_ENTITY_LENGTH = 2


@dataclass
class _Run:
    """Tokens accumulated for one candidate entity."""

    pii_type: PiiType
    tokens: list[RawToken] = field(default_factory=list)

    @property
    def last_index(self) -> int:
        return self.tokens[-1].index

    def accepts(self, pii_type: PiiType, index: int) -> bool:
        return pii_type == self.pii_type and index == self.last_index + 1

    @property
    def confidence(self) -> float:
        return sum(t.score for t in self.tokens) / len(self.tokens)


def parse_label(label: str) -> Optional[str]:
    """Strip the BIO prefix; None for the outside label."""
    if not label or label == "O":
        return None
    if label.startswith(("B-", "I-")):
        return label[2:]
    return label


def label_to_pii_type(label: str) -> Optional[PiiType]:
    """Map a raw classifier label to a PiiType, or None when it is not PII."""
    tag = parse_label(label)
    if tag is None:
        return None
    return LABEL_TO_PII_TYPE.get(tag.upper())


def join_fragments(words: list[str]) -> str:
    """Rebuild surface text from sub-word fragments."""
    joined = ""
    for word in words:
        if word.startswith(CONTINUATION_MARKER):
            joined += word[len(CONTINUATION_MARKER):]
        elif word.startswith(SPACE_MARKERS):
            joined += " " + word[1:] if joined else word[1:]
        else:
            joined += word
    return joined.strip()


def _overlaps_any(start: int, end: int, used: list[tuple[int, int]]) -> bool:
    return any(start < used_end and end > used_start for used_start, used_end in used)


def find_position(
    search: str,
    text: str,
    used: list[tuple[int, int]],
) -> Optional[tuple[int, int]]:
    """
    First case-insensitive occurrence of search that overlaps no used span.

    Matching runs against the original text (not a lowercased copy) so the
    returned offsets stay valid even when case folding changes lengths.
    """
    pattern = re.compile(re.escape(search), re.IGNORECASE)
    cursor = 0
    while cursor < len(text):
        match = pattern.search(text, cursor)
        if match is None:
            break
        start, end = match.span()
        if not _overlaps_any(start, end, used):
            return start, end
        cursor = start + 1
    return None


def _span_from_offsets(run: _Run, text: str) -> Optional[tuple[int, int]]:
    if not all(t.has_offsets for t in run.tokens):
        return None
    start = run.tokens[0].start
    end = run.tokens[-1].end
    if end > len(text) or start >= end:
        return None
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    return start, end


def _finalize(run: _Run, text: str, used: list[tuple[int, int]]) -> Optional[PiiEntity]:
    position = _span_from_offsets(run, text)
    if position is not None:
        start, end = position
        if end - start < MIN_ENTITY_LENGTH:
            return None
        if _overlaps_any(start, end, used):
            position = None

    if position is None:
        joined = join_fragments([t.word for t in run.tokens])
        if len(joined) < MIN_ENTITY_LENGTH:
            return None
        position = find_position(joined, text, used)
        if position is None:
            logger.debug(
                "Dropped unlocatable entity",
                pii_type=run.pii_type.value,
                fragment_count=len(run.tokens),
            )
            return None

    start, end = position
    return PiiEntity(
        type=run.pii_type,
        text=text[start:end],
        start=start,
        end=end,
        confidence=run.confidence,
    )


def locate_entities(tokens: list[RawToken], text: str) -> list[PiiEntity]:
    """
    Group classifier tokens into non-overlapping PII entities.

    Args:
        tokens: Classifier output in token order
        text: The exact text that was classified

    Returns:
        Entities in discovery order; text[e.start:e.end] == e.text for each.
    """
    entities: list[PiiEntity] = []
    used: list[tuple[int, int]] = []
    run: Optional[_Run] = None

    def close_run() -> None:
        if run is None:
            return
        entity = _finalize(run, text, used)
        if entity is not None:
            entities.append(entity)
            used.append((entity.start, entity.end))

    for token in tokens:
        pii_type = label_to_pii_type(token.label)
        if pii_type is None:
            close_run()
            run = None
            continue

        if run is not None and run.accepts(pii_type, token.index):
            run.tokens.append(token)
            continue

        close_run()
        run = _Run(pii_type=pii_type, tokens=[token])

    close_run()
    return entities

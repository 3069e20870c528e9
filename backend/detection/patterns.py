"""PII pattern table.

Every quantifier is bounded or linear so a scan over tens of kilobytes
stays well under a second. Table order doubles as tie-break priority when two
patterns match the exact same span.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple


class PIIType(str, Enum):
    PAYMENT_TOKEN = "payment_token"
    EMAIL = "email"
    SSN = "ssn"
    CREDIT_CARD = "credit_card"
    PHONE = "phone"
    ADDRESS = "address"


@dataclass(frozen=True)
class PIIMatch:
    """One detected PII occurrence. `end` is exclusive."""
    type: PIIType
    start: int
    end: int
    matched_text: str

    @property
    def length(self) -> int:
        return self.end - self.start


_STREET_SUFFIXES = (
    "Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd"
)

PII_PATTERNS: List[Tuple[PIIType, re.Pattern]] = [
    # Processor tokens (Stripe-style prefixes, Adyen)
    (PIIType.PAYMENT_TOKEN, re.compile(r"\b(?:tok|card|pm|pi|src|adyen)_[A-Za-z0-9]{10,}\b")),
    # Email; local part anchored so a scan never restarts mid-word
    (PIIType.EMAIL, re.compile(
        r"(?<![A-Za-z0-9._%+-])[A-Za-z0-9._%+-]{1,64}@(?:[A-Za-z0-9-]{1,63}\.){1,8}[A-Za-z]{2,24}\b"
    )),
    # SSN NNN-NN-NNNN
    (PIIType.SSN, re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    # 13-19 digits, optional space/hyphen separators (4-4-4-x and Amex 4-6-5)
    (PIIType.CREDIT_CARD, re.compile(
        r"(?<!\d)(?:\d{4}[ -]?\d{6}[ -]?\d{5}|\d{4}(?:[ -]?\d{4}){2}[ -]?\d{1,7})(?!\d)"
    )),
    # NNN-NNN-NNNN, NNN.NNN.NNNN, (NNN) NNN-NNNN
    (PIIType.PHONE, re.compile(r"(?<!\d)(?:\(\d{3}\)\s?|\d{3}[-.])\d{3}[-.]\d{4}(?!\d)")),
    # Street address: number, one to five capitalised words, capitalised suffix.
    # Case-sensitive so "2 shirts the fastest way" stays plain text.
    (PIIType.ADDRESS, re.compile(
        rf"\b\d{{1,6}}\s+(?:[A-Z][A-Za-z]*\.?\s+){{1,5}}(?:{_STREET_SUFFIXES})\b"
    )),
]

# Subset used to scan stored conversations for payment data leaks
PAYMENT_LEAK_TYPES = (PIIType.PAYMENT_TOKEN, PIIType.CREDIT_CARD)

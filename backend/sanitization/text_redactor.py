"""Text Redactor — swaps detected PII in free text for placeholders.

redact_query: reversible within the caller's hands (placeholder -> original map,
never persisted). sanitize_response: one-way, for outbound/display text.
"""
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from detection.detector import PatternDetector
from detection.patterns import PAYMENT_LEAK_TYPES, PIIMatch, PIIType
from schemas.results import RedactionResult

logger = logging.getLogger(__name__)

REDACTED_MARKER = "[REDACTED]"

_LEAK_MARKERS = {
    PIIType.PAYMENT_TOKEN: "[PAYMENT_TOKEN_REDACTED]",
    PIIType.CREDIT_CARD: "[CARD_NUMBER_REDACTED]",
}


def _random_suffix() -> str:
    return uuid.uuid4().hex[:8]


def _splice(text: str, matches: List[PIIMatch], replacement: Callable[[int, PIIMatch], str]) -> str:
    parts = []
    cursor = 0
    for i, m in enumerate(matches):
        parts.append(text[cursor:m.start])
        parts.append(replacement(i, m))
        cursor = m.end
    parts.append(text[cursor:])
    return "".join(parts)


class TextRedactor:

    def __init__(
        self,
        detector: Optional[PatternDetector] = None,
        suffix_factory: Callable[[], str] = _random_suffix,
    ):
        self.detector = detector or PatternDetector()
        self._suffix = suffix_factory
        self._leak_detector = PatternDetector(PAYMENT_LEAK_TYPES)

    def redact_query(self, text: str) -> RedactionResult:
        """Replace each match, left to right, with [PII_TOKEN_{seq}_{hex8}]."""
        matches = self.detector.detect(text)
        if not matches:
            return RedactionResult(sanitized_text=text, tokens={})

        tokens: Dict[str, str] = {}

        def _placeholder(i: int, m: PIIMatch) -> str:
            placeholder = f"[PII_TOKEN_{i}_{self._suffix()}]"
            tokens[placeholder] = m.matched_text
            return placeholder

        sanitized = _splice(text, matches, _placeholder)
        logger.debug("[Redactor] Query redacted: matches=%d", len(matches))
        return RedactionResult(sanitized_text=sanitized, tokens=tokens)

    def sanitize_response(self, text: str) -> str:
        return self.sanitize_response_counted(text)[0]

    def sanitize_response_counted(self, text: str) -> Tuple[str, int]:
        """sanitize_response plus the number of matches replaced."""
        matches = self.detector.detect(text)
        if not matches:
            return text, 0
        return _splice(text, matches, lambda i, m: REDACTED_MARKER), len(matches)

    @staticmethod
    def detokenize(text: str, tokens: Dict[str, str]) -> str:
        """Put originals back in place of their placeholders."""
        result = text
        for placeholder, original in tokens.items():
            result = result.replace(placeholder, str(original))
        return result

    # ── Payment leak checks ──────────────────────────────────────────────

    def scan_payment_leaks(self, value: Any, path: str = "") -> List[str]:
        """List violations where card numbers or processor tokens appear."""
        violations: List[str] = []
        if isinstance(value, str):
            matches = self._leak_detector.detect(value)
            if matches:
                kinds = sorted({m.type.value for m in matches})
                violations.append(
                    f"Payment data found at {path or '<root>'}: {len(matches)} matches ({', '.join(kinds)})"
                )
        elif isinstance(value, dict):
            for k, v in value.items():
                violations.extend(self.scan_payment_leaks(v, f"{path}.{k}" if path else str(k)))
        elif isinstance(value, list):
            for i, v in enumerate(value):
                violations.extend(self.scan_payment_leaks(v, f"{path}[{i}]"))
        return violations

    def remove_payment_leaks(self, value: Any) -> Any:
        """Copy of value with card numbers and processor tokens masked."""
        if isinstance(value, str):
            matches = self._leak_detector.detect(value)
            if not matches:
                return value
            return _splice(value, matches, lambda i, m: _LEAK_MARKERS[m.type])
        if isinstance(value, dict):
            return {k: self.remove_payment_leaks(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.remove_payment_leaks(v) for v in value]
        return value

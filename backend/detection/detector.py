"""Pattern Detector — regex scanner for known PII shapes.

Each pattern runs independently over the text; results are merged so that
overlapping matches resolve to the earliest-starting, longest one. Input
that is not a string, or that only nearly matches, simply produces no match.
"""
import logging
from typing import Iterable, List, Optional

from detection.patterns import PII_PATTERNS, PIIMatch, PIIType

logger = logging.getLogger(__name__)


class PatternDetector:
    """Stateless scanner; safe to share across concurrent requests."""

    def __init__(self, types: Optional[Iterable[PIIType]] = None):
        if types is None:
            self._patterns = list(PII_PATTERNS)
        else:
            wanted = set(types)
            self._patterns = [(t, p) for t, p in PII_PATTERNS if t in wanted]

    @property
    def types(self) -> List[PIIType]:
        return [t for t, _ in self._patterns]

    def detect(self, text: str) -> List[PIIMatch]:
        """Return non-overlapping matches ordered by position."""
        if not isinstance(text, str) or not text:
            return []

        candidates = []
        for priority, (pii_type, pattern) in enumerate(self._patterns):
            for m in pattern.finditer(text):
                if m.end() == m.start():
                    continue
                candidates.append((
                    m.start(),
                    -(m.end() - m.start()),
                    priority,
                    PIIMatch(type=pii_type, start=m.start(), end=m.end(), matched_text=m.group(0)),
                ))

        candidates.sort(key=lambda c: c[:3])

        merged: List[PIIMatch] = []
        last_end = -1
        for _, _, _, match in candidates:
            if match.start >= last_end:
                merged.append(match)
                last_end = match.end

        if merged:
            logger.debug(
                "[Detector] %d match(es) types=%s",
                len(merged), sorted({m.type.value for m in merged}),
            )
        return merged

    def count(self, text: str) -> int:
        return len(self.detect(text))

    def contains_pii(self, text: str) -> bool:
        return bool(self.detect(text))

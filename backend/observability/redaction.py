"""PII / secrets redaction for log lines and audit details.

PII shapes come from the shared Pattern Detector; secret shapes (API keys,
JWTs, MongoDB URIs, bearer tokens) are log-specific and live here.
"""
import re
from typing import Any, List, Optional, Set, Tuple

from detection.detector import PatternDetector

_detector = PatternDetector()

# (pattern, replacement_label)
_SECRET_PATTERNS: List[Tuple[re.Pattern, str]] = [
    # API key patterns (generic long hex/base64)
    (re.compile(r"(?:api[_-]?key|secret|password|master[_-]?key)[\s:=]+[\"']?[A-Za-z0-9_\-\.]{20,}[\"']?", re.IGNORECASE), "[REDACTED_SECRET]"),
    # JWT tokens
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[REDACTED_JWT]"),
    # MongoDB URI with credentials
    (re.compile(r"mongodb(?:\+srv)?://[^\s@/]+:[^\s@/]+@[^\s]+"), "[REDACTED_MONGO_URI]"),
    # Generic bearer token
    (re.compile(r"Bearer\s+[A-Za-z0-9_\-\.]+", re.IGNORECASE), "[REDACTED_BEARER]"),
]

DEFAULT_SENSITIVE_KEYS = {
    "password", "secret", "api_key", "jwt", "plaintext", "master_key",
    "kms_master_key", "encrypted_value", "card_number", "cvv",
}


def redact(text: str) -> str:
    """Apply secret patterns then PII patterns to text."""
    result = text
    for pattern, replacement in _SECRET_PATTERNS:
        result = pattern.sub(replacement, result)

    matches = _detector.detect(result)
    if not matches:
        return result
    parts = []
    cursor = 0
    for m in matches:
        parts.append(result[cursor:m.start])
        parts.append(f"[REDACTED_{m.type.value.upper()}]")
        cursor = m.end
    parts.append(result[cursor:])
    return "".join(parts)


def redact_dict(data: dict, sensitive_keys: Optional[Set[str]] = None) -> dict:
    """Redact values of sensitive keys in a dictionary."""
    if sensitive_keys is None:
        sensitive_keys = DEFAULT_SENSITIVE_KEYS
    result = {}
    for k, v in data.items():
        if str(k).lower() in sensitive_keys:
            result[k] = "[REDACTED]"
        else:
            result[k] = _redact_value(v, sensitive_keys)
    return result


def _redact_value(value: Any, sensitive_keys: Set[str]) -> Any:
    if isinstance(value, dict):
        return redact_dict(value, sensitive_keys)
    if isinstance(value, list):
        return [_redact_value(v, sensitive_keys) for v in value]
    if isinstance(value, str):
        return redact(value)
    return value

"""Result shapes returned to callers.

Redaction and user-data tokenization results are ephemeral dataclasses owned by
the caller. Payment and conversation results are pydantic models because
callers persist or serialise them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field


@dataclass
class RedactionResult:
    """Free text with PII swapped for in-memory placeholders."""
    sanitized_text: str
    tokens: Dict[str, str] = field(default_factory=dict)  # placeholder -> original


@dataclass
class TokenizedUserData:
    """A record mirroring the input with sensitive leaves replaced."""
    tokenized_data: Any
    token_map: Dict[str, Any] = field(default_factory=dict)  # placeholder -> original


@dataclass
class SecureTokenizationOutcome:
    """Structured record whose sensitive leaves now hold persisted token ids."""
    tokenized_data: Any
    fields_replaced: int = 0
    tokens_created: int = 0
    token_ids: List[str] = field(default_factory=list)


class TokenMapping(BaseModel):
    field: str
    token_id: str
    data_classification: Literal["payment"] = "payment"


class PaymentTokenizationResult(BaseModel):
    tokenized_data: Dict[str, Any] = Field(default_factory=dict)
    token_mappings: List[TokenMapping] = Field(default_factory=list)


class RedactionSummary(BaseModel):
    fields_redacted: List[str] = Field(default_factory=list)
    pii_patterns_found: int = 0
    tokens_created: int = 0


class ConversationSanitizationResult(BaseModel):
    sanitized_conversation: Dict[str, Any] = Field(default_factory=dict)
    redaction_summary: RedactionSummary = Field(default_factory=RedactionSummary)


@dataclass
class PaymentLeakReport:
    """Outcome of scanning a record for card numbers and processor tokens."""
    is_clean: bool
    violations: List[str] = field(default_factory=list)
    sanitized_data: Any = None

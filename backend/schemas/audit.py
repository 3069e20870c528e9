"""Audit event schemas."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field
import uuid


class AuditEventType(str, Enum):
    # Secure token lifecycle
    TOKEN_CREATED = "token_created"
    TOKEN_RETRIEVED = "token_retrieved"
    TOKEN_DENIED = "token_denied"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_DELETED = "token_deleted"
    # Payment tokenization
    PAYMENT_DATA_TOKENIZED = "payment_data_tokenized"
    PAYMENT_FIELD_DEGRADED = "payment_field_degraded"
    PAYMENT_TOKENIZATION_FAILED = "payment_tokenization_failed"
    # Conversation persistence
    CONVERSATION_SANITIZED = "conversation_sanitized"
    CONVERSATION_SANITIZATION_FAILED = "conversation_sanitization_failed"


class AuditEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: AuditEventType
    merchant_id: Optional[str] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    outcome: str = "success"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    details: Dict[str, Any] = Field(default_factory=dict)
    env: str = "dev"

    def to_doc(self) -> dict:
        d = self.model_dump()
        d["event_type"] = d["event_type"].value if hasattr(d["event_type"], "value") else d["event_type"]
        return d

"""Conversation entry schemas — what the chat layer hands over for persistence."""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from schemas.results import RedactionSummary


class ConversationEntry(BaseModel):
    session_id: str
    merchant_id: str
    user_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    user_message: str = ""
    assistant_response: str = ""
    context: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    # Order ids, payment intent ids ... that may be echoed back in the response
    transaction_references: List[str] = Field(default_factory=list)


class SanitizedConversationEntry(BaseModel):
    session_id: str
    merchant_id: str
    user_id: Optional[str] = None
    timestamp: datetime
    user_message: str
    assistant_response: str
    context: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    sanitization_applied: bool = False
    sanitization_summary: RedactionSummary = Field(default_factory=RedactionSummary)
    original_hash: str


class BatchSanitizationError(BaseModel):
    index: int
    error: str

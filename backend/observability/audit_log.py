"""Audit logging — persists structured audit events to MongoDB."""
import logging
from typing import Any, Dict, Optional

from schemas.audit import AuditEvent, AuditEventType
from observability.redaction import redact_dict

logger = logging.getLogger(__name__)


class AuditLogRepository:
    """Append-only audit trail on a motor collection."""

    def __init__(self, collection, env: str = "dev"):
        self.collection = collection
        self.env = env

    async def log_event(
        self,
        event_type: AuditEventType,
        merchant_id: Optional[str] = None,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        outcome: str = "success",
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create and persist an audit event. Returns event_id."""
        event = AuditEvent(
            event_type=event_type,
            merchant_id=merchant_id,
            session_id=session_id,
            user_id=user_id,
            outcome=outcome,
            details=redact_dict(details or {}),
            env=self.env,
        )
        await self.collection.insert_one(event.to_doc())

        logger.info(
            "AUDIT event=%s merchant=%s session=%s outcome=%s details=%s",
            event_type.value,
            merchant_id,
            session_id,
            outcome,
            event.details,
        )
        return event.event_id

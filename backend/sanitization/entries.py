"""Conversation entry pipeline — sanitizes chat turns before they are stored.

Wraps the Conversation Sanitizer with transaction-reference tokenization,
an audit trail keyed by a digest of non-sensitive entry attributes, and a
fully redacted fallback entry when sanitization fails.
"""
import hashlib
import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from core.exceptions import EncryptionError, PersistenceError
from sanitization.conversation import ConversationSanitizer
from schemas.audit import AuditEventType
from schemas.conversation import (
    BatchSanitizationError,
    ConversationEntry,
    SanitizedConversationEntry,
)
from schemas.results import PaymentLeakReport, RedactionSummary
from schemas.tokens import DataType

logger = logging.getLogger(__name__)

FAILED_MARKER = "[REDACTED - SANITIZATION_FAILED]"
TRANSACTION_REF_REDACTED = "[TRANSACTION_REF:REDACTED]"


def hash_entry(entry: ConversationEntry) -> str:
    """SHA-256 over session id, timestamp and message lengths. No content."""
    ts = entry.timestamp
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    payload = {
        "session_id": entry.session_id,
        "timestamp": ts.isoformat(),
        "user_message_length": len(entry.user_message),
        "assistant_response_length": len(entry.assistant_response),
    }
    return hashlib.sha256(json.dumps(payload, separators=(",", ":")).encode("utf-8")).hexdigest()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationEntrySanitizer:

    def __init__(
        self,
        sanitizer: ConversationSanitizer,
        token_service=None,
        audit=None,
        transaction_ref_ttl_hours: Optional[float] = 72,
    ):
        self.sanitizer = sanitizer
        self.token_service = token_service if token_service is not None else sanitizer.token_service
        self.audit = audit
        self.transaction_ref_ttl_hours = transaction_ref_ttl_hours

    async def sanitize_entry(self, entry: ConversationEntry) -> SanitizedConversationEntry:
        original_hash = hash_entry(entry)
        try:
            result = await self.sanitizer.sanitize_conversation_log(
                {
                    "user_message": entry.user_message,
                    "assistant_response": entry.assistant_response,
                    "context": entry.context,
                    "metadata": entry.metadata,
                },
                entry.merchant_id,
            )
            sanitized = result.sanitized_conversation
            summary = result.redaction_summary

            response = sanitized["assistant_response"]
            if entry.transaction_references:
                response = await self.sanitize_transaction_references(
                    response, entry.transaction_references, entry.merchant_id,
                )

            if summary.fields_redacted:
                await self._audit(
                    AuditEventType.CONVERSATION_SANITIZED, entry, "success",
                    {
                        "payload_hash": original_hash,
                        "fields_redacted": summary.fields_redacted,
                        "pii_patterns_found": summary.pii_patterns_found,
                    },
                )

            metadata = dict(sanitized.get("metadata") or {})
            metadata["sanitization_timestamp"] = _now_iso()
            logger.info(
                "[EntrySanitizer] Entry sanitized: session=%s merchant=%s fields=%d patterns=%d",
                entry.session_id, entry.merchant_id,
                len(summary.fields_redacted), summary.pii_patterns_found,
            )
            return SanitizedConversationEntry(
                session_id=entry.session_id,
                merchant_id=entry.merchant_id,
                user_id=entry.user_id,
                timestamp=entry.timestamp,
                user_message=sanitized["user_message"],
                assistant_response=response,
                context=sanitized.get("context"),
                metadata=metadata,
                sanitization_applied=bool(summary.fields_redacted),
                sanitization_summary=summary,
                original_hash=original_hash,
            )
        except Exception as e:
            logger.exception(
                "[EntrySanitizer] Sanitization failed: session=%s merchant=%s",
                entry.session_id, entry.merchant_id,
            )
            await self._audit(
                AuditEventType.CONVERSATION_SANITIZATION_FAILED, entry, "failure",
                {"payload_hash": original_hash, "reason": type(e).__name__},
            )
            return self.fallback_entry(entry)

    async def sanitize_transaction_references(
        self, response: str, references: Sequence[str], merchant_id: str,
    ) -> str:
        """Swap each reference for [TRANSACTION_REF:{token}] in response."""
        for ref in references:
            if not ref:
                continue
            pattern = re.compile(re.escape(ref))
            if self.token_service is None:
                replacement = TRANSACTION_REF_REDACTED
            else:
                try:
                    token_id = await self.token_service.create_secure_token(
                        ref, DataType.PAYMENT, merchant_id, None, self.transaction_ref_ttl_hours,
                    )
                    replacement = f"[TRANSACTION_REF:{token_id}]"
                except (EncryptionError, PersistenceError) as e:
                    logger.warning(
                        "[EntrySanitizer] Transaction ref not tokenized: merchant=%s code=%s",
                        merchant_id, e.code,
                    )
                    replacement = TRANSACTION_REF_REDACTED
            response = pattern.sub(lambda _m: replacement, response)
        return response

    def fallback_entry(self, entry: ConversationEntry) -> SanitizedConversationEntry:
        """Entry with every content field redacted."""
        return SanitizedConversationEntry(
            session_id=entry.session_id,
            merchant_id=entry.merchant_id,
            user_id=entry.user_id,
            timestamp=entry.timestamp,
            user_message=FAILED_MARKER,
            assistant_response=FAILED_MARKER,
            context={"redacted": True, "reason": "sanitization_failure"},
            metadata={"sanitization_failed": True, "sanitization_timestamp": _now_iso()},
            sanitization_applied=True,
            sanitization_summary=RedactionSummary(
                fields_redacted=["user_message", "assistant_response", "context"],
            ),
            original_hash=hash_entry(entry),
        )

    async def batch_sanitize(
        self, entries: Sequence[ConversationEntry],
    ) -> Tuple[List[SanitizedConversationEntry], List[BatchSanitizationError]]:
        """Sanitize entries in order; one slot per entry even on failure."""
        sanitized: List[SanitizedConversationEntry] = []
        errors: List[BatchSanitizationError] = []
        for i, entry in enumerate(entries):
            try:
                sanitized.append(await self.sanitize_entry(entry))
            except Exception as e:
                logger.error("[EntrySanitizer] Batch entry failed: index=%d error=%s", i, type(e).__name__)
                errors.append(BatchSanitizationError(index=i, error=str(e) or type(e).__name__))
                sanitized.append(self.fallback_entry(entry))
        logger.info(
            "[EntrySanitizer] Batch done: processed=%d errors=%d", len(sanitized), len(errors),
        )
        return sanitized, errors

    def validate_no_payment_data(self, data: Any) -> PaymentLeakReport:
        """Report card numbers and processor tokens left anywhere in data."""
        redactor = self.sanitizer.redactor
        violations = redactor.scan_payment_leaks(data)
        if not violations:
            return PaymentLeakReport(is_clean=True)
        logger.warning("[EntrySanitizer] Payment data detected: violations=%d", len(violations))
        return PaymentLeakReport(
            is_clean=False,
            violations=violations,
            sanitized_data=redactor.remove_payment_leaks(data),
        )

    async def _audit(self, event_type: AuditEventType, entry: ConversationEntry, outcome: str, details: dict) -> None:
        if self.audit is None:
            return
        await self.audit.log_event(
            event_type,
            merchant_id=entry.merchant_id,
            session_id=entry.session_id,
            user_id=entry.user_id,
            outcome=outcome,
            details=details,
        )

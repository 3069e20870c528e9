"""Conversation Sanitizer — prepares a conversation turn for persistence.

Free text goes through the Text Redactor, structured fields through the
Structural Tokenizer. Fields without PII are handed back as the same objects.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

from sanitization.structural import StructuralTokenizer
from sanitization.text_redactor import TextRedactor
from schemas.results import ConversationSanitizationResult, RedactionSummary
from schemas.tokens import DataType

logger = logging.getLogger(__name__)

FREE_TEXT_FIELDS = ("user_message",)
RESPONSE_FIELDS = ("assistant_response",)
STRUCTURED_FIELDS = ("context", "metadata")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSanitizer:

    def __init__(
        self,
        redactor: TextRedactor,
        tokenizer: StructuralTokenizer,
        token_service=None,
        *,
        ttl_hours: Optional[float] = 168,
        free_text_fields: Sequence[str] = FREE_TEXT_FIELDS,
        response_fields: Sequence[str] = RESPONSE_FIELDS,
        structured_fields: Sequence[str] = STRUCTURED_FIELDS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.redactor = redactor
        self.tokenizer = tokenizer
        self.token_service = token_service
        self.ttl_hours = ttl_hours
        self.free_text_fields = tuple(free_text_fields)
        self.response_fields = tuple(response_fields)
        self.structured_fields = tuple(structured_fields)
        self._clock = clock

    async def _sanitize_structured(self, value: Any, merchant_id: str) -> Tuple[Any, int, int]:
        """(sanitized value, leaves replaced, tokens persisted)."""
        if self.token_service is None:
            result = self.tokenizer.tokenize_user_data(value)
            if not result.token_map:
                return value, 0, 0
            return result.tokenized_data, len(result.token_map), 0

        outcome = await self.tokenizer.tokenize_secure(
            value, merchant_id, self.token_service,
            data_type=DataType.PERSONAL, ttl_hours=self.ttl_hours,
        )
        return outcome.tokenized_data, outcome.fields_replaced, outcome.tokens_created

    async def sanitize_conversation_log(
        self, conversation: Dict[str, Any], merchant_id: str,
    ) -> ConversationSanitizationResult:
        sanitized: Dict[str, Any] = dict(conversation)
        fields_redacted = []
        patterns_found = 0
        tokens_created = 0

        for name in self.free_text_fields:
            value = conversation.get(name)
            if not isinstance(value, str) or not value:
                continue
            result = self.redactor.redact_query(value)
            if result.tokens:
                sanitized[name] = result.sanitized_text
                fields_redacted.append(name)
                patterns_found += len(result.tokens)

        for name in self.response_fields:
            value = conversation.get(name)
            if not isinstance(value, str) or not value:
                continue
            text, count = self.redactor.sanitize_response_counted(value)
            if count:
                sanitized[name] = text
                fields_redacted.append(name)
                patterns_found += count

        for name in self.structured_fields:
            value = conversation.get(name)
            if value is None:
                continue
            data, replaced, created = await self._sanitize_structured(value, merchant_id)
            if replaced:
                sanitized[name] = data
                fields_redacted.append(name)
                patterns_found += replaced
                tokens_created += created

        sanitized["redaction_applied"] = len(fields_redacted) > 0
        sanitized["redaction_timestamp"] = self._clock().isoformat()

        if fields_redacted:
            logger.info(
                "[ConversationSanitizer] Redacted: merchant=%s fields=%s patterns=%d tokens=%d",
                merchant_id, ",".join(fields_redacted), patterns_found, tokens_created,
            )
        return ConversationSanitizationResult(
            sanitized_conversation=sanitized,
            redaction_summary=RedactionSummary(
                fields_redacted=fields_redacted,
                pii_patterns_found=patterns_found,
                tokens_created=tokens_created,
            ),
        )

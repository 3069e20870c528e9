"""Payment Tokenizer — swaps payment fields for persisted payment tokens.

Failure policy is a data table: a critical field that cannot be tokenized
fails the whole call, a non-critical field degrades per its fallback.
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import CriticalFieldTokenizationError, EncryptionError, PersistenceError
from sanitization.text_redactor import REDACTED_MARKER
from schemas.audit import AuditEventType
from schemas.results import PaymentTokenizationResult, TokenMapping
from schemas.tokens import DataType

logger = logging.getLogger(__name__)


class NonCriticalFallback(str, Enum):
    REDACT = "redact"            # field becomes [REDACTED]
    OMIT = "omit"                # field dropped from the result
    PASSTHROUGH = "passthrough"  # original value kept


@dataclass(frozen=True)
class FieldPolicy:
    critical: bool
    fallback: NonCriticalFallback = NonCriticalFallback.REDACT


PAYMENT_FIELD_POLICY: Dict[str, FieldPolicy] = {
    "card_number": FieldPolicy(critical=True),
    "cvv": FieldPolicy(critical=True),
    "expiry_date": FieldPolicy(critical=True),
    "payment_method_id": FieldPolicy(critical=True),
    "billing_address": FieldPolicy(critical=False),
    "payment_token": FieldPolicy(critical=False),
}


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, dict, list)):
        return len(value) > 0
    return True


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


class PaymentTokenizer:

    def __init__(
        self,
        token_service,
        policy: Optional[Mapping[str, FieldPolicy]] = None,
        ttl_hours: Optional[float] = 24,
        audit=None,
    ):
        self.token_service = token_service
        self.policy = dict(policy if policy is not None else PAYMENT_FIELD_POLICY)
        self.ttl_hours = ttl_hours
        self.audit = audit

    async def tokenize_payment_data(
        self,
        record: Dict[str, Any],
        merchant_id: str,
        owner_id: Optional[str] = None,
        fallback: Optional[NonCriticalFallback] = None,
    ) -> PaymentTokenizationResult:
        """Tokenize every policy field present in record.

        fallback, when given, overrides the per-field fallback for
        non-critical fields. Raises CriticalFieldTokenizationError naming the
        first critical field that could not be tokenized.
        """
        tokenized: Dict[str, Any] = dict(record)
        mappings: List[TokenMapping] = []
        degraded = []

        for field_name, rule in self.policy.items():
            value = record.get(field_name)
            if not _is_present(value):
                continue
            try:
                token_id = await self.token_service.create_secure_token(
                    _serialize(value), DataType.PAYMENT, merchant_id, owner_id, self.ttl_hours,
                )
            except (EncryptionError, PersistenceError) as e:
                if rule.critical:
                    logger.error(
                        "[PaymentTokenizer] Critical field failed: field=%s merchant=%s code=%s",
                        field_name, merchant_id, e.code,
                    )
                    await self._audit(
                        AuditEventType.PAYMENT_TOKENIZATION_FAILED, merchant_id, "failure",
                        {"field": field_name, "error_code": e.code},
                    )
                    await self._discard(mappings, merchant_id)
                    raise CriticalFieldTokenizationError(field_name) from e

                mode = NonCriticalFallback(fallback or rule.fallback)
                logger.warning(
                    "[PaymentTokenizer] Non-critical field degraded: field=%s merchant=%s fallback=%s",
                    field_name, merchant_id, mode.value,
                )
                if mode == NonCriticalFallback.REDACT:
                    tokenized[field_name] = REDACTED_MARKER
                elif mode == NonCriticalFallback.OMIT:
                    tokenized.pop(field_name, None)
                degraded.append(field_name)
                continue

            tokenized[field_name] = token_id
            mappings.append(TokenMapping(field=field_name, token_id=token_id))

        if degraded:
            await self._audit(
                AuditEventType.PAYMENT_FIELD_DEGRADED, merchant_id, "degraded",
                {"fields": degraded},
            )
        await self._audit(
            AuditEventType.PAYMENT_DATA_TOKENIZED, merchant_id, "success",
            {"fields": [m.field for m in mappings]},
        )
        logger.info(
            "[PaymentTokenizer] Payment data tokenized: merchant=%s fields=%d degraded=%d",
            merchant_id, len(mappings), len(degraded),
        )
        return PaymentTokenizationResult(tokenized_data=tokenized, token_mappings=mappings)

    async def _discard(self, mappings: List[TokenMapping], merchant_id: str) -> None:
        """Delete tokens already minted by a call that is about to fail."""
        for m in mappings:
            try:
                await self.token_service.delete_token(m.token_id, merchant_id)
            except PersistenceError as e:
                logger.error(
                    "[PaymentTokenizer] Orphaned token not deleted: token=%s merchant=%s code=%s",
                    m.token_id, merchant_id, e.code,
                )

    async def _audit(self, event_type: AuditEventType, merchant_id: str, outcome: str, details: dict) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.log_event(event_type, merchant_id=merchant_id, outcome=outcome, details=details)
        except Exception as e:
            logger.warning("[PaymentTokenizer] Audit write failed: event=%s error=%s", event_type.value, type(e).__name__)

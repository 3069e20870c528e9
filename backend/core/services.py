"""Service wiring and the PIIProtectionService facade.

Everything is constructed explicitly here and handed down; components never
reach for module-level clients. Call close_services() on shutdown.
"""
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from config.settings import Settings, get_settings
from config.validators import validate_startup_config
from core.database import close_client, create_client, get_database, init_indexes
from detection.detector import PatternDetector
from kms.gateway import KeyManagementGateway
from kms.local_envelope import LocalEnvelopeKeyService
from observability.audit_log import AuditLogRepository
from sanitization.conversation import ConversationSanitizer
from sanitization.entries import ConversationEntrySanitizer
from sanitization.structural import StructuralTokenizer
from sanitization.text_redactor import TextRedactor
from schemas.conversation import BatchSanitizationError, ConversationEntry, SanitizedConversationEntry
from schemas.results import (
    ConversationSanitizationResult,
    PaymentLeakReport,
    PaymentTokenizationResult,
    RedactionResult,
    TokenizedUserData,
)
from schemas.tokens import DataType
from tokens.mongo_store import MongoTokenStore
from tokens.payment import PaymentTokenizer
from tokens.service import SecureTokenService
from tokens.store import InMemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)


class PIIProtectionService:
    """The engine's public operations, bound to one set of components."""

    def __init__(
        self,
        redactor: TextRedactor,
        tokenizer: StructuralTokenizer,
        token_service: SecureTokenService,
        payment_tokenizer: PaymentTokenizer,
        conversation_sanitizer: ConversationSanitizer,
        entry_sanitizer: ConversationEntrySanitizer,
        mongo_client=None,
    ):
        self.redactor = redactor
        self.tokenizer = tokenizer
        self.token_service = token_service
        self.payment_tokenizer = payment_tokenizer
        self.conversation_sanitizer = conversation_sanitizer
        self.entry_sanitizer = entry_sanitizer
        self._mongo_client = mongo_client

    # ── Ephemeral redaction ──────────────────────────────────────────────

    def redact_query(self, text: str) -> RedactionResult:
        return self.redactor.redact_query(text)

    def sanitize_response(self, text: str) -> str:
        return self.redactor.sanitize_response(text)

    def detokenize(self, text: str, tokens: Dict[str, str]) -> str:
        return self.redactor.detokenize(text, tokens)

    def tokenize_user_data(self, record: Any) -> TokenizedUserData:
        return self.tokenizer.tokenize_user_data(record)

    # ── Secure tokens ────────────────────────────────────────────────────

    async def create_secure_token(
        self,
        plaintext: Union[str, bytes],
        data_type: Union[DataType, str],
        merchant_id: str,
        owner_id: Optional[str] = None,
        ttl_hours: Optional[float] = None,
    ) -> str:
        return await self.token_service.create_secure_token(
            plaintext, data_type, merchant_id, owner_id, ttl_hours,
        )

    async def retrieve_from_token(self, token_id: str, merchant_id: str) -> Optional[str]:
        return await self.token_service.retrieve_from_token(token_id, merchant_id)

    async def delete_token(self, token_id: str, merchant_id: str) -> bool:
        return await self.token_service.delete_token(token_id, merchant_id)

    async def purge_expired(self) -> int:
        return await self.token_service.purge_expired()

    # ── Payment / conversation ───────────────────────────────────────────

    async def tokenize_payment_data(
        self, record: Dict[str, Any], merchant_id: str, owner_id: Optional[str] = None,
    ) -> PaymentTokenizationResult:
        return await self.payment_tokenizer.tokenize_payment_data(record, merchant_id, owner_id)

    async def sanitize_conversation_log(
        self, conversation: Dict[str, Any], merchant_id: str,
    ) -> ConversationSanitizationResult:
        return await self.conversation_sanitizer.sanitize_conversation_log(conversation, merchant_id)

    # ── Stored conversation entries ──────────────────────────────────────

    async def sanitize_entry(self, entry: ConversationEntry) -> SanitizedConversationEntry:
        return await self.entry_sanitizer.sanitize_entry(entry)

    async def batch_sanitize(
        self, entries: Sequence[ConversationEntry],
    ) -> Tuple[List[SanitizedConversationEntry], List[BatchSanitizationError]]:
        return await self.entry_sanitizer.batch_sanitize(entries)

    def validate_no_payment_data(self, data: Any) -> PaymentLeakReport:
        return self.entry_sanitizer.validate_no_payment_data(data)

    async def close(self) -> None:
        await close_client(self._mongo_client)
        self._mongo_client = None


def _assemble(
    key_service: KeyManagementGateway,
    store: TokenStore,
    settings: Settings,
    audit: Optional[AuditLogRepository] = None,
    clock: Optional[Callable[[], datetime]] = None,
    mongo_client=None,
) -> PIIProtectionService:
    detector = PatternDetector()
    redactor = TextRedactor(detector)
    tokenizer = StructuralTokenizer()
    service_kwargs = {"collision_check": settings.TOKEN_COLLISION_CHECK, "audit": audit}
    if clock is not None:
        service_kwargs["clock"] = clock
    token_service = SecureTokenService(key_service, store, **service_kwargs)

    conversation = ConversationSanitizer(
        redactor, tokenizer, token_service,
        ttl_hours=settings.CONVERSATION_TOKEN_TTL_HOURS,
    )
    return PIIProtectionService(
        redactor=redactor,
        tokenizer=tokenizer,
        token_service=token_service,
        payment_tokenizer=PaymentTokenizer(
            token_service, ttl_hours=settings.PAYMENT_TOKEN_TTL_HOURS, audit=audit,
        ),
        conversation_sanitizer=conversation,
        entry_sanitizer=ConversationEntrySanitizer(
            conversation, token_service, audit,
            transaction_ref_ttl_hours=settings.TRANSACTION_REF_TTL_HOURS,
        ),
        mongo_client=mongo_client,
    )


async def build_services(settings: Optional[Settings] = None) -> PIIProtectionService:
    """Validate config, connect, create indexes and wire the facade."""
    settings = settings or get_settings()
    validate_startup_config(settings)
    key_service = LocalEnvelopeKeyService.from_settings(settings)

    if settings.TOKEN_STORE_BACKEND == "memory":
        logger.warning("[Services] Using in-memory token store: tokens are lost on restart")
        return _assemble(key_service, InMemoryTokenStore(), settings)

    client = create_client(settings)
    db = get_database(client, settings)
    await init_indexes(db, settings)
    audit = AuditLogRepository(db[settings.AUDIT_COLLECTION], env=settings.ENV)
    store = MongoTokenStore(db[settings.TOKEN_COLLECTION])
    logger.info("[Services] PII services ready: env=%s db=%s", settings.ENV, settings.DB_NAME)
    return _assemble(key_service, store, settings, audit=audit, mongo_client=client)


async def close_services(services: Optional[PIIProtectionService]) -> None:
    if services is not None:
        await services.close()


def build_in_memory_services(
    master_key: Optional[bytes] = None,
    *,
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], datetime]] = None,
    audit: Optional[AuditLogRepository] = None,
) -> PIIProtectionService:
    """In-process wiring for tests and local tooling. No Mongo, no validation."""
    settings = settings or Settings(TOKEN_STORE_BACKEND="memory")
    key_service = LocalEnvelopeKeyService(
        {settings.KMS_KEY_ID: master_key or os.urandom(32)}, settings.KMS_KEY_ID,
    )
    return _assemble(key_service, InMemoryTokenStore(), settings, audit=audit, clock=clock)

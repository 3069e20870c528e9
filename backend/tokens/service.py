"""Secure Token Service — mints and redeems tenant-bound tokens.

create: fresh token id → encrypt under (token_id, merchant_id, data_type) →
persist. retrieve: load by the CALLER's merchant id → expiry check (expired
records are deleted on read) → decrypt under the rebuilt context.

Retrieval never tells the caller why a token could not be redeemed: missing,
expired, another tenant's or corrupted all come back as None.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Union

from core.exceptions import DecryptionError, EncryptionError, PersistenceError
from kms.gateway import KeyManagementGateway
from schemas.audit import AuditEventType
from schemas.tokens import DataType, EncryptionContext, PIIToken
from tokens.store import TokenStore

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 3


def new_token_id(data_type: DataType) -> str:
    """{data_type}_{32 hex}; uuid4 entropy, not checked against the store."""
    return f"{DataType(data_type).value}_{uuid.uuid4().hex}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SecureTokenService:

    def __init__(
        self,
        key_service: KeyManagementGateway,
        token_store: TokenStore,
        *,
        collision_check: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        audit=None,
    ):
        self.key_service = key_service
        self.token_store = token_store
        self.collision_check = collision_check
        self._clock = clock
        self.audit = audit

    async def _audit(self, event_type: AuditEventType, merchant_id: str, outcome: str = "success", **details) -> None:
        if self.audit is None:
            return
        try:
            await self.audit.log_event(event_type, merchant_id=merchant_id, outcome=outcome, details=details)
        except Exception as e:
            logger.warning("[TokenService] Audit write failed: event=%s error=%s", event_type.value, type(e).__name__)

    async def _mint_token_id(self, data_type: DataType) -> str:
        token_id = new_token_id(data_type)
        if not self.collision_check:
            return token_id
        for _ in range(MAX_ID_ATTEMPTS):
            if not await self.token_store.exists(token_id):
                return token_id
            logger.warning("[TokenService] Token id collision, regenerating: type=%s", data_type.value)
            token_id = new_token_id(data_type)
        raise PersistenceError("Token creation failed: could not mint a unique token id")

    async def create_secure_token(
        self,
        plaintext: Union[str, bytes],
        data_type: Union[DataType, str],
        merchant_id: str,
        owner_id: Optional[str] = None,
        ttl_hours: Optional[float] = None,
    ) -> str:
        """Encrypt and persist plaintext; return the new token id."""
        data_type = DataType(data_type)
        if not merchant_id:
            raise ValueError("merchant_id is required")
        if ttl_hours is not None and ttl_hours <= 0:
            raise ValueError("ttl_hours must be positive")
        raw = plaintext.encode("utf-8") if isinstance(plaintext, str) else bytes(plaintext)

        token_id = await self._mint_token_id(data_type)
        context = EncryptionContext(token_id=token_id, merchant_id=merchant_id, data_type=data_type)

        try:
            encrypted = await self.key_service.encrypt(raw, context)
        except Exception as e:
            reason = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(
                "[TokenService] Encryption failed: type=%s merchant=%s error=%s",
                data_type.value, merchant_id, type(e).__name__,
            )
            raise EncryptionError(f"Token creation failed: {reason}") from e

        now = self._clock()
        token = PIIToken(
            token_id=token_id,
            merchant_id=merchant_id,
            data_type=data_type,
            encrypted_value=encrypted,
            created_at=now,
            expires_at=now + timedelta(hours=ttl_hours) if ttl_hours else None,
            owner_id=owner_id,
        )

        # Encrypted but unstored means unretrievable: surface it
        try:
            await self.token_store.put(token)
        except PersistenceError:
            logger.error("[TokenService] Persist failed: token=%s merchant=%s", token_id, merchant_id)
            raise
        except Exception as e:
            logger.error("[TokenService] Persist failed: token=%s merchant=%s", token_id, merchant_id)
            raise PersistenceError(f"Token creation failed: {e}") from e

        logger.info(
            "[TokenService] Token created: token=%s type=%s merchant=%s ttl_h=%s",
            token_id, data_type.value, merchant_id, ttl_hours,
        )
        await self._audit(AuditEventType.TOKEN_CREATED, merchant_id, token_id=token_id, data_type=data_type.value)
        return token_id

    async def retrieve_from_token(self, token_id: str, merchant_id: str) -> Optional[str]:
        """Plaintext for token_id under merchant_id, or None."""
        if not token_id or not merchant_id:
            return None

        record = await self.token_store.get(token_id, merchant_id)
        if record is None:
            logger.warning("[TokenService] Token not found: token=%s merchant=%s", token_id, merchant_id)
            await self._audit(AuditEventType.TOKEN_DENIED, merchant_id, outcome="denied", token_id=token_id)
            return None

        if record.is_expired(self._clock()):
            logger.warning("[TokenService] Token expired: token=%s", token_id)
            try:
                await self.token_store.delete(token_id, merchant_id)
            except PersistenceError as e:
                logger.error("[TokenService] Expired token delete failed: token=%s code=%s", token_id, e.code)
            await self._audit(AuditEventType.TOKEN_EXPIRED, merchant_id, outcome="expired", token_id=token_id)
            return None

        context = EncryptionContext(
            token_id=token_id,
            merchant_id=merchant_id,
            data_type=record.data_type,
        )
        try:
            plaintext = (await self.key_service.decrypt(record.encrypted_value, context)).decode("utf-8")
        except (DecryptionError, UnicodeDecodeError) as e:
            logger.warning("[TokenService] Token unreadable: token=%s error=%s", token_id, type(e).__name__)
            return None
        except Exception as e:
            logger.warning("[TokenService] Key service failure on retrieve: token=%s error=%s", token_id, type(e).__name__)
            return None

        await self._audit(AuditEventType.TOKEN_RETRIEVED, merchant_id, token_id=token_id)
        return plaintext

    async def delete_token(self, token_id: str, merchant_id: str) -> bool:
        deleted = await self.token_store.delete(token_id, merchant_id)
        logger.info("[TokenService] Token delete: token=%s merchant=%s deleted=%s", token_id, merchant_id, deleted)
        if deleted:
            await self._audit(AuditEventType.TOKEN_DELETED, merchant_id, token_id=token_id)
        return deleted

    async def purge_expired(self) -> int:
        return await self.token_store.purge_expired(self._clock())

"""Token Store interface + in-memory implementation.

Records are keyed by the composite (token_id, merchant_id). A lookup with the
right token_id but another merchant's id returns None, exactly like a token
that never existed.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from schemas.tokens import PIIToken

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    """Abstract durable key-value store for token records."""

    @abstractmethod
    async def put(self, token: PIIToken) -> None:
        """Persist a token record. Raises PersistenceError."""
        ...

    @abstractmethod
    async def get(self, token_id: str, merchant_id: str) -> Optional[PIIToken]:
        """Load a record by composite key, or None."""
        ...

    @abstractmethod
    async def delete(self, token_id: str, merchant_id: str) -> bool:
        """Delete by composite key. Returns True if a record was removed."""
        ...

    @abstractmethod
    async def exists(self, token_id: str) -> bool:
        """True if any merchant holds this token_id."""
        ...

    @abstractmethod
    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every record whose expires_at has passed."""
        ...


class InMemoryTokenStore(TokenStore):
    """Process-local store for tests and dev. Data is lost on restart."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], PIIToken] = {}

    async def put(self, token: PIIToken) -> None:
        self._records[(token.token_id, token.merchant_id)] = token

    async def get(self, token_id: str, merchant_id: str) -> Optional[PIIToken]:
        return self._records.get((token_id, merchant_id))

    async def delete(self, token_id: str, merchant_id: str) -> bool:
        return self._records.pop((token_id, merchant_id), None) is not None

    async def exists(self, token_id: str) -> bool:
        return any(tid == token_id for tid, _ in self._records)

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        dead = [key for key, token in self._records.items() if token.is_expired(now)]
        for key in dead:
            del self._records[key]
        if dead:
            logger.info("[TokenStore] Purged expired tokens: count=%d", len(dead))
        return len(dead)

    def __len__(self) -> int:
        return len(self._records)

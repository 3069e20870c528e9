"""Secure token schemas — persisted token records and their encryption binding."""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class DataType(str, Enum):
    PERSONAL = "personal"
    PAYMENT = "payment"
    ADDRESS = "address"
    CONTACT = "contact"


class EncryptionContext(BaseModel):
    """Non-secret values bound to every ciphertext.

    Decryption only succeeds with the exact triple used at encrypt time.
    """
    token_id: str
    merchant_id: str
    data_type: DataType

    def as_dict(self) -> Dict[str, str]:
        return {
            "token_id": self.token_id,
            "merchant_id": self.merchant_id,
            "data_type": self.data_type.value,
        }

    def to_aad(self) -> bytes:
        """Canonical byte form used as AES-GCM associated data."""
        return json.dumps(self.as_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")


class PIIToken(BaseModel):
    """Token record in the token store."""
    token_id: str
    merchant_id: str
    data_type: DataType
    encrypted_value: bytes
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None
    owner_id: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= now

    def to_doc(self) -> dict:
        d = self.model_dump()
        d["data_type"] = d["data_type"].value if hasattr(d["data_type"], "value") else d["data_type"]
        return d

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "PIIToken":
        doc = dict(doc)
        doc.pop("_id", None)
        # Mongo returns naive UTC datetimes unless the client is tz_aware
        for key in ("created_at", "expires_at"):
            value = doc.get(key)
            if isinstance(value, datetime) and value.tzinfo is None:
                doc[key] = value.replace(tzinfo=timezone.utc)
        if doc.get("encrypted_value") is not None:
            doc["encrypted_value"] = bytes(doc["encrypted_value"])
        return cls(**doc)

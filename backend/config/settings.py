"""Centralized settings module — single source of truth for all config.

All secrets loaded exclusively from env vars. Never committed, never logged.
Redaction enforced everywhere via observability.redaction.
"""
from functools import lru_cache
from pathlib import Path
from typing import Dict, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # ── Environment ──────────────────────────────────────────────
    ENV: Literal["dev", "staging", "prod"] = Field(default="dev")

    # ── MongoDB (token store + audit) ────────────────────────────
    MONGO_URL: str = Field(default="mongodb://localhost:27017")
    DB_NAME: str = Field(default="pii_vault_dev")
    TOKEN_COLLECTION: str = Field(default="pii_tokens")
    AUDIT_COLLECTION: str = Field(default="audit_events")
    TOKEN_STORE_BACKEND: Literal["mongo", "memory"] = Field(default="mongo")

    # ── Key management ───────────────────────────────────────────
    # 32-byte hex master key used to wrap per-token AES-256-GCM data keys.
    # Generate with: python3 -c "import secrets; print(secrets.token_hex(32))"
    KMS_KEY_ID: str = Field(default="pii-master-v1")
    KMS_MASTER_KEY: str = Field(default="")
    # Keys kept only to decrypt older tokens after rotation: "id:hex,id:hex"
    KMS_RETIRED_KEYS: str = Field(default="")

    # ── Token lifetimes ──────────────────────────────────────────
    PAYMENT_TOKEN_TTL_HOURS: int = Field(default=24)
    CONVERSATION_TOKEN_TTL_HOURS: int = Field(default=168)  # 7 days
    TRANSACTION_REF_TTL_HOURS: int = Field(default=72)

    # Look up freshly minted token ids in the store before accepting them
    TOKEN_COLLISION_CHECK: bool = Field(default=False)

    # ── Observability ────────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    LOG_REDACTION_ENABLED: bool = Field(default=True)

    model_config = {
        "env_file": str(_ROOT / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    def retired_keys(self) -> Dict[str, str]:
        """Parse KMS_RETIRED_KEYS into {key_id: hex_key}."""
        keys: Dict[str, str] = {}
        for item in self.KMS_RETIRED_KEYS.split(","):
            item = item.strip()
            if not item:
                continue
            key_id, sep, hex_key = item.partition(":")
            if not sep or not key_id.strip() or not hex_key.strip():
                raise ValueError(f"Malformed KMS_RETIRED_KEYS entry for key '{key_id.strip()}'")
            keys[key_id.strip()] = hex_key.strip()
        return keys


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()

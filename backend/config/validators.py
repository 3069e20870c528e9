"""Startup configuration validation guardrails."""

import logging


logger = logging.getLogger(__name__)


def _require_master_key(settings) -> None:
    """Fail closed if the KMS master key is missing or malformed."""
    hex_key = (settings.KMS_MASTER_KEY or "").strip()
    if not hex_key:
        raise RuntimeError(
            "STARTUP FAILED — KMS_MASTER_KEY is required and cannot be empty. "
            "Generate with: python3 -c \"import secrets; print(secrets.token_hex(32))\""
        )
    try:
        key_bytes = bytes.fromhex(hex_key)
    except ValueError:
        raise RuntimeError("STARTUP FAILED — KMS_MASTER_KEY must be hex encoded") from None
    if len(key_bytes) != 32:
        raise RuntimeError("STARTUP FAILED — KMS_MASTER_KEY must be exactly 32 bytes (64 hex chars)")


def validate_startup_config(settings) -> None:
    """Centralized startup guardrails for required and warning-level config."""
    _require_master_key(settings)

    required_vars = {
        "KMS_KEY_ID": settings.KMS_KEY_ID,
        "TOKEN_COLLECTION": settings.TOKEN_COLLECTION,
    }
    if settings.TOKEN_STORE_BACKEND == "mongo":
        required_vars["MONGO_URL"] = settings.MONGO_URL
        required_vars["DB_NAME"] = settings.DB_NAME

    missing = [k for k, v in required_vars.items() if not v]
    if missing:
        raise RuntimeError(
            f"STARTUP FAILED — missing required env vars: {', '.join(missing)}\n"
            "Set them in .env or container environment and restart."
        )

    ttl_vars = {
        "PAYMENT_TOKEN_TTL_HOURS": settings.PAYMENT_TOKEN_TTL_HOURS,
        "CONVERSATION_TOKEN_TTL_HOURS": settings.CONVERSATION_TOKEN_TTL_HOURS,
        "TRANSACTION_REF_TTL_HOURS": settings.TRANSACTION_REF_TTL_HOURS,
    }
    bad_ttls = [k for k, v in ttl_vars.items() if v <= 0]
    if bad_ttls:
        raise RuntimeError(f"STARTUP FAILED — TTL must be positive: {', '.join(bad_ttls)}")

    if settings.ENV == "prod":
        # Tokens would vanish on restart
        if settings.TOKEN_STORE_BACKEND == "memory":
            raise RuntimeError(
                "STARTUP FAILED — TOKEN_STORE_BACKEND=memory is not allowed in production."
            )
        if not settings.LOG_REDACTION_ENABLED:
            raise RuntimeError(
                "STARTUP FAILED — LOG_REDACTION_ENABLED must be True in production."
            )
        if not settings.TOKEN_COLLISION_CHECK:
            logger.warning("CONFIG WARNING: TOKEN_COLLISION_CHECK is disabled — token ids rely on uuid4 entropy only")

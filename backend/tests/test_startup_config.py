from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from types import SimpleNamespace

import pytest

from config.settings import Settings
from config.validators import _require_master_key, validate_startup_config


def _settings(**overrides):
    base = {
        "ENV": "dev",
        "KMS_KEY_ID": "pii-master-v1",
        "KMS_MASTER_KEY": "ab" * 32,
        "TOKEN_COLLECTION": "pii_tokens",
        "TOKEN_STORE_BACKEND": "mongo",
        "MONGO_URL": "mongodb://localhost:27017",
        "DB_NAME": "pii_vault_test",
        "PAYMENT_TOKEN_TTL_HOURS": 24,
        "CONVERSATION_TOKEN_TTL_HOURS": 168,
        "TRANSACTION_REF_TTL_HOURS": 72,
        "TOKEN_COLLISION_CHECK": False,
        "LOG_REDACTION_ENABLED": True,
    }
    base.update(overrides)
    return SimpleNamespace(**base)


@pytest.mark.parametrize("master_key", ["", "   "])
def test_require_master_key_fails_when_empty(master_key):
    with pytest.raises(RuntimeError, match="KMS_MASTER_KEY"):
        _require_master_key(_settings(KMS_MASTER_KEY=master_key))


@pytest.mark.parametrize("master_key", ["zz" * 32, "ab" * 16])
def test_require_master_key_fails_when_malformed(master_key):
    with pytest.raises(RuntimeError, match="KMS_MASTER_KEY"):
        _require_master_key(_settings(KMS_MASTER_KEY=master_key))


def test_validate_startup_config_raises_on_missing_required_vars():
    with pytest.raises(RuntimeError, match="MONGO_URL"):
        validate_startup_config(_settings(MONGO_URL=""))


def test_memory_backend_does_not_need_mongo():
    validate_startup_config(_settings(TOKEN_STORE_BACKEND="memory", MONGO_URL="", DB_NAME=""))


def test_validate_startup_config_rejects_non_positive_ttl():
    with pytest.raises(RuntimeError, match="PAYMENT_TOKEN_TTL_HOURS"):
        validate_startup_config(_settings(PAYMENT_TOKEN_TTL_HOURS=0))


def test_prod_rejects_memory_backend():
    with pytest.raises(RuntimeError, match="TOKEN_STORE_BACKEND"):
        validate_startup_config(_settings(ENV="prod", TOKEN_STORE_BACKEND="memory"))


def test_prod_requires_log_redaction():
    with pytest.raises(RuntimeError, match="LOG_REDACTION_ENABLED"):
        validate_startup_config(_settings(ENV="prod", LOG_REDACTION_ENABLED=False))


def test_prod_warns_when_collision_check_disabled(caplog):
    caplog.set_level("WARNING")

    validate_startup_config(_settings(ENV="prod"))

    assert "TOKEN_COLLISION_CHECK" in caplog.text


def test_validate_startup_config_passes_with_valid_required_config():
    validate_startup_config(_settings())


def test_retired_keys_parsing():
    settings = Settings(KMS_RETIRED_KEYS=f"old-1:{'11' * 32}, old-2:{'22' * 32}")

    assert settings.retired_keys() == {"old-1": "11" * 32, "old-2": "22" * 32}


def test_retired_keys_rejects_malformed_entry():
    with pytest.raises(ValueError, match="old-1"):
        Settings(KMS_RETIRED_KEYS="old-1").retired_keys()

"""Structural Tokenizer — allow-listed keys, nesting, secure variant."""
from pathlib import Path
import copy
import re
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from unittest.mock import AsyncMock

from core.exceptions import EncryptionError
from sanitization.structural import StructuralTokenizer, normalize_key
from schemas.tokens import DataType

USER_TOKEN_RE = re.compile(r"^\[USER_TOKEN_[a-f0-9]{8}\]$")


@pytest.fixture
def tokenizer():
    return StructuralTokenizer()


def test_tokenize_user_data_nested_record(tokenizer):
    record = {
        "preferences": {"theme": "dark"},
        "demographics": {"email": "a@b.co", "phone": "555-123-4567"},
    }

    result = tokenizer.tokenize_user_data(record)

    assert result.tokenized_data["preferences"]["theme"] == "dark"
    email_ph = result.tokenized_data["demographics"]["email"]
    phone_ph = result.tokenized_data["demographics"]["phone"]
    assert USER_TOKEN_RE.match(email_ph)
    assert USER_TOKEN_RE.match(phone_ph)
    assert email_ph != phone_ph
    assert len(result.token_map) == 2
    assert result.token_map[email_ph] == "a@b.co"


def test_tokenize_user_data_keeps_plain_arrays(tokenizer):
    record = {
        "userId": "u-1",
        "purchaseHistory": ["sku-1", "sku-2"],
        "profile": {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "fullName": "Ada Lovelace",
            "address": "12 Analytical Way",
            "ssn": "123-45-6789",
            "age": 36,
        },
    }

    result = tokenizer.tokenize_user_data(record)

    assert result.tokenized_data["purchaseHistory"] == ["sku-1", "sku-2"]
    assert result.tokenized_data["userId"] == "u-1"
    assert result.tokenized_data["profile"]["age"] == 36
    assert len(result.token_map) == 5


def test_input_is_not_mutated(tokenizer):
    record = {"contact": {"email": "a@b.co"}, "tags": ["x"]}
    snapshot = copy.deepcopy(record)

    tokenizer.tokenize_user_data(record)

    assert record == snapshot


def test_sensitive_key_holding_container_tokenizes_all_leaves(tokenizer):
    record = {"address": {"line1": "1 Main St", "city": "Leeds", "primary": True}}

    result = tokenizer.tokenize_user_data(record)

    address = result.tokenized_data["address"]
    assert USER_TOKEN_RE.match(address["line1"])
    assert USER_TOKEN_RE.match(address["city"])
    assert address["primary"] is True
    assert len(result.token_map) == 2


def test_sensitive_array_elements_are_tokenized(tokenizer):
    result = tokenizer.tokenize_user_data({"phone": ["555-123-4567", "555-987-6543"]})

    assert all(USER_TOKEN_RE.match(v) for v in result.tokenized_data["phone"])
    assert len(result.token_map) == 2


@pytest.mark.parametrize("key", [
    "email", "Email", "user_email", "billing-address", "CARD_NUMBER", "expiry_date",
    "phone_number", "phoneNumber", "email_verified", "ssn_last4",
])
def test_key_matching_is_normalised(tokenizer, key):
    assert tokenizer.is_sensitive_key(key)


def test_partial_matching_can_be_disabled():
    strict = StructuralTokenizer(match_partial=False)

    assert strict.is_sensitive_key("email")
    assert not strict.is_sensitive_key("user_email")
    assert not strict.is_sensitive_key("phone_number")


@pytest.mark.parametrize("key", ["session_id", "userId", "purchaseHistory", "locale", "cart_id"])
def test_ordinary_keys_are_not_sensitive(tokenizer, key):
    assert not tokenizer.is_sensitive_key(key)


def test_key_with_sensitive_name_in_front_is_tokenized(tokenizer):
    record = {"phone_number": "555-123-4567", "customer": {"phoneNumber": "555-987-6543"}}

    result = tokenizer.tokenize_user_data(record)

    assert USER_TOKEN_RE.match(result.tokenized_data["phone_number"])
    assert USER_TOKEN_RE.match(result.tokenized_data["customer"]["phoneNumber"])
    assert sorted(result.token_map.values()) == ["555-123-4567", "555-987-6543"]


def test_empty_and_non_scalar_values_are_left_alone(tokenizer):
    record = {"email": "", "phone": None, "ssn": "   ", "cvv": False}

    result = tokenizer.tokenize_user_data(record)

    assert result.tokenized_data == record
    assert result.token_map == {}


def test_placeholders_unique_even_with_repeating_suffix():
    suffixes = iter(["aaaaaaaa", "aaaaaaaa", "bbbbbbbb"])
    tokenizer = StructuralTokenizer(suffix_factory=lambda: next(suffixes))

    result = tokenizer.tokenize_user_data({"email": "a@b.co", "phone": "555-123-4567"})

    assert set(result.token_map) == {"[USER_TOKEN_aaaaaaaa]", "[USER_TOKEN_bbbbbbbb]"}


def test_normalize_key():
    assert normalize_key("first_Name") == normalize_key("firstName") == "firstname"


@pytest.mark.asyncio
async def test_tokenize_secure_mints_personal_tokens(tokenizer):
    token_service = AsyncMock()
    token_service.create_secure_token.side_effect = ["personal_" + "a" * 32, "personal_" + "b" * 32]

    outcome = await tokenizer.tokenize_secure(
        {"user_email": "a@b.co", "session_id": "s-1", "phone": "555-123-4567"},
        "merchant-1", token_service, ttl_hours=168,
    )

    assert outcome.tokenized_data == {
        "user_email": "personal_" + "a" * 32,
        "session_id": "s-1",
        "phone": "personal_" + "b" * 32,
    }
    assert outcome.fields_replaced == 2
    assert outcome.tokens_created == 2
    first_call = token_service.create_secure_token.await_args_list[0]
    assert first_call.args == ("a@b.co", DataType.PERSONAL, "merchant-1", None, 168)


@pytest.mark.asyncio
async def test_tokenize_secure_redacts_leaf_on_failure(tokenizer):
    token_service = AsyncMock()
    token_service.create_secure_token.side_effect = EncryptionError("kms down")

    outcome = await tokenizer.tokenize_secure({"email": "a@b.co"}, "merchant-1", token_service)

    assert outcome.tokenized_data == {"email": "[REDACTED]"}
    assert outcome.fields_replaced == 1
    assert outcome.tokens_created == 0


@pytest.mark.asyncio
async def test_tokenize_secure_clean_record_passes_through(tokenizer):
    token_service = AsyncMock()
    record = {"session_id": "s-1"}

    outcome = await tokenizer.tokenize_secure(record, "merchant-1", token_service)

    assert outcome.tokenized_data is record
    token_service.create_secure_token.assert_not_awaited()

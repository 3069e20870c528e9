"""Conversation entry pipeline — transaction refs, audit hash, fallbacks."""
from pathlib import Path
import os
import re
import sys
from datetime import datetime, timezone

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from unittest.mock import AsyncMock, MagicMock

from core.exceptions import PersistenceError
from kms.local_envelope import LocalEnvelopeKeyService
from sanitization.conversation import ConversationSanitizer
from sanitization.entries import (
    FAILED_MARKER,
    TRANSACTION_REF_REDACTED,
    ConversationEntrySanitizer,
    hash_entry,
)
from sanitization.structural import StructuralTokenizer
from sanitization.text_redactor import TextRedactor
from schemas.audit import AuditEventType
from schemas.conversation import ConversationEntry
from tokens.service import SecureTokenService
from tokens.store import InMemoryTokenStore

TS = datetime(2026, 5, 4, 10, 30, tzinfo=timezone.utc)


def _entry(**overrides):
    base = {
        "session_id": "sess-1",
        "merchant_id": "m-1",
        "user_id": "u-1",
        "timestamp": TS,
        "user_message": "Where is my order? email john@example.com",
        "assistant_response": "Order ORD-99812 shipped yesterday.",
        "context": {"cart_id": "c-1"},
        "metadata": {"channel": "web"},
        "transaction_references": ["ORD-99812"],
    }
    base.update(overrides)
    return ConversationEntry(**base)


@pytest.fixture
def token_service():
    kms = LocalEnvelopeKeyService({"k1": os.urandom(32)}, "k1")
    return SecureTokenService(kms, InMemoryTokenStore())


@pytest.fixture
def audit():
    repo = MagicMock()
    repo.log_event = AsyncMock(return_value="evt-1")
    return repo


@pytest.fixture
def pipeline(token_service, audit):
    sanitizer = ConversationSanitizer(TextRedactor(), StructuralTokenizer(), token_service)
    return ConversationEntrySanitizer(sanitizer, audit=audit)


@pytest.mark.asyncio
async def test_sanitize_entry_tokenizes_transaction_refs(pipeline, token_service, audit):
    result = await pipeline.sanitize_entry(_entry())

    match = re.search(r"\[TRANSACTION_REF:(payment_[a-f0-9]{32})\]", result.assistant_response)
    assert match
    assert "ORD-99812" not in result.assistant_response
    assert await token_service.retrieve_from_token(match.group(1), "m-1") == "ORD-99812"

    assert "john@example.com" not in result.user_message
    assert result.sanitization_applied is True
    assert result.sanitization_summary.fields_redacted == ["user_message"]
    assert result.metadata["channel"] == "web"
    assert "sanitization_timestamp" in result.metadata
    assert result.original_hash == hash_entry(_entry())

    audit.log_event.assert_awaited_once()
    call = audit.log_event.await_args
    assert call.args[0] == AuditEventType.CONVERSATION_SANITIZED
    assert call.kwargs["session_id"] == "sess-1"
    assert call.kwargs["details"]["payload_hash"] == result.original_hash


@pytest.mark.asyncio
async def test_clean_entry_is_not_audited(pipeline, audit):
    result = await pipeline.sanitize_entry(
        _entry(user_message="hello", assistant_response="hi", transaction_references=[]),
    )

    assert result.sanitization_applied is False
    audit.log_event.assert_not_awaited()


@pytest.mark.asyncio
async def test_transaction_ref_failure_is_redacted(audit):
    token_service = MagicMock()
    token_service.create_secure_token = AsyncMock(side_effect=PersistenceError("store down"))
    sanitizer = ConversationSanitizer(TextRedactor(), StructuralTokenizer())
    pipeline = ConversationEntrySanitizer(sanitizer, token_service=token_service, audit=audit)

    result = await pipeline.sanitize_entry(_entry(assistant_response="ORD-99812 and again ORD-99812"))

    assert result.assistant_response == f"{TRANSACTION_REF_REDACTED} and again {TRANSACTION_REF_REDACTED}"


def test_hash_ignores_content_beyond_lengths():
    a = _entry(user_message="abc")
    b = _entry(user_message="xyz")
    c = _entry(user_message="abcd")

    assert hash_entry(a) == hash_entry(b)
    assert hash_entry(a) != hash_entry(c)
    assert re.match(r"^[a-f0-9]{64}$", hash_entry(a))


@pytest.mark.asyncio
async def test_unexpected_failure_returns_fallback_entry(audit):
    sanitizer = MagicMock()
    sanitizer.token_service = None
    sanitizer.sanitize_conversation_log = AsyncMock(side_effect=RuntimeError("boom"))
    pipeline = ConversationEntrySanitizer(sanitizer, audit=audit)

    result = await pipeline.sanitize_entry(_entry())

    assert result.user_message == FAILED_MARKER
    assert result.assistant_response == FAILED_MARKER
    assert result.context == {"redacted": True, "reason": "sanitization_failure"}
    assert result.metadata["sanitization_failed"] is True
    assert result.sanitization_applied is True
    assert audit.log_event.await_args.args[0] == AuditEventType.CONVERSATION_SANITIZATION_FAILED
    assert audit.log_event.await_args.kwargs["outcome"] == "failure"


@pytest.mark.asyncio
async def test_batch_sanitize_keeps_one_slot_per_entry(pipeline, audit):
    ok_result = await ConversationSanitizer(TextRedactor(), StructuralTokenizer()).sanitize_conversation_log(
        {"user_message": "a@b.co", "assistant_response": "ok"}, "m-1",
    )
    pipeline.sanitizer.sanitize_conversation_log = AsyncMock(side_effect=[ok_result, RuntimeError("boom")])
    # Audit failure inside the failure path escapes sanitize_entry
    audit.log_event = AsyncMock(side_effect=[None, RuntimeError("audit down")])

    sanitized, errors = await pipeline.batch_sanitize([_entry(transaction_references=[]), _entry(session_id="sess-2")])

    assert len(sanitized) == 2
    assert sanitized[0].user_message != FAILED_MARKER
    assert sanitized[1].user_message == FAILED_MARKER
    assert [e.index for e in errors] == [1]
    assert errors[0].error == "audit down"


def test_validate_no_payment_data(pipeline):
    report = pipeline.validate_no_payment_data({"note": "card 4111-1111-1111-1111"})

    assert report.is_clean is False
    assert len(report.violations) == 1
    assert report.sanitized_data == {"note": "card [CARD_NUMBER_REDACTED]"}
    assert pipeline.validate_no_payment_data({"note": "fine"}).is_clean is True

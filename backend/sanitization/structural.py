"""Structural Tokenizer — replaces sensitive leaves in nested JSON-like records.

Walks dicts and lists (input is data, never cyclic). A leaf is replaced when
its key is on the sensitive-field allow-list, or when it sits anywhere below
such a key. Arrays of primitives under ordinary keys are left intact.
The input record is never mutated.
"""
import logging
import uuid
from typing import Any, Callable, Dict, Iterable, Optional, Union

from core.exceptions import EncryptionError, PersistenceError
from sanitization.text_redactor import REDACTED_MARKER
from schemas.results import SecureTokenizationOutcome, TokenizedUserData
from schemas.tokens import DataType

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVE_FIELDS = (
    "email",
    "phone",
    "address",
    "creditCard",
    "ssn",
    "firstName",
    "lastName",
    "fullName",
    "paymentMethod",
    "cardNumber",
    "cvv",
    "expiryDate",
)


def normalize_key(key: Any) -> str:
    """firstName, first_name and first-name all normalise to firstname."""
    return str(key).lower().replace("_", "").replace("-", "")


def _is_tokenizable(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return isinstance(value, (int, float))


def _random_suffix() -> str:
    return uuid.uuid4().hex[:8]


class StructuralTokenizer:

    def __init__(
        self,
        sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS,
        *,
        match_partial: bool = True,
        suffix_factory: Callable[[], str] = _random_suffix,
    ):
        self.sensitive_fields = frozenset(normalize_key(f) for f in sensitive_fields)
        # user_email, phone_number, billingAddress ...
        self.match_partial = match_partial
        self._suffix = suffix_factory

    def is_sensitive_key(self, key: Any) -> bool:
        norm = normalize_key(key)
        if norm in self.sensitive_fields:
            return True
        return self.match_partial and any(f in norm for f in self.sensitive_fields)

    def _walk(self, value: Any, replace: Callable[[Any], Any], sensitive: bool) -> Any:
        if isinstance(value, dict):
            return {
                k: self._walk(v, replace, sensitive or self.is_sensitive_key(k))
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [self._walk(v, replace, sensitive) for v in value]
        if sensitive and _is_tokenizable(value):
            return replace(value)
        return value

    def tokenize_user_data(self, record: Any) -> TokenizedUserData:
        """Copy of record with sensitive leaves as [USER_TOKEN_{hex8}] placeholders."""
        token_map: Dict[str, Any] = {}

        def _placeholder(value: Any) -> str:
            placeholder = f"[USER_TOKEN_{self._suffix()}]"
            while placeholder in token_map:
                placeholder = f"[USER_TOKEN_{self._suffix()}]"
            token_map[placeholder] = value
            return placeholder

        tokenized = self._walk(record, _placeholder, sensitive=False)
        if token_map:
            logger.debug("[StructuralTokenizer] Tokenized %d field(s)", len(token_map))
        return TokenizedUserData(tokenized_data=tokenized, token_map=token_map)

    async def tokenize_secure(
        self,
        record: Any,
        merchant_id: str,
        token_service,
        data_type: Union[DataType, str] = DataType.PERSONAL,
        ttl_hours: Optional[float] = None,
        owner_id: Optional[str] = None,
    ) -> SecureTokenizationOutcome:
        """Like tokenize_user_data, but each leaf becomes a persisted secure token.

        A leaf whose token cannot be minted is replaced by [REDACTED].
        """
        ephemeral = self.tokenize_user_data(record)
        if not ephemeral.token_map:
            return SecureTokenizationOutcome(tokenized_data=record)

        substitutions: Dict[str, str] = {}
        token_ids = []
        for placeholder, original in ephemeral.token_map.items():
            try:
                token_id = await token_service.create_secure_token(
                    str(original), data_type, merchant_id, owner_id, ttl_hours,
                )
            except (EncryptionError, PersistenceError) as e:
                logger.warning(
                    "[StructuralTokenizer] Secure token failed, redacting leaf: merchant=%s code=%s",
                    merchant_id, e.code,
                )
                substitutions[placeholder] = REDACTED_MARKER
                continue
            substitutions[placeholder] = token_id
            token_ids.append(token_id)

        tokenized = _substitute(ephemeral.tokenized_data, substitutions)
        return SecureTokenizationOutcome(
            tokenized_data=tokenized,
            fields_replaced=len(substitutions),
            tokens_created=len(token_ids),
            token_ids=token_ids,
        )


def _substitute(value: Any, substitutions: Dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {k: _substitute(v, substitutions) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute(v, substitutions) for v in value]
    if isinstance(value, str) and value in substitutions:
        return substitutions[value]
    return value

"""Local envelope encryption — AES-256-GCM data keys wrapped by a master key.

Every encrypt call generates a fresh 256-bit data key. The plaintext is sealed
with the data key and the data key is sealed with the master key; both seals
carry the canonical encryption context as associated data, so a blob only
opens under the exact (token_id, merchant_id, data_type) it was made for.

Blob layout:
    version(1) | key_id_len(1) | key_id | wrap_nonce(12) | wrapped_key(48)
    | data_nonce(12) | ciphertext+tag
"""
import logging
import os
import struct
from typing import Dict

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from core.exceptions import DecryptionError, EncryptionError
from kms.gateway import KeyManagementGateway
from schemas.tokens import EncryptionContext

logger = logging.getLogger(__name__)

BLOB_VERSION = 1
_NONCE_LEN = 12  # 96-bit nonce for GCM
_WRAPPED_KEY_LEN = 32 + 16  # AES-256 key + GCM tag


def _parse_hex_key(key_id: str, hex_key: str) -> bytes:
    try:
        key_bytes = bytes.fromhex(hex_key)
    except ValueError:
        raise RuntimeError(f"Master key '{key_id}' is not valid hex") from None
    if len(key_bytes) != 32:
        raise RuntimeError(f"Master key '{key_id}' must be exactly 32 bytes (64 hex chars)")
    return key_bytes


class LocalEnvelopeKeyService(KeyManagementGateway):
    """In-process key service backed by configured master keys."""

    def __init__(self, master_keys: Dict[str, bytes], active_key_id: str):
        if active_key_id not in master_keys:
            raise RuntimeError(f"Active master key '{active_key_id}' is not configured")
        for key_id, key in master_keys.items():
            if len(key) != 32:
                raise RuntimeError(f"Master key '{key_id}' must be exactly 32 bytes")
            if not key_id or len(key_id.encode("utf-8")) > 255:
                raise RuntimeError("Master key ids must be 1-255 bytes")
        self._keys = dict(master_keys)
        self.active_key_id = active_key_id

    @classmethod
    def from_settings(cls, settings) -> "LocalEnvelopeKeyService":
        if not settings.KMS_MASTER_KEY:
            raise RuntimeError(
                "KMS_MASTER_KEY is not set. "
                "Generate with: python3 -c \"import secrets; print(secrets.token_hex(32))\""
            )
        keys = {
            key_id: _parse_hex_key(key_id, hex_key)
            for key_id, hex_key in settings.retired_keys().items()
        }
        keys[settings.KMS_KEY_ID] = _parse_hex_key(settings.KMS_KEY_ID, settings.KMS_MASTER_KEY)
        logger.info(
            "[KMS] Local envelope key service ready: active=%s retired=%d",
            settings.KMS_KEY_ID, len(keys) - 1,
        )
        return cls(keys, settings.KMS_KEY_ID)

    async def encrypt(self, plaintext: bytes, context: EncryptionContext) -> bytes:
        if not isinstance(plaintext, (bytes, bytearray)):
            raise EncryptionError("Plaintext must be bytes")
        aad = context.to_aad()
        try:
            data_key = AESGCM.generate_key(bit_length=256)
            data_nonce = os.urandom(_NONCE_LEN)
            ciphertext = AESGCM(data_key).encrypt(data_nonce, bytes(plaintext), aad)

            wrap_nonce = os.urandom(_NONCE_LEN)
            wrapped_key = AESGCM(self._keys[self.active_key_id]).encrypt(wrap_nonce, data_key, aad)
        except (OverflowError, TypeError, ValueError) as e:
            raise EncryptionError(f"Envelope encryption failed: {e}") from e

        key_id = self.active_key_id.encode("utf-8")
        header = struct.pack(">BB", BLOB_VERSION, len(key_id)) + key_id
        return header + wrap_nonce + wrapped_key + data_nonce + ciphertext

    async def decrypt(self, ciphertext: bytes, context: EncryptionContext) -> bytes:
        blob = bytes(ciphertext or b"")
        if len(blob) < 2:
            raise DecryptionError("Ciphertext too short")
        version, key_id_len = struct.unpack(">BB", blob[:2])
        if version != BLOB_VERSION:
            raise DecryptionError(f"Unsupported ciphertext version {version}")

        offset = 2
        key_id = blob[offset:offset + key_id_len].decode("utf-8", errors="replace")
        offset += key_id_len
        master = self._keys.get(key_id)
        if master is None:
            raise DecryptionError(f"Unknown master key '{key_id}'")

        wrap_nonce = blob[offset:offset + _NONCE_LEN]
        offset += _NONCE_LEN
        wrapped_key = blob[offset:offset + _WRAPPED_KEY_LEN]
        offset += _WRAPPED_KEY_LEN
        data_nonce = blob[offset:offset + _NONCE_LEN]
        offset += _NONCE_LEN
        sealed = blob[offset:]
        if len(data_nonce) != _NONCE_LEN or not sealed:
            raise DecryptionError("Ciphertext truncated")

        aad = context.to_aad()
        try:
            data_key = AESGCM(master).decrypt(wrap_nonce, wrapped_key, aad)
            return AESGCM(data_key).decrypt(data_nonce, sealed, aad)
        except InvalidTag:
            raise DecryptionError("Ciphertext does not match encryption context") from None
        except ValueError as e:
            raise DecryptionError(f"Malformed ciphertext: {e}") from e

    async def is_healthy(self) -> bool:
        context = EncryptionContext(token_id="healthcheck", merchant_id="healthcheck", data_type="personal")
        try:
            probe = await self.encrypt(b"ping", context)
            return await self.decrypt(probe, context) == b"ping"
        except (EncryptionError, DecryptionError) as e:
            logger.warning("[KMS] Health check failed: %s", e.code)
            return False

    def rotated(self, new_key_id: str, new_key: bytes) -> "LocalEnvelopeKeyService":
        """Service that encrypts with new_key and still opens older blobs."""
        keys = dict(self._keys)
        keys[new_key_id] = new_key
        logger.info("[KMS] Master key rotated: %s -> %s", self.active_key_id, new_key_id)
        return LocalEnvelopeKeyService(keys, new_key_id)


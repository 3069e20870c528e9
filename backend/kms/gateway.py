"""Key-Management Gateway interface — provider-agnostic contract.

The gateway ONLY encrypts/decrypts short plaintexts bound to an encryption
context. It does NOT store anything and does NOT know about tokens.
"""
from abc import ABC, abstractmethod

from schemas.tokens import EncryptionContext


class KeyManagementGateway(ABC):
    """Abstract envelope-encryption key service."""

    @abstractmethod
    async def encrypt(self, plaintext: bytes, context: EncryptionContext) -> bytes:
        """Encrypt plaintext bound to context. Raises EncryptionError."""
        ...

    @abstractmethod
    async def decrypt(self, ciphertext: bytes, context: EncryptionContext) -> bytes:
        """Decrypt ciphertext. Raises DecryptionError on any context mismatch."""
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Health check for the key service."""
        ...

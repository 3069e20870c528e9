"""Custom exception hierarchy for the PII vault.

"Not found" is never an exception: lookups return None so that a missing
token and another tenant's token look the same to the caller.
"""


class PIIVaultError(Exception):
    """Base error."""
    def __init__(self, message: str, code: str = "PII_VAULT_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class DetectionError(PIIVaultError):
    """Reserved. Malformed input degrades to "no match" instead."""
    def __init__(self, message: str = "PII detection failed"):
        super().__init__(message, code="DETECTION_ERROR")


class KeyServiceError(PIIVaultError):
    """The key service was unreachable or rejected the request."""
    def __init__(self, message: str = "Key service failure", code: str = "KEY_SERVICE_ERROR"):
        super().__init__(message, code=code)


class EncryptionError(KeyServiceError):
    """Encrypting a plaintext (or minting a token) failed."""
    def __init__(self, message: str = "Encryption failed"):
        super().__init__(message, code="ENCRYPTION_ERROR")


class DecryptionError(KeyServiceError):
    """Ciphertext could not be opened (wrong context, wrong key, tampered)."""
    def __init__(self, message: str = "Decryption failed"):
        super().__init__(message, code="DECRYPTION_ERROR")


class PersistenceError(PIIVaultError):
    """Token store unavailable or rejected a write."""
    def __init__(self, message: str = "Token store failure"):
        super().__init__(message, code="PERSISTENCE_ERROR")


class CriticalFieldTokenizationError(PIIVaultError):
    """A critical payment field could not be protected; the whole call fails."""
    def __init__(self, field: str):
        self.field = field
        super().__init__(
            f"Critical payment field tokenization failed: {field}",
            code="CRITICAL_FIELD_ERROR",
        )

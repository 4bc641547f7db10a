"""
passman - Error Types

Every failure the core can report. Callers catch PassmanError for "something
went wrong" or one of the leaves when they need to tell cases apart.

Crypto failures:
    DecodeError          blob is not valid base64
    InvalidFormatError   blob decodes to fewer than NONCE_SIZE bytes
    AuthenticationError  GCM tag mismatch (wrong password OR tampered data)
    EncodingError        decrypted bytes are not UTF-8

Outer failures:
    StorageError         sqlite3 operation failed
    BackupIOError        backup file could not be read or written
"""


class PassmanError(Exception):
    """Base class for all passman errors."""


class CryptoError(PassmanError):
    """A blob could not be turned back into plaintext."""

    # Short category name, safe to log or show in listings
    category = "crypto"


class DecodeError(CryptoError):
    category = "decode"


class InvalidFormatError(CryptoError):
    category = "format"


class AuthenticationError(CryptoError):
    """
    Tag verification failed.

    Wrong password and tampered ciphertext are intentionally the same error.
    """
    category = "auth"


class EncodingError(CryptoError):
    category = "encoding"


class StorageError(PassmanError):
    """The underlying table operation failed."""


class BackupIOError(PassmanError):
    """Reading or writing a backup file failed."""

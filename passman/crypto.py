"""
passman - Cryptography Module

Every cryptographic operation in the password manager lives in this file:
- Password -> key stretching (PBKDF2-HMAC-SHA256)
- Field encryption/decryption (AES-256-GCM)
- Random password generation (used by the CLI only)

Blob layout (what ends up in the database and in backup files):

    base64( random_value[12] || ciphertext || tag[16] )

The leading 12 random bytes are BOTH the PBKDF2 salt and the GCM nonce.
Because they are fresh os.urandom() output for every encrypt() call, each blob
gets its own derived key and nonce reuse cannot happen under one key.

Security Note:
    Never log passwords, plaintext, ciphertext or keys. Only failure categories.
"""

import os
import base64
import binascii
import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import (
    AuthenticationError,
    DecodeError,
    EncodingError,
    InvalidFormatError,
)

logger = logging.getLogger("passman.crypto")


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32                # 256-bit key
NONCE_SIZE = 12              # 96-bit nonce for AES-GCM, doubles as the salt
TAG_SIZE = 16                # 128-bit authentication tag

PBKDF2_ITERATIONS = 100_000  # changing this makes existing blobs unreadable


# =============================================================================
# Key Derivation
# =============================================================================

def derive_key(password: str, salt: bytes) -> bytes:
    """
    Stretch a password into a 32-byte key with PBKDF2-HMAC-SHA256.

    Deterministic: same password + salt always gives the same key.

    Args:
        password: User's password
        salt: Random bytes stored alongside the ciphertext (NOT secret)

    Returns:
        32-byte key
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode('utf-8'))


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def encrypt(password: str, plaintext: str) -> str:
    """
    Encrypt one text value under a password.

    Steps:
    1. 12 random bytes -> used as salt AND nonce
    2. key = derive_key(password, random_value)
    3. AES-256-GCM over the UTF-8 plaintext, no associated data
    4. base64(random_value + ciphertext + tag)

    Two calls with the same password and plaintext never produce the same
    output.

    Returns:
        Base64 text (the EncryptedBlob)
    """
    random_value = os.urandom(NONCE_SIZE)
    key = derive_key(password, random_value)

    aesgcm = AESGCM(key)
    ciphertext = aesgcm.encrypt(random_value, plaintext.encode('utf-8'), None)

    return base64.b64encode(random_value + ciphertext).decode('ascii')


def decrypt(password: str, blob: str) -> str:
    """
    Decrypt a blob produced by encrypt().

    Raises:
        DecodeError: blob is not valid base64
        InvalidFormatError: fewer than NONCE_SIZE bytes after decoding
        AuthenticationError: wrong password or tampered blob (indistinguishable)
        EncodingError: plaintext is not valid UTF-8
    """
    try:
        combined = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("decrypt failed: decode")
        raise DecodeError("Base64 decode error") from None

    if len(combined) < NONCE_SIZE:
        logger.debug("decrypt failed: format")
        raise InvalidFormatError("Invalid encrypted data")

    random_value = combined[:NONCE_SIZE]
    cipher_body = combined[NONCE_SIZE:]
    key = derive_key(password, random_value)

    aesgcm = AESGCM(key)
    try:
        plaintext = aesgcm.decrypt(random_value, cipher_body, None)
    except InvalidTag:
        logger.debug("decrypt failed: auth")
        raise AuthenticationError("Decryption failed: wrong password or tampered data") from None

    try:
        return plaintext.decode('utf-8')
    except UnicodeDecodeError:
        logger.debug("decrypt failed: encoding")
        raise EncodingError("Invalid UTF-8") from None


# =============================================================================
# Password Generation
# =============================================================================

# Ambiguous characters (l, I, O, 0, 1) left out on purpose
LOWER = "abcdefghijkmnopqrstuvwxyz"
UPPER = "ABCDEFGHJKLMNPQRSTUVWXYZ"
DIGITS = "23456789"
SYMBOLS = "!@#$^&*()-_+"


def generate_password(length: int = 32) -> str:
    """
    Generate a strong random password.

    Always contains at least one lowercase, uppercase, digit and symbol.
    Uses the `secrets` module (os.urandom underneath).

    Args:
        length: Password length, at least 4

    Returns:
        Random password string
    """
    if length < 4:
        raise ValueError("length must be at least 4")

    rng = secrets.SystemRandom()
    chars = [
        rng.choice(LOWER),
        rng.choice(UPPER),
        rng.choice(DIGITS),
        rng.choice(SYMBOLS),
    ]

    alphabet = LOWER + UPPER + DIGITS + SYMBOLS
    chars.extend(rng.choice(alphabet) for _ in range(length - len(chars)))

    rng.shuffle(chars)
    return ''.join(chars)

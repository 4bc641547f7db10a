"""
passman - Password Rotation

Brings every record that opens under an old password under a new one.

The vault itself allows each record to have its own password (update_secret
re-encrypts a single record). This routine is the policy layer for callers
that want "one master password for everything": it re-encrypts all matching
records in one transaction. Records that do not open under the old password
are counted as skipped and left untouched.

Security Note:
    Plaintext exists in memory only while a single record is re-encrypted.
    Never log plaintext or ciphertext values.
"""

import logging
from typing import Dict

from . import crypto
from .errors import CryptoError
from .vault import Vault

logger = logging.getLogger("passman.rotation")


def rotate_password(vault: Vault, old_password: str, new_password: str) -> Dict[str, int]:
    """
    Re-encrypt every record readable with `old_password` under `new_password`.

    Runs in a single transaction: a storage failure rolls back all rows.

    Returns:
        Stats dict with keys: total, rotated, skipped
    """
    stats = {"total": 0, "rotated": 0, "skipped": 0}

    logger.info("Starting password rotation")

    with vault.transaction():
        for record in vault.list_all():
            stats["total"] += 1
            try:
                secret = crypto.decrypt(old_password, record.secret)
            except CryptoError as e:
                logger.debug("Skipping record %s: %s", record.id, e.category)
                stats["skipped"] += 1
                continue

            vault.update_secret(record.id, secret, new_password)
            stats["rotated"] += 1

    logger.info("Password rotation complete: %s", stats)
    return stats

"""
passman - Vault Module (RecordStore)

This file handles:
- SQLite database (one `passwords` table)
- Adding/listing/finding/updating/deleting records
- Per-record reveal of secrets for bulk listings

The store encrypts the secret on write and hands the encrypted blob back
verbatim on read. Decryption is left to the caller, who supplies a password per
record (see Record.decrypted_secret and Vault.reveal).

Each blob carries its own random salt, so two records can be protected by two
different passwords. The store does not enforce a single master password; see
passman.rotation for the routine that brings every record under one password.
"""

import sqlite3
import uuid
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, List, NamedTuple, Optional, Tuple

from . import crypto
from .errors import CryptoError, StorageError

logger = logging.getLogger("passman.vault")


# =============================================================================
# DATABASE SCHEMA
# =============================================================================

SCHEMA = """
CREATE TABLE IF NOT EXISTS passwords (
    id          TEXT PRIMARY KEY,
    service     TEXT NOT NULL,
    secret      TEXT NOT NULL,     -- base64 EncryptedBlob, never plaintext
    description TEXT
);

CREATE INDEX IF NOT EXISTS idx_passwords_service ON passwords(service);
"""

# SQLite PRAGMAs for crash safety
PRAGMAS = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=FULL;
PRAGMA secure_delete=ON;
"""

_COLUMNS = "id, service, secret, description"


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class Record:
    """One stored credential. `secret` is the encrypted blob."""

    id: str
    service: str
    secret: str
    description: Optional[str] = None

    def decrypted_secret(self, password: str) -> str:
        """Decrypt this record's secret. Raises a CryptoError subclass on failure."""
        return crypto.decrypt(password, self.secret)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Record":
        return cls(row['id'], row['service'], row['secret'], row['description'])


class Revealed(NamedTuple):
    """Outcome of decrypting one record during a bulk read."""

    ok: bool
    secret: Optional[str] = None
    reason: Optional[str] = None   # CryptoError.category when ok is False


# =============================================================================
# VAULT CLASS
# =============================================================================

class Vault:
    """
    CRUD façade over the `passwords` table.

    Usage:
        with Vault.open("passman.db") as vault:
            entry_id = vault.insert("hunter2", "email", "p@ss!")

            for record in vault.find_by_service("email"):
                print(record.decrypted_secret("hunter2"))

    The connection is injected; Vault.open() is the convenience that creates
    one, applies PRAGMAs and the schema.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self.conn.row_factory = sqlite3.Row
        self._in_transaction = False

    @classmethod
    def open(cls, db_path: str) -> "Vault":
        """Connect to `db_path` and make sure the schema exists."""
        with _storage("open database"):
            conn = sqlite3.connect(db_path)
            try:
                conn.executescript(PRAGMAS)
                conn.executescript(SCHEMA)
            except sqlite3.Error:
                conn.close()
                raise
        logger.debug("Opened vault at %s", db_path)
        return cls(conn)

    def close(self) -> None:
        """Release the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "Vault":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(
        self,
        password: str,
        service: str,
        secret: str,
        description: Optional[str] = None
    ) -> str:
        """
        Encrypt `secret` under `password` and store a new record.

        Args:
            password: Password protecting this record's secret
            service: Service label (required, stored in plaintext)
            secret: Plaintext secret (only its ciphertext is stored)
            description: Optional plaintext note

        Returns:
            Generated record ID (UUID)
        """
        if not service or not service.strip():
            raise ValueError("Service is required")

        entry_id = str(uuid.uuid4())
        blob = crypto.encrypt(password, secret)

        with _storage("insert"):
            self.conn.execute(
                "INSERT INTO passwords (id, service, secret, description) VALUES (?, ?, ?, ?)",
                (entry_id, service, blob, description)
            )
            self._commit()

        logger.info("Inserted record %s", entry_id)
        return entry_id

    def insert_or_ignore(self, record: Record) -> bool:
        """
        Store an already-encrypted record as-is.

        Returns:
            True if inserted, False if a record with that ID already existed
        """
        with _storage("insert"):
            cur = self.conn.execute(
                "INSERT OR IGNORE INTO passwords (id, service, secret, description) "
                "VALUES (?, ?, ?, ?)",
                (record.id, record.service, record.secret, record.description)
            )
            self._commit()
        return cur.rowcount == 1

    def update_secret(self, entry_id: str, new_secret: str, new_password: str) -> int:
        """
        Re-encrypt a record's secret under `new_password`.

        `new_password` does not have to match the password used at insert
        time; afterwards only `new_password` opens this record.

        Returns:
            Number of records updated (0 or 1)
        """
        blob = crypto.encrypt(new_password, new_secret)
        with _storage("update"):
            cur = self.conn.execute(
                "UPDATE passwords SET secret = ? WHERE id = ?", (blob, entry_id)
            )
            self._commit()
        logger.info("Updated secret of record %s (%d row(s))", entry_id, cur.rowcount)
        return cur.rowcount

    def delete_by_id(self, entry_id: str) -> int:
        """
        Delete a record. No crypto involved; callers that want "prove the
        password first" must decrypt before calling this.

        Returns:
            Number of records deleted (0 or 1)
        """
        with _storage("delete"):
            cur = self.conn.execute("DELETE FROM passwords WHERE id = ?", (entry_id,))
            self._commit()
        logger.info("Deleted record %s (%d row(s))", entry_id, cur.rowcount)
        return cur.rowcount

    # -------------------------------------------------------------------------
    # Reads (never decrypt)
    # -------------------------------------------------------------------------

    def list_all(self) -> List[Record]:
        return self._select(f"SELECT {_COLUMNS} FROM passwords ORDER BY service, id")

    def find_by_id(self, entry_id: str) -> List[Record]:
        """Exact match on ID. Returns a list (0 or 1 items) like find_by_service."""
        return self._select(f"SELECT {_COLUMNS} FROM passwords WHERE id = ?", (entry_id,))

    def find_by_service(self, service: str) -> List[Record]:
        return self._select(
            f"SELECT {_COLUMNS} FROM passwords WHERE service = ? ORDER BY id", (service,)
        )

    def reveal(
        self, records: Iterable[Record], password: str
    ) -> Iterator[Tuple[Record, Revealed]]:
        """
        Lazily decrypt each record with `password`.

        A record that fails to decrypt yields Revealed(ok=False, reason=...)
        instead of stopping the iteration.
        """
        for record in records:
            try:
                result = Revealed(True, secret=record.decrypted_secret(password))
            except CryptoError as e:
                result = Revealed(False, reason=e.category)
            yield record, result

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["Vault"]:
        """
        Group several writes: commit once at the end, roll back everything if
        any exception escapes the block.
        """
        if self._in_transaction:
            raise StorageError("Nested transactions are not supported")

        self._in_transaction = True
        try:
            yield self
        except BaseException:
            self.conn.rollback()
            raise
        else:
            with _storage("commit"):
                self.conn.commit()
        finally:
            self._in_transaction = False

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    def _select(self, sql: str, params: tuple = ()) -> List[Record]:
        with _storage("query"):
            rows = self.conn.execute(sql, params).fetchall()
        return [Record.from_row(row) for row in rows]

    def _commit(self) -> None:
        if not self._in_transaction:
            self.conn.commit()


@contextmanager
def _storage(action: str):
    """Re-raise sqlite3 errors as StorageError."""
    try:
        yield
    except sqlite3.Error as e:
        logger.error("Storage error during %s: %s", action, e)
        raise StorageError(f"Failed to {action}: {e}") from e

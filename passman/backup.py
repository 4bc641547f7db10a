"""
passman - Backup Module

Dumps the whole vault into one encrypted file and loads it back.

Plain dump (before encryption), one line per record:

    id|service|secret_blob|description

- Lines are joined with "\\n".
- `description` is empty when the record has none.
- Backslash, "|", "\\n" and "\\r" inside service/description are escaped
  (\\\\, \\|, \\n, \\r) so user text can never shift fields.
- secret_blob is base64 and never needs escaping.

The joined dump is encrypted with crypto.encrypt() and written as a single
base64 blob: no header, no version byte. Only the right password opens it.
"""

import os
import logging
import tempfile
from typing import Dict, List, Optional

from . import crypto
from .errors import BackupIOError, DecodeError
from .vault import Record, Vault

logger = logging.getLogger("passman.backup")

FIELD_SEP = "|"
LINE_SEP = "\n"
MAX_FIELDS = 4
MIN_FIELDS = 3

_ESCAPES = {"\\": "\\\\", "|": "\\|", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "|": "|", "n": "\n", "r": "\r"}


# =============================================================================
# Line Format
# =============================================================================

def escape_field(value: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in value)


def unescape_field(value: str) -> str:
    """Undo escape_field(). An unknown or dangling escape is kept literally."""
    out = []
    i = 0
    while i < len(value):
        ch = value[i]
        if ch == "\\" and i + 1 < len(value) and value[i + 1] in _UNESCAPES:
            out.append(_UNESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def split_line(line: str) -> List[str]:
    """
    Split a dump line on unescaped "|" into at most MAX_FIELDS raw fields.

    Everything after the third separator belongs to the last field.
    Fields are returned still escaped.
    """
    fields = []
    current = []
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line):
            current.append(line[i:i + 2])
            i += 2
            continue
        if ch == FIELD_SEP and len(fields) < MAX_FIELDS - 1:
            fields.append("".join(current))
            current = []
        else:
            current.append(ch)
        i += 1
    fields.append("".join(current))
    return fields


def record_to_line(record: Record) -> str:
    return FIELD_SEP.join([
        escape_field(record.id),
        escape_field(record.service),
        record.secret,
        escape_field(record.description or ""),
    ])


def line_to_record(line: str) -> Optional[Record]:
    """
    Parse one dump line.

    Returns None for lines with fewer than 3 fields, or with an empty id or
    service (the same rule Vault.insert enforces).
    """
    fields = split_line(line)
    if len(fields) < MIN_FIELDS:
        return None

    entry_id = unescape_field(fields[0])
    service = unescape_field(fields[1])
    if not entry_id or not service.strip():
        return None

    description = unescape_field(fields[3]) if len(fields) > 3 else ""
    return Record(
        id=entry_id,
        service=service,
        secret=fields[2],
        description=description or None,
    )


def dump_records(records: List[Record]) -> str:
    return LINE_SEP.join(record_to_line(r) for r in records)


# =============================================================================
# Save / Load
# =============================================================================

def save_backup(vault: Vault, path: str, password: str) -> int:
    """
    Encrypt every record into a single backup file at `path`.

    The file is written to a temporary sibling first and renamed over `path`,
    so a crash never leaves a truncated backup behind.

    Returns:
        Number of records written
    """
    records = vault.list_all()
    blob = crypto.encrypt(password, dump_records(records))

    directory = os.path.dirname(os.path.abspath(path))
    try:
        fd, tmp_path = tempfile.mkstemp(prefix=".passman-backup-", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(blob)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    except OSError as e:
        raise BackupIOError(f"Failed to write backup {path}: {e}") from e

    logger.info("Saved backup of %d record(s) to %s", len(records), path)
    return len(records)


def load_backup(vault: Vault, path: str, password: str) -> Dict[str, int]:
    """
    Restore records from a backup file.

    The whole file is decrypted before any row is touched; a wrong password
    raises AuthenticationError and leaves the vault unchanged. Records whose ID
    already exists are left alone. Lines with fewer than 3 fields, or without
    an id or service, are skipped.

    Returns:
        Stats dict with keys: total, imported, existing, malformed
    """
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise BackupIOError(f"Failed to read backup {path}: {e}") from e

    try:
        blob = data.decode("ascii").strip()
    except UnicodeDecodeError:
        raise DecodeError(f"Backup {path} is not base64 text") from None

    dump = crypto.decrypt(password, blob)

    stats = {"total": 0, "imported": 0, "existing": 0, "malformed": 0}
    records = []
    for line in dump.split(LINE_SEP) if dump else []:
        stats["total"] += 1
        record = line_to_record(line)
        if record is None:
            stats["malformed"] += 1
            continue
        records.append(record)

    with vault.transaction():
        for record in records:
            if vault.insert_or_ignore(record):
                stats["imported"] += 1
            else:
                stats["existing"] += 1

    if stats["malformed"]:
        logger.warning("Skipped %d malformed line(s) in %s", stats["malformed"], path)
    logger.info("Loaded backup %s: %s", path, stats)
    return stats

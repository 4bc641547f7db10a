"""
passman - Self-Tests (crypto + vault)

Run with: python test_simple.py   (or: pytest)

Proves correctness and shows how common attacks fail:
- Wrong password (fails with AuthenticationError)
- Tampering with any bit of a blob (fails with AuthenticationError)
- Garbage input (typed format/decode errors, never a crash)
"""

import os
import base64
import sqlite3
import tempfile

from passman import crypto
from passman.errors import (
    AuthenticationError,
    CryptoError,
    DecodeError,
    EncodingError,
    InvalidFormatError,
    StorageError,
)
from passman.vault import Record, Vault


def test_kdf():
    """Test key derivation from password."""
    print("Testing KDF (Key Derivation)...")

    password = "test_password"
    salt = os.urandom(crypto.NONCE_SIZE)

    key1 = crypto.derive_key(password, salt)
    key2 = crypto.derive_key(password, salt)

    assert key1 == key2, "KDF should be deterministic"
    assert len(key1) == 32, "Key should be 32 bytes"

    assert crypto.derive_key("different_password", salt) != key1, \
        "Different passwords should give different keys"
    assert crypto.derive_key(password, os.urandom(crypto.NONCE_SIZE)) != key1, \
        "Different salts should give different keys"

    print("  [OK] KDF works correctly")


def test_encryption():
    """Test round trip, nonce freshness and wrong password."""
    print("Testing Encryption...")

    blob = crypto.encrypt("hunter2", "mySecret")
    base64.b64decode(blob, validate=True)  # pure base64 text
    assert crypto.decrypt("hunter2", blob) == "mySecret"
    print("  [OK] Encryption/decryption works")

    for text in ["", "ünïcødé ✓", "a|b\nc", "x" * 5000]:
        assert crypto.decrypt("pw", crypto.encrypt("pw", text)) == text
    print("  [OK] Empty, unicode and long plaintexts round-trip")

    blobs = {crypto.encrypt("hunter2", "mySecret") for _ in range(5)}
    assert len(blobs) == 5, "Same input must never give the same blob"
    print("  [OK] Encryption is non-deterministic")

    try:
        crypto.decrypt("wrong", blob)
        assert False, "Should have rejected wrong password"
    except AuthenticationError:
        print("  [OK] Wrong password rejected")


def test_blob_layout():
    """Leading 12 bytes are the salt AND the nonce; tag is 16 bytes."""
    print("Testing Blob Layout...")

    plaintext = "layout-check"
    raw = base64.b64decode(crypto.encrypt("pw", plaintext))
    assert len(raw) == crypto.NONCE_SIZE + len(plaintext) + crypto.TAG_SIZE

    from cryptography.hazmat.primitives.ciphers.aead import AESGCM
    nonce = raw[:crypto.NONCE_SIZE]
    key = crypto.derive_key("pw", nonce)
    assert AESGCM(key).decrypt(nonce, raw[crypto.NONCE_SIZE:], None) == plaintext.encode()
    print("  [OK] random_value || ciphertext || tag")


def test_tamper_detection():
    """Flipping any single bit of a blob must fail authentication."""
    print("Testing Tamper Detection...")

    raw = base64.b64decode(crypto.encrypt("pw", "secret"))
    for index in range(len(raw)):
        for bit in (0, 7):
            tampered = bytearray(raw)
            tampered[index] ^= 1 << bit
            try:
                crypto.decrypt("pw", base64.b64encode(bytes(tampered)).decode())
                assert False, f"Tampering byte {index} bit {bit} went unnoticed"
            except AuthenticationError:
                pass
    print("  [OK] Tampering in nonce, ciphertext and tag detected")


def test_format_errors():
    """Garbage input produces typed errors, never a crash."""
    print("Testing Format Robustness...")

    try:
        crypto.decrypt("pw", "")
        assert False, "Empty blob should be rejected"
    except InvalidFormatError:
        pass

    try:
        crypto.decrypt("pw", "short")
        assert False, "'short' is not valid base64"
    except DecodeError:
        pass

    try:
        crypto.decrypt("pw", "not base64 at all!!")
        assert False
    except DecodeError:
        pass

    try:
        crypto.decrypt("pw", base64.b64encode(b"tooshort").decode())
        assert False, "Fewer than 12 bytes should be a format error"
    except InvalidFormatError:
        pass

    # Exactly a nonce, no tag: authentication error, not format error
    try:
        crypto.decrypt("pw", base64.b64encode(os.urandom(crypto.NONCE_SIZE)).decode())
        assert False
    except AuthenticationError:
        pass

    for error in (DecodeError, InvalidFormatError, AuthenticationError, EncodingError):
        assert issubclass(error, CryptoError)
    print("  [OK] Format errors are typed")


def test_non_utf8_plaintext():
    """A valid blob over non-UTF-8 bytes raises EncodingError."""
    print("Testing Encoding Errors...")

    from cryptography.hazmat.primitives.ciphers.aead import AESGCM
    nonce = os.urandom(crypto.NONCE_SIZE)
    key = crypto.derive_key("pw", nonce)
    body = AESGCM(key).encrypt(nonce, b"\xff\xfe\xfd", None)

    try:
        crypto.decrypt("pw", base64.b64encode(nonce + body).decode())
        assert False, "Invalid UTF-8 should be rejected"
    except EncodingError:
        print("  [OK] Non-UTF-8 plaintext rejected")


def test_vault_operations():
    """Test insert, lookups, update and delete on a real SQLite file."""
    print("Testing Vault Operations...")

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as tmp:
        db_path = tmp.name

    vault = None
    try:
        vault = Vault.open(db_path)

        entry_id = vault.insert("hunter2", "email", "p@ss!", "work inbox")
        assert entry_id, "Should return entry ID"
        print("  [OK] Inserting works")

        matches = vault.find_by_service("email")
        assert len(matches) == 1
        assert matches[0].id == entry_id
        assert matches[0].description == "work inbox"
        assert matches[0].decrypted_secret("hunter2") == "p@ss!"
        print("  [OK] find_by_service works")

        # Secret is never stored in plaintext
        row = vault.conn.execute("SELECT secret FROM passwords WHERE id = ?", (entry_id,)).fetchone()
        assert "p@ss!" not in row["secret"]
        assert crypto.decrypt("hunter2", row["secret"]) == "p@ss!"
        print("  [OK] Secret stored encrypted")

        assert [r.id for r in vault.find_by_id(entry_id)] == [entry_id]
        assert vault.find_by_id("missing") == []
        assert vault.find_by_service("nope") == []
        print("  [OK] find_by_id works")

        other_id = vault.insert("hunter2", "bank", "1234")
        assert {r.id for r in vault.list_all()} == {entry_id, other_id}
        assert vault.find_by_service("bank")[0].description is None
        print("  [OK] list_all works")

        # Per-record password: update under a different password
        assert vault.update_secret(entry_id, "newSecret", "newPassword") == 1
        record = vault.find_by_id(entry_id)[0]
        assert record.decrypted_secret("newPassword") == "newSecret"
        try:
            record.decrypted_secret("hunter2")
            assert False, "Old password must no longer open the record"
        except AuthenticationError:
            pass
        assert vault.find_by_id(other_id)[0].decrypted_secret("hunter2") == "1234"
        print("  [OK] update_secret re-encrypts under the new password")

        assert vault.update_secret("missing", "x", "y") == 0

        assert vault.delete_by_id(other_id) == 1
        assert vault.delete_by_id(other_id) == 0
        assert vault.find_by_id(other_id) == []
        print("  [OK] delete_by_id works")

        try:
            vault.insert("pw", "  ", "secret")
            assert False, "Blank service should be rejected"
        except ValueError:
            pass

        # Survives reopening
        vault.close()
        vault = Vault.open(db_path)
        assert vault.find_by_id(entry_id)[0].decrypted_secret("newPassword") == "newSecret"
        print("  [OK] Data persists across connections")

    finally:
        if vault:
            vault.close()
        if os.path.exists(db_path):
            os.unlink(db_path)


def test_reveal_masks_failures():
    """A bulk read reports undecryptable rows instead of aborting."""
    print("Testing Reveal...")

    with Vault(sqlite3.connect(":memory:")) as vault:
        vault.conn.executescript(
            "CREATE TABLE passwords (id TEXT PRIMARY KEY, service TEXT NOT NULL, "
            "secret TEXT NOT NULL, description TEXT)"
        )
        a = vault.insert("pw-a", "a", "alpha")
        b = vault.insert("pw-b", "b", "beta")
        vault.insert_or_ignore(Record("c", "c", "%%%garbage%%%"))

        results = {r.id: revealed for r, revealed in vault.reveal(vault.list_all(), "pw-a")}
        assert results[a].ok and results[a].secret == "alpha"
        assert not results[b].ok and results[b].reason == "auth"
        assert not results["c"].ok and results["c"].reason == "decode"
        print("  [OK] Per-record failures are masked")


def test_transaction_rollback():
    """Writes inside a failed transaction are all rolled back."""
    print("Testing Transactions...")

    with tempfile.TemporaryDirectory() as tmp:
        with Vault.open(os.path.join(tmp, "vault.db")) as vault:
            try:
                with vault.transaction():
                    vault.insert_or_ignore(Record("1", "s", crypto.encrypt("pw", "x")))
                    vault.insert_or_ignore(Record("2", "s", crypto.encrypt("pw", "y")))
                    raise RuntimeError("boom")
            except RuntimeError:
                pass
            assert vault.list_all() == []
            print("  [OK] Rollback discards partial writes")

            vault.conn.execute("DROP TABLE passwords")
            try:
                vault.list_all()
                assert False, "Missing table should raise StorageError"
            except StorageError:
                print("  [OK] sqlite3 errors surface as StorageError")


def test_open_rejects_non_database():
    """Opening a file that isn't SQLite raises StorageError and closes the handle."""
    print("Testing Open Failure...")

    opened = []
    real_connect = sqlite3.connect

    def tracking_connect(*args, **kwargs):
        conn = real_connect(*args, **kwargs)
        opened.append(conn)
        return conn

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "not-a-db.db")
        with open(path, "wb") as f:
            f.write(b"this is definitely not an sqlite database file" * 4)

        sqlite3.connect = tracking_connect
        try:
            Vault.open(path)
            assert False, "Garbage file should not open"
        except StorageError:
            pass
        finally:
            sqlite3.connect = real_connect

        assert len(opened) == 1
        try:
            opened[0].execute("SELECT 1")
            assert False, "Connection should have been closed"
        except sqlite3.ProgrammingError:
            pass
    print("  [OK] Failed open releases the connection")


def test_password_generation():
    """Test password generation."""
    print("Testing Password Generation...")

    pwd = crypto.generate_password()
    assert len(pwd) == 32
    assert any(c in crypto.LOWER for c in pwd)
    assert any(c in crypto.UPPER for c in pwd)
    assert any(c in crypto.DIGITS for c in pwd)
    assert any(c in crypto.SYMBOLS for c in pwd)
    assert not set("lIO01") & set(pwd), "Ambiguous characters excluded"
    alphabet = crypto.LOWER + crypto.UPPER + crypto.DIGITS + crypto.SYMBOLS
    assert not set("lIO01") & set(alphabet)
    for _ in range(50):
        assert not set("lIO01") & set(crypto.generate_password(8))

    assert len(crypto.generate_password(4)) == 4
    try:
        crypto.generate_password(3)
        assert False
    except ValueError:
        pass
    print("  [OK] Password generation works")


def run_all_tests():
    """Run all tests."""
    print("=" * 70)
    print("passman - Test Suite (crypto + vault)")
    print("=" * 70)
    print()

    tests = [
        test_kdf,
        test_encryption,
        test_blob_layout,
        test_tamper_detection,
        test_format_errors,
        test_non_utf8_plaintext,
        test_vault_operations,
        test_reveal_masks_failures,
        test_transaction_rollback,
        test_open_rejects_non_database,
        test_password_generation,
    ]

    failed = []

    for test in tests:
        try:
            test()
            print()
        except Exception as e:
            print(f"  [FAIL] TEST FAILED: {e}")
            failed.append((test.__name__, e))
            print()

    print("=" * 70)
    if not failed:
        print("[OK] ALL TESTS PASSED!")
    else:
        print(f"[FAIL] {len(failed)} TESTS FAILED:")
        for name, error in failed:
            print(f"  - {name}: {error}")
    print("=" * 70)

    return len(failed) == 0


if __name__ == "__main__":
    import sys
    success = run_all_tests()
    sys.exit(0 if success else 1)

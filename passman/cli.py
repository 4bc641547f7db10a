"""
passman - Command-Line Interface

    passman [-m MASTER_PASSWORD] [--db PATH] [-v] <command> ...

Commands:
    add       Add a new entry (manual, @file or generated secret)
    list      List all entries, masking the ones the password can't open
    get       Look up entries by id or service
    delete    Delete an entry (password must open it first)
    update    Re-encrypt an entry under a new password
    rotate    Re-encrypt every entry under a new password
    backup    Write an encrypted backup file
    restore   Load entries from a backup file
"""

import sys
import getpass
import logging
import argparse

import pyperclip

from . import __version__, config, crypto
from .backup import load_backup, save_backup
from .errors import CryptoError, PassmanError
from .rotation import rotate_password
from .vault import Vault

logger = logging.getLogger("passman.cli")

MASK = "**********"
GENERATED_LENGTH = 32


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="passman", description="Encrypted Password Manager CLI")
    parser.add_argument("-m", "--master-password", help="Master password for encryption/decryption")
    parser.add_argument("--db", help="Database path (default: $PASSMAN_DB or ~/.passman/database.db)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a new password entry")
    add.add_argument("-s", "--service", required=True, help="Name of the service")
    secret_group = add.add_mutually_exclusive_group()
    secret_group.add_argument("--secret", help="Secret value, or @filename to read it from a file")
    secret_group.add_argument("--generate-secret", action="store_true",
                              help="Generate a secure random password instead")
    add.add_argument("-d", "--description", help="Optional description of the entry")

    sub.add_parser("list", help="List all passwords (decrypted)")

    get = sub.add_parser("get", help="Get password by ID or service name (decrypted)")
    get.add_argument("field", choices=["id", "service"])
    get.add_argument("value", help="The ID or service to search for")
    get.add_argument("--copy", action="store_true", help="Copy the secret to the clipboard instead of printing it")

    delete = sub.add_parser("delete", help="Delete password by ID")
    delete.add_argument("-i", "--id", required=True)

    update = sub.add_parser("update", help="Re-encrypt one entry under a new master password")
    update.add_argument("-i", "--id", required=True)
    update.add_argument("--new-password", help="New master password (prompted if omitted)")

    rotate = sub.add_parser("rotate", help="Re-encrypt every entry under a new master password")
    rotate.add_argument("--new-password", help="New master password (prompted if omitted)")

    backup = sub.add_parser("backup", help="Write an encrypted backup of all entries")
    backup.add_argument("path")

    restore = sub.add_parser("restore", help="Load entries from an encrypted backup")
    restore.add_argument("path")

    return parser


# =============================================================================
# Commands
# =============================================================================

def cmd_add(vault, password, args):
    if args.generate_secret:
        secret = crypto.generate_password(GENERATED_LENGTH)
        print(f"Generated secret: {secret}")
    else:
        secret = args.secret if args.secret is not None else getpass.getpass("Enter secret: ")
        if secret.startswith("@"):
            secret = read_secret_file(secret[1:])

    entry_id = vault.insert(password, args.service, secret, args.description)
    print(f"Password added for service '{args.service}'. ID: {entry_id}")
    return 0


def cmd_list(vault, password, args):
    for record, revealed in vault.reveal(vault.list_all(), password):
        if revealed.ok:
            print(f"{record.id} - {record.service}: {revealed.secret}")
        else:
            print(f"{record.id} - {record.service}: {MASK}", file=sys.stderr)
    return 0


def cmd_get(vault, password, args):
    if args.field == "id":
        records = vault.find_by_id(args.value)
    else:
        records = vault.find_by_service(args.value)

    if not records:
        print(f"No password found for {args.field} = {args.value}")
        return 1

    status = 0
    for record, revealed in vault.reveal(records, password):
        if not revealed.ok:
            print(f"Failed to decrypt password {record.id} ({revealed.reason})", file=sys.stderr)
            status = 1
            continue

        print(f"ID: {record.id}")
        print(f"Service: {record.service}")
        if args.copy:
            try:
                pyperclip.copy(revealed.secret)
                print("Password: copied to clipboard")
            except pyperclip.PyperclipException as e:
                print(f"ERROR: clipboard unavailable ({e})", file=sys.stderr)
                status = 1
        else:
            print(f"Password: {revealed.secret}")
        if record.description:
            print(f"Description:\n{record.description}")
        print()
    return status


def cmd_delete(vault, password, args):
    authenticated = require_authenticated(vault, args.id, password)
    if authenticated is None:
        return 1
    record, _ = authenticated

    deleted = vault.delete_by_id(record.id)
    if deleted:
        print(f"Password with ID {record.id} deleted.")
        return 0
    print(f"No password found with ID {record.id}.")
    return 1


def cmd_update(vault, password, args):
    authenticated = require_authenticated(vault, args.id, password)
    if authenticated is None:
        return 1

    record, secret = authenticated
    new_password = args.new_password or prompt_new_password()
    updated = vault.update_secret(record.id, secret, new_password)
    if updated:
        print(f"Password with ID {record.id} updated.")
        return 0
    print(f"No password found with ID {record.id}.")
    return 1


def cmd_rotate(vault, password, args):
    new_password = args.new_password or prompt_new_password()
    stats = rotate_password(vault, password, new_password)
    print(f"Rotated {stats['rotated']} of {stats['total']} entries "
          f"({stats['skipped']} not readable with the current password).")
    return 0


def cmd_backup(vault, password, args):
    count = save_backup(vault, args.path, password)
    print(f"Backed up {count} entries to {args.path}.")
    return 0


def cmd_restore(vault, password, args):
    stats = load_backup(vault, args.path, password)
    print(f"Imported {stats['imported']} entries "
          f"({stats['existing']} already present, {stats['malformed']} malformed lines skipped).")
    return 0


COMMANDS = {
    "add": cmd_add,
    "list": cmd_list,
    "get": cmd_get,
    "delete": cmd_delete,
    "update": cmd_update,
    "rotate": cmd_rotate,
    "backup": cmd_backup,
    "restore": cmd_restore,
}


# =============================================================================
# Helpers
# =============================================================================

def require_authenticated(vault, entry_id, password):
    """
    Find a record and prove `password` opens it.

    Returns (record, plaintext secret), or None after printing why not.
    Nothing is mutated.
    """
    records = vault.find_by_id(entry_id)
    if not records:
        print(f"No password found with ID {entry_id}.")
        return None

    record = records[0]
    try:
        secret = record.decrypted_secret(password)
    except CryptoError:
        print("Master password is incorrect. Cannot continue.", file=sys.stderr)
        return None
    return record, secret


def read_secret_file(path):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().rstrip()
    except OSError as e:
        raise PassmanError(f"Failed to read secret file {path}: {e}") from e


def prompt_new_password():
    while True:
        pw = getpass.getpass("Enter new master password: ")
        pw2 = getpass.getpass("Confirm: ")
        if pw != pw2:
            print("Passwords don't match.\n")
            continue
        if not pw:
            print("Password can't be empty.\n")
            continue
        return pw


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config.configure_logging(args.verbose)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    password = args.master_password
    if password is None:
        password = getpass.getpass("Enter master password: ")

    db_path = config.get_db_path(args.db)
    config.ensure_db_dir(db_path)

    try:
        with Vault.open(db_path) as vault:
            return COMMANDS[args.command](vault, password, args)
    except (PassmanError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(130)

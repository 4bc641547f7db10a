"""
passman - Encrypted Password Manager

A small local password store. Secrets are only ever written encrypted.

Key Features:
- Per-secret keys: PBKDF2-HMAC-SHA256 (100k iterations) over a random salt
- Authenticated encryption: AES-256-GCM, tampering and wrong passwords fail loudly
- Encrypted backups: whole vault dumped into a single encrypted file
- Rotation: move every record under a new password in one transaction

Components:
- crypto.py: Key derivation, encryption/decryption, password generation
- vault.py: SQLite table and record operations
- backup.py: Encrypted backup save/load
- rotation.py: Re-encrypt all records under a new password
- config.py: Database path and logging settings
- errors.py: Error types
- cli.py: Command-line interface (argparse)

Usage:
    passman add -s email --generate-secret        # Add a generated secret
    passman list                                  # List entries (decrypted)
    passman get service email                     # Look up by service
    passman update -i <id>                        # Re-encrypt under new password
    passman backup vault.bak                      # Encrypted backup
    passman restore vault.bak                     # Restore (existing IDs kept)
"""

__version__ = "0.3.0"

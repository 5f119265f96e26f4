"""Fernet encryption for persisted history payloads."""

from __future__ import annotations

from pathlib import Path

from cryptography.fernet import Fernet

_KEY_FILENAME = "key"


def get_or_create_key(data_dir: Path) -> bytes:
    """Get existing Fernet key or create a new one."""
    key_file = data_dir / _KEY_FILENAME
    if key_file.exists():
        return key_file.read_bytes().strip()

    key = Fernet.generate_key()
    data_dir.mkdir(parents=True, exist_ok=True)
    key_file.write_bytes(key)
    key_file.chmod(0o600)
    return key


def get_fernet(data_dir: Path) -> Fernet:
    """Get a Fernet instance with the project's encryption key."""
    return Fernet(get_or_create_key(data_dir))

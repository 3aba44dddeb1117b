from __future__ import annotations

from pwdlib import PasswordHash

from merch_mate.config import settings

password_hash = PasswordHash.recommended()


def check_password_policy(raw_password: str) -> None:
    if not isinstance(raw_password, str) or len(raw_password) < settings.min_password_length:
        raise ValueError(f'Password must be a string and at least {settings.min_password_length} characters long')


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return password_hash.verify(raw_password, hashed_password)


def verify_and_rehash(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password; the second item is a fresh hash when the stored one is outdated."""
    return password_hash.verify_and_update(raw_password, hashed_password)

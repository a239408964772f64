"""Password hashing with bcrypt, kept off the event loop."""

from __future__ import annotations

import asyncio
import logging

import bcrypt

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


def _hash(password: str) -> str:
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def _verify(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


async def hash_password(password: str) -> str:
    """Hash *password* on a worker thread."""
    return await asyncio.to_thread(_hash, password)


async def verify_password(password: str | None, password_hash: str | None) -> bool:
    """Return ``True`` only when both values are present and match."""
    if not password or not password_hash:
        return False
    return await asyncio.to_thread(_verify, password, password_hash)

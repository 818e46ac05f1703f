"""Salted adaptive password hashing with bcrypt."""

import asyncio
import logging

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a secret
BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Hashes and verifies secrets off the event loop."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    @staticmethod
    def _encode(raw: str) -> bytes:
        return raw.encode("utf-8")[:BCRYPT_MAX_BYTES]

    def _hash_sync(self, raw: str) -> str:
        return bcrypt.hashpw(self._encode(raw), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    async def hash(self, raw: str) -> str:
        return await asyncio.to_thread(self._hash_sync, raw)

    async def verify(self, raw: str, hashed: str) -> bool:
        if not raw or not hashed:
            return False
        try:
            return await asyncio.to_thread(bcrypt.checkpw, self._encode(raw), hashed.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is malformed")
            return False

"""One-way hashing of plaintext secrets with bcrypt."""

import logging

import bcrypt

logger = logging.getLogger(__name__)


class SecretHasher:
    """Salted bcrypt hashing with a tunable work factor.

    Each ``hash`` call uses a fresh salt, so hashing the same secret twice
    yields different strings; compare with ``verify``, never with ``==``.
    Raising ``rounds`` makes brute force costlier and every verification
    slower, doubling the cost per round.
    """

    def __init__(self, rounds: int = 12):
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        """Hash a plaintext secret."""
        if not plaintext:
            raise ValueError("Cannot hash an empty secret")
        return bcrypt.hashpw(plaintext.encode(), bcrypt.gensalt(self.rounds)).decode()

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Check a plaintext secret against a stored hash in constant time."""
        if not plaintext or not hashed:
            return False
        try:
            return bcrypt.checkpw(plaintext.encode(), hashed.encode())
        except ValueError:
            logger.warning("Stored API key hash is malformed")
            return False

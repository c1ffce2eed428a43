"""
Room code generation.

Codes are short strings from a fixed alphabet so people can read them out and
type them. Uniqueness is only checked against live rooms; the caller supplies
the membership test and must hold whatever lock makes check-then-insert atomic.
"""
from __future__ import annotations

import logging
import random
from collections.abc import Callable

from hexsync.config import DEFAULT_CODE_ALPHABET
from hexsync.errors import CodeGenerationExhausted

logger = logging.getLogger(__name__)


def generate_room_code(
    length: int = 5,
    alphabet: str = DEFAULT_CODE_ALPHABET,
    rng: random.Random | None = None,
) -> str:
    """
    Draw one random room code.

    Example: AB12C, 7QXZ0

    Does not check uniqueness (the caller is responsible).
    36^5 = 60,466,176 codes with the default alphabet, plenty for dozens of rooms.
    """
    rng = rng or random.SystemRandom()
    return "".join(rng.choices(alphabet, k=length))


class CodeGenerator:
    """Collision-checked room codes with a bounded retry loop."""

    def __init__(
        self,
        *,
        length: int = 5,
        alphabet: str = DEFAULT_CODE_ALPHABET,
        max_attempts: int = 100,
        rng: random.Random | None = None,
    ) -> None:
        if length < 1:
            raise ValueError("Room code length must be at least 1")
        if len(set(alphabet)) < 2:
            raise ValueError("Room code alphabet needs at least 2 distinct characters")
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.length = length
        self.alphabet = alphabet
        self.max_attempts = max_attempts
        self._rng = rng or random.SystemRandom()

    def generate(self, is_taken: Callable[[str], bool]) -> str:
        for _ in range(self.max_attempts):
            code = generate_room_code(self.length, self.alphabet, self._rng)
            if not is_taken(code):
                return code
            logger.warning(f"Room code collision detected, regenerating: {code}")

        logger.error(f"Room code generation exhausted after {self.max_attempts} attempts")
        raise CodeGenerationExhausted(self.max_attempts)

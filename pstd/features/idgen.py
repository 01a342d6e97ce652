"""
Paste ID generation.

IDs are short random strings over ``[A-Za-z0-9]``. Generation starts at a
floor length of two characters and only moves to longer IDs once a length
looks saturated; the floor then stays raised for the rest of the process.
"""

"""
Copyright 2025 Chris Bunting
File: idgen.py | Purpose: Paste ID generation
@author Chris Bunting | @version 1.0.0

CHANGELOG:
2025-09-01 - Chris Bunting: Initial implementation
"""

import random
import string
import logging
from typing import Callable, Optional

logger = logging.getLogger("pstd.idgen")

ID_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
MIN_ID_LENGTH = 2
MAX_ID_LENGTH = 32
ATTEMPTS_PER_LENGTH = 10


class IdGenerator:
    """Generates unused paste IDs.

    Args:
        exists: Callable telling whether an ID is already taken
        rng: Source of randomness (``random.SystemRandom`` by default)
        floor: Initial minimum ID length
    """

    def __init__(self, exists: Callable[[str], bool], rng: Optional[random.Random] = None,
                 floor: int = MIN_ID_LENGTH):
        if not MIN_ID_LENGTH <= floor <= MAX_ID_LENGTH:
            raise ValueError(f"Floor length must be between {MIN_ID_LENGTH} and {MAX_ID_LENGTH}")
        self.exists = exists
        self.rng = rng or random.SystemRandom()
        self.floor = floor

    def _draw(self, length: int) -> str:
        return "".join(self.rng.choice(ID_ALPHABET) for _ in range(length))

    def generate(self) -> Optional[str]:
        """Return an ID not yet present, or None if none could be found.

        Up to ``ATTEMPTS_PER_LENGTH`` draws are made at each length from the
        current floor to ``MAX_ID_LENGTH``. Succeeding above the floor
        raises the floor to that length.
        """
        for length in range(self.floor, MAX_ID_LENGTH + 1):
            for _ in range(ATTEMPTS_PER_LENGTH):
                candidate = self._draw(length)
                if self.exists(candidate):
                    continue
                if length > self.floor:
                    logger.info("Raising ID floor length from %d to %d", self.floor, length)
                    self.floor = length
                logger.debug("Generated ID %s", candidate)
                return candidate

        logger.error("ID space exhausted up to length %d", MAX_ID_LENGTH)
        return None

"""
Identifier Generation Module

Produces unpredictable fixed-width decimal identifiers (account numbers,
session tokens) from a cryptographically secure byte source. The generator
never falls back to a non-secure source: if the entropy source fails, the
call fails.

Uniqueness is the caller's concern; ``allocate`` wraps the usual
retry-until-unused loop with a hard attempt cap.
"""

import os
from typing import Callable

from .exceptions import EntropyUnavailableError, IdentifierAllocationError
from .logging_config import get_logger


logger = get_logger("securebank.identifiers")


ByteSource = Callable[[int], bytes]

# A healthy source is rejected well under half the time at any width
MAX_DRAWS = 64


class IdentifierGenerator:
    """Secure fixed-width decimal identifier generator"""

    def __init__(self, byte_source: ByteSource = os.urandom):
        self._byte_source = byte_source

    def _random_below(self, bound: int) -> int:
        """Uniform integer in [0, bound) by rejection sampling"""
        num_bytes = (bound.bit_length() + 7) // 8
        # Largest multiple of bound that fits, so the modulo is unbiased
        limit = (256 ** num_bytes // bound) * bound

        for _ in range(MAX_DRAWS):
            try:
                chunk = self._byte_source(num_bytes)
            except Exception as exc:
                raise EntropyUnavailableError(f"Secure random source unavailable: {exc}") from exc
            if not isinstance(chunk, (bytes, bytearray)) or len(chunk) != num_bytes:
                raise EntropyUnavailableError("Secure random source returned short read")

            value = int.from_bytes(chunk, "big")
            if value < limit:
                return value % bound

        logger.critical(f"Secure random source rejected {MAX_DRAWS} consecutive draws")
        raise EntropyUnavailableError("Secure random source is not producing usable values")

    def generate(self, width: int) -> str:
        """Return a zero-padded decimal string of exactly ``width`` digits"""
        if width < 1:
            raise ValueError("Identifier width must be positive")
        return str(self._random_below(10 ** width)).zfill(width)

    def allocate(self, width: int, in_use: Callable[[str], bool], max_attempts: int = 25) -> str:
        """
        Generate identifiers until one is not in use.

        Args:
            width: Number of decimal digits
            in_use: Predicate checking a candidate against the store
            max_attempts: Upper bound on candidates tried

        Raises:
            IdentifierAllocationError: if every attempt collided
        """
        for attempt in range(1, max_attempts + 1):
            candidate = self.generate(width)
            if not in_use(candidate):
                if attempt > 1:
                    logger.warning(f"Identifier allocated after {attempt} attempts (width={width})")
                return candidate

        logger.critical(f"Identifier allocation exhausted {max_attempts} attempts (width={width})")
        raise IdentifierAllocationError(
            f"Could not allocate a unique identifier after {max_attempts} attempts"
        )

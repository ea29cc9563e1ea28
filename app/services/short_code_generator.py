"""
Short Code Generator

Produces random, fixed-length public identifiers for short links.

Design Decisions:
- Base62 alphabet: digits, uppercase, lowercase ([0-9A-Za-z]), URL-safe
- Random source: a uniformly random 63-bit non-negative integer
- Fixed length: shorter encodings are left-padded with the zero symbol,
  longer encodings are truncated to the configured length
- Uniqueness: checked against the store, bounded number of attempts

Truncation:
A random 63-bit value almost always encodes to 11 base62 digits, so with the
default length of 6 the code is effectively the first 6 digits of the value.
Since 2^63 / 62^10 is about 11, the leading symbol only takes about a dozen
values and the effective keyspace is roughly 11 * 62^5 rather than 62^6.
The behavior is kept for compatibility with existing codes and is exposed
through fit_to_length() so it is an explicit, tested boundary.
"""

import logging
import secrets
from typing import Awaitable, Callable, Optional

from app.core.exceptions import ExhaustedRetriesError

logger = logging.getLogger(__name__)


BASE62_CHARS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
BASE62_LENGTH = len(BASE62_CHARS)

RANDOM_BITS = 63


def encode_base62(number: int) -> str:
    """
    Encode a non-negative integer as a base62 string (no padding).

    Example:
        encode_base62(0) -> "0"
        encode_base62(61) -> "z"
        encode_base62(62) -> "10"
    """
    if number < 0:
        raise ValueError("Only non-negative integers can be encoded")
    if number == 0:
        return BASE62_CHARS[0]

    digits = []
    while number > 0:
        number, remainder = divmod(number, BASE62_LENGTH)
        digits.append(BASE62_CHARS[remainder])

    return ''.join(reversed(digits))


def decode_base62(encoded: str) -> int:
    """
    Decode a base62 string back to a number.

    Leading zero symbols are insignificant, so padded codes decode to the
    same value as their unpadded form.

    Raises:
        ValueError: If the string contains a character outside the alphabet
    """
    number = 0
    for char in encoded:
        digit = BASE62_CHARS.find(char)
        if digit == -1:
            raise ValueError(f"Invalid character in encoded string: {char}")
        number = number * BASE62_LENGTH + digit
    return number


def fit_to_length(code: str, length: int) -> str:
    """
    Force a base62 encoding to exactly `length` characters.

    Shorter codes are left-padded with the zero symbol. Longer codes keep
    only their first `length` characters, which means the result no longer
    decodes to the original number.
    """
    if len(code) < length:
        return BASE62_CHARS[0] * (length - len(code)) + code
    if len(code) > length:
        return code[:length]
    return code


def is_truncated(number: int, length: int) -> bool:
    """True when encoding `number` at `length` loses digits."""
    return len(encode_base62(number)) > length


class ShortCodeGenerator:
    """
    Generates codes that do not exist in the store yet.

    The existence check is injected so the generator stays independent of
    the persistence layer; the link service passes a database lookup.
    """

    def __init__(
        self,
        exists: Callable[[str], Awaitable[bool]],
        length: int = 6,
        max_attempts: int = 10,
        random_source: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            exists: Async callable returning True if a code is already taken
            length: Fixed length of every generated code
            max_attempts: Attempts before giving up with ExhaustedRetriesError
            random_source: Callable returning a non-negative integer
                (defaults to a cryptographically secure 63-bit value)
        """
        if length < 1:
            raise ValueError("Short code length must be at least 1")
        self.exists = exists
        self.length = length
        self.max_attempts = max_attempts
        self.random_source = random_source or (lambda: secrets.randbits(RANDOM_BITS))

    def candidate(self) -> str:
        """Produce one random code of the configured length (not checked)."""
        return fit_to_length(encode_base62(self.random_source()), self.length)

    async def generate(self) -> str:
        """
        Return an unused code.

        Raises:
            ExhaustedRetriesError: If every attempt collided with an existing code
        """
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate()
            if not await self.exists(code):
                return code
            logger.debug(f"Short code collision on attempt {attempt}: {code}")

        logger.error(
            f"Short code generation exhausted after {self.max_attempts} attempts "
            f"(length={self.length})"
        )
        raise ExhaustedRetriesError(self.max_attempts)

"""
Short code generation strategies for the shortener.
Uses Strategy Pattern to allow different generation algorithms.

Strategies never consult storage: uniqueness is enforced by the store's
unique index, and the caller regenerates on DuplicateKey.
"""

import secrets
import string
from abc import ABC, abstractmethod

from nanoid import generate as nanoid_generate


class ShortCodeStrategy(ABC):
    """Abstract base class for short code generation strategies"""

    def __init__(self, length: int = 6):
        self.length = length

    @abstractmethod
    def generate(self, length: int = None) -> str:
        """
        Generate a short code.

        Args:
            length: Code length; the strategy default when omitted

        Returns:
            A random, URL-safe short code (not checked for uniqueness)
        """
        pass


class NanoidShortCodeStrategy(ShortCodeStrategy):
    """
    Nano ID generation (default).

    Uses the OS CSPRNG over the 64-character URL-safe alphabet
    (A-Za-z0-9_-), so codes are unguessable and need no escaping.

    6 chars = 64^6 ≈ 6.9e10 codes
    """

    ALPHABET = string.ascii_letters + string.digits + "_-"

    def generate(self, length: int = None) -> str:
        return nanoid_generate(alphabet=self.ALPHABET, size=length or self.length)


class RandomShortCodeStrategy(ShortCodeStrategy):
    """
    Alphanumeric-only codes from the ``secrets`` module.

    Pros: no punctuation, easier to read aloud
    Cons: smaller space than nanoid (62^6 ≈ 5.7e10)
    """

    ALPHABET = string.ascii_letters + string.digits

    def generate(self, length: int = None) -> str:
        return ''.join(secrets.choice(self.ALPHABET) for _ in range(length or self.length))

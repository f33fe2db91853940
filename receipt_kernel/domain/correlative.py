"""
Correlative -- the unique sequential receipt identifier.

Responsibility:
    Value object for allocated receipt numbers and the format policy that
    renders them as fixed-width strings with a stable prefix (``R-00042``)
    and parses them back.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - value is a strictly positive integer.
    - Same format + same value -> same canonical string (deterministic).
    - Values wider than ``width`` are rendered in full, never truncated, so
      distinct values always produce distinct strings.

Failure modes:
    - ValueError on construction with a non-positive value or bad format.
    - InvalidCorrelativeError when parsing a non-canonical string.
"""

from __future__ import annotations

from dataclasses import dataclass

from receipt_kernel.exceptions import InvalidCorrelativeError


@dataclass(frozen=True, slots=True)
class CorrelativeFormat:
    """
    Declares how correlatives are rendered.

    Fields:
        prefix: prepended before the number (e.g. "R-")
        width: minimum digit width (e.g. 5 -> "00042")
    """

    prefix: str = "R-"
    width: int = 5

    def __post_init__(self) -> None:
        if not isinstance(self.prefix, str):
            raise ValueError("prefix must be a string.")
        if any(ch.isdigit() for ch in self.prefix):
            raise ValueError("prefix must not contain digits.")
        if not isinstance(self.width, int) or self.width < 1:
            raise ValueError("width must be int >= 1.")

    def of(self, value: int) -> Correlative:
        """Build a Correlative for ``value`` using this format."""
        return Correlative(value=value, prefix=self.prefix, width=self.width)

    def parse(self, text: str) -> Correlative:
        """
        Parse a canonical correlative string.

        Raises:
            InvalidCorrelativeError: If ``text`` does not carry this format's
                prefix followed by at least ``width`` digits.
        """
        if not text.startswith(self.prefix):
            raise InvalidCorrelativeError(text, f"expected prefix '{self.prefix}'")
        digits = text[len(self.prefix):]
        if not digits.isdigit() or not digits.isascii():
            raise InvalidCorrelativeError(text, "number part must be digits")
        if len(digits) < self.width:
            raise InvalidCorrelativeError(
                text, f"number part must have at least {self.width} digits"
            )
        value = int(digits)
        if value < 1:
            raise InvalidCorrelativeError(text, "number must be positive")
        correlative = self.of(value)
        if str(correlative) != text:
            raise InvalidCorrelativeError(text, "not in canonical form")
        return correlative


@dataclass(frozen=True, slots=True, order=True)
class Correlative:
    """
    An allocated receipt number.

    Ordering follows ``value``; the canonical string form is the key under
    which the artifact and the ledger row are stored.
    """

    value: int
    prefix: str = "R-"
    width: int = 5

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise ValueError("value must be an int.")
        if self.value < 1:
            raise ValueError("value must be >= 1.")

    @property
    def canonical(self) -> str:
        return f"{self.prefix}{str(self.value).zfill(self.width)}"

    def next(self) -> Correlative:
        """The correlative that follows this one under the same format."""
        return Correlative(value=self.value + 1, prefix=self.prefix, width=self.width)

    def __str__(self) -> str:
        return self.canonical

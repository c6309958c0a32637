"""
Radix model: fixed-base little-endian digit sequences.

The canonical base is 96 = 4 x 3 x 8. Any base b >= 2 is accepted; the
F4-compatible family b = 4 x 3 x k (k a power of two) is what the orbit
generators in ``orbit_structure`` are designed for.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Sequence, Tuple

from .errors import HCFConfigError, HCFInputError

CANONICAL_BASE = 96


def _is_power_of_two(x: int) -> bool:
    return x > 0 and (x & (x - 1)) == 0


@dataclass(frozen=True)
class RadixBase:
    """Immutable base descriptor ``{b}``."""

    b: int

    def __post_init__(self) -> None:
        if isinstance(self.b, bool) or not isinstance(self.b, int):
            raise HCFConfigError(f"base must be int, got {type(self.b).__name__}")
        if self.b < 2:
            raise HCFConfigError(f"base must be >= 2, got {self.b}")

    @property
    def is_f4_compatible(self) -> bool:
        """b = 4 * 3 * k with k a power of two."""
        return self.b % 12 == 0 and _is_power_of_two(self.b // 12)

    @property
    def context_size(self) -> int:
        """k in b = 4 * 3 * k; 0 when b is not a multiple of 12."""
        return self.b // 12 if self.b % 12 == 0 else 0

    def encode(self, n: int) -> Tuple[int, ...]:
        """Little-endian digits of n; ``encode(0) == (0,)``."""
        if isinstance(n, bool) or not isinstance(n, int):
            raise HCFInputError(f"can only encode int, got {type(n).__name__}")
        if n < 0:
            raise HCFInputError(f"can only encode non-negative integers, got {n}")
        if n == 0:
            return (0,)
        b = self.b
        digits = []
        while n > 0:
            n, r = divmod(n, b)
            digits.append(int(r))
        return tuple(digits)

    def decode(self, digits: Sequence[int]) -> int:
        """Horner reconstruction of sum(digit[i] * b^i)."""
        b = self.b
        result = 0
        for d in reversed(tuple(digits)):
            d = int(d)
            if d < 0 or d >= b:
                raise HCFInputError(f"digit {d} outside [0, {b})")
            result = result * b + d
        return result

    def to_dict(self) -> Dict[str, int]:
        return {
            "b": int(self.b),
            "f4_compatible": int(self.is_f4_compatible),
            "context_size": int(self.context_size),
        }


def to_digits(n: int, b: int = CANONICAL_BASE) -> Tuple[int, ...]:
    return RadixBase(b).encode(n)


def from_digits(digits: Sequence[int], b: int = CANONICAL_BASE) -> int:
    return RadixBase(b).decode(digits)


def digit_levels(bits: int, b: int = CANONICAL_BASE) -> int:
    """Levels (base-b digits) needed for a ``bits``-bit integer: ceil(bits / log2 b)."""
    if not isinstance(bits, int) or bits < 1:
        raise HCFInputError(f"bits must be positive int, got {bits!r}")
    RadixBase(b)
    return int(math.ceil(bits / math.log2(b)))

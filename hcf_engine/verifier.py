"""Terminal check: decode both digit sequences and multiply exactly."""

from __future__ import annotations

from typing import Optional, Tuple

from .candidate import Candidate
from .radix import RadixBase


def reconstruct_factors(candidate: Candidate, radix: RadixBase) -> Tuple[int, int]:
    return radix.decode(candidate.p_digits), radix.decode(candidate.q_digits)


def verify(candidate: Candidate, target: int, radix: RadixBase) -> bool:
    p, q = reconstruct_factors(candidate, radix)
    return p * q == target


def verified_factors(
    candidate: Candidate,
    target: int,
    radix: RadixBase,
    *,
    nontrivial: bool = True,
) -> Optional[Tuple[int, int]]:
    """
    Factors of a verified candidate, else None.

    ``nontrivial`` additionally rejects 1 x target; the product check itself
    is unchanged.
    """
    p, q = reconstruct_factors(candidate, radix)
    if p * q != target:
        return None
    if nontrivial and (p == 1 or q == 1):
        return None
    return p, q

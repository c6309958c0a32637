"""
Back-of-envelope scaling model for the level-by-level search.

  levels        = ceil(bits / log2 b)
  naive space   = (phi(b) + 1) ** levels          (zero padding + residues)
  pruned space  = naive * survival                (survival applied once)
  seconds       = pruned * OPS_PER_CANDIDATE / OPS_PER_SECOND

Everything is carried in log10 so 4096-bit inputs never overflow a float.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List

from .errors import HCFConfigError
from .orbit_structure import prime_residues
from .radix import CANONICAL_BASE, digit_levels

OPS_PER_SECOND = 1e9
OPS_PER_CANDIDATE = 1000
DEFAULT_SURVIVAL = 0.01

_MINUTE = 60.0
_DAY = 86400.0
_YEAR = 31536000.0

# RSA challenge constant used for the negative (does-not-factor) scenario.
RSA_260 = int(
    "22112825529529666435281085255026230927612089502470015394413748319128822941"
    "40664981690295237907262606923835005442126672024101081373265533949103140104"
    "79986355004909667574335445914062447660959059726047157828579880484167499097"
    "3422287179817183286845865799508538793815835042257"
)


def classify_feasibility(log10_seconds: float) -> str:
    if log10_seconds < math.log10(_MINUTE):
        return "trivial"
    if log10_seconds < math.log10(_DAY):
        return "practical"
    if log10_seconds < math.log10(100 * _YEAR):
        return "challenging"
    return "intractable"


def format_duration(log10_seconds: float) -> str:
    if log10_seconds > 15:
        return f"10^{log10_seconds:.0f} seconds"
    seconds = 10.0 ** log10_seconds
    if seconds < 1:
        return f"{seconds * 1000:.2f} ms"
    if seconds < _MINUTE:
        return f"{seconds:.2f} seconds"
    if seconds < 3600:
        return f"{seconds / _MINUTE:.2f} minutes"
    if seconds < _DAY:
        return f"{seconds / 3600:.2f} hours"
    if seconds < _YEAR:
        return f"{seconds / _DAY:.2f} days"
    return f"{seconds / _YEAR:.2f} years"


@dataclass(frozen=True)
class ScalingEstimate:
    bits: int
    base: int
    levels: int
    digit_choices: int
    survival: float
    log10_naive: float
    log10_pruned: float
    log10_seconds: float
    feasibility: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "bits": self.bits,
            "base": self.base,
            "levels": self.levels,
            "digit_choices": self.digit_choices,
            "survival": self.survival,
            "log10_naive": round(self.log10_naive, 3),
            "log10_pruned": round(self.log10_pruned, 3),
            "estimated_time": format_duration(self.log10_seconds),
            "feasibility": self.feasibility,
        }


def analyze_scaling(
    bits: int,
    base: int = CANONICAL_BASE,
    survival: float = DEFAULT_SURVIVAL,
) -> ScalingEstimate:
    if isinstance(bits, bool) or not isinstance(bits, int) or bits < 1:
        raise HCFConfigError(f"bits must be int >= 1, got {bits!r}")
    if not 0.0 < survival <= 1.0:
        raise HCFConfigError(f"survival must be in (0, 1], got {survival!r}")
    levels = digit_levels(bits, base)
    choices = len(prime_residues(base)) + 1
    log_naive = levels * math.log10(choices)
    # a search always touches at least one candidate
    log_pruned = max(0.0, log_naive + math.log10(survival))
    log_seconds = log_pruned + math.log10(OPS_PER_CANDIDATE) - math.log10(OPS_PER_SECOND)
    return ScalingEstimate(
        bits=bits,
        base=base,
        levels=levels,
        digit_choices=choices,
        survival=float(survival),
        log10_naive=log_naive,
        log10_pruned=log_pruned,
        log10_seconds=log_seconds,
        feasibility=classify_feasibility(log_seconds),
    )


def scaling_table(
    bit_lengths: Iterable[int],
    base: int = CANONICAL_BASE,
    survival: float = DEFAULT_SURVIVAL,
) -> List[ScalingEstimate]:
    return [analyze_scaling(b, base, survival) for b in bit_lengths]

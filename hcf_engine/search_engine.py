"""
Level-by-level constrained factorization search.

Pipeline per digit level i (target digit d, candidate c with carry_in):

  1. split     - enumerate (p_i, q_i) in ({0} U R)^2 whose cross-term sum
                 sum_{j+k=i} p_j q_k + carry_in is congruent to d mod b
  2. evaluate  - keep pairs admitted by the constraint table lookup
                 (d, p_i, q_i[, carry_in]); zero digits always pass
  3. merge     - extend c by one digit each, carry = floor(sum / b)

The union of children goes through a BoundedBeam. When the beam overflows the
search becomes a heuristic beam search: the true factorization can be pruned.
Results report this with ``pruned=True``; it is never silent.

Redlines:
  - Tables are immutable value objects built once and passed in; nothing here
    mutates them (the carry cache and belt memory are lock-guarded).
  - Candidate order is deterministic for any worker count.
"""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .belt_memory import BeltMemory
from .candidate import Branch, Candidate
from .config import HCFConfig
from .constraint_table import CarryConstraintTable, ConstraintTable
from .errors import HCFConfigError, HCFInputError
from .orbit_structure import OrbitStructure, build_orbit_structure
from .radix import RadixBase
from .scoring import BoundedBeam, CandidateScorer, make_scorer
from .verifier import verified_factors

_logger = logging.getLogger(__name__)

# Trial terms p_i*q_0 + p_0*q_i + (fixed mod b) stay below 2*(b-1)^2 + b.
_INT64_SAFE = 2 ** 62


# =============================================================================
# Pipeline steps
# =============================================================================


def _fixed_sum(level: int, candidate: Candidate) -> int:
    """carry_in plus the cross terms that use only already-fixed digits."""
    p, q = candidate.p_digits, candidate.q_digits
    total = int(candidate.carry)
    for j in range(1, level):
        total += p[j] * q[level - j]
    return total


def split_branches(
    level: int,
    digit: int,
    candidate: Candidate,
    choices: Sequence[int],
    base: int,
) -> List[Branch]:
    """All (p_i, q_i, new_carry) meeting the level-i digit congruence, p-major."""
    if candidate.level != level:
        raise HCFInputError(f"candidate at level {candidate.level} split at level {level}")
    fixed = _fixed_sum(level, candidate)
    fixed_hi, fixed_lo = divmod(fixed, base)
    p0 = candidate.p_digits[0] if level else 0
    q0 = candidate.q_digits[0] if level else 0

    if 2 * (base - 1) ** 2 + base >= _INT64_SAFE:
        out: List[Branch] = []
        for pi in choices:
            for qi in choices:
                trial = pi * qi if level == 0 else pi * q0 + p0 * qi
                s = trial + fixed_lo
                if s % base == digit:
                    out.append(Branch(pi, qi, fixed_hi + s // base))
        return out

    c = np.asarray(choices, dtype=np.int64)
    if level == 0:
        s = np.multiply.outer(c, c)
    else:
        s = c[:, None] * int(q0) + int(p0) * c[None, :]
    s = s + fixed_lo
    rows, cols = np.nonzero(s % base == digit)
    carries = s[rows, cols] // base
    return [
        Branch(int(c[r]), int(c[k]), fixed_hi + int(cy))
        for r, k, cy in zip(rows.tolist(), cols.tolist(), carries.tolist())
    ]


def evaluate_branches(
    branches: Sequence[Branch],
    digit: int,
    carry_in: int,
    table: ConstraintTable,
    carry_table: Optional[CarryConstraintTable] = None,
) -> List[Branch]:
    if carry_table is not None:
        return [br for br in branches if carry_table.lookup(digit, br.p, br.q, carry_in)]
    return [br for br in branches if table.lookup(digit, br.p, br.q)]


def merge_branches(candidate: Candidate, branches: Sequence[Branch]) -> List[Candidate]:
    return [candidate.extend(br.p, br.q, br.new_carry) for br in branches]


# =============================================================================
# Results
# =============================================================================


class SearchStatus(str, Enum):
    FOUND = "found"
    EXHAUSTED = "exhausted"
    NO_MATCH = "no_match"
    LEVEL_CAP = "level_cap"


@dataclass(frozen=True)
class LevelStats:
    level: int
    digit: int
    candidates_in: int
    branches_split: int
    branches_kept: int
    candidates_out: int
    beam_width: int
    evicted: int
    shared: int = 0

    @property
    def violation_rate(self) -> float:
        if not self.branches_split:
            return 0.0
        return 1.0 - self.branches_kept / self.branches_split

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level,
            "digit": self.digit,
            "candidates_in": self.candidates_in,
            "branches_split": self.branches_split,
            "branches_kept": self.branches_kept,
            "candidates_out": self.candidates_out,
            "violation_rate": self.violation_rate,
            "beam_width": self.beam_width,
            "evicted": self.evicted,
            "shared": self.shared,
        }


@dataclass(frozen=True)
class FactorizationResult:
    target: int
    status: SearchStatus
    factors: Optional[Tuple[int, int]]
    pruned: bool
    levels_completed: int
    target_levels: int
    level_stats: Tuple[LevelStats, ...] = ()
    total_generated: int = 0
    total_pruned: int = 0
    elapsed_ms: float = 0.0
    belt_stats: Optional[Dict[str, float]] = None
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is SearchStatus.FOUND

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": str(self.target),
            "status": self.status.value,
            "factors": None if self.factors is None else [str(x) for x in self.factors],
            "pruned": self.pruned,
            "levels_completed": self.levels_completed,
            "target_levels": self.target_levels,
            "total_generated": self.total_generated,
            "total_pruned": self.total_pruned,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "belt_stats": self.belt_stats,
            "levels": [s.to_dict() for s in self.level_stats],
            "config": dict(self.config),
        }


# =============================================================================
# Engine
# =============================================================================


def adaptive_beam_width(base_width: int, violation_rate: float, lo: int, hi: int) -> int:
    """Widen the beam when most branches fail the table, narrow it otherwise."""
    width = base_width + int(math.floor((violation_rate - 0.5) * base_width))
    return max(lo, min(hi, width))


class HierarchicalFactorizer:
    """
    Owns one immutable (structure, table) pair and runs searches against it.

    Prebuilt ``structure`` / ``table`` may be supplied to share them between
    engines; they must match the configured base and seed.
    """

    def __init__(
        self,
        config: Optional[HCFConfig] = None,
        *,
        structure: Optional[OrbitStructure] = None,
        table: Optional[ConstraintTable] = None,
        scorer: Optional[CandidateScorer] = None,
    ) -> None:
        self.config = config if config is not None else HCFConfig()
        cfg = self.config
        if table is not None and structure is None:
            structure = table.structure
        if structure is None:
            structure = build_orbit_structure(cfg.base, seed=cfg.seed)
        if structure.base != cfg.base:
            raise HCFConfigError(f"structure base {structure.base} != configured base {cfg.base}")
        if structure.seed != cfg.seed % cfg.base:
            raise HCFConfigError(f"structure seed {structure.seed} != configured seed {cfg.seed % cfg.base}")
        if table is None:
            table = ConstraintTable.build(structure, cfg.epsilon)
        if table.structure is not structure and table.structure != structure:
            raise HCFConfigError("constraint table was built for a different orbit structure")
        if table.epsilon != cfg.epsilon:
            raise HCFConfigError(f"table epsilon {table.epsilon} != configured epsilon {cfg.epsilon}")
        self.structure = structure
        self.table = table
        self.radix: RadixBase = structure.radix
        self.carry_table = CarryConstraintTable(table, cfg.max_carry) if cfg.use_carry_table else None
        self.scorer = scorer if scorer is not None else make_scorer(cfg.scoring, structure, cfg.epsilon)
        self._choices = structure.digit_choices

    def _expand(self, level: int, digit: int, candidate: Candidate) -> Tuple[List[Candidate], int, int]:
        split = split_branches(level, digit, candidate, self._choices, self.radix.b)
        kept = evaluate_branches(split, digit, candidate.carry, self.table, self.carry_table)
        return merge_branches(candidate, kept), len(split), len(kept)

    def factor(self, n: int, max_levels: Optional[int] = None) -> FactorizationResult:
        if isinstance(n, bool) or not isinstance(n, int):
            raise HCFInputError(f"target must be int, got {type(n).__name__}")
        if n < 2:
            raise HCFInputError(f"target must be >= 2, got {n}")
        cfg = self.config
        cap = max_levels if max_levels is not None else cfg.max_levels
        if cap is not None and (isinstance(cap, bool) or not isinstance(cap, int) or cap < 1):
            raise HCFConfigError(f"max_levels must be int >= 1, got {cap!r}")

        t0 = time.perf_counter()
        digits = self.radix.encode(n)
        target_levels = len(digits)
        stop_at = target_levels if cap is None else min(cap, target_levels)
        belt = BeltMemory() if cfg.use_belt_memory else None

        _logger.info(
            "factor: n has %d bits, %d base-%d digits, eps=%d, beam=%d, scoring=%s, workers=%d",
            n.bit_length(), target_levels, self.radix.b, cfg.epsilon, cfg.beam_width, cfg.scoring, cfg.workers,
        )

        candidates: List[Candidate] = [Candidate.root()]
        stats: List[LevelStats] = []
        pruned = False
        total_generated = 0
        total_pruned = 0
        width = cfg.beam_width
        level = 0

        executor = ThreadPoolExecutor(max_workers=cfg.workers) if cfg.workers > 1 else None
        try:
            while level < stop_at:
                digit = digits[level]
                if executor is not None:
                    expanded = list(executor.map(lambda c, _l=level, _d=digit: self._expand(_l, _d, c), candidates))
                else:
                    expanded = [self._expand(level, digit, c) for c in candidates]

                beam = BoundedBeam(width, self.scorer)
                allocated: List[Candidate] = []
                shared = 0
                n_split = 0
                n_kept = 0
                for children, s, k in expanded:
                    n_split += s
                    n_kept += k
                    for child in children:
                        if belt is not None:
                            canonical, was_shared = belt.allocate(child)
                            if was_shared:
                                shared += 1
                                continue
                            allocated.append(canonical)
                            child = canonical
                        beam.offer(child)
                next_candidates = beam.drain()

                if belt is not None:
                    survivors = {id(c) for c in next_candidates}
                    for c in allocated:
                        if id(c) not in survivors:
                            belt.release(c)
                    for c in candidates:
                        belt.release(c)

                row = LevelStats(
                    level=level,
                    digit=digit,
                    candidates_in=len(candidates),
                    branches_split=n_split,
                    branches_kept=n_kept,
                    candidates_out=len(next_candidates),
                    beam_width=width,
                    evicted=beam.evicted,
                    shared=shared,
                )
                stats.append(row)
                total_generated += beam.offered
                total_pruned += beam.evicted
                _logger.debug(
                    "level %d digit=%d: %d -> %d candidates (split=%d kept=%d violation=%.3f shared=%d)",
                    level, digit, row.candidates_in, row.candidates_out, n_split, n_kept, row.violation_rate, shared,
                )
                if beam.overflowed:
                    pruned = True
                    _logger.warning(
                        "level %d: beam overflow, %d of %d candidates discarded by %s scoring (search is now lossy)",
                        level, beam.evicted, beam.offered, self.scorer.name,
                    )

                candidates = next_candidates
                level += 1
                if not candidates:
                    break
                if cfg.adaptive_beam:
                    width = adaptive_beam_width(cfg.beam_width, row.violation_rate, cfg.min_beam_width, cfg.max_beam_width)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        factors: Optional[Tuple[int, int]] = None
        if not candidates:
            status = SearchStatus.EXHAUSTED
        else:
            for c in candidates:
                factors = verified_factors(c, n, self.radix, nontrivial=cfg.nontrivial_only)
                if factors is not None:
                    break
            if factors is not None:
                status = SearchStatus.FOUND
            elif level < target_levels:
                status = SearchStatus.LEVEL_CAP
            else:
                status = SearchStatus.NO_MATCH

        elapsed_ms = (time.perf_counter() - t0) * 1000.0
        result = FactorizationResult(
            target=n,
            status=status,
            factors=factors,
            pruned=pruned,
            levels_completed=level,
            target_levels=target_levels,
            level_stats=tuple(stats),
            total_generated=total_generated,
            total_pruned=total_pruned,
            elapsed_ms=elapsed_ms,
            belt_stats=belt.stats() if belt is not None else None,
            config=cfg.to_dict(),
        )
        _logger.info(
            "factor: %s after %d/%d levels (%d generated, %d pruned, %.1f ms)%s",
            status.value, level, target_levels, total_generated, total_pruned, elapsed_ms,
            f" -> {factors[0]} x {factors[1]}" if factors else "",
        )
        return result


def factor_semiprime(n: int, config: Optional[HCFConfig] = None, **overrides: Any) -> FactorizationResult:
    cfg = config if config is not None else HCFConfig()
    if overrides:
        cfg = cfg.replace(**overrides)
    return HierarchicalFactorizer(cfg).factor(n)

"""
Candidate scoring strategies and the bounded beam.

All scorers are empirical heuristics tuned on small test semiprimes; none is a
cost model. Beam selection with any of them is lossy: it can discard the true
factorization.
"""

from __future__ import annotations

import heapq
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple, Type

import numpy as np

from .candidate import Candidate
from .errors import HCFConfigError
from .orbit_structure import OrbitStructure, complexity_table


class CandidateScorer(ABC):
    """Higher score = kept first when the beam overflows."""

    name: str = "abstract"

    def __init__(self, structure: OrbitStructure, epsilon: int) -> None:
        self.structure = structure
        self.epsilon = int(epsilon)

    @abstractmethod
    def score(self, candidate: Candidate) -> float:
        raise NotImplementedError


class OrbitDistanceScorer(CandidateScorer):
    """Prefer low average orbit distance over non-zero digits."""

    name = "orbit_distance"

    def score(self, candidate: Candidate) -> float:
        total = 0
        count = 0
        for x in candidate.p_digits + candidate.q_digits:
            if x != 0:
                total += self.structure.distance(x)
                count += 1
        avg = total / count if count else 0.0
        return 1.0 / (1.0 + avg * 0.1)


class ConstraintSatisfactionScorer(CandidateScorer):
    """Share of digit pairs meeting orbit closure, plus a small margin bonus."""

    name = "constraint_satisfaction"

    def score(self, candidate: Candidate) -> float:
        s = self.structure
        b = s.base
        satisfied = 0
        checked = 0
        margin_sum = 0
        for p, q in zip(candidate.p_digits, candidate.q_digits):
            if p == 0 or q == 0:
                continue
            checked += 1
            margin = s.distance(p) + s.distance(q) + self.epsilon - s.distance(p * q % b)
            if margin >= 0:
                satisfied += 1
                margin_sum += margin
        if not checked:
            return 1.0
        bonus = 0.01 * margin_sum / satisfied if satisfied else 0.0
        return satisfied / checked + bonus


class HybridScorer(CandidateScorer):
    """0.7 constraint satisfaction + 0.3 orbit distance."""

    name = "hybrid"

    def __init__(self, structure: OrbitStructure, epsilon: int) -> None:
        super().__init__(structure, epsilon)
        self._constraint = ConstraintSatisfactionScorer(structure, epsilon)
        self._orbit = OrbitDistanceScorer(structure, epsilon)

    def score(self, candidate: Candidate) -> float:
        return 0.7 * self._constraint.score(candidate) + 0.3 * self._orbit.score(candidate)


class EigenspaceScorer(CandidateScorer):
    """
    Eigenspace consistency: running averages of class complexity and orbit
    distance compared with the targets 24 and 6.5.
    """

    name = "eigenspace"
    TARGET_COMPLEXITY = 24.0
    TARGET_ORBIT = 6.5

    def __init__(self, structure: OrbitStructure, epsilon: int) -> None:
        super().__init__(structure, epsilon)
        self._complexity = complexity_table(structure)

    def score(self, candidate: Candidate) -> float:
        if candidate.level == 0:
            return 1.0
        digits = np.asarray(candidate.p_digits + candidate.q_digits, dtype=np.int64)
        avg_complexity = float(self._complexity[digits].mean())
        avg_orbit = float(self.structure.distances[digits].mean())
        err = abs(avg_complexity - self.TARGET_COMPLEXITY) + abs(avg_orbit - self.TARGET_ORBIT)
        return 1.0 / (1.0 + err)


SCORERS: Dict[str, Type[CandidateScorer]] = {
    cls.name: cls
    for cls in (OrbitDistanceScorer, ConstraintSatisfactionScorer, HybridScorer, EigenspaceScorer)
}


def make_scorer(name: str, structure: OrbitStructure, epsilon: int) -> CandidateScorer:
    try:
        cls = SCORERS[name]
    except KeyError:
        raise HCFConfigError(f"unknown scoring strategy {name!r}; expected one of {sorted(SCORERS)}") from None
    return cls(structure, epsilon)


# =============================================================================
# Bounded beam
# =============================================================================


class BoundedBeam:
    """
    Keep at most ``capacity`` candidates.

    Until the capacity is exceeded candidates are kept in arrival order and
    never scored. On overflow everything is scored into a min-heap keyed by
    (score, -arrival) so each further offer costs O(log N) and, among equal
    scores, the earliest arrivals survive.
    """

    def __init__(self, capacity: int, scorer: CandidateScorer) -> None:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise HCFConfigError(f"beam capacity must be int >= 1, got {capacity!r}")
        self.capacity = capacity
        self.scorer = scorer
        self._offered = 0
        self._evicted = 0
        self._items: List[Tuple[int, Candidate]] = []
        self._heap: Optional[List[Tuple[float, int, Candidate]]] = None

    @property
    def offered(self) -> int:
        return self._offered

    @property
    def evicted(self) -> int:
        return self._evicted

    @property
    def overflowed(self) -> bool:
        return self._heap is not None

    def __len__(self) -> int:
        return len(self._items) if self._heap is None else len(self._heap)

    def offer(self, candidate: Candidate) -> None:
        self._offered += 1
        seq = self._offered
        if self._heap is None:
            self._items.append((seq, candidate))
            if len(self._items) > self.capacity:
                self._heap = [(self.scorer.score(c), -s, c) for s, c in self._items]
                self._items = []
                heapq.heapify(self._heap)
                while len(self._heap) > self.capacity:
                    heapq.heappop(self._heap)
                    self._evicted += 1
            return
        entry = (self.scorer.score(candidate), -seq, candidate)
        if len(self._heap) < self.capacity:
            heapq.heappush(self._heap, entry)
        else:
            heapq.heappushpop(self._heap, entry)
            self._evicted += 1

    def drain(self) -> List[Candidate]:
        if self._heap is None:
            return [c for _, c in self._items]
        ranked = sorted(self._heap, key=lambda e: (-e[0], -e[1]))
        return [c for _, _, c in ranked]

"""
Residue / orbit structure of Z_b.

  1. prime_residues      - multiplicative units mod b (size phi(b))
  2. atlas_generators    - Rotate / Triality / Twist / Mirror on c = 3k*h2 + k*d + l
  3. orbit_distances     - BFS hop count from the seed class (canonical 37)
  4. OrbitStructure      - immutable bundle consumed by the constraint table

Redlines:
  - Generator images must stay inside [0, b) (checked, not assumed).
  - A seed that does not reach the residue set is a configuration error, not a
    degenerate table.
  - Epsilon is never derived here implicitly; ``empirical_epsilon`` is a
    diagnostic scan only.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import breadth_first_order

from .errors import HCFConfigError
from .radix import CANONICAL_BASE, RadixBase

_logger = logging.getLogger(__name__)

CANONICAL_SEED = 37
SENTINEL_DISTANCE = 999


def prime_residues(b: int) -> Tuple[int, ...]:
    """Units of Z_b in ascending order."""
    RadixBase(b)
    return tuple(i for i in range(1, b) if math.gcd(i, b) == 1)


# =============================================================================
# Generators
# =============================================================================


@dataclass(frozen=True)
class Generator:
    """A deterministic map g: Z_b -> Z_b with a nominal order."""

    name: str
    order: int
    fn: Callable[[int], int] = field(compare=False, repr=False)

    def __call__(self, c: int) -> int:
        return int(self.fn(int(c)))


def _atlas_coordinates(c: int, k: int) -> Tuple[int, int, int]:
    h2, rest = divmod(c, 3 * k)
    d, ell = divmod(rest, k)
    return h2, d, ell


def atlas_generators(b: int) -> Tuple[Generator, ...]:
    """
    Rotate / Triality / Twist / Mirror for b = 4 * 3 * k.

    A class decomposes as c = 3k*h2 + k*d + l with h2 in Z_4, d in Z_3, l in Z_k:
      R: h2 -> h2 + 1 (order 4)
      D: d  -> d + 1  (order 3)
      T: l  -> l + 1  (order k; 8 for b = 96)
      M: d  -> -d     (order 2)
    """
    RadixBase(b)
    if b % 12 != 0:
        raise HCFConfigError(f"atlas generators need b = 4*3*k, got b={b}")
    k = b // 12

    def compose(h2: int, d: int, ell: int) -> int:
        return 3 * k * h2 + k * d + ell

    def rotate(c: int) -> int:
        h2, d, ell = _atlas_coordinates(c % b, k)
        return compose((h2 + 1) % 4, d, ell)

    def triality(c: int) -> int:
        h2, d, ell = _atlas_coordinates(c % b, k)
        return compose(h2, (d + 1) % 3, ell)

    def twist(c: int) -> int:
        h2, d, ell = _atlas_coordinates(c % b, k)
        return compose(h2, d, (ell + 1) % k)

    def mirror(c: int) -> int:
        h2, d, ell = _atlas_coordinates(c % b, k)
        return compose(h2, (3 - d) % 3, ell)

    return (
        Generator("R", 4, rotate),
        Generator("D", 3, triality),
        Generator("T", k, twist),
        Generator("M", 2, mirror),
    )


def projected_atlas_generators(b: int) -> Tuple[Generator, ...]:
    """Base-96 Atlas maps applied to c mod 96, reduced mod b (non-F4 bases)."""
    RadixBase(b)
    canonical = atlas_generators(CANONICAL_BASE)

    def project(g: Generator) -> Generator:
        return Generator(g.name, g.order, lambda c, _g=g: _g(c % CANONICAL_BASE) % b)

    return tuple(project(g) for g in canonical)


def default_generators(b: int) -> Tuple[Generator, ...]:
    if b % 12 == 0:
        return atlas_generators(b)
    _logger.warning("base %d is not a multiple of 12; using projected base-96 generators", b)
    return projected_atlas_generators(b)


# =============================================================================
# BFS orbit distances
# =============================================================================


def orbit_distances(b: int, generators: Sequence[Generator], seed: int) -> List[int]:
    """
    Breadth-first hop count from ``seed mod b`` under ``generators``.

    Classes never reached get SENTINEL_DISTANCE.
    """
    RadixBase(b)
    if not generators:
        raise HCFConfigError("generator set is empty")
    unset = -1
    distances = [unset] * b
    start = int(seed) % b
    distances[start] = 0
    queue = deque([start])
    while queue:
        current = queue.popleft()
        for g in generators:
            image = g(current % b)
            if image < 0 or image >= b:
                raise HCFConfigError(f"generator {g.name} maps {current} to {image}, outside [0, {b})")
            if distances[image] == unset:
                distances[image] = distances[current] + 1
                queue.append(image)
    return [SENTINEL_DISTANCE if x == unset else x for x in distances]


def generator_graph(b: int, generators: Sequence[Generator]) -> csr_matrix:
    """Directed adjacency c -> g(c) as a sparse matrix."""
    rows: List[int] = []
    cols: List[int] = []
    for c in range(b):
        for g in generators:
            rows.append(c)
            cols.append(g(c))
    data = np.ones(len(rows), dtype=np.int8)
    return csr_matrix((data, (rows, cols)), shape=(b, b))


def _reachable_from(b: int, generators: Sequence[Generator], seed: int) -> np.ndarray:
    order = breadth_first_order(generator_graph(b, generators), int(seed) % b, directed=True, return_predecessors=False)
    return np.sort(np.asarray(order, dtype=np.int64))


# =============================================================================
# Structure bundle
# =============================================================================


@dataclass(frozen=True)
class OrbitStructure:
    """
    Residue set + orbit distance table for one base.

      - radix: base descriptor
      - seed: BFS root (canonical 37 mod b)
      - residues: units of Z_b, ascending
      - distances: read-only int64 vector of length b
    """

    radix: RadixBase
    seed: int
    residues: Tuple[int, ...]
    distances: np.ndarray = field(compare=False, repr=False)
    generator_names: Tuple[str, ...] = ()

    VERSION = "hcf.orbit_structure.v1"

    @property
    def base(self) -> int:
        return self.radix.b

    @property
    def digit_choices(self) -> Tuple[int, ...]:
        """Zero padding followed by the residues."""
        return (0,) + self.residues

    def distance(self, c: int) -> int:
        return int(self.distances[int(c) % self.base])

    def is_residue(self, c: int) -> bool:
        return 0 < c < self.base and math.gcd(int(c), self.base) == 1

    @property
    def unreachable(self) -> Tuple[int, ...]:
        return tuple(int(i) for i in np.nonzero(self.distances == SENTINEL_DISTANCE)[0])

    @property
    def diameter(self) -> int:
        finite = self.distances[self.distances != SENTINEL_DISTANCE]
        return int(finite.max()) if finite.size else 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "version": self.VERSION,
            "base": int(self.base),
            "seed": int(self.seed),
            "phi": len(self.residues),
            "generators": list(self.generator_names),
            "diameter": self.diameter,
            "unreachable": len(self.unreachable),
        }


def build_orbit_structure(
    base: int = CANONICAL_BASE,
    *,
    seed: int = CANONICAL_SEED,
    generators: Optional[Sequence[Generator]] = None,
    require_connected: bool = True,
) -> OrbitStructure:
    radix = RadixBase(base)
    b = radix.b
    gens = tuple(generators) if generators is not None else default_generators(b)
    residues = prime_residues(b)
    dist = orbit_distances(b, gens, seed)

    finite = np.array([i for i, x in enumerate(dist) if x != SENTINEL_DISTANCE], dtype=np.int64)
    reached = _reachable_from(b, gens, seed)
    if not np.array_equal(finite, reached):
        raise HCFConfigError(
            f"BFS reachability disagrees with generator graph for base {b} "
            f"({finite.size} vs {reached.size} classes)"
        )

    missing = [r for r in residues if dist[r] == SENTINEL_DISTANCE]
    if missing and require_connected:
        raise HCFConfigError(
            f"seed {seed % b} does not reach {len(missing)}/{len(residues)} residues of Z_{b} "
            f"(first: {missing[:8]}); generator set is not connected"
        )
    if missing:
        _logger.warning("base %d: %d residues unreachable from seed %d", b, len(missing), seed % b)

    arr = np.asarray(dist, dtype=np.int64)
    arr.setflags(write=False)
    structure = OrbitStructure(
        radix=radix,
        seed=int(seed) % b,
        residues=residues,
        distances=arr,
        generator_names=tuple(g.name for g in gens),
    )
    _logger.debug("orbit structure: %s", structure.to_dict())
    return structure


# =============================================================================
# Diagnostics
# =============================================================================


def _unit_pairs(structure: OrbitStructure) -> Iterable[Tuple[int, int]]:
    for p in structure.residues:
        for q in structure.residues:
            yield p, q


def closure_violations(structure: OrbitStructure) -> Dict[int, int]:
    """Histogram of dist(pq mod b) - dist(p) - dist(q) over unit pairs."""
    b = structure.base
    counts: Counter = Counter()
    for p, q in _unit_pairs(structure):
        v = structure.distance(p * q % b) - structure.distance(p) - structure.distance(q)
        counts[int(v)] += 1
    return dict(sorted(counts.items()))


def empirical_epsilon(structure: OrbitStructure) -> int:
    """Smallest epsilon admitting every unit pair (max violation, clamped at 0)."""
    hist = closure_violations(structure)
    return max(0, max(hist)) if hist else 0


def complexity_table(structure: OrbitStructure) -> np.ndarray:
    """Per-class complexity alpha*1 + beta*dist + gamma*dist with (10, 2, 5)."""
    alpha, beta, gamma = 10, 2, 5
    out = alpha + (beta + gamma) * structure.distances.astype(np.int64)
    out.setflags(write=False)
    return out

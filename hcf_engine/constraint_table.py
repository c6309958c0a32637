"""
Precomputed digit-pair admissibility tables.

3D table:
    valid(d, p, q) = (p*q mod b == d) and dist(pq) <= dist(p) + dist(q) + epsilon
stored as a read-only flat bool vector indexed by the packed key d*b^2 + p*b + q.

4D table (carry-aware, lazily populated):
    valid4(d, p, q, c) = ((p*q + c) mod b == d) and closure(p, q)
                         and floor((p*q + c) / b) <= max_carry

Zero digits are padding ("no digit here yet") and always pass.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from typing import Any, Dict

import numpy as np

from .errors import ConstraintDomainError, HCFConfigError
from .orbit_structure import OrbitStructure

_logger = logging.getLogger(__name__)


class ConstraintTable:
    """Immutable (d, p, q) -> bool table for one (structure, epsilon)."""

    VERSION = "hcf.constraint_table.v1"

    def __init__(self, structure: OrbitStructure, epsilon: int, bits: np.ndarray) -> None:
        b = structure.base
        if bits.dtype != np.bool_ or bits.shape != (b ** 3,):
            raise HCFConfigError(f"table vector must be bool[{b ** 3}], got {bits.dtype}{bits.shape}")
        bits.setflags(write=False)
        self.structure = structure
        self.epsilon = int(epsilon)
        self._bits = bits
        mask = np.zeros(b, dtype=np.bool_)
        mask[list(structure.residues)] = True
        mask.setflags(write=False)
        self._residue_mask = mask

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, structure: OrbitStructure, epsilon: int) -> "ConstraintTable":
        if isinstance(epsilon, bool) or not isinstance(epsilon, int) or epsilon < 0:
            raise HCFConfigError(f"epsilon must be int >= 0, got {epsilon!r}")
        b = structure.base
        res = np.asarray(structure.residues, dtype=np.int64)
        bits = np.zeros(b ** 3, dtype=np.bool_)
        if res.size:
            P, Q = np.meshgrid(res, res, indexing="ij")
            prod = (P * Q) % b
            dist = structure.distances
            ok = dist[prod] <= dist[P] + dist[Q] + int(epsilon)
            keys = prod * b * b + P * b + Q
            bits[keys[ok]] = True
        table = cls(structure, epsilon, bits)
        _logger.debug(
            "constraint table base=%d eps=%d: %d/%d admissible pairs",
            b, epsilon, table.valid_count, len(structure.residues) ** 2,
        )
        return table

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def base(self) -> int:
        return self.structure.base

    @property
    def bits(self) -> np.ndarray:
        return self._bits

    def key(self, d: int, p: int, q: int) -> int:
        b = self.base
        return (int(d) * b + int(p)) * b + int(q)

    def _check_domain(self, d: int, p: int, q: int) -> None:
        b = self.base
        if not 0 <= d < b:
            raise ConstraintDomainError(f"target digit {d} outside [0, {b})")
        for name, x in (("p", p), ("q", q)):
            if not 0 <= x < b or not self._residue_mask[x]:
                raise ConstraintDomainError(f"{name}={x} is not a residue of Z_{b}")

    def lookup(self, d: int, p: int, q: int) -> bool:
        if p == 0 or q == 0:
            return True
        self._check_domain(d, p, q)
        return bool(self._bits[self.key(d, p, q)])

    def closure_holds(self, p: int, q: int) -> bool:
        """Orbit-distance bound alone (no digit equality)."""
        self._check_domain(0, p, q)
        s = self.structure
        return s.distance(p * q % self.base) <= s.distance(p) + s.distance(q) + self.epsilon

    @property
    def valid_count(self) -> int:
        return int(np.count_nonzero(self._bits))

    @property
    def density(self) -> float:
        domain = self.base * len(self.structure.residues) ** 2
        return self.valid_count / domain if domain else 0.0

    def digest(self) -> str:
        h = hashlib.sha256()
        h.update(f"{self.VERSION}|{self.base}|{self.structure.seed}|{self.epsilon}|".encode("utf-8"))
        h.update(np.packbits(self._bits).tobytes())
        return h.hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "base": int(self.base),
            "seed": int(self.structure.seed),
            "epsilon": int(self.epsilon),
            "valid": self.valid_count,
            "density": self.density,
            "sha256": self.digest(),
        }


class CarryConstraintTable:
    """
    Carry-extended view over a ConstraintTable.

    Entries are computed on first use and cached; the cache is the only
    mutable state and is guarded by a lock so worker threads may share it.
    """

    VERSION = "hcf.carry_constraint_table.v1"

    def __init__(self, table: ConstraintTable, max_carry: int) -> None:
        if isinstance(max_carry, bool) or not isinstance(max_carry, int) or max_carry < 0:
            raise HCFConfigError(f"max_carry must be int >= 0, got {max_carry!r}")
        self.table = table
        self.max_carry = int(max_carry)
        self._cache: Dict[int, bool] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._early_rejections = 0

    @property
    def base(self) -> int:
        return self.table.base

    def _compute(self, d: int, p: int, q: int, carry: int) -> bool:
        # d is matched by p*q + carry; the orbit check is the distance bound on p*q alone
        b = self.base
        total = p * q + carry
        if total % b != d:
            return False
        if total // b > self.max_carry:
            return False
        return self.table.closure_holds(p, q)

    def lookup(self, d: int, p: int, q: int, carry: int) -> bool:
        if p == 0 or q == 0:
            return True
        if carry < 0:
            raise ConstraintDomainError(f"carry must be >= 0, got {carry}")
        if carry > self.max_carry:
            with self._lock:
                self._early_rejections += 1
            return False
        self.table._check_domain(d, p, q)
        key = self.table.key(d, p, q) * (self.max_carry + 1) + int(carry)
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None:
                self._hits += 1
                return hit
        value = self._compute(int(d), int(p), int(q), int(carry))
        with self._lock:
            self._cache.setdefault(key, value)
            self._misses += 1
        return value

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "max_carry": self.max_carry,
                "cached_entries": len(self._cache),
                "hits": self._hits,
                "misses": self._misses,
                "early_rejections": self._early_rejections,
            }

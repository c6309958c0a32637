"""
Content-addressed candidate store ("belt memory").

48 pages x 256 byte slots. A candidate with digits (p_0..p_{L-1}, q_0..q_{L-1})
occupies the addresses encode_belt_address(p_i, i) and encode_belt_address(q_i, i).
Identical candidates (same sha256 content digest) share one entry and are
reference counted; a release at count zero frees the slots that entry owns.

Redlines:
  - Sharing is keyed by the full sha256 digest; equality is probabilistic only
    in the sense that sha256 collisions are assumed not to occur.
  - Release of an unknown candidate is a no-op (already freed).
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .candidate import Candidate

PAGES = 48
BYTES_PER_PAGE = 256

# Rough per-candidate footprint used for the used/saved accounting.
_DIGIT_BYTES = 8
_ADDRESS_BYTES = 24
_OVERHEAD_BYTES = 32


@dataclass(frozen=True)
class BeltAddress:
    page: int
    byte: int
    cls: int


def encode_belt_address(cls: int, level: int) -> BeltAddress:
    return BeltAddress(page=level % PAGES, byte=(2 * cls + level) % BYTES_PER_PAGE, cls=int(cls))


def candidate_addresses(candidate: Candidate) -> Tuple[BeltAddress, ...]:
    out: List[BeltAddress] = []
    for i, (p, q) in enumerate(zip(candidate.p_digits, candidate.q_digits)):
        out.append(encode_belt_address(p, i))
        out.append(encode_belt_address(q, i))
    return tuple(out)


def _footprint(candidate: Candidate) -> int:
    n_digits = len(candidate.p_digits) + len(candidate.q_digits)
    return n_digits * _DIGIT_BYTES + n_digits * _ADDRESS_BYTES + _OVERHEAD_BYTES


class BeltMemory:
    """Reference-counted deduplicating store, safe to share across threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, Candidate] = {}
        self._refcounts: Dict[str, int] = {}
        # (page, byte) -> owning digest
        self._slots: Dict[Tuple[int, int], str] = {}
        self._allocations = 0
        self._unique = 0
        self._shared = 0
        self._bytes_used = 0
        self._bytes_saved = 0

    def allocate(self, candidate: Candidate) -> Tuple[Candidate, bool]:
        """Return (canonical candidate, was_shared)."""
        digest = candidate.digest
        with self._lock:
            self._allocations += 1
            existing = self._entries.get(digest)
            if existing is not None:
                self._refcounts[digest] += 1
                self._shared += 1
                self._bytes_saved += _footprint(candidate)
                return existing, True
            self._entries[digest] = candidate
            self._refcounts[digest] = 1
            self._unique += 1
            self._bytes_used += _footprint(candidate)
            for addr in candidate_addresses(candidate):
                self._slots.setdefault((addr.page, addr.byte), digest)
            return candidate, False

    def release(self, candidate: Candidate) -> None:
        digest = candidate.digest
        with self._lock:
            count = self._refcounts.get(digest)
            if count is None:
                return
            if count > 1:
                self._refcounts[digest] = count - 1
                return
            del self._refcounts[digest]
            del self._entries[digest]
            for addr in candidate_addresses(candidate):
                key = (addr.page, addr.byte)
                if self._slots.get(key) == digest:
                    del self._slots[key]

    def refcount(self, candidate: Candidate) -> int:
        with self._lock:
            return self._refcounts.get(candidate.digest, 0)

    def __contains__(self, candidate: Candidate) -> bool:
        with self._lock:
            return candidate.digest in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, float]:
        with self._lock:
            occupied = len(self._slots)
            return {
                "allocations": self._allocations,
                "unique": self._unique,
                "shared": self._shared,
                "live": len(self._entries),
                "hit_rate": self._shared / self._allocations if self._allocations else 0.0,
                "bytes_used": self._bytes_used,
                "bytes_saved": self._bytes_saved,
                "occupied_slots": occupied,
                "occupancy": occupied / (PAGES * BYTES_PER_PAGE),
            }

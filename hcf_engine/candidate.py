"""
Candidate state for the level-by-level search.

Candidates are immutable: a level transition produces new candidates, the
search is a tree.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from functools import cached_property
from typing import Any, Dict, NamedTuple, Tuple


class Branch(NamedTuple):
    """One split result: trial digits and the carry they produce."""

    p: int
    q: int
    new_carry: int


def _serialize(obj: Any) -> str:
    if isinstance(obj, bool):
        return "true" if obj else "false"
    if isinstance(obj, int):
        return f"int:{obj}"
    if isinstance(obj, str):
        return f"str:{obj}"
    if isinstance(obj, (list, tuple)):
        return f"list:[{','.join(_serialize(x) for x in obj)}]"
    if isinstance(obj, dict):
        items = sorted(obj.items(), key=lambda kv: str(kv[0]))
        return f"dict:{{{','.join(f'{_serialize(k)}:{_serialize(v)}' for k, v in items)}}}"
    raise TypeError(f"unsupported type in candidate digest: {type(obj).__name__}")


def sha256_of_dict(d: Dict[str, Any]) -> str:
    """Deterministic SHA-256 over ints / strings / sequences / dicts."""
    return hashlib.sha256(_serialize(d).encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class Candidate:
    """Partial factorization attempt: digits fixed for levels [0, level)."""

    p_digits: Tuple[int, ...] = ()
    q_digits: Tuple[int, ...] = ()
    carry: int = 0
    level: int = 0

    @classmethod
    def root(cls) -> "Candidate":
        return cls()

    def extend(self, p: int, q: int, carry: int) -> "Candidate":
        return Candidate(
            p_digits=self.p_digits + (int(p),),
            q_digits=self.q_digits + (int(q),),
            carry=int(carry),
            level=self.level + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "p": list(self.p_digits),
            "q": list(self.q_digits),
            "carry": int(self.carry),
            "level": int(self.level),
        }

    @cached_property
    def digest(self) -> str:
        """Content address used by the belt memory."""
        return sha256_of_dict(self.to_dict())

"""
Engine configuration.

All knobs live in one frozen dataclass. ``HCFConfig.from_env`` reads ``HCF_*``
environment variables with strict parsing:

Redlines:
  - No silent downgrade: a malformed env value raises HCFConfigError, it never
    falls back to the default.
  - Epsilon is always explicit configuration; it is never inferred from data.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .errors import HCFConfigError
from .orbit_structure import CANONICAL_SEED
from .radix import CANONICAL_BASE, RadixBase
from .scoring import SCORERS

DEFAULT_EPSILON = 10
DEFAULT_BEAM_WIDTH = 10000

_TRUE = ("1", "TRUE", "YES", "ON")
_FALSE = ("0", "FALSE", "NO", "OFF")


def _env_int(name: str, *, default: Optional[int]) -> Optional[int]:
    """Read an env var as int (base-10), strict."""
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return default
    try:
        return int(str(raw).strip(), 10)
    except ValueError as e:
        raise HCFConfigError(f"{name} must be an integer (base-10), got {raw!r}") from e


def _env_bool(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return bool(default)
    val = str(raw).strip().upper()
    if val in _TRUE:
        return True
    if val in _FALSE:
        return False
    raise HCFConfigError(f"{name} must be a boolean ({'/'.join(_TRUE + _FALSE)}), got {raw!r}")


def _env_strict_enum(name: str, *, allowed: Tuple[str, ...], default: str) -> str:
    """
    Read an env var as an enum-like string with strict validation.

    Redlines:
    - No silent downgrade: invalid values must raise (deployment/config error).
    """
    raw = os.getenv(name)
    if raw is None or not str(raw).strip():
        return str(default)
    val = str(raw).strip().lower()
    if val not in allowed:
        raise HCFConfigError(f"{name} must be one of {list(allowed)}, got {raw!r}")
    return val


def _require_int(name: str, value: Any, minimum: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise HCFConfigError(f"{name} must be int, got {type(value).__name__}")
    if value < minimum:
        raise HCFConfigError(f"{name} must be >= {minimum}, got {value}")


@dataclass(frozen=True)
class HCFConfig:
    base: int = CANONICAL_BASE
    epsilon: int = DEFAULT_EPSILON
    seed: int = CANONICAL_SEED
    max_levels: Optional[int] = None
    beam_width: int = DEFAULT_BEAM_WIDTH
    scoring: str = "eigenspace"
    adaptive_beam: bool = False
    min_beam_width: int = 10
    max_beam_width: int = 100000
    use_carry_table: bool = False
    max_carry: int = 10
    use_belt_memory: bool = False
    workers: int = 1
    nontrivial_only: bool = True

    def __post_init__(self) -> None:
        RadixBase(self.base)
        _require_int("epsilon", self.epsilon, 0)
        _require_int("seed", self.seed, 0)
        if self.max_levels is not None:
            _require_int("max_levels", self.max_levels, 1)
        _require_int("beam_width", self.beam_width, 1)
        _require_int("min_beam_width", self.min_beam_width, 1)
        _require_int("max_beam_width", self.max_beam_width, 1)
        if self.min_beam_width > self.max_beam_width:
            raise HCFConfigError(
                f"min_beam_width ({self.min_beam_width}) > max_beam_width ({self.max_beam_width})"
            )
        if self.scoring not in SCORERS:
            raise HCFConfigError(f"unknown scoring strategy {self.scoring!r}; expected one of {sorted(SCORERS)}")
        _require_int("max_carry", self.max_carry, 0)
        _require_int("workers", self.workers, 1)

    @classmethod
    def from_env(cls, prefix: str = "HCF_", **overrides: Any) -> "HCFConfig":
        """Defaults <- environment <- explicit keyword overrides."""
        d = cls()
        values: Dict[str, Any] = {
            "base": _env_int(prefix + "BASE", default=d.base),
            "epsilon": _env_int(prefix + "EPSILON", default=d.epsilon),
            "seed": _env_int(prefix + "SEED", default=d.seed),
            "max_levels": _env_int(prefix + "MAX_LEVELS", default=d.max_levels),
            "beam_width": _env_int(prefix + "BEAM_WIDTH", default=d.beam_width),
            "scoring": _env_strict_enum(prefix + "SCORING", allowed=tuple(sorted(SCORERS)), default=d.scoring),
            "adaptive_beam": _env_bool(prefix + "ADAPTIVE_BEAM", default=d.adaptive_beam),
            "use_carry_table": _env_bool(prefix + "USE_CARRY_TABLE", default=d.use_carry_table),
            "max_carry": _env_int(prefix + "MAX_CARRY", default=d.max_carry),
            "use_belt_memory": _env_bool(prefix + "USE_BELT_MEMORY", default=d.use_belt_memory),
            "workers": _env_int(prefix + "WORKERS", default=d.workers),
        }
        unknown = set(overrides) - {f.name for f in dataclasses.fields(cls)}
        if unknown:
            raise HCFConfigError(f"unknown config fields: {sorted(unknown)}")
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def replace(self, **changes: Any) -> "HCFConfig":
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)

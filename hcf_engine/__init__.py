"""
Hierarchical constrained factorization (HCF).

Radix decomposition -> orbit structure of Z_b -> digit-pair constraint table
-> level-by-level candidate search -> exact verification.

This is a research engine. Beam pruning is heuristic and lossy, and the
search is exponential in the digit count: it is not a cryptographic threat
to RSA-sized moduli (see ``hcf_engine.scaling``).
"""

from .config import HCFConfig
from .constraint_table import CarryConstraintTable, ConstraintTable
from .errors import ConstraintDomainError, HCFConfigError, HCFError, HCFInputError, TableIntegrityError
from .orbit_structure import OrbitStructure, build_orbit_structure, prime_residues
from .radix import RadixBase, from_digits, to_digits
from .search_engine import (
    FactorizationResult,
    HierarchicalFactorizer,
    LevelStats,
    SearchStatus,
    factor_semiprime,
)

__version__ = "0.1.0"

__all__ = [
    "CarryConstraintTable",
    "ConstraintDomainError",
    "ConstraintTable",
    "FactorizationResult",
    "HCFConfig",
    "HCFConfigError",
    "HCFError",
    "HCFInputError",
    "HierarchicalFactorizer",
    "LevelStats",
    "OrbitStructure",
    "RadixBase",
    "SearchStatus",
    "TableIntegrityError",
    "build_orbit_structure",
    "factor_semiprime",
    "from_digits",
    "prime_residues",
    "to_digits",
]

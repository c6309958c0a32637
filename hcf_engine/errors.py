"""
Exception hierarchy for the hierarchical constrained factorization engine.

Redlines:
  - Configuration and input errors are hard failures (raise, never degrade).
  - Search exhaustion / beam overflow are NOT errors: they are reported through
    ``SearchStatus`` and the ``pruned`` flag of ``FactorizationResult``.
"""

from __future__ import annotations


class HCFError(RuntimeError):
    """Hard failure in the HCF engine (must abort)."""


class HCFConfigError(HCFError):
    """Invalid base / epsilon / generator set / environment configuration."""


class HCFInputError(HCFError):
    """Invalid target integer or digit sequence."""


class ConstraintDomainError(HCFError):
    """Constraint table queried outside Z_b x Residues x Residues."""


class TableIntegrityError(HCFError):
    """Persisted constraint table does not match its certificate or structure."""

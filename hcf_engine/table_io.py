"""
Constraint table persistence.

A table is stored as a small JSON document: build parameters, the packed keys
of admissible (d, p, q) entries and the table's sha256 certificate. Loading
rebuilds the bit vector and refuses anything that does not reproduce the
certificate or that was built for a different base / seed.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Union

import numpy as np

from .constraint_table import ConstraintTable
from .errors import TableIntegrityError
from .orbit_structure import OrbitStructure

_logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def table_document(table: ConstraintTable) -> Dict[str, Any]:
    keys = np.flatnonzero(table.bits)
    return {
        "version": table.VERSION,
        "base": int(table.base),
        "seed": int(table.structure.seed),
        "epsilon": int(table.epsilon),
        "valid_keys": [int(k) for k in keys],
        "sha256": table.digest(),
    }


def save_constraint_table(table: ConstraintTable, path: PathLike) -> str:
    """Write the table; returns its sha256 certificate."""
    doc = table_document(table)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(doc, fh, separators=(",", ":"), sort_keys=True)
    _logger.info("saved constraint table base=%d eps=%d (%d entries) to %s",
                 doc["base"], doc["epsilon"], len(doc["valid_keys"]), path)
    return doc["sha256"]


def table_from_document(doc: Dict[str, Any], structure: OrbitStructure) -> ConstraintTable:
    for name in ("version", "base", "seed", "epsilon", "valid_keys", "sha256"):
        if name not in doc:
            raise TableIntegrityError(f"table document missing field {name!r}")
    if doc["version"] != ConstraintTable.VERSION:
        raise TableIntegrityError(f"unsupported table version {doc['version']!r}")
    b = structure.base
    if int(doc["base"]) != b:
        raise TableIntegrityError(f"table base {doc['base']} != structure base {b}")
    if int(doc["seed"]) != structure.seed:
        raise TableIntegrityError(f"table seed {doc['seed']} != structure seed {structure.seed}")

    keys = np.asarray(doc["valid_keys"], dtype=np.int64)
    if keys.size and (keys.min() < 0 or keys.max() >= b ** 3):
        raise TableIntegrityError("table key outside [0, b^3)")
    bits = np.zeros(b ** 3, dtype=np.bool_)
    bits[keys] = True
    table = ConstraintTable(structure, int(doc["epsilon"]), bits)
    if table.digest() != doc["sha256"]:
        raise TableIntegrityError(
            f"table certificate mismatch: stored {doc['sha256'][:16]}..., rebuilt {table.digest()[:16]}..."
        )
    return table


def load_constraint_table(path: PathLike, structure: OrbitStructure) -> ConstraintTable:
    with open(path, "r", encoding="utf-8") as fh:
        try:
            doc = json.load(fh)
        except json.JSONDecodeError as e:
            raise TableIntegrityError(f"{path}: not a JSON table document ({e})") from e
    if not isinstance(doc, dict):
        raise TableIntegrityError(f"{path}: table document must be a JSON object")
    table = table_from_document(doc, structure)
    _logger.info("loaded constraint table base=%d eps=%d from %s", table.base, table.epsilon, path)
    return table

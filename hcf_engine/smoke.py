"""Deployment smoke self-test: small, deterministic, must pass before use."""

from __future__ import annotations

import logging
from typing import Any, Dict

from .belt_memory import BeltMemory
from .candidate import Candidate
from .config import HCFConfig
from .constraint_table import ConstraintTable
from .orbit_structure import build_orbit_structure
from .radix import RadixBase
from .scaling import RSA_260, analyze_scaling
from .search_engine import HierarchicalFactorizer, SearchStatus

_logger = logging.getLogger(__name__)

# dist(c) for c = 0..95 under R/D/T/M from seed 37
CANONICAL_DISTANCES_96 = (
    8, 9, 10, 11, 12, 5, 6, 7, 6, 7, 8, 9, 10, 3, 4, 5,
    7, 8, 9, 10, 11, 4, 5, 6, 5, 6, 7, 8, 9, 2, 3, 4,
    3, 4, 5, 6, 7, 0, 1, 2, 4, 5, 6, 7, 8, 1, 2, 3,
    6, 7, 8, 9, 10, 3, 4, 5, 4, 5, 6, 7, 8, 1, 2, 3,
    5, 6, 7, 8, 9, 2, 3, 4, 7, 8, 9, 10, 11, 4, 5, 6,
    5, 6, 7, 8, 9, 2, 3, 4, 6, 7, 8, 9, 10, 3, 4, 5,
)


def run_self_test() -> Dict[str, Any]:
    """
    Run every check and return a report; raise RuntimeError if any failed.

    Checks: radix round trip, canonical orbit table, constraint symmetry,
    belt refcount lifecycle, 17x19 and 37x41 recovery, RSA-260 negative case.
    """
    results: Dict[str, Any] = {"ok": True, "tests": []}

    def record(name: str, passed: bool, detail: str = "") -> None:
        results["tests"].append({"name": name, "passed": passed, "detail": detail})
        if not passed:
            results["ok"] = False
            _logger.error("SELF-TEST FAILED: %s - %s", name, detail)

    try:
        radix = RadixBase(96)
        for n in (0, 1, 95, 96, 323, 1517, RSA_260):
            assert radix.decode(radix.encode(n)) == n, f"round trip failed for {n}"
        record("radix_round_trip", True)
    except Exception as e:
        record("radix_round_trip", False, str(e))

    structure = None
    try:
        structure = build_orbit_structure(96)
        assert len(structure.residues) == 32, "phi(96) must be 32"
        assert tuple(int(x) for x in structure.distances) == CANONICAL_DISTANCES_96, "distance table drifted"
        assert structure.distance(37) == 0, "seed distance must be 0"
        record("orbit_structure", True)
    except Exception as e:
        record("orbit_structure", False, str(e))

    table = None
    if structure is not None:
        try:
            table = ConstraintTable.build(structure, 10)
            again = ConstraintTable.build(structure, 10)
            assert table.digest() == again.digest(), "table build is not deterministic"
            for d in range(0, 96, 7):
                for p in structure.residues:
                    for q in structure.residues:
                        assert table.lookup(d, p, q) == table.lookup(d, q, p), f"asymmetric at {(d, p, q)}"
            record("constraint_table", True)
        except Exception as e:
            record("constraint_table", False, str(e))

    try:
        belt = BeltMemory()
        c = Candidate.root().extend(17, 19, 3)
        _, shared_first = belt.allocate(c)
        _, shared_second = belt.allocate(Candidate.root().extend(17, 19, 3))
        assert not shared_first and shared_second, "duplicate candidate not shared"
        belt.release(c)
        assert c in belt, "released too early"
        belt.release(c)
        assert c not in belt and belt.stats()["occupied_slots"] == 0, "slots not freed"
        record("belt_memory", True)
    except Exception as e:
        record("belt_memory", False, str(e))

    if table is not None:
        try:
            engine = HierarchicalFactorizer(HCFConfig(), structure=structure, table=table)
            for n, expected in ((323, {17, 19}), (1517, {37, 41})):
                res = engine.factor(n)
                assert res.status is SearchStatus.FOUND, f"{n}: {res.status.value}"
                assert set(res.factors) == expected, f"{n}: got {res.factors}"
            record("small_semiprimes", True)
        except Exception as e:
            record("small_semiprimes", False, str(e))

        try:
            engine = HierarchicalFactorizer(HCFConfig(beam_width=64), structure=structure, table=table)
            res = engine.factor(RSA_260, max_levels=4)
            assert not res.success, "RSA-260 must not factor under a practical budget"
            assert analyze_scaling(RSA_260.bit_length()).feasibility == "intractable"
            record("rsa_260_negative", True)
        except Exception as e:
            record("rsa_260_negative", False, str(e))

    if not results["ok"]:
        failed = [t["name"] for t in results["tests"] if not t["passed"]]
        raise RuntimeError(f"HCF self-test failed: {failed}")
    return results

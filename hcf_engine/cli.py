"""
Command line entry point.

  hcf factor N [options]          run the search (exit 0 found, 2 not found)
  hcf epsilon --base B            closure violation scan for a base
  hcf scaling --bits L [...]      feasibility estimate
  hcf table --epsilon E --out P   persist a constraint table
  hcf self-test                   deployment smoke test

Defaults come from HCF_* environment variables; flags override them.
Hard failures print ``[FATAL]`` and exit 1.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import HCFConfig
from .constraint_table import ConstraintTable
from .errors import HCFInputError
from .orbit_structure import build_orbit_structure, closure_violations, empirical_epsilon
from .scaling import DEFAULT_SURVIVAL, scaling_table
from .scoring import SCORERS
from .search_engine import HierarchicalFactorizer
from .smoke import run_self_test
from .table_io import save_constraint_table


def _parse_int_auto(s: str) -> int:
    s2 = s.strip().lower().replace("_", "")
    try:
        if s2.startswith("0x"):
            return int(s2, 16)
        return int(s2, 10)
    except ValueError as e:
        raise HCFInputError(f"not an integer (decimal or 0x-hex): {s!r}") from e


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def _cmd_factor(args: argparse.Namespace) -> int:
    n = _parse_int_auto(args.n)
    cfg = HCFConfig.from_env(
        base=args.base,
        epsilon=args.epsilon,
        seed=args.seed,
        max_levels=args.max_levels,
        beam_width=args.beam_width,
        scoring=args.scoring,
        adaptive_beam=True if args.adaptive_beam else None,
        use_carry_table=True if args.carry_table else None,
        max_carry=args.max_carry,
        use_belt_memory=True if args.belt_memory else None,
        workers=args.workers,
    )
    res = HierarchicalFactorizer(cfg).factor(n)
    if args.json:
        print(json.dumps(res.to_dict(), indent=2, sort_keys=True))
    elif res.success:
        p, q = res.factors
        print(f"[RESULT] success=1 p={p} q={q} levels={res.levels_completed} pruned={int(res.pruned)}")
    else:
        print(
            f"[RESULT] success=0 status={res.status.value} levels={res.levels_completed}/{res.target_levels} "
            f"pruned={int(res.pruned)}"
        )
    return 0 if res.success else 2


def _cmd_epsilon(args: argparse.Namespace) -> int:
    cfg = HCFConfig.from_env(base=args.base, seed=args.seed)
    # projected bases may leave residues unreachable; the scan reports them instead of failing
    structure = build_orbit_structure(cfg.base, seed=cfg.seed, require_connected=False)
    hist = closure_violations(structure)
    total = sum(hist.values())
    print(
        f"[EPSILON] base={structure.base} phi={len(structure.residues)} diameter={structure.diameter} "
        f"unreachable={len(structure.unreachable)}"
    )
    for v, count in hist.items():
        print(f"  violation {v:+d}: {count} pairs ({100.0 * count / total:.1f}%)")
    print(f"[RESULT] empirical_epsilon={empirical_epsilon(structure)}")
    return 0


def _cmd_scaling(args: argparse.Namespace) -> int:
    cfg = HCFConfig.from_env(base=args.base)
    for est in scaling_table(args.bits, cfg.base, args.survival):
        d = est.to_dict()
        print(
            f"[SCALING] bits={est.bits} levels={est.levels} naive=10^{d['log10_naive']} "
            f"pruned=10^{d['log10_pruned']} time={d['estimated_time']} feasibility={est.feasibility}"
        )
    return 0


def _cmd_table(args: argparse.Namespace) -> int:
    cfg = HCFConfig.from_env(base=args.base, seed=args.seed, epsilon=args.epsilon)
    structure = build_orbit_structure(cfg.base, seed=cfg.seed)
    table = ConstraintTable.build(structure, cfg.epsilon)
    digest = save_constraint_table(table, args.out)
    print(f"[RESULT] valid={table.valid_count} density={table.density:.4f} sha256={digest} path={args.out}")
    return 0


def _cmd_self_test(args: argparse.Namespace) -> int:
    report = run_self_test()
    for t in report["tests"]:
        print(f"  {'PASS' if t['passed'] else 'FAIL'} {t['name']}")
    print("[RESULT] self-test ok")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hcf", description="Hierarchical constrained factorization")
    parser.add_argument("--verbose", action="store_true", help="DEBUG logging (per-level statistics)")
    parser.add_argument("--quiet", action="store_true", help="WARNING logging only")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("factor", help="factor a semiprime")
    p.add_argument("n", help="target integer (decimal or 0x-hex)")
    p.add_argument("--base", type=int, help="radix (default: HCF_BASE or 96)")
    p.add_argument("--epsilon", type=int, help="closure bound (default: HCF_EPSILON or 10)")
    p.add_argument("--seed", type=int, help="orbit BFS seed (default: 37)")
    p.add_argument("--max-levels", type=int, help="stop after this many digit levels")
    p.add_argument("--beam-width", type=int, help="candidates kept per level (lossy when exceeded)")
    p.add_argument("--scoring", choices=sorted(SCORERS), help="beam ranking heuristic")
    p.add_argument("--adaptive-beam", action="store_true", help="resize the beam from the violation rate")
    p.add_argument("--carry-table", action="store_true", help="use the carry-aware constraint table")
    p.add_argument("--max-carry", type=int, help="carry bound for --carry-table")
    p.add_argument("--belt-memory", action="store_true", help="deduplicate candidates in belt memory")
    p.add_argument("--workers", type=int, help="threads for per-level expansion")
    p.add_argument("--json", action="store_true", help="print the full result as JSON")
    p.set_defaults(func=_cmd_factor)

    p = sub.add_parser("epsilon", help="closure violation scan")
    p.add_argument("--base", type=int, help="radix (default: HCF_BASE or 96)")
    p.add_argument("--seed", type=int, help="orbit BFS seed (default: HCF_SEED or 37)")
    p.set_defaults(func=_cmd_epsilon)

    p = sub.add_parser("scaling", help="search-space feasibility estimate")
    p.add_argument("--bits", type=int, nargs="+", required=True)
    p.add_argument("--base", type=int, help="radix (default: HCF_BASE or 96)")
    p.add_argument("--survival", type=float, default=DEFAULT_SURVIVAL, help="fraction of the naive space left after pruning")
    p.set_defaults(func=_cmd_scaling)

    p = sub.add_parser("table", help="build and save a constraint table")
    p.add_argument("--base", type=int, help="radix (default: HCF_BASE or 96)")
    p.add_argument("--seed", type=int, help="orbit BFS seed (default: HCF_SEED or 37)")
    p.add_argument("--epsilon", type=int, help="closure bound (default: HCF_EPSILON or 10)")
    p.add_argument("--out", required=True, help="output JSON path")
    p.set_defaults(func=_cmd_table)

    p = sub.add_parser("self-test", help="run the deployment smoke test")
    p.set_defaults(func=_cmd_self_test)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)
    try:
        return int(args.func(args))
    except RuntimeError as ex:  # HCFError and self-test failures
        print(f"[FATAL] {ex}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

import json
import logging

import pytest

from hcf_engine import search_engine
from hcf_engine.candidate import Branch, Candidate
from hcf_engine.config import HCFConfig
from hcf_engine.errors import HCFConfigError, HCFInputError
from hcf_engine.orbit_structure import build_orbit_structure
from hcf_engine.scaling import RSA_260
from hcf_engine.search_engine import (
    HierarchicalFactorizer,
    SearchStatus,
    adaptive_beam_width,
    evaluate_branches,
    factor_semiprime,
    merge_branches,
    split_branches,
)


# ---------------------------------------------------------------------------
# pipeline steps
# ---------------------------------------------------------------------------


def test_split_level_zero(structure96):
    branches = split_branches(0, 35, Candidate.root(), structure96.digit_choices, 96)
    assert Branch(17, 19, 3) in branches
    assert Branch(19, 17, 3) in branches
    assert len(branches) == 32
    assert all(br.p * br.q % 96 == 35 for br in branches)
    assert branches == sorted(branches, key=lambda br: (br.p, br.q))


def test_split_higher_level_uses_cross_terms(structure96):
    parent = Candidate.root().extend(17, 19, 3)
    branches = split_branches(1, 3, parent, structure96.digit_choices, 96)
    assert Branch(0, 0, 0) in branches
    for br in branches:
        total = 3 + br.p * 19 + 17 * br.q
        assert total % 96 == 3
        assert br.new_carry == total // 96


def test_split_arbitrary_precision_carry(structure96):
    carry = 10 ** 40 + 5
    parent = Candidate(p_digits=(17, 5), q_digits=(19, 7), carry=carry, level=2)
    digit = (carry + 5 * 7) % 96
    branches = split_branches(2, digit, parent, structure96.digit_choices, 96)
    assert Branch(0, 0, (carry + 5 * 7) // 96) in branches
    for br in branches:
        total = carry + 5 * 7 + br.p * 19 + 17 * br.q
        assert total % 96 == digit
        assert br.new_carry == total // 96


def test_split_pure_int_path_matches_vectorised(structure96, monkeypatch):
    parent = Candidate.root().extend(37, 41, 15)
    fast = split_branches(1, 15, parent, structure96.digit_choices, 96)
    monkeypatch.setattr(search_engine, "_INT64_SAFE", 0)
    slow = split_branches(1, 15, parent, structure96.digit_choices, 96)
    assert fast == slow


def test_split_rejects_level_mismatch(structure96):
    with pytest.raises(HCFInputError):
        split_branches(1, 3, Candidate.root(), structure96.digit_choices, 96)


def test_evaluate_keeps_zero_padding(structure96, table96):
    parent = Candidate.root().extend(17, 19, 3)
    branches = split_branches(1, 3, parent, structure96.digit_choices, 96)
    kept = evaluate_branches(branches, 3, parent.carry, table96)
    assert Branch(0, 0, 0) in kept
    for br in kept:
        assert br.p == 0 or br.q == 0 or table96.lookup(3, br.p, br.q)


def test_merge_extends_parent():
    parent = Candidate.root().extend(17, 19, 3)
    children = merge_branches(parent, [Branch(0, 0, 0), Branch(5, 7, 1)])
    assert [c.level for c in children] == [2, 2]
    assert children[0].p_digits == (17, 0)
    assert children[1].q_digits == (19, 7)
    assert children[1].carry == 1


def test_adaptive_beam_width():
    assert adaptive_beam_width(100, 0.5, 10, 1000) == 100
    assert adaptive_beam_width(100, 1.0, 10, 1000) == 150
    assert adaptive_beam_width(100, 0.0, 10, 1000) == 50
    assert adaptive_beam_width(100, 0.0, 60, 1000) == 60
    assert adaptive_beam_width(100, 1.0, 10, 120) == 120


# ---------------------------------------------------------------------------
# end-to-end
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("n,expected", [(323, {17, 19}), (1517, {37, 41})])
def test_small_semiprimes(make_engine, n, expected):
    res = make_engine().factor(n)
    assert res.status is SearchStatus.FOUND
    assert res.success
    assert set(res.factors) == expected
    assert res.levels_completed == res.target_levels == 2
    assert not res.pruned
    assert res.total_pruned == 0


def test_level_stats_for_323(make_engine):
    res = make_engine().factor(323)
    first = res.level_stats[0]
    assert first.level == 0 and first.digit == 35
    assert first.candidates_in == 1
    assert first.branches_split == 32
    assert 0.0 <= first.violation_rate <= 1.0
    assert res.total_generated == sum(s.candidates_out for s in res.level_stats)
    json.dumps(res.to_dict())


@pytest.mark.parametrize("scoring", ["orbit_distance", "constraint_satisfaction", "hybrid", "eigenspace"])
def test_every_scorer_factors_small_inputs(make_engine, scoring):
    assert make_engine(scoring=scoring).factor(1517).success


def test_carry_table_finds_factors_within_bound(make_engine):
    assert make_engine(use_carry_table=True).factor(323).success
    res = make_engine(use_carry_table=True, max_carry=15).factor(1517)
    assert res.success and set(res.factors) == {37, 41}


def test_carry_table_bound_too_small(make_engine):
    # 37 * 41 carries 15 out of the first digit
    res = make_engine(use_carry_table=True, max_carry=10).factor(1517)
    assert not res.success


def test_trivial_split_rejected_by_default(make_engine):
    res = make_engine().factor(97)
    assert res.status is SearchStatus.NO_MATCH
    assert res.factors is None
    res = make_engine(nontrivial_only=False).factor(97)
    assert res.status is SearchStatus.FOUND
    assert set(res.factors) == {1, 97}


def test_exhausted_when_no_branch_survives(make_engine):
    # 98 = (2, 1) in base 96: no product of units or zeros ends in 2
    res = make_engine().factor(98)
    assert res.status is SearchStatus.EXHAUSTED
    assert res.levels_completed == 1
    assert res.level_stats[0].candidates_out == 0


@pytest.mark.parametrize("bad", [0, 1, -323, True, "323", 323.0])
def test_invalid_targets(make_engine, bad):
    with pytest.raises(HCFInputError):
        make_engine().factor(bad)


def test_level_cap(make_engine):
    res = make_engine(max_levels=1).factor(RSA_260)
    assert res.status is SearchStatus.LEVEL_CAP
    assert res.levels_completed == 1
    assert res.target_levels > 100
    res = make_engine().factor(RSA_260, max_levels=2)
    assert res.status is SearchStatus.LEVEL_CAP
    assert res.levels_completed == 2


def test_invalid_level_cap(make_engine):
    with pytest.raises(HCFConfigError):
        make_engine().factor(323, max_levels=0)


def test_rsa_260_is_not_factored(make_engine):
    res = make_engine(beam_width=64).factor(RSA_260)
    assert not res.success
    assert res.status in (SearchStatus.EXHAUSTED, SearchStatus.NO_MATCH)
    assert res.factors is None


def test_beam_overflow_is_reported(make_engine, caplog):
    with caplog.at_level(logging.WARNING, logger="hcf_engine.search_engine"):
        res = make_engine(beam_width=5, max_levels=3).factor(RSA_260)
    first = res.level_stats[0]
    assert res.pruned
    assert first.candidates_out == 5
    assert first.evicted == first.branches_kept - 5
    assert res.total_pruned >= first.evicted
    assert any("beam overflow" in r.getMessage() for r in caplog.records)


def test_adaptive_beam(make_engine):
    res = make_engine(beam_width=20, adaptive_beam=True, min_beam_width=5, max_beam_width=100, max_levels=3).factor(
        RSA_260
    )
    stats = res.level_stats
    assert stats[0].beam_width == 20
    if len(stats) > 1:
        assert stats[1].beam_width == adaptive_beam_width(20, stats[0].violation_rate, 5, 100)


def test_parallel_matches_serial(make_engine):
    for n, kw in ((1517, {}), (RSA_260, {"beam_width": 32, "max_levels": 6})):
        serial = make_engine(**kw).factor(n)
        parallel = make_engine(workers=4, **kw).factor(n)
        assert parallel.status is serial.status
        assert parallel.factors == serial.factors
        assert parallel.level_stats == serial.level_stats


def test_belt_memory(make_engine):
    res = make_engine(use_belt_memory=True).factor(1517)
    assert res.success
    stats = res.belt_stats
    shared = sum(s.shared for s in res.level_stats)
    assert stats["allocations"] == res.total_generated + shared
    assert stats["live"] == res.level_stats[-1].candidates_out
    assert make_engine().factor(1517).belt_stats is None


def test_base_48():
    res = HierarchicalFactorizer(HCFConfig(base=48)).factor(323)
    assert res.success
    assert set(res.factors) == {17, 19}


def test_factor_semiprime_wrapper():
    res = factor_semiprime(323, scoring="hybrid")
    assert res.success
    assert res.config["scoring"] == "hybrid"


def test_engine_rejects_mismatched_tables(structure96, table96):
    with pytest.raises(HCFConfigError):
        HierarchicalFactorizer(HCFConfig(base=48), structure=structure96)
    with pytest.raises(HCFConfigError):
        HierarchicalFactorizer(HCFConfig(epsilon=5), structure=structure96, table=table96)
    with pytest.raises(HCFConfigError):
        HierarchicalFactorizer(HCFConfig(), structure=build_orbit_structure(96, seed=5))
    # seeds are compared modulo the base
    assert HierarchicalFactorizer(HCFConfig(seed=37 + 96), structure=structure96).structure is structure96

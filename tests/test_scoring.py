import pytest

from hcf_engine.candidate import Candidate
from hcf_engine.errors import HCFConfigError
from hcf_engine.scoring import (
    SCORERS,
    BoundedBeam,
    CandidateScorer,
    ConstraintSatisfactionScorer,
    EigenspaceScorer,
    HybridScorer,
    OrbitDistanceScorer,
    make_scorer,
)


def _single(p, q):
    return Candidate.root().extend(p, q, 0)


class _ConstantScorer(CandidateScorer):
    name = "constant"

    def score(self, candidate):
        return 1.0


def test_registry(structure96):
    assert set(SCORERS) == {"orbit_distance", "constraint_satisfaction", "hybrid", "eigenspace"}
    for name in SCORERS:
        assert make_scorer(name, structure96, 10).name == name
    with pytest.raises(HCFConfigError):
        make_scorer("nope", structure96, 10)


def test_orbit_distance_scorer(structure96):
    s = OrbitDistanceScorer(structure96, 10)
    assert s.score(Candidate.root()) == 1.0
    assert s.score(_single(37, 37)) == 1.0
    # dist(1) = 9
    assert s.score(_single(1, 1)) == pytest.approx(1 / 1.9)
    assert s.score(_single(0, 1)) == pytest.approx(1 / 1.9)


def test_constraint_satisfaction_scorer(structure96):
    s = ConstraintSatisfactionScorer(structure96, 10)
    assert s.score(Candidate.root()) == 1.0
    # margin = dist(37) + dist(41) + 10 - dist(77) = 0 + 5 + 10 - 4
    assert s.score(_single(37, 41)) == pytest.approx(1.0 + 0.11)
    assert ConstraintSatisfactionScorer(structure96, 0).score(_single(1, 1)) > 1.0


def test_hybrid_scorer(structure96):
    c = _single(37, 41)
    expected = 0.7 * ConstraintSatisfactionScorer(structure96, 10).score(c) + 0.3 * OrbitDistanceScorer(
        structure96, 10
    ).score(c)
    assert HybridScorer(structure96, 10).score(c) == pytest.approx(expected)


def test_eigenspace_scorer(structure96):
    s = EigenspaceScorer(structure96, 10)
    assert s.score(Candidate.root()) == 1.0
    # complexity 10 and orbit 0 at the seed: error = 14 + 6.5
    assert s.score(_single(37, 37)) == pytest.approx(1 / 21.5)
    # complexity 24 needs dist 2, which 29 has
    assert s.score(_single(29, 29)) > s.score(_single(37, 37))


def test_beam_without_overflow_keeps_generation_order(structure96):
    beam = BoundedBeam(3, OrbitDistanceScorer(structure96, 10))
    cands = [_single(1, 1), _single(13, 13), _single(37, 37)]
    for c in cands:
        beam.offer(c)
    assert not beam.overflowed
    assert beam.evicted == 0
    assert beam.drain() == cands


def test_beam_overflow_keeps_best(structure96):
    beam = BoundedBeam(3, OrbitDistanceScorer(structure96, 10))
    # distances 9, 3, 0, 2, 1
    for x in (1, 13, 37, 29, 38):
        beam.offer(_single(x, x))
    assert beam.overflowed
    assert beam.offered == 5
    assert beam.evicted == 2
    assert len(beam) == 3
    assert [c.p_digits[0] for c in beam.drain()] == [37, 38, 29]


def test_beam_ties_keep_earliest(structure96):
    beam = BoundedBeam(2, _ConstantScorer(structure96, 10))
    cands = [_single(x, x) for x in (1, 5, 7, 11, 13)]
    for c in cands:
        beam.offer(c)
    assert beam.drain() == cands[:2]
    assert beam.evicted == 3


@pytest.mark.parametrize("cap", [0, -1, True, 2.0])
def test_beam_capacity_validation(structure96, cap):
    with pytest.raises(HCFConfigError):
        BoundedBeam(cap, OrbitDistanceScorer(structure96, 10))

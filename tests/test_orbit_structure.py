import numpy as np
import pytest

from hcf_engine.errors import HCFConfigError
from hcf_engine.orbit_structure import (
    SENTINEL_DISTANCE,
    Generator,
    atlas_generators,
    build_orbit_structure,
    closure_violations,
    complexity_table,
    empirical_epsilon,
    orbit_distances,
    prime_residues,
)
from hcf_engine.smoke import CANONICAL_DISTANCES_96


def test_prime_residues_96():
    res = prime_residues(96)
    assert len(res) == 32
    assert res[:6] == (1, 5, 7, 11, 13, 17)
    assert res == tuple(sorted(res))
    assert all(r % 2 and r % 3 for r in res)


@pytest.mark.parametrize("b,phi", [(2, 1), (10, 4), (48, 16), (192, 64)])
def test_prime_residues_phi(b, phi):
    assert len(prime_residues(b)) == phi


def test_canonical_distance_table(structure96):
    assert tuple(int(x) for x in structure96.distances) == CANONICAL_DISTANCES_96
    assert structure96.seed == 37
    assert structure96.distance(37) == 0
    assert structure96.diameter == 12
    assert structure96.unreachable == ()


def test_distances_are_read_only(structure96):
    with pytest.raises(ValueError):
        structure96.distances[0] = 1


def test_bfs_well_formed(structure96):
    gens = atlas_generators(96)
    dist = structure96.distances
    preds = {c: [] for c in range(96)}
    for c in range(96):
        for g in gens:
            img = g(c)
            assert dist[img] <= dist[c] + 1
            preds[img].append(c)
    for c in range(96):
        if dist[c] > 0:
            assert any(dist[p] == dist[c] - 1 for p in preds[c])


@pytest.mark.parametrize("name,order", [("R", 4), ("D", 3), ("T", 8), ("M", 2)])
def test_generator_orders(name, order):
    g = {x.name: x for x in atlas_generators(96)}[name]
    assert g.order == order
    for c in range(96):
        x = c
        for _ in range(order):
            x = g(x)
        assert x == c


def test_generators_need_multiple_of_12():
    with pytest.raises(HCFConfigError):
        atlas_generators(100)


def test_base_48_is_connected():
    s = build_orbit_structure(48)
    assert len(s.residues) == 16
    assert s.unreachable == ()


def test_projected_base_disconnected_fails_fast():
    with pytest.raises(HCFConfigError):
        build_orbit_structure(128)


def test_projected_base_can_be_built_for_diagnostics():
    s = build_orbit_structure(128, require_connected=False)
    assert 127 in s.unreachable
    assert s.distance(127) == SENTINEL_DISTANCE


def test_generator_image_outside_base():
    bad = Generator("bad", 1, lambda c: c + 200)
    with pytest.raises(HCFConfigError):
        orbit_distances(96, [bad], 37)


def test_empty_generator_set():
    with pytest.raises(HCFConfigError):
        orbit_distances(96, [], 37)


def test_closure_histogram_covers_all_unit_pairs(structure96):
    hist = closure_violations(structure96)
    assert sum(hist.values()) == 32 * 32


def test_empirical_epsilon_admits_every_unit_pair(structure96):
    from hcf_engine.constraint_table import ConstraintTable

    eps = empirical_epsilon(structure96)
    assert eps >= 0
    table = ConstraintTable.build(structure96, eps)
    for p in structure96.residues:
        for q in structure96.residues:
            assert table.lookup(p * q % 96, p, q)


def test_complexity_table(structure96):
    c = complexity_table(structure96)
    assert c[37] == 10
    assert np.array_equal(c, 10 + 7 * structure96.distances)

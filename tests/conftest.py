import pytest

from hcf_engine.config import HCFConfig
from hcf_engine.constraint_table import ConstraintTable
from hcf_engine.orbit_structure import build_orbit_structure
from hcf_engine.search_engine import HierarchicalFactorizer


@pytest.fixture(scope="session")
def structure96():
    return build_orbit_structure(96)


@pytest.fixture(scope="session")
def table96(structure96):
    return ConstraintTable.build(structure96, 10)


@pytest.fixture
def make_engine(structure96, table96):
    """Engine factory sharing the session tables (epsilon stays 10)."""

    def make(**overrides):
        return HierarchicalFactorizer(HCFConfig(**overrides), structure=structure96, table=table96)

    return make

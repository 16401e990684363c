"""
Test fixtures for the mod-5 image pipeline.

The toy lattice is made of small diagonal subgroups of GSp4(F_5) for the
form antidiag(1, 1, -1, -1). diag(a, b, c, d) is a similitude iff
ad = bc, with multiplier ad.

  5.9360000.1   <diag(1,1,2,2)>    order 4, fixes span(e1, e2)
  5.9360000.2   <diag(2,2,1,1)>    order 4, fixes span(e3, e4); same
                                   invariant spectrum as .1
  5.9360000.3   <diag(4,4,3,3)>    order 4, no fixed vector, e1 has an
                                   orbit of size 2 (quadratic torsion)
  5.18720000.1  <diag(1,1,4,4)>    order 2, multiplier not onto F_5^*
  5.37440000.1  trivial group      contains no complex conjugation

NOTE: the full-image label 5.1.1 has no record; it enters through
SubgroupLattice.labels and the dictionary sentinel.
"""
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from sage.all import GF, ZZ, diagonal_matrix, identity_matrix, vector

from mod5image.lattice import SubgroupLattice, build_subgroup_record
from mod5image.invariants import build_dictionary
from mod5image.frobenius import FrobeniusRecord, PointCounter
from mod5image.analytic import InversionResult, InversionStatus
from mod5image.curve_data import make_curve
from mod5image.image_config import PointCountError, default_config

F5 = GF(5)

RATIONAL_A = "5.9360000.1"
RATIONAL_B = "5.9360000.2"
QUADRATIC = "5.9360000.3"
NOT_ONTO = "5.18720000.1"
TRIVIAL = "5.37440000.1"

TOY_GENERATORS = {
    RATIONAL_A: [diagonal_matrix(F5, [1, 1, 2, 2])],
    RATIONAL_B: [diagonal_matrix(F5, [2, 2, 1, 1])],
    QUADRATIC: [diagonal_matrix(F5, [4, 4, 3, 3])],
    NOT_ONTO: [diagonal_matrix(F5, [1, 1, 4, 4])],
    TRIVIAL: [identity_matrix(F5, 4)],
}


class FakeCounter(PointCounter):
    """Point counter replaying fixed records; optionally fails."""

    def __init__(self, records=(), error=None):
        self.records = list(records)
        self.error = error
        self.calls = 0

    def count(self, curve, prime_bound):
        self.calls += 1
        if self.error is not None:
            raise PointCountError(self.error)
        return [r for r in self.records if r.p < prime_bound]


class ScriptedJacobian:
    """
    Stand-in for AnalyticJacobian. torsion_vector(line) is the line itself,
    so a doubled retry asks for 2 * line; invert replays `script` keyed by
    that tuple and answers HARD everywhere else.
    """

    def __init__(self, script=None):
        self.script = dict(script or {})
        self.calls = []

    def torsion_vector(self, line):
        return vector(ZZ, line)

    def invert(self, z):
        key = tuple(int(c) for c in z)
        self.calls.append(key)
        return self.script.get(key, InversionResult(InversionStatus.HARD, reason="not scripted"))


@pytest.fixture(scope="session")
def toy_lattice():
    return SubgroupLattice(build_subgroup_record(label, gens) for label, gens in TOY_GENERATORS.items())


@pytest.fixture(scope="session")
def toy_dictionary(toy_lattice):
    return build_dictionary(toy_lattice)


@pytest.fixture
def counter_factory():
    """Factory for FakeCounter objects."""
    def _make(records=(), error=None):
        return FakeCounter(records, error)
    return _make


@pytest.fixture
def all_bad_records():
    """Every odd prime below 200 flagged bad."""
    return [FrobeniusRecord(p, bad=True) for p in (3, 5, 7, 11, 13, 17, 19, 23, 29, 31, 97, 199)]


@pytest.fixture
def curve_431250():
    """y^2 + x y = x^5 - 5x^3 + x^2 + 5x - 1, conductor 431250."""
    return make_curve([-1, 5, 1, -5, 0, 1], [0, 1], label="431250.a.431250.1", conductor=431250)


@pytest.fixture
def offline_conf():
    """Run configuration without the analytic search."""
    return default_config(ANALYTIC_SEARCH=False, PRIME_BOUND=1000)

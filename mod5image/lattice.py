"""
lattice.py: The subgroup lattice of GSp4(F_5) as an immutable data source.

Each record carries the subgroup's elements as 4x4 matrices over F_5 and its
orbit structure on the nonzero vectors of the natural module. Records can be
read from a JSON dump or built from generators with Sage's MatrixGroup.
"""
import json
import itertools
from collections.abc import Mapping
from typing import NamedTuple

from sage.all import GF, matrix, vector, identity_matrix, MatrixGroup

from .image_config import (
    ELL, DIMENSION, FULL_IMAGE_LABEL, SYMPLECTIC_FORM, LatticeDataError, DEBUG
)

F5 = GF(ELL)
_J = matrix(F5, SYMPLECTIC_FORM)


class SubgroupRecord(NamedTuple):
    label: str
    elements: tuple                 # immutable 4x4 matrices over GF(5)
    orbits: tuple                   # (orbit size, fixed-space dimension, count)
    classes: tuple = ()             # optional (representative, class size)

    @property
    def order(self):
        if self.classes:
            return sum(size for _, size in self.classes)
        return len(self.elements)

    def class_data(self):
        """(representative, multiplicity) pairs covering every element once."""
        if self.classes:
            return self.classes
        return tuple((M, 1) for M in self.elements)


def _immutable(M):
    if hasattr(M, 'nrows'):
        M = matrix(F5, M)
    else:
        M = matrix(F5, DIMENSION, DIMENSION, M)
    M.set_immutable()
    return M


def similitude_multiplier(M):
    """The scalar lambda with M^T J M = lambda J, or None if M is not in GSp4."""
    S = M.transpose() * _J * M
    lam = S[0, 3] / _J[0, 3]
    if S != lam * _J:
        return None
    return lam


def nonzero_vectors():
    """All nonzero vectors of F_5^4 as tuples of ints."""
    for v in itertools.product(range(ELL), repeat=DIMENSION):
        if any(v):
            yield v


def compute_orbits(generators, elements):
    """
    Orbit structure of the group on nonzero vectors of F_5^4.

    Orbits come from a breadth-first closure under the generators; the
    fixed-space dimension of an orbit is the dimension of the subspace fixed
    pointwise by the stabiliser of its first vector.

    Returns:
        tuple of (orbit size, fixed-space dimension, count), sorted.
    """
    gens = [matrix(F5, g) for g in generators] or [identity_matrix(F5, DIMENSION)]
    seen = set()
    tally = {}
    for v in nonzero_vectors():
        if v in seen:
            continue
        orbit = {v}
        frontier = [v]
        while frontier:
            w = vector(F5, frontier.pop())
            for g in gens:
                image = tuple(int(c) for c in g * w)
                if image not in orbit:
                    orbit.add(image)
                    frontier.append(image)
        seen.update(orbit)

        rep = vector(F5, v)
        fixed = None
        for M in elements:
            if M * rep != rep:
                continue
            K = (M - 1).right_kernel()
            fixed = K if fixed is None else fixed.intersection(K)
            if fixed.dimension() == 1:
                break
        fixdim = fixed.dimension() if fixed is not None else DIMENSION
        key = (len(orbit), fixdim)
        tally[key] = tally.get(key, 0) + 1
    return tuple(sorted((size, dim, count) for (size, dim), count in tally.items()))


def build_subgroup_record(label, generators, with_classes=True):
    """Enumerate a subgroup from generators and compute its orbit data."""
    try:
        gens = [_immutable(g) for g in generators]
    except (TypeError, ValueError) as e:
        raise LatticeDataError(f"{label}: bad generator data: {e}")
    if not gens:
        gens = [_immutable(identity_matrix(F5, DIMENSION))]
    G = MatrixGroup(gens)
    elements = tuple(_immutable(g.matrix()) for g in G)
    classes = ()
    if with_classes:
        classes = tuple((_immutable(C.representative().matrix()), int(C.cardinality()))
                        for C in G.conjugacy_classes())
    orbits = compute_orbits(gens, elements)
    if DEBUG:
        print(f"[lattice] built {label}: order {len(elements)}, {len(orbits)} orbit types")
    return SubgroupRecord(label, elements, orbits, classes)


def record_from_dict(label, data):
    """Build a record from a JSON entry: either generators, or elements and orbits."""
    if 'generators' in data:
        return build_subgroup_record(label, [_flat_to_matrix(label, g) for g in data['generators']])
    if 'elements' not in data or 'orbits' not in data:
        raise LatticeDataError(f"{label}: entry needs 'generators' or 'elements' and 'orbits'")
    elements = tuple(_immutable(_flat_to_matrix(label, m)) for m in data['elements'])
    try:
        orbits = tuple(sorted(tuple(int(x) for x in o) for o in data['orbits']))
    except (TypeError, ValueError) as e:
        raise LatticeDataError(f"{label}: bad orbit data: {e}")
    if any(len(o) != 3 for o in orbits):
        raise LatticeDataError(f"{label}: orbit tuples must be (size, fixed dim, count)")
    return SubgroupRecord(label, elements, orbits)


def _flat_to_matrix(label, entries):
    if len(entries) != DIMENSION * DIMENSION:
        raise LatticeDataError(f"{label}: expected {DIMENSION**2} matrix entries, got {len(entries)}")
    return matrix(F5, DIMENSION, DIMENSION, [int(c) for c in entries])


class SubgroupLattice(Mapping):
    """
    Read-only mapping label -> SubgroupRecord.

    The full-image label is always a member of `labels`, whether or not the
    data source supplies a record for it.
    """

    def __init__(self, records):
        self._records = {}
        for rec in records:
            if rec.label in self._records:
                raise LatticeDataError(f"Duplicate subgroup label {rec.label}")
            self._records[rec.label] = rec
        self.labels = frozenset(self._records) | {FULL_IMAGE_LABEL}

    def __getitem__(self, label):
        return self._records[label]

    def __iter__(self):
        return iter(self._records)

    def __len__(self):
        return len(self._records)

    def __repr__(self):
        return f"SubgroupLattice({len(self)} records)"


def load_lattice(path, degree=DIMENSION, prime=ELL, flag=0):
    """
    Load a subgroup lattice from a JSON file {label: entry}.

    Only the degree-4, ell = 5 lattice with flag 0 is supported.
    """
    if degree != DIMENSION or prime != ELL or flag != 0:
        raise LatticeDataError(f"Only GSp{DIMENSION}(F_{ELL}) with flag 0 is supported, "
                               f"got degree={degree}, prime={prime}, flag={flag}")
    with open(path, "r") as fh:
        try:
            raw = json.load(fh)
        except json.JSONDecodeError as e:
            raise LatticeDataError(f"{path}: not valid JSON: {e}")
    return SubgroupLattice(record_from_dict(label, data) for label, data in raw.items())


# ==============================================================================
# === Structural predicates ====================================================
# ==============================================================================

def has_rational_line(rec):
    """True iff the group fixes a nonzero vector (an orbit of size 1)."""
    if rec is None:
        return False
    return any(size == 1 and dim >= 1 for size, dim, _ in rec.orbits)


def predicts_quadratic_torsion(rec):
    """True iff some nonzero vector has an orbit of size 2 (sigma(T) = -T)."""
    if rec is None:
        return False
    return any(size == 2 for size, _, _ in rec.orbits)


def is_conjugation_compatible(rec):
    """
    A possible image must contain complex conjugation: an element of order 2
    with multiplier -1. The multiplier map must also be onto F_5^*.
    """
    multipliers = set()
    has_conjugation = False
    for M, _ in rec.class_data():
        lam = similitude_multiplier(M)
        if lam is None:
            continue
        multipliers.add(int(lam))
        if lam == -1 and M * M == 1 and M != 1:
            has_conjugation = True
    return has_conjugation and multipliers == set(range(1, ELL))


def allowed_labels(lattice):
    """Initial candidate set: labels compatible with complex conjugation."""
    allowed = {FULL_IMAGE_LABEL}
    for label, rec in lattice.items():
        if label == FULL_IMAGE_LABEL or is_conjugation_compatible(rec):
            allowed.add(label)
    return frozenset(allowed)

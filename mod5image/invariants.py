"""
invariants.py: (characteristic polynomial, 1-eigenspace dimension) invariants
of matrix groups over F_5, and the reverse index invariant -> labels.
"""
from collections import Counter, defaultdict
from typing import NamedTuple

from sage.all import GF, PolynomialRing

from .image_config import ELL, DIMENSION, FULL_IMAGE_LABEL, DEBUG

F5 = GF(ELL)
R5 = PolynomialRing(F5, 'x')


class InvariantPair(NamedTuple):
    """
    Charpoly (as its coefficient sequence over F_5, constant term first) and
    the dimension of ker(M - 1). Equality and hashing are structural.
    """
    coeffs: tuple
    dim: int

    @classmethod
    def from_polynomial(cls, poly, dim):
        poly = R5(poly)
        return cls(tuple(int(c) for c in poly.list()), int(dim))

    def polynomial(self):
        return R5(list(self.coeffs))

    def __str__(self):
        return f"({self.polynomial()}, {self.dim})"


def matrix_invariant(M):
    """InvariantPair of a single 4x4 matrix over F_5."""
    dim = DIMENSION - (M - 1).rank()
    return InvariantPair.from_polynomial(M.charpoly(), dim)


def invariant_spectrum(subgroup):
    """
    Multiset of invariant pairs over all elements of the subgroup.

    Uses conjugacy-class data when the record carries it: both invariants are
    class functions, so each representative counts with its class size.

    Returns:
        Counter InvariantPair -> number of elements; total equals |G|.
    """
    spectrum = Counter()
    for M, mult in subgroup.class_data():
        spectrum[matrix_invariant(M)] += mult
    return spectrum


def invariant_pairs(subgroup):
    """Distinct invariant pairs realised by the subgroup."""
    return frozenset(invariant_spectrum(subgroup))


def frobenius_charpoly(ap, bp, p):
    """x^4 - ap x^3 + bp x^2 - p ap x + p^2 reduced mod 5."""
    return R5([p * p, -p * ap, bp, -ap, 1])


def frobenius_pair(ap, bp, p, dim):
    return InvariantPair.from_polynomial(frobenius_charpoly(ap, bp, p), dim)


class InvariantDictionary:
    """
    Reverse index InvariantPair -> labels of subgroups realising the pair.

    Every lookup contains the full-image label: the full group realises every
    pair, so no single Frobenius can exclude it. Built once, never mutated.
    """

    def __init__(self, index, spectra):
        self._index = {pair: frozenset(labels) | {FULL_IMAGE_LABEL} for pair, labels in index.items()}
        self._spectra = dict(spectra)

    def lookup(self, pair):
        return self._index.get(pair, frozenset({FULL_IMAGE_LABEL}))

    def __getitem__(self, pair):
        return self.lookup(pair)

    def __contains__(self, pair):
        return pair in self._index

    def __len__(self):
        return len(self._index)

    def pairs(self):
        return frozenset(self._index)

    def spectrum(self, label):
        """Cached theoretical spectrum of a labelled subgroup (None if unknown)."""
        return self._spectra.get(label)


def build_dictionary(lattice):
    """
    Register every subgroup label under each invariant pair it realises.

    Spectra are computed once here and cached on the dictionary for the
    statistical narrowing.
    """
    index = defaultdict(set)
    spectra = {}
    for label, rec in lattice.items():
        spectrum = invariant_spectrum(rec)
        spectra[label] = spectrum
        for pair in spectrum:
            index[pair].add(label)
    if DEBUG:
        print(f"[invariants] dictionary: {len(index)} pairs over {len(spectra)} subgroups")
    return InvariantDictionary(index, spectra)

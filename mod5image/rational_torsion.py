"""
rational_torsion.py: Is 5 a divisor of #J(Q)_tors, and the hard partition
of the candidates it induces.
"""
from functools import reduce
from math import gcd
from typing import NamedTuple

from .image_config import ELL, DEBUG
from .lattice import has_rational_line
from .quadratic_torsion import search_torsion_witness
from .errlog import NullLog


class TorsionAnswer(NamedTuple):
    divisible: object         # True, False, or None when undecided
    source: str
    witness: object = None


def local_torsion_bound(samples):
    """gcd of #J(F_p) over the sampled good primes; J(Q)_tors injects into each."""
    return reduce(gcd, (s.jac_order for s in samples), 0)


def five_divides_rational_torsion(curve, samples, conf=None, stats=None, log=None, aj=None):
    """
    Decide whether 5 | #J(Q)_tors.

    A torsion order carried by the curve record wins. Otherwise the local
    bound settles "no", and a verified rational 5-torsion point settles "yes".

    Returns:
        TorsionAnswer
    """
    conf = conf or {}
    log = log or NullLog()
    if curve.torsion_order is not None:
        return TorsionAnswer(curve.torsion_order % ELL == 0, "known torsion order")
    if samples:
        bound = local_torsion_bound(samples)
        if bound % ELL != 0:
            return TorsionAnswer(False, f"local bound {bound}")
    if not conf.get('ANALYTIC_SEARCH', True):
        return TorsionAnswer(None, "analytic search disabled")
    point = search_torsion_witness(curve, conf, stats=stats, log=log, rational=True, aj=aj)
    if point is not None:
        return TorsionAnswer(True, "verified rational point", point)
    log.write("rational_torsion", f"{curve.label}: could not decide 5 | #J(Q)_tors")
    return TorsionAnswer(None, "undecided")


def filter_rational_torsion(candidates, lattice, divisible):
    """
    Keep candidates with a rational 5-torsion line when `divisible`, those
    without one otherwise. None leaves the candidates unchanged.
    """
    if divisible is None:
        return frozenset(candidates)
    kept = frozenset(label for label in candidates
                     if has_rational_line(lattice.get(label)) == bool(divisible))
    if DEBUG:
        print(f"[rational_torsion] divisible={divisible}: {len(candidates)} -> {len(kept)} candidates")
    return kept


def splits_on_rational_line(candidates, lattice):
    """True iff the partition by rational lines actually separates the candidates."""
    flags = {has_rational_line(lattice.get(label)) for label in candidates}
    return len(flags) > 1

"""
quadratic_torsion.py: Does J acquire a 5-torsion point over a quadratic field?

Three-valued decision:
  NO            the local obstruction sieve leaves no plausible field
  YES           a torsion point was found analytically, reconstructed
                exactly, and verified in J(Q(sqrt d))
  INCONCLUSIVE  anything else; not finding a witness is not a proof
"""
import itertools
from enum import Enum
from typing import NamedTuple

from sage.all import (
    QQ, ZZ, PolynomialRing, QuadraticField, NumberField, HyperellipticCurve,
    kronecker_symbol, fundamental_discriminant, prime_divisors
)

from .image_config import (
    ELL, SIEVE_MIN_PRIME, RationalReconstructionError, Fore, Style, DEBUG
)
from .curve_data import compute_conductor, move_root_to_infinity, mumford_to_odd_model
from .rational_arithmetic import reconstruct_real_part, rational_squarefree_part
from .heights import height_bound, working_precision
from .analytic import AnalyticJacobian, enumerate_torsion_points
from .lattice import predicts_quadratic_torsion
from .errlog import NullLog

QQx = PolynomialRing(QQ, 'x')


class Verdict(Enum):
    YES = "yes"
    NO = "no"
    INCONCLUSIVE = "inconclusive"


class RationalMumford(NamedTuple):
    """Reconstructed data: u over QQ, and the products v_i * v_j over QQ."""
    degree: int
    u: object                 # QQ[x], monic
    vv: dict                  # {(i, j): v_i * v_j} for i <= j


class ExactTorsionPoint(NamedTuple):
    """Mumford pair (u, sqrt(d) * w) with u, w in QQ[x]."""
    d: int
    u: object
    w: object
    line: tuple = ()


class QuadraticDecision(NamedTuple):
    verdict: Verdict
    d: object = None
    witness: object = None
    plausible: frozenset = frozenset()
    reason: str = ""


# ==============================================================================
# === Obstruction sieve ========================================================
# ==============================================================================

def plausible_dees(conductor):
    """
    Squarefree d != 1 built from -1 and the primes of the conductor. For odd
    conductor only fields unramified at 2 (d = 1 mod 4) are kept.
    """
    N = ZZ(conductor)
    gens = [-1] + [int(p) for p in prime_divisors(N)]
    dees = set()
    for r in range(1, len(gens) + 1):
        for combo in itertools.combinations(gens, r):
            d = 1
            for g in combo:
                d *= g
            if d == 1:
                continue
            if N % 2 == 1 and d % 4 != 1:
                continue
            dees.add(d)
    return frozenset(dees)


def impossible_quadratic_torsion(samples, dees, min_prime=SIEVE_MIN_PRIME):
    """
    Drop d whenever some sampled p >= min_prime has no Frobenius-fixed vector
    but splits in Q(sqrt d): a 5-torsion point over Q(sqrt d) would then
    reduce to a fixed vector mod p.

    Returns:
        frozenset of surviving d; empty means quadratic torsion is impossible.
    """
    alive = set(dees)
    for s in samples:
        if not alive:
            break
        if s.p < min_prime or s.pair.dim != 0:
            continue
        alive = {d for d in alive if kronecker_symbol(fundamental_discriminant(d), s.p) != 1}
    return frozenset(alive)


# ==============================================================================
# === Reconstruction and classification ========================================
# ==============================================================================

def reconstruct_point(point, h):
    """
    Exact u and v_i * v_j from analytic Mumford data.

    Raises RationalReconstructionError if any of them is not rational of
    height <= h to within tolerance.
    """
    if point.degree not in (1, 2):
        raise RationalReconstructionError(f"degree {point.degree} Mumford data is not handled")
    u = [reconstruct_real_part(c, h) for c in point.u]
    u_poly = QQx(u + [1])
    vv = {}
    for i, j in itertools.combinations_with_replacement(range(len(point.v)), 2):
        vv[(i, j)] = reconstruct_real_part(point.v[i] * point.v[j], h)
    return RationalMumford(point.degree, u_poly, vv)


def classify_point(rec, plausible=None, rational=False, line=()):
    """
    Read off d with v = sqrt(d) * w, w in QQ[x].

    With rational=False (quadratic search) points with d = 1 and d outside
    `plausible` are rejected; with rational=True only d = 1 is kept.

    Returns:
        ExactTorsionPoint, or None when rejected.
    """
    top = rec.degree - 1
    lead_index = None
    for i in range(top, -1, -1):
        if rec.vv[(i, i)] != 0:
            lead_index = i
            break
    if lead_index is None:
        return None          # v = 0: a 2-torsion point
    d = int(rational_squarefree_part(rec.vv[(lead_index, lead_index)]))
    if rational and d != 1:
        return None
    if not rational and (d == 1 or (plausible is not None and d not in plausible)):
        return None

    w_lead_sq = rec.vv[(lead_index, lead_index)] / d
    if not w_lead_sq.is_square():
        return None
    w_lead = w_lead_sq.sqrt()
    w = [QQ(0)] * rec.degree
    w[lead_index] = w_lead
    for i in range(rec.degree):
        if i == lead_index:
            continue
        key = (min(i, lead_index), max(i, lead_index))
        w[i] = rec.vv[key] / (d * w_lead)
        if d * w[i]**2 != rec.vv[(i, i)]:
            return None
    return ExactTorsionPoint(d, rec.u, QQx(w), tuple(line))


def _odd_model(FK, u, v):
    """
    Odd-degree model of Y^2 = FK carrying the Mumford pair (u, v).

    A root r of FK with u(r) != 0 is moved to infinity. When K holds no such
    root the model lives over K(r) for a root of the smallest irreducible
    factor of FK not dividing u.

    Returns:
        (G, U, V) over K or over an absolute number field containing K.
    """
    if FK.degree() == 5:
        return FK, u, v
    factors = sorted((g for g, _ in FK.factor() if u % g != 0), key=lambda g: g.degree())
    g = factors[0]
    if g.degree() == 1:
        r = -g[0] / g[1]
        return (move_root_to_infinity(FK, r),) + mumford_to_odd_model(u, v, r)

    K = FK.base_ring()
    if K is QQ:
        L = NumberField(g, 'r')
        r, embed = L.gen(), L
    else:
        L_rel = K.extension(g, 'r')
        L = L_rel.absolute_field('b')
        _, to_abs = L.structure()
        r = to_abs(L_rel.gen())
        embed = lambda c: to_abs(L_rel(c))
    RL = PolynomialRing(L, 'x')
    FL, uL, vL = (RL([embed(c) for c in f.list()]) for f in (FK, u, v))
    return (move_root_to_infinity(FL, r),) + mumford_to_odd_model(uL, vL, r)


def verify_torsion(F, point, order=ELL, log=None):
    """
    Exact check that (u, sqrt(d) w) is a divisor class killed by `order` in
    the Jacobian of Y^2 = F over Q(sqrt d). The group law is only ever used
    on an odd-degree model; Sage failures count as False.
    """
    log = log or NullLog()
    try:
        if point.d == 1:
            K, s = QQ, QQ(1)
        else:
            K = QuadraticField(point.d, 'sqrtd')
            s = K.gen()
        RK = PolynomialRing(K, 'x')
        FK, u, v = RK(F), RK(point.u), RK(point.w) * s
        if (v**2 - FK) % u != 0:
            log.write("verify", f"d={point.d}: v^2 != F mod u for u={point.u}")
            return False
        G, U, V = _odd_model(FK, u, v)
        J = HyperellipticCurve(G).jacobian()(G.base_ring())
        D = J([U, V])
        return order * D == J(0)
    except (TypeError, ValueError, ArithmeticError, ZeroDivisionError, NotImplementedError) as e:
        log.write("verify", f"d={point.d}, u={point.u}: {type(e).__name__}: {e}")
        return False


# ==============================================================================
# === Decision procedure =======================================================
# ==============================================================================

def search_torsion_witness(curve, conf=None, stats=None, log=None, plausible=None, rational=False, aj=None):
    """
    Enumerate the 156 torsion lines analytically and return the first point
    that reconstructs, classifies and verifies, or None.

    `aj` is an AnalyticJacobian, a zero-argument callable producing one, or
    None to build it here.
    """
    conf = conf or {}
    log = log or NullLog()
    debug = conf.get('DEBUG', DEBUG)
    h = height_bound(curve.F, min_bound=conf.get('MIN_HEIGHT_BOUND', 0), debug=debug)
    if callable(aj):
        aj = aj()
    if aj is None:
        prec = working_precision(h, min_prec=conf.get('MIN_PRECISION', 0))
        if stats is not None:
            stats.start_phase('period_matrix')
        aj = AnalyticJacobian(curve.F, prec, conf)
        if stats is not None:
            stats.end_phase('period_matrix')

    for cand in enumerate_torsion_points(aj, conf, stats=stats, log=log):
        try:
            rec = reconstruct_point(cand.point, h)
        except RationalReconstructionError as e:
            if stats is not None:
                stats.incr('reconstruction_failures')
                stats.record_discard('reconstruction', cand.line)
            if debug:
                print(f"[quadratic] line {cand.line}: {e}")
            continue
        if stats is not None:
            stats.incr('points_reconstructed')
        point = classify_point(rec, plausible=plausible, rational=rational, line=cand.line)
        if point is None:
            if stats is not None:
                stats.record_discard('classification', cand.line)
            continue
        if verify_torsion(curve.F, point, log=log):
            if stats is not None:
                stats.incr('points_verified')
            return point
        if stats is not None:
            stats.record_discard('verification', cand.line)
    return None


def needs_quadratic_resolution(candidates, lattice):
    """True iff some but not all candidates predict quadratic 5-torsion."""
    predicting = {label for label in candidates if predicts_quadratic_torsion(lattice.get(label))}
    return 0 < len(predicting) < len(candidates)


def decide_quadratic_torsion(curve, samples, candidates, lattice, conf=None, stats=None, log=None, aj=None):
    """
    Three-valued quadratic-torsion decision for the curve.

    Returns:
        QuadraticDecision
    """
    conf = conf or {}
    log = log or NullLog()
    debug = conf.get('DEBUG', DEBUG)

    conductor = compute_conductor(curve)
    plausible = impossible_quadratic_torsion(
        samples, plausible_dees(conductor), min_prime=conf.get('SIEVE_MIN_PRIME', SIEVE_MIN_PRIME))
    if debug:
        print(f"[quadratic] conductor {conductor}, plausible d: {sorted(plausible)}")
    if not plausible:
        return QuadraticDecision(Verdict.NO, plausible=plausible, reason="every quadratic field is obstructed")

    if not needs_quadratic_resolution(candidates, lattice):
        return QuadraticDecision(Verdict.INCONCLUSIVE, plausible=plausible,
                                 reason="candidates agree on quadratic torsion")
    if not conf.get('ANALYTIC_SEARCH', True):
        return QuadraticDecision(Verdict.INCONCLUSIVE, plausible=plausible, reason="analytic search disabled")

    point = search_torsion_witness(curve, conf, stats=stats, log=log, plausible=plausible, aj=aj)
    if point is not None:
        if debug:
            print(f"{Fore.GREEN}[quadratic] 5-torsion over Q(sqrt({point.d})): u={point.u}, "
                  f"v=sqrt({point.d})*({point.w}){Style.RESET_ALL}")
        return QuadraticDecision(Verdict.YES, d=point.d, witness=point, plausible=plausible,
                                 reason=f"verified witness on line {point.line}")
    return QuadraticDecision(Verdict.INCONCLUSIVE, plausible=plausible, reason="no witness found")


def apply_quadratic_decision(decision, candidates, lattice):
    """Restrict candidates to the decided property; INCONCLUSIVE keeps them."""
    if decision.verdict is Verdict.YES:
        return frozenset(l for l in candidates if predicts_quadratic_torsion(lattice.get(l)))
    if decision.verdict is Verdict.NO:
        return frozenset(l for l in candidates if not predicts_quadratic_torsion(lattice.get(l)))
    return frozenset(candidates)

"""
frobenius.py: Local sampling of Frobenius at good primes.

The point-counting collaborator is a synchronous interface returning one
FrobeniusRecord per prime. Each usable record becomes a FrobeniusSample
carrying the invariant pair of Frobenius acting on J[5].
"""
import os
import random
import shlex
import subprocess
from typing import NamedTuple

from sage.all import (
    GF, ZZ, PolynomialRing, HyperellipticCurve, prime_range
)
from tqdm import tqdm

from .image_config import (
    ELL, DIMENSION, MIN_SAMPLE_PRIME, TORSION_SAMPLE_TRIES, PointCountError, DEBUG
)
from .curve_data import model_bad_primes, format_for_counter, move_root_to_infinity, mumford_to_odd_model
from .invariants import frobenius_charpoly, InvariantPair
from .errlog import NullLog

ZZx = PolynomialRing(ZZ, 'x')


class FrobeniusRecord(NamedTuple):
    p: int
    ap: object = None
    bp: object = None
    bad: bool = False


class FrobeniusSample(NamedTuple):
    p: int
    pair: InvariantPair
    jac_order: int            # #J(F_p) = L_p(1)


def jacobian_order(ap, bp, p):
    """#J(F_p) = P(1) for P = x^4 - ap x^3 + bp x^2 - p ap x + p^2."""
    return 1 - ap + bp - p * ap + p * p


# ==============================================================================
# === Point-counting collaborators =============================================
# ==============================================================================

class PointCounter:
    """Interface: count(curve, prime_bound) -> list of FrobeniusRecord."""

    def count(self, curve, prime_bound):
        raise NotImplementedError


class SagePointCounter(PointCounter):
    """In-process counter using Sage's Frobenius polynomial of C mod p."""

    def __init__(self, min_prime=3):
        self.min_prime = min_prime

    def count(self, curve, prime_bound):
        bad = model_bad_primes(curve)
        records = []
        for p in prime_range(self.min_prime, prime_bound):
            p = int(p)
            if p in bad:
                records.append(FrobeniusRecord(p, bad=True))
                continue
            Fp = curve.F.change_ring(GF(p))
            P = HyperellipticCurve(Fp).frobenius_polynomial()
            coeffs = ZZx(P).list()
            records.append(FrobeniusRecord(p, ZZ(-coeffs[3]), ZZ(coeffs[2])))
        return records


class SubprocessPointCounter(PointCounter):
    """
    External point counter run as a blocking subprocess.

    The command template may use {poly} and {bound}. The tool writes
    `output_file`: a metadata line, then `p,ap,bp` or `p,?` per prime.
    Any failure is fatal for the curve (PointCountError); no timeout, no retry.
    """

    def __init__(self, command, output_file="lpdata.txt", cwd=None):
        self.command = command
        self.output_file = output_file
        self.cwd = cwd

    def build_command(self, curve, prime_bound):
        template = shlex.split(self.command) if isinstance(self.command, str) else list(self.command)
        poly = format_for_counter(curve)
        return [arg.format(poly=poly, bound=int(prime_bound)) for arg in template]

    def count(self, curve, prime_bound):
        cmd = self.build_command(curve, prime_bound)
        path = self.output_file if self.cwd is None else os.path.join(self.cwd, self.output_file)
        # a file left by the previous curve must never be read for this one
        if os.path.exists(path):
            os.remove(path)
        if DEBUG:
            print("[frobenius][subproc] Running:", " ".join(shlex.quote(c) for c in cmd))
        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True, cwd=self.cwd)
        except FileNotFoundError as e:
            raise PointCountError(f"point counter not found: {e}")
        except subprocess.CalledProcessError as e:
            raise PointCountError(f"point counter exited with code {e.returncode}: {e.stderr[:500]}")
        try:
            with open(path, "r") as fh:
                lines = fh.read().splitlines()
        except OSError as e:
            raise PointCountError(f"could not read {path}: {e}")
        return parse_point_count_lines(lines)


def parse_point_count_lines(lines):
    """
    Parse counter output. The first line is curve metadata and is dropped;
    output without any data line raises PointCountError.
    """
    records = []
    for lineno, line in enumerate(lines[1:], start=2):
        line = line.strip()
        if not line:
            continue
        fields = [s.strip() for s in line.split(',')]
        try:
            p = int(fields[0])
            if len(fields) == 2 and fields[1] == '?':
                records.append(FrobeniusRecord(p, bad=True))
            elif len(fields) == 3:
                records.append(FrobeniusRecord(p, ZZ(int(fields[1])), ZZ(int(fields[2]))))
            else:
                raise ValueError(f"expected 2 or 3 fields, got {len(fields)}")
        except ValueError as e:
            raise PointCountError(f"malformed point-count line {lineno}: {line!r} ({e})")
    if not records:
        raise PointCountError("point counter wrote no data lines")
    return records


# ==============================================================================
# === 5-torsion of J(F_p) ======================================================
# ==============================================================================

def _odd_model_mod_p(F, p):
    """
    Odd-degree model of Y^2 = F mod p over the smallest F_{p^k} holding a
    root r of F.

    Returns:
        (G, r, K): G over K of degree 5, r the root moved to infinity (None
        when F mod p is already a quintic).
    """
    Fp_poly = F.change_ring(GF(p))
    if Fp_poly.degree() == 5:
        return Fp_poly, None, GF(p)
    k = min(g.degree() for g, _ in Fp_poly.factor())
    K = GF(p**k, 't') if k > 1 else GF(p)
    FK = Fp_poly.change_ring(K)
    r = FK.roots(multiplicities=False)[0]
    return move_root_to_infinity(FK, r), r, K


def _random_mumford(F, p, rng):
    """
    Random F_p-rational degree-2 Mumford pair (u, v) with v^2 = F mod u, or
    None.

    The roots of u live in F_{p^2}; v interpolates chosen square roots of F
    at them and has coefficients in F_p when the roots are conjugate or both
    rational.
    """
    Fp = F.base_ring()
    K2 = GF(p**2, 't')
    R = F.parent()
    x = R.gen()
    u = x**2 + Fp(rng.randrange(p)) * x + Fp(rng.randrange(p))
    roots = u.change_ring(K2).roots(multiplicities=False)
    if len(roots) != 2:
        return None
    a, b = roots
    Fa, Fb = F.change_ring(K2)(a), F.change_ring(K2)(b)
    if Fa == 0 or Fb == 0 or not Fa.is_square() or not Fb.is_square():
        return None
    sa = Fa.sqrt()
    if u.is_irreducible():
        sb = sa**p
    else:
        sb = Fb.sqrt() * rng.choice([1, -1])
    c1 = (sa - sb) / (a - b)
    c0 = sa - c1 * a
    try:
        v = R([Fp(c0), Fp(c1)])
    except (TypeError, ValueError):
        return None
    return u, v


def _point_key(D):
    return (D[0], D[1])


def count_five_torsion_mod_p(curve, p, ap, bp, tries=TORSION_SAMPLE_TRIES, rng=None, log=None):
    """
    F_5-dimension of J(F_p)[5], or None when it could not be determined.

    Random F_p-rational divisors on Y^2 = F mod p are carried to an odd model
    (over F_{p^k} when F has no root mod p) and multiplied by the prime-to-5
    part of #J(F_p). The 5-Sylow subgroup they generate is enumerated until
    its known order is reached; its elements killed by 5 give the dimension.
    """
    log = log or NullLog()
    rng = rng or random.Random(p)
    N = ZZ(jacobian_order(ap, bp, p))
    k = N.valuation(ELL)
    if k == 0:
        return 0
    m = N // ELL**k
    target = ELL**k

    Fp_poly = curve.F.change_ring(GF(p))
    G, r, K = _odd_model_mod_p(curve.F, p)
    JK = HyperellipticCurve(G).jacobian()(K)
    zero = JK(0)
    sylow = {_point_key(zero): zero}
    attempts = 0
    while len(sylow) < target and attempts < tries * target:
        attempts += 1
        mumford = _random_mumford(Fp_poly, p, rng)
        if mumford is None:
            continue
        u, v = mumford
        if r is not None:
            u, v = u.change_ring(K), v.change_ring(K)
            if u(r) == 0:
                continue
            u, v = mumford_to_odd_model(u, v, r)
        P = m * JK([u, v])
        if _point_key(P) in sylow:
            continue
        # H + <P> is a subgroup since J(F_p) is abelian
        new = dict(sylow)
        Q = P
        while _point_key(Q) not in sylow:
            for h in sylow.values():
                S = h + Q
                new[_point_key(S)] = S
            Q = Q + P
        sylow = new
    if len(sylow) != target:
        log.write("torsion_mod_p", f"p={p}: reached {len(sylow)} of {target} Sylow elements")
        return None
    killed = sum(1 for h in sylow.values() if (ELL * h) == zero)
    dim = ZZ(killed).exact_log(ELL)
    return min(int(dim), DIMENSION)


def eigenspace_dimension(poly, curve, p, ap, bp, tries=TORSION_SAMPLE_TRIES, log=None):
    """
    dim ker(Frob - 1) on J[5]: 0 if poly(1) != 0, 1 if 1 is a simple root,
    otherwise the dimension of J(F_p)[5] computed directly (None if that
    fails).
    """
    one = poly.base_ring().one()
    if poly(one) != 0:
        return 0
    if poly.derivative()(one) != 0:
        return 1
    return count_five_torsion_mod_p(curve, p, ap, bp, tries=tries, log=log)


def sample_frobenius(curve, prime_bound, counter, conf=None, stats=None, log=None, stop_when=None):
    """
    Frobenius samples at the good primes below prime_bound.

    Bad or missing primes, primes below MIN_SAMPLE_PRIME and primes whose
    J(F_p)[5] could not be determined are skipped.
    Point-counter failures propagate. If stop_when(sample) returns True the
    remaining records are not consumed.

    Returns:
        list of FrobeniusSample
    """
    conf = conf or {}
    min_prime = conf.get('MIN_SAMPLE_PRIME', MIN_SAMPLE_PRIME)
    tries = conf.get('TORSION_SAMPLE_TRIES', TORSION_SAMPLE_TRIES)
    debug = conf.get('DEBUG', DEBUG)
    log = log or NullLog()

    records = counter.count(curve, prime_bound)
    samples = []
    for rec in tqdm(records, desc="Sampling Frobenius", disable=not debug):
        if stats is not None:
            stats.incr('primes_requested')
        if rec.bad or rec.ap is None:
            if stats is not None:
                stats.incr('primes_bad')
            continue
        if rec.p < min_prime or rec.p == ELL:
            if stats is not None:
                stats.incr('primes_below_cutoff')
            continue
        poly = frobenius_charpoly(rec.ap, rec.bp, rec.p)
        dim = eigenspace_dimension(poly, curve, rec.p, rec.ap, rec.bp, tries=tries, log=log)
        if stats is not None and poly(1) == 0 and poly.derivative()(1) == 0:
            stats.incr('torsion_counts_mod_p')
        if dim is None:
            log.write("sampling", f"{curve.label} p={rec.p}: J(F_p)[5] undetermined, sample left out")
            if stats is not None:
                stats.record_discard('torsion_count', rec.p)
            continue
        pair = InvariantPair.from_polynomial(poly, dim)
        sample = FrobeniusSample(rec.p, pair, int(jacobian_order(rec.ap, rec.bp, rec.p)))
        samples.append(sample)
        if stop_when is not None and stop_when(sample):
            if debug:
                print(f"[frobenius] stopping early at p={rec.p} after {len(samples)} samples")
            break
    if stats is not None:
        stats.incr('samples_used', len(samples))
    return samples

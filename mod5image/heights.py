# heights.py - Height bound for torsion points and the working precision it needs.
#
# A torsion point has canonical height 0, so the naive height of its Kummer
# image is bounded by the height constant beta = beta_inf + sum_p beta_p.
# The non-archimedean part follows Stoll: sum_p beta_p <= log|disc(F)/16|/3
# for primitive F, disc being that of F as a binary sextic form, plus the
# content. The archimedean part is bounded by running over all splittings
# F = G*H into a cubic and a cubic (sextic) or a cubic and a quadratic
# (quintic) over CC.
import itertools
from math import log, ceil

from sage.all import ZZ, ComplexField, PolynomialRing, gcd, prod

from .image_config import MIN_HEIGHT_BOUND, MIN_PRECISION, PRECISION_GUARD_BITS, DEBUG


def content_term(F):
    c = abs(gcd([ZZ(a) for a in F.list()]))
    return log(c) if c > 1 else 0.0


def sextic_discriminant(F):
    """Discriminant of F as a binary sextic form; lc^2 disc(F) for a quintic."""
    D = ZZ(F.discriminant())
    if F.degree() == 5:
        D *= ZZ(F.leading_coefficient())**2
    return D


def discriminant_term(F):
    """(1/3) log|disc(F0)/16| for the primitive part F0 as a sextic form, clamped at 0."""
    c = abs(gcd([ZZ(a) for a in F.list()]))
    F0 = F / c
    D = abs(sextic_discriminant(F0))
    if D == 0:
        raise ValueError("discriminant_term: F is not squarefree")
    return max(0.0, (log(D) - 4 * log(2)) / 3)


def archimedean_term(F, prec=106):
    """
    max over splittings F = lc * G * H, deg G = 3, of
    log(||G||_1 * ||H||_1) - log|Res(G, H)| / 6, clamped at 0.
    """
    CF = ComplexField(prec)
    Rx = PolynomialRing(CF, 'x')
    roots = F.change_ring(CF).roots(multiplicities=False)
    lc = abs(CF(F.leading_coefficient()))
    n = len(roots)
    best = 0.0
    for S in itertools.combinations(range(n), 3):
        if n == 6 and 0 not in S:
            # {S, complement} is the same splitting as {complement, S}
            continue
        G = prod(Rx.gen() - roots[i] for i in S)
        H = prod(Rx.gen() - roots[j] for j in range(n) if j not in S)
        res = abs(G.resultant(H))
        if res == 0:
            continue
        norm_G = sum(abs(a) for a in G.list()) * lc
        norm_H = sum(abs(a) for a in H.list())
        term = float(log(norm_G * norm_H) - log(res) / 6)
        best = max(best, term)
    return best


def height_bound(F, min_bound=MIN_HEIGHT_BOUND, debug=DEBUG):
    """
    Logarithmic height bound h for the Mumford coordinates (and squares of
    the v-coefficients) of a torsion point on Y^2 = F.

    Returns:
        float h >= min_bound
    """
    beta = content_term(F) + discriminant_term(F) + archimedean_term(F)
    # the v-coefficients enter squared
    h = 2 * beta + 2 * log(2)
    if debug:
        print(f"[heights] beta={beta:.3f}, height bound={h:.3f} (min {min_bound})")
    return max(float(min_bound), h)


def working_precision(h, min_prec=MIN_PRECISION, guard=PRECISION_GUARD_BITS):
    """
    Bits needed to resolve values of size exp(h) to within exp(-2h)/2.
    """
    return max(int(min_prec), int(ceil(4 * h / log(2))) + int(guard))

"""
rational_arithmetic.py: Best rational approximation and reconstruction of
numerical values as exact rationals.
"""
from sage.all import QQ, ZZ, RealField

from .image_config import RationalReconstructionError, floor, ceil


def _as_exact_rational(r):
    """Coerce r (Sage real, Python float, int, QQ) to an exact QQ value."""
    if hasattr(r, 'exact_rational'):
        return r.exact_rational()
    return QQ(r)


def best_approximation(r, H):
    """
    Best rational approximation p/q of r with 1 <= q <= H.

    Continued-fraction semiconvergent search: expand r until the convergent
    denominator first exceeds H, binary-search the last partial quotient for
    the largest admissible semiconvergent, and keep it only if it beats the
    previous convergent. If the expansion terminates first, r itself is
    returned.

    Returns:
        QQ element p/q.
    """
    H = int(floor(H))
    if H < 1:
        raise ValueError(f"best_approximation: height bound must be >= 1, got {H}")
    x = _as_exact_rational(r)
    num, den = int(x.numerator()), int(x.denominator())

    # (p_{k-2}, q_{k-2}), (p_{k-1}, q_{k-1})
    p0, q0 = 0, 1
    p1, q1 = 1, 0
    while den != 0:
        a, rem = divmod(num, den)
        p, q = a * p1 + p0, a * q1 + q0
        if q > H:
            # largest j in [0, a) with q0 + j*q1 <= H
            lo, hi = 0, a - 1
            while lo < hi:
                mid = (lo + hi + 1) // 2
                if q0 + mid * q1 <= H:
                    lo = mid
                else:
                    hi = mid - 1
            conv = QQ(p1) / q1
            if lo == 0:
                return conv
            semi = QQ(p0 + lo * p1) / (q0 + lo * q1)
            if abs(semi - x) < abs(conv - x):
                return semi
            return conv
        p0, q0, p1, q1 = p1, q1, p, q
        num, den = den, rem

    # expansion terminated with every denominator <= H: r is already rational
    return QQ(p1) / q1


def reconstruction_bounds(height_bound, prec=None):
    """
    Denominator bound exp(h) and tolerance exp(-2h)/2 for height bound h.
    """
    RF = RealField(prec or max(53, int(ceil(4 * height_bound)) + 20))
    h = RF(height_bound)
    return int(floor(h.exp())), (-2 * h).exp() / 2


def reconstruct_rational(value, height_bound):
    """
    Lift a real approximation to the exact rational it must equal.

    Raises RationalReconstructionError when the best approximation with
    denominator <= exp(h) is not within exp(-2h)/2 of the value.
    """
    prec = getattr(value, 'prec', lambda: 53)()
    H, tol = reconstruction_bounds(height_bound, prec=prec)
    q = best_approximation(value, H)
    err = abs(_as_exact_rational(value) - q)
    if err >= tol:
        raise RationalReconstructionError(
            f"No reconstruction for value={value} at height {height_bound}: best={q}, err={float(err):.3e}")
    return q


def reconstruct_real_part(z, height_bound):
    """
    Reconstruct a complex approximation that must be rational: the imaginary
    part has to vanish to within the reconstruction tolerance.
    """
    prec = getattr(z, 'prec', lambda: 53)()
    _, tol = reconstruction_bounds(height_bound, prec=prec)
    im = z.imag() if hasattr(z, 'imag') else 0
    if abs(im) >= tol:
        raise RationalReconstructionError(f"Imaginary residue {float(abs(im)):.3e} exceeds tolerance")
    re = z.real() if hasattr(z, 'real') else z
    return reconstruct_rational(re, height_bound)


def rational_squarefree_part(w):
    """Squarefree integer d with w = d * (rational square). w must be nonzero."""
    w = QQ(w)
    if w == 0:
        raise ValueError("rational_squarefree_part: zero has no squarefree part")
    return ZZ(w.numerator() * w.denominator()).squarefree_part()

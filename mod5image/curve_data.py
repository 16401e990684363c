"""
curve_data.py: Genus-2 curve records, database parsing, and model changes.

Every curve y^2 + h(x) y = f(x) is carried together with the simplified model
Y^2 = F(x) = h(x)^2 + 4 f(x), Y = 2y + h(x). All torsion computations run on
the simplified model, whose Jacobian is isomorphic over Q.
"""
import re
from typing import NamedTuple

from sage.all import QQ, ZZ, PolynomialRing, lcm, prime_divisors
from sage.interfaces.genus2reduction import genus2reduction

from .image_config import DEBUG

QQx = PolynomialRing(QQ, 'x')


class Genus2Curve(NamedTuple):
    label: str
    f: object                 # QQ[x]
    h: object                 # QQ[x]
    F: object                 # h^2 + 4f, integral
    conductor: object = None  # ZZ or None when not yet computed
    torsion_order: object = None

    @property
    def degree(self):
        return self.F.degree()

    def describe(self):
        return f"{self.label}: y^2 + ({self.h})*y = {self.f}"


def simplified_model(f, h):
    """
    F = h^2 + 4f, scaled by a square so its coefficients are integral.
    """
    F = QQx(h)**2 + 4 * QQx(f)
    D = lcm([QQ(c).denominator() for c in F.list()] or [1])
    return QQx(F * D**2)


def make_curve(f, h=0, label=None, conductor=None, torsion_order=None):
    """Build a Genus2Curve, checking that the model really has genus 2."""
    f, h = QQx(f), QQx(h)
    F = simplified_model(f, h)
    if F.degree() not in (5, 6):
        raise ValueError(f"h^2 + 4f must have degree 5 or 6, got {F.degree()}")
    if F.discriminant() == 0:
        raise ValueError(f"h^2 + 4f = {F} is not squarefree")
    if label is None:
        label = f"[{list(f)},{list(h)}]"
    if conductor is not None:
        conductor = ZZ(conductor)
    if torsion_order is not None:
        torsion_order = ZZ(torsion_order)
    return Genus2Curve(label, f, h, F, conductor, torsion_order)


def _split_top_level(text):
    """Split on commas that are not nested inside brackets or parentheses."""
    parts, depth, current = [], 0, ""
    for char in text:
        if char in '([':
            depth += 1
        elif char in ')]':
            depth -= 1
        elif char == ',' and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += char
    if current.strip():
        parts.append(current.strip())
    return parts


def _parse_poly(text):
    text = text.strip()
    if text.startswith('['):
        coeffs = [QQ(c) for c in _split_top_level(text[1:-1])]
        return QQx(coeffs)
    namespace = {'x': QQx.gen()}
    try:
        return QQx(eval(text.replace('^', '**'), {"__builtins__": {}}, namespace))
    except Exception as e:
        raise ValueError(f"Could not parse polynomial {text!r}: {e}")


def parse_curve_entry(entry, label=None):
    """
    Parse a curve from one of the database string formats.

    Accepted:
        "[[c0,c1,...],[h0,h1,...]]"   LMFDB coefficient lists, low degree first
        "[f(x),h(x)]"                 polynomial expressions
        "D:N:[f(x),h(x)]"             discriminant and conductor prefix
        "label|<any of the above>"    explicit label

    Returns:
        Genus2Curve
    """
    entry = entry.strip()
    torsion_order = None
    if '|' in entry:
        fields = entry.split('|')
        label, entry = fields[0].strip(), fields[1].strip()
        if len(fields) > 2 and fields[2].strip():
            torsion_order = ZZ(fields[2].strip())

    conductor = None
    match = re.search(r'\[(.*)\]$', entry)
    if not match:
        raise ValueError(f"Could not parse curve entry: {entry}")
    prefix = entry[:match.start()]
    if prefix:
        fields = [p for p in prefix.split(':') if p]
        if len(fields) >= 2:
            conductor = ZZ(fields[1])

    parts = _split_top_level(match.group(1))
    if len(parts) == 1:
        parts.append('0')
    if len(parts) != 2:
        raise ValueError(f"Expected 2 polynomials (f and h), got {len(parts)}: {parts}")
    f, h = (_parse_poly(p) for p in parts)
    return make_curve(f, h, label=label, conductor=conductor, torsion_order=torsion_order)


def compute_conductor(curve):
    """
    Conductor via PARI's genus2red; the stored value wins when present.
    """
    if curve.conductor is not None:
        return curve.conductor
    # genus2reduction wants y^2 + Q y = P with integral P, Q
    P, Q = QQx(curve.F) / 4, QQx(0)
    if any(c.denominator() != 1 for c in P.list()):
        P, Q = curve.f, curve.h
    R = genus2reduction(Q, P)
    if DEBUG:
        print(f"[curve] {curve.label}: conductor {R.conductor}")
    return ZZ(R.conductor)


def with_conductor(curve):
    return curve._replace(conductor=compute_conductor(curve))


def model_bad_primes(curve):
    """Primes where the simplified model does not reduce to a genus-2 curve."""
    F = curve.F
    disc = ZZ(F.discriminant() * F.leading_coefficient())
    bad = set(prime_divisors(disc)) | {2}
    if F.degree() == 5:
        bad |= set(prime_divisors(ZZ(F.leading_coefficient())))
    return bad


def format_for_counter(curve):
    """Univariate expression handed to the external point counter."""
    return str(curve.F).replace(' ', '')


# ==============================================================================
# === Model changes ============================================================
# ==============================================================================

def move_root_to_infinity(F, r):
    """
    Odd-degree model through x = r + 1/X, Y = y X^3, for a root r of F.

    Returns:
        G in K[X] of degree 5 with Y^2 = G(X).
    """
    R = F.parent()
    X = R.gen()
    if F(r) != 0:
        raise ValueError(f"{r} is not a root of {F}")
    coeffs = F.list() + [0] * (7 - len(F.list()))
    G = sum(c * (r * X + 1)**i * X**(6 - i) for i, c in enumerate(coeffs))
    return R(G)


def mumford_to_odd_model(u, v, r):
    """
    Transport Mumford data (u, v) on Y^2 = F to the model of
    move_root_to_infinity(F, r). Requires u(r) != 0.
    """
    R = u.parent()
    X = R.gen()
    d = u.degree()
    if u(r) == 0:
        raise ValueError("divisor meets the root moved to infinity")
    U = sum(c * (r * X + 1)**i * X**(d - i) for i, c in enumerate(u.list()))
    U = R(U).monic()
    V = sum(c * (r * X + 1)**i * X**(3 - i) for i, c in enumerate(v.list()))
    V = R(V) % U
    return U, V

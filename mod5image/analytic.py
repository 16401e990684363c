"""
analytic.py: The analytic Jacobian of Y^2 = F(x) and inversion of the
Abel-Jacobi map at 5-torsion points.

The big period matrix and Abel-Jacobi integrals come from Sage's
RiemannSurface. Inversion tracks an effective divisor P1 + P2 along a path
in C^2 (Heun steps on the differential equation sum_i omega(P_i) dx_i = dz),
then polishes it with Newton steps against exact Abel-Jacobi values.

The tracked divisor is normalised against a generic base Q1 + Q2: for a
torsion class D the endpoint P1 + P2 ~ D + Q1 + Q2 is a pair of distinct
affine points even when D is P - oo or 2P - 2oo. The Mumford data of D then
comes from one Cantor step over C (compose with iota Q1 + iota Q2, reduce).
"""
import itertools
from enum import Enum
from typing import NamedTuple

from sage.all import QQ, ComplexField, RealField, PolynomialRing, vector, prod
from sage.schemes.riemann_surfaces.riemann_surface import RiemannSurface
from tqdm import tqdm

from .image_config import (
    ELL, DIMENSION, CONTINUATION_STEPS, NEWTON_MAX_ITER, INVERSION_RETRIES,
    INFINITY_CUTOFF, InversionError, DEBUG
)
from .errlog import NullLog

# generic abscissae, away from the branch points of typical models
_START_X = ((0.31, 0.17), (-0.43, 0.29))
_BASE_X = ((0.12, -0.38), (-0.27, -0.21))


class InversionStatus(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    HARD = "hard"


class AnalyticMumford(NamedTuple):
    """
    Numerical Mumford data: u = x^d + sum u[i] x^i, v = sum v[i] x^i,
    complex coefficients, low degree first.
    """
    degree: int
    u: tuple
    v: tuple


class InversionResult(NamedTuple):
    status: InversionStatus
    value: object = None      # AnalyticMumford on success
    reason: str = ""


class TorsionCandidate(NamedTuple):
    line: tuple               # representative vector in F_5^4
    multiplier: int           # 1, or 2 after a doubling retry
    point: AnalyticMumford


def torsion_lines():
    """Representatives of the (5^4 - 1)/(5 - 1) = 156 lines of F_5^4."""
    lines = []
    for v in itertools.product(range(ELL), repeat=DIMENSION):
        nz = [c for c in v if c]
        if nz and nz[0] == 1:
            lines.append(v)
    return lines


class AnalyticJacobian:
    """
    Period lattice and Abel-Jacobi map of Y^2 = F(x) at `prec` bits.
    """

    def __init__(self, F, prec, conf=None):
        conf = conf or {}
        self.prec = int(prec)
        self.steps = conf.get('CONTINUATION_STEPS', CONTINUATION_STEPS)
        self.max_iter = conf.get('NEWTON_MAX_ITER', NEWTON_MAX_ITER)
        self.debug = conf.get('DEBUG', DEBUG)
        self.CF = ComplexField(self.prec)
        self.eps = RealField(self.prec)(2)**(-((self.prec * 3) // 4))

        Rxy = PolynomialRing(QQ, ['x', 'y'])
        x, y = Rxy.gens()
        self.F = F.change_ring(QQ)
        self.FC = self.F.change_ring(self.CF)
        self.dFC = self.FC.derivative()
        f = y**2 - self.F(x)
        self.surface = RiemannSurface(f, prec=self.prec)
        self.periods = self.surface.period_matrix()
        dfdy = f.derivative(y)
        self._omega = [(g.change_ring(self.CF), dfdy.change_ring(self.CF))
                       for g in self.surface.cohomology_basis()]

        # start divisor Sa + Sb and base Q1 + Q2, all four abscissae distinct
        self._start = tuple(self._lift(self.CF(re, im)) for re, im in _START_X)
        self._base = tuple(self._lift(self.CF(re, im)) for re, im in _BASE_X)
        self._w0 = self._aj_relative(self._start)
        if self.debug:
            print(f"[analytic] period matrix at {self.prec} bits, start AJ {self._w0}")

    # ---------------- helpers ----------------
    def _lift(self, x0, y_hint=None):
        """Point (x0, y) on the curve; y is the square root nearest y_hint."""
        y0 = self.FC(x0).sqrt()
        if y_hint is not None and abs(-y0 - y_hint) < abs(y0 - y_hint):
            y0 = -y0
        return (x0, y0)

    def differentials(self, P):
        x0, y0 = P
        return [g(x0, y0) / d(x0, y0) for g, d in self._omega]

    def _aj_relative(self, points):
        divisor = [(1, p) for p in points] + [(-1, q) for q in self._base]
        return vector(self.CF, self.surface.abel_jacobi(divisor))

    def reduce(self, z):
        return vector(self.CF, self.surface.reduce_over_period_lattice(vector(self.CF, z)))

    def torsion_vector(self, line):
        """Omega * a / 5 for a line representative a."""
        a = vector(self.CF, [self.CF(c) for c in line])
        return self.periods * a / ELL

    def _solve(self, P1, P2, dz):
        w1, w2 = self.differentials(P1), self.differentials(P2)
        det = w1[0] * w2[1] - w2[0] * w1[1]
        if abs(det) < self.eps:
            raise InversionError("singular differential matrix (points collide)")
        dx1 = (dz[0] * w2[1] - w2[0] * dz[1]) / det
        dx2 = (w1[0] * dz[1] - dz[0] * w1[1]) / det
        return dx1, dx2

    def _advance(self, P, dx):
        x0, y0 = P
        x1 = x0 + dx
        if abs(x1) > INFINITY_CUTOFF:
            raise InversionError("point escaped to infinity")
        # first-order prediction of y picks the branch
        y_pred = y0 + self.dFC(x0) / (2 * y0) * dx if y0 != 0 else y0
        return self._lift(x1, y_pred)

    # ---------------- inversion ----------------
    def _track(self, target):
        P1, P2 = self._start
        dz = (target - self._w0) / self.steps
        for _ in range(self.steps):
            k1 = self._solve(P1, P2, dz)
            Q1, Q2 = self._advance(P1, k1[0]), self._advance(P2, k1[1])
            k2 = self._solve(Q1, Q2, dz)
            P1 = self._advance(P1, (k1[0] + k2[0]) / 2)
            P2 = self._advance(P2, (k1[1] + k2[1]) / 2)
        return P1, P2

    def _polish(self, target, P1, P2):
        for _ in range(self.max_iter):
            r = self.reduce(target - self._aj_relative((P1, P2)))
            if max(abs(c) for c in r) < self.eps:
                return P1, P2
            dx1, dx2 = self._solve(P1, P2, r)
            P1, P2 = self._advance(P1, dx1), self._advance(P2, dx2)
        raise InversionError(f"Newton polish did not converge in {self.max_iter} steps")

    def invert(self, z):
        """
        Effective divisor P1 + P2 with AJ(P1 + P2 - Q1 - Q2) = z mod periods,
        returned as Mumford data of the class z.

        Returns:
            InversionResult
        """
        z = self.reduce(z)
        if max(abs(c) for c in z) < self.eps:
            return InversionResult(InversionStatus.HARD, reason="zero vector has no affine representative")
        target = self._w0 + self.reduce(z - self._w0)
        try:
            P1, P2 = self._track(target)
            P1, P2 = self._polish(target, P1, P2)
        except (InversionError, ZeroDivisionError, ValueError, ArithmeticError) as e:
            return InversionResult(InversionStatus.RETRYABLE, reason=str(e))
        return reduce_against_base(self.FC, (P1, P2), self._base, self.eps.sqrt())


def _quotient(num, den, size):
    """Low `size` coefficients of num // den for monic den, low degree first."""
    dn = len(den) - 1
    num = list(num) + [0] * max(0, dn + size - len(num))
    q = [0] * size
    for k in range(size - 1, -1, -1):
        q[k] = num[k + dn]
        for j in range(dn + 1):
            num[k + j] -= q[k] * den[j]
    return q


def reduce_against_base(F, points, base, tol):
    """
    Mumford data of P1 + P2 - Q1 - Q2 on Y^2 = F over C.

    One Cantor step: v interpolates P1, P2, iota Q1, iota Q2 over
    u = prod (x - x_i), then u' = (F - v^2) / u and v' = -v mod u'. On a
    quintic a vanishing x^2 coefficient of u' means the class is P - oo.

    Returns:
        InversionResult
    """
    R = F.parent()
    X = R.gen()
    nodes = list(points) + [(q[0], -q[1]) for q in base]
    for (xa, _), (xb, _) in itertools.combinations(nodes, 2):
        if abs(xa - xb) < tol:
            return InversionResult(InversionStatus.RETRYABLE, reason="divisor meets the base abscissae")
    u = prod(X - xa for xa, _ in nodes)
    v = R(0)
    for i, (xi, yi) in enumerate(nodes):
        v += yi * prod((X - xj) / (xi - xj) for j, (xj, _) in enumerate(nodes) if j != i)
    q0, q1, q2 = _quotient((F - v**2).list(), u.list(), 3)

    scale = max(abs(q0), abs(q1), abs(q2))
    if abs(q2) > tol * scale:
        u0, u1 = q0 / q2, q1 / q2
        w = [-c for c in v.list()] + [0, 0]
        for k in range(len(w) - 1, 1, -1):
            w[k - 1] -= w[k] * u1
            w[k - 2] -= w[k] * u0
        return InversionResult(InversionStatus.SUCCESS, AnalyticMumford(2, (u0, u1), (w[0], w[1])))
    if F.degree() != 5:
        return InversionResult(InversionStatus.RETRYABLE, reason="point at infinity on even model")
    if abs(q1) <= tol * scale:
        return InversionResult(InversionStatus.HARD, reason="divisor is principal")
    u0 = q0 / q1
    return InversionResult(InversionStatus.SUCCESS, AnalyticMumford(1, (u0,), (-v(-u0),)))


def enumerate_torsion_points(aj, conf=None, stats=None, log=None):
    """
    Invert one representative per line of J[5]. A retryable failure is
    retried with the doubled point (same line); a second failure drops the
    line with a log entry.

    Yields:
        TorsionCandidate
    """
    conf = conf or {}
    retries = conf.get('INVERSION_RETRIES', INVERSION_RETRIES)
    debug = conf.get('DEBUG', DEBUG)
    log = log or NullLog()

    for line in tqdm(torsion_lines(), desc="Inverting torsion lines", disable=not debug):
        if stats is not None:
            stats.incr('lines_enumerated')
        z = aj.torsion_vector(line)
        multiplier = 1
        for attempt in range(retries + 1):
            result = aj.invert(multiplier * z)
            if result.status is InversionStatus.SUCCESS:
                yield TorsionCandidate(line, multiplier, result.value)
                break
            if result.status is InversionStatus.HARD:
                log.write("invert", f"line {line}: {result.reason}")
                break
            if attempt < retries:
                if stats is not None:
                    stats.incr('inversion_retries')
                log.write("invert", f"line {line} x{multiplier}: {result.reason}; retrying doubled")
                multiplier *= 2
        else:
            if stats is not None:
                stats.incr('inversion_failures')
            log.write("invert", f"line {line}: dropped after {retries + 1} attempts")

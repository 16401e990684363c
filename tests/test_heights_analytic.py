from math import log

import pytest
from sage.all import QQ, ComplexField, PolynomialRing

from mod5image.heights import (
    content_term, sextic_discriminant, discriminant_term, archimedean_term, height_bound, working_precision
)
from mod5image.analytic import (
    torsion_lines, AnalyticJacobian, AnalyticMumford, InversionResult, InversionStatus,
    enumerate_torsion_points, reduce_against_base
)
from mod5image.run_stats import RunStats
from mod5image.errlog import NullLog
from mod5image.image_config import NUM_TORSION_LINES, default_config

from conftest import ScriptedJacobian

QQx = PolynomialRing(QQ, 'x')
x = QQx.gen()


class TestHeights:
    def test_content(self):
        assert content_term(x**5 + 1) == 0
        assert abs(content_term(4 * x**5 + 4) - log(4)) < 1e-12

    def test_discriminant_clamped(self):
        assert discriminant_term(x**5 + 1) >= 0

    def test_quintic_discriminant_as_sextic_form(self):
        # x -> 1/x turns 2x^5 + 1 into x^6 + 2x; the form discriminant is unchanged
        assert sextic_discriminant(2 * x**5 + 1) == 4 * (2 * x**5 + 1).discriminant()
        assert abs(sextic_discriminant(2 * x**5 + 1)) == abs((x**6 + 2 * x).discriminant())
        assert sextic_discriminant(x**6 + 2 * x) == (x**6 + 2 * x).discriminant()

    def test_discriminant_term_uses_leading_coefficient(self):
        assert abs(discriminant_term(2 * x**5 + 1) - (log(200000) - 4 * log(2)) / 3) < 1e-9
        assert abs(discriminant_term(2 * x**5 + 1) - discriminant_term(x**6 + 2 * x)) < 1e-9

    def test_singular_rejected(self):
        with pytest.raises(ValueError):
            discriminant_term((x - 1)**2 * (x**3 + 2))

    def test_archimedean_nonnegative(self):
        assert archimedean_term(x**6 + 3 * x + 1) >= 0

    def test_height_bound_floor(self):
        assert height_bound(x**5 + 1, min_bound=10) >= 10
        assert height_bound(x**5 + 1, min_bound=1000) == 1000

    def test_height_grows_with_discriminant(self):
        assert height_bound(x**5 + 10**6, min_bound=0) > height_bound(x**5 + 1, min_bound=0)

    def test_working_precision(self):
        assert working_precision(1, min_prec=200) == 200
        assert working_precision(100, min_prec=0, guard=40) == 578 + 40
        assert working_precision(50) <= working_precision(60)


class TestTorsionLines:
    def test_count(self):
        lines = torsion_lines()
        assert len(lines) == NUM_TORSION_LINES == 156
        assert len(set(lines)) == 156

    def test_normalised(self):
        for line in torsion_lines():
            first = next(c for c in line if c)
            assert first == 1

    def test_lines_are_distinct_subspaces(self):
        seen = set()
        for line in torsion_lines():
            span = frozenset(tuple((k * c) % 5 for c in line) for k in range(1, 5))
            assert not span & seen
            seen |= span
        assert len(seen) == 624


CF = ComplexField(200)
TOL = CF(2)**-80


def close(a, b):
    return abs(a - b) < 1e-40


def residual_points(c, quartic):
    """Points (r, c(r)) over the roots of the quartic (F - c^2) / x^k."""
    return [(r, c(r)) for r in quartic.roots(CF, multiplicities=False)]


class TestReduceAgainstBase:
    # y = 1 + 2x meets y^2 = x^5 + 1 at (0, 1) and four points R_i, so
    # iota R_1 + iota R_2 - R_3 - R_4 ~ (0, 1) - oo
    def test_point_minus_infinity(self):
        R = residual_points(1 + 2 * x, x**4 - 4 * x - 4)
        points = [(r, -y) for r, y in R[:2]]
        result = reduce_against_base((x**5 + 1).change_ring(CF), points, R[2:], TOL)
        assert result.status is InversionStatus.SUCCESS
        D = result.value
        assert D.degree == 1
        assert close(D.u[0], 0) and close(D.v[0], 1)

    # y = 1 + x^2 + x^3 is tangent at (0, 1): the class is 2(0, 1) - 2oo
    def test_double_point(self):
        R = residual_points(1 + x**2 + x**3, x**4 + x**3 + x**2 + 2 * x + 2)
        points = [(r, -y) for r, y in R[:2]]
        result = reduce_against_base((x**5 + 1).change_ring(CF), points, R[2:], TOL)
        assert result.status is InversionStatus.SUCCESS
        D = result.value
        assert D.degree == 2
        assert all(close(c, 0) for c in D.u)
        assert close(D.v[0], 1) and close(D.v[1], 0)

    def test_generic_class_satisfies_mumford_relation(self):
        F = (x**5 + 1).change_ring(CF)
        lift = lambda a: (CF(a), F(CF(a)).sqrt())
        points = [lift(CF(0.3, 0.2)), lift(CF(-0.7, 0.1))]
        base = [lift(CF(0.1, -0.4)), lift(CF(1.2, 0.5))]
        result = reduce_against_base(F, points, base, TOL)
        assert result.status is InversionStatus.SUCCESS
        D = result.value
        Rc = F.parent()
        u = Rc(list(D.u) + [1])
        v = Rc(list(D.v))
        assert all(abs(c) < 1e-40 for c in ((v**2 - F) % u).list())

    def test_shared_abscissa_is_retryable(self):
        R = residual_points(1 + 2 * x, x**4 - 4 * x - 4)
        points = [(R[0][0], -R[0][1]), (R[1][0], -R[1][1])]
        base = [(R[0][0], -R[0][1]), R[2]]
        result = reduce_against_base((x**5 + 1).change_ring(CF), points, base, TOL)
        assert result.status is InversionStatus.RETRYABLE

    # y = x^3 on y^2 = x^6 + x^5 + 1 leaves x^5 + 1: the class has a point at infinity
    def test_infinity_on_even_model_is_retryable(self):
        F = (x**6 + x**5 + 1).change_ring(CF)
        R = residual_points(x**3, x**4 - x**3 + x**2 - x + 1)
        points, base = R[:2], [(r, -y) for r, y in R[2:]]
        result = reduce_against_base(F, points, base, TOL)
        assert result.status is InversionStatus.RETRYABLE
        assert "infinity" in result.reason


class TestEnumerateTorsionPoints:
    POINT = AnalyticMumford(1, (CF(0),), (CF(1),))

    def test_retry_with_doubled_point(self):
        aj = ScriptedJacobian({
            (1, 0, 0, 0): InversionResult(InversionStatus.RETRYABLE, reason="collision"),
            (2, 0, 0, 0): InversionResult(InversionStatus.SUCCESS, self.POINT),
        })
        stats, log = RunStats(), NullLog()
        found = list(enumerate_torsion_points(aj, default_config(), stats=stats, log=log))
        assert [(c.line, c.multiplier) for c in found] == [((1, 0, 0, 0), 2)]
        assert found[0].point == self.POINT
        assert stats.counters['inversion_retries'] == 1
        assert stats.counters['inversion_failures'] == 0
        assert stats.counters['lines_enumerated'] == 156

    def test_second_failure_drops_line(self):
        aj = ScriptedJacobian({
            (0, 1, 0, 0): InversionResult(InversionStatus.RETRYABLE, reason="collision"),
            (0, 2, 0, 0): InversionResult(InversionStatus.RETRYABLE, reason="collision"),
        })
        stats = RunStats()
        assert list(enumerate_torsion_points(aj, default_config(), stats=stats)) == []
        assert stats.counters['inversion_failures'] == 1
        assert aj.calls.count((0, 2, 0, 0)) == 1

    def test_hard_failure_is_not_retried(self):
        aj = ScriptedJacobian()
        assert list(enumerate_torsion_points(aj, default_config())) == []
        assert len(aj.calls) == 156


@pytest.mark.slow
class TestAnalyticJacobian:
    @pytest.fixture(scope="class")
    def aj(self):
        return AnalyticJacobian(x**5 + 1, 100, default_config(CONTINUATION_STEPS=32))

    def test_zero_vector_is_hard(self, aj):
        assert aj.invert(aj.torsion_vector((0, 0, 0, 0))).status is InversionStatus.HARD

    def test_period_is_zero_mod_lattice(self, aj):
        z = aj.reduce(aj.periods.column(0))
        assert max(abs(c) for c in z) < 1e-20

    def test_inverted_points_lie_on_the_curve(self, aj):
        F = aj.FC
        successes = 0
        for line in torsion_lines()[:12]:
            result = aj.invert(aj.torsion_vector(line))
            assert result.status in InversionStatus
            if result.status is not InversionStatus.SUCCESS:
                continue
            successes += 1
            point = result.value
            R = F.parent()
            u = R(list(point.u) + [1])
            v = R(list(point.v))
            residue = (v**2 - F) % u
            assert all(abs(c) < 1e-15 for c in residue.list())
        assert successes > 0

import pytest
from sage.all import QQ, GF, PolynomialRing

from mod5image.curve_data import (
    simplified_model, make_curve, parse_curve_entry, compute_conductor, model_bad_primes,
    format_for_counter, move_root_to_infinity, mumford_to_odd_model
)

QQx = PolynomialRing(QQ, 'x')
x = QQx.gen()

F_431250 = 4 * x**5 - 20 * x**3 + 5 * x**2 + 20 * x - 4


class TestModels:
    def test_simplified_model(self):
        assert simplified_model(x**5 - 5 * x**3 + x**2 + 5 * x - 1, x) == F_431250

    def test_denominators_cleared(self):
        F = simplified_model(x**6 / 4 + 1, 0)
        assert all(c.denominator() == 1 for c in F.list())

    def test_wrong_degree(self):
        with pytest.raises(ValueError):
            make_curve(x**4 + 1)

    def test_singular_model(self):
        with pytest.raises(ValueError):
            make_curve((x - 1)**2 * (x**3 + 2))


class TestParsing:
    def test_lmfdb_coefficients(self, curve_431250):
        curve = parse_curve_entry("[[-1,5,1,-5,0,1],[0,1]]")
        assert curve.F == curve_431250.F
        assert curve.degree == 5

    def test_expressions(self):
        curve = parse_curve_entry("[x^5-5*x^3+x^2+5*x-1,x]")
        assert curve.F == F_431250

    def test_discriminant_conductor_prefix(self):
        curve = parse_curve_entry("431250:431250:[x^5-5*x^3+x^2+5*x-1,x]")
        assert curve.conductor == 431250

    def test_label_and_torsion(self):
        curve = parse_curve_entry("431250.a.431250.1|[[-1,5,1,-5,0,1],[0,1]]|1")
        assert curve.label == "431250.a.431250.1"
        assert curve.torsion_order == 1

    def test_missing_h(self):
        assert parse_curve_entry("[x^6+1]").h == 0

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_curve_entry("y^2 = x^5 + 1")
        with pytest.raises(ValueError):
            parse_curve_entry("[x^5+1,x,x]")


class TestArithmetic:
    def test_stored_conductor_wins(self, curve_431250):
        assert compute_conductor(curve_431250) == 431250

    def test_conductor_from_genus2red(self):
        curve = parse_curve_entry("[[-1,5,1,-5,0,1],[0,1]]")
        assert compute_conductor(curve) == 431250

    def test_bad_primes(self, curve_431250):
        bad = model_bad_primes(curve_431250)
        assert {2, 3, 5, 23} <= bad
        assert 7 not in bad

    def test_counter_format(self, curve_431250):
        assert " " not in format_for_counter(curve_431250)


class TestMoveRootToInfinity:
    def test_degree_drops(self):
        G = move_root_to_infinity(x**6 - 1, 1)
        assert G.degree() == 5
        assert G == (x + 1)**6 - x**6

    def test_not_a_root(self):
        with pytest.raises(ValueError):
            move_root_to_infinity(x**6 - 1, 2)

    def test_mumford_transport(self):
        # (3, sqrt 21) lies on y^2 = x^6 - 1 over F_101, since 3^6 - 1 = 728 = 21
        Fp = GF(101)
        R = PolynomialRing(Fp, 'x')
        X = R.gen()
        F = X**6 - 1
        r = Fp(1)
        U, V = mumford_to_odd_model(X - 3, R(Fp(21).sqrt()), r)
        G = move_root_to_infinity(F, r)
        assert U == X - Fp(1) / 2
        assert (V**2 - G) % U == 0

import pytest
from sage.all import QQ, RealField, ComplexField

from mod5image.rational_arithmetic import (
    best_approximation, reconstruction_bounds, reconstruct_rational,
    reconstruct_real_part, rational_squarefree_part
)
from mod5image.image_config import RationalReconstructionError

RF = RealField(200)


def brute_force_distance(r, H):
    """Smallest |r - p/q| over 1 <= q <= H."""
    r = QQ(r)
    best = None
    for q in range(1, H + 1):
        p = (r * q).round()
        d = abs(r - QQ(p) / q)
        if best is None or d < best:
            best = d
    return best


class TestBestApproximation:
    def test_pi(self):
        pi = RF.pi()
        assert best_approximation(pi, 10) == QQ(22) / 7
        assert best_approximation(pi, 100) == QQ(311) / 99
        assert best_approximation(pi, 1000) == QQ(355) / 113

    def test_semiconvergent_beats_convergent(self):
        # 311/99 is a semiconvergent of pi, 22/7 the previous convergent
        assert best_approximation(RF.pi(), 99) == QQ(311) / 99

    def test_rational_terminates_early(self):
        r = QQ(355) / 113
        assert best_approximation(r, 10**6) == r
        assert best_approximation(RF(3) / 7, 1000) == QQ(3) / 7

    def test_integer(self):
        assert best_approximation(QQ(5), 1) == 5
        assert best_approximation(QQ(-2), 7) == -2

    def test_negative(self):
        assert best_approximation(-RF.pi(), 10) == QQ(-22) / 7

    @pytest.mark.parametrize("r", [QQ(1234567) / 1000003, QQ(-987654) / 333331, QQ(271828) / 100000])
    def test_matches_brute_force(self, r):
        for H in range(1, 40):
            q = best_approximation(r, H)
            assert q.denominator() <= H
            assert abs(QQ(r) - q) == brute_force_distance(r, H)

    def test_bad_bound(self):
        with pytest.raises(ValueError):
            best_approximation(QQ(1) / 3, 0)


class TestReconstruction:
    def test_bounds(self):
        H, tol = reconstruction_bounds(5, prec=100)
        assert H == 148
        assert abs(float(tol) - 2.2699964881242427e-05) < 1e-15

    def test_exact_rational(self):
        assert reconstruct_rational(RF(-17) / 23, 5) == QQ(-17) / 23

    def test_irrational_rejected(self):
        # best q <= 148 is 140/99, about 7e-5 away
        with pytest.raises(RationalReconstructionError):
            reconstruct_rational(RF(2).sqrt(), 5)

    def test_real_part(self):
        CF = ComplexField(200)
        assert reconstruct_real_part(CF(QQ(5) / 9, RF(2)**-150), 8) == QQ(5) / 9

    def test_imaginary_residue_rejected(self):
        CF = ComplexField(200)
        with pytest.raises(RationalReconstructionError):
            reconstruct_real_part(CF(QQ(5) / 9, QQ(1) / 10), 8)


class TestSquarefreePart:
    def test_values(self):
        assert rational_squarefree_part(QQ(12) / 5) == 15
        assert rational_squarefree_part(-8) == -2
        assert rational_squarefree_part(QQ(9) / 4) == 1

    def test_zero(self):
        with pytest.raises(ValueError):
            rational_squarefree_part(0)

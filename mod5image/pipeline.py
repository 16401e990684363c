"""
pipeline.py: Orchestration of the mod-5 image determination.

Local narrowing first (cheap, often conclusive), then the rational-torsion
partition, then the quadratic-torsion decision only while it can still
discriminate between the remaining candidates.
"""
from typing import NamedTuple

from tqdm import tqdm

from .image_config import (
    FULL_IMAGE_LABEL, Mod5ImageError, PointCountError, Fore, Style, default_config
)
from .lattice import allowed_labels
from .frobenius import sample_frobenius
from .narrowing import DictionaryNarrower, narrow
from .rational_torsion import (
    TorsionAnswer, five_divides_rational_torsion, filter_rational_torsion, splits_on_rational_line
)
from .quadratic_torsion import (
    decide_quadratic_torsion, apply_quadratic_decision, needs_quadratic_resolution
)
from .heights import height_bound, working_precision
from .analytic import AnalyticJacobian
from .run_stats import RunStats
from .errlog import NullLog

# PARI and GAP failures surface as RuntimeError subclasses
STAGE_ERRORS = (ArithmeticError, ValueError, RuntimeError, Mod5ImageError)


class ImageResult(NamedTuple):
    curve: str
    candidates: frozenset
    surjective: bool
    narrowing: object = None      # NarrowingReport
    rational_torsion: object = None   # TorsionAnswer
    quadratic: object = None      # QuadraticDecision
    stats: object = None

    def labels(self):
        return sorted(self.candidates)


class _LazyJacobian:
    """Builds the analytic Jacobian on first use and shares it between stages."""

    def __init__(self, curve, conf, stats):
        self.curve, self.conf, self.stats = curve, conf, stats
        self._aj = None

    def get(self):
        if self._aj is None:
            h = height_bound(self.curve.F, min_bound=self.conf['MIN_HEIGHT_BOUND'], debug=self.conf['DEBUG'])
            prec = working_precision(h, min_prec=self.conf['MIN_PRECISION'])
            self.stats.start_phase('period_matrix')
            self._aj = AnalyticJacobian(self.curve.F, prec, self.conf)
            self.stats.end_phase('period_matrix')
        return self._aj


def format_verdict(result):
    if result.surjective:
        return f"{Fore.GREEN}{result.curve}: surjective ({FULL_IMAGE_LABEL}){Style.RESET_ALL}"
    labels = result.labels()
    if len(labels) == 1:
        return f"{Fore.GREEN}{result.curve}: image {labels[0]}{Style.RESET_ALL}"
    if not labels:
        return f"{Fore.RED}{result.curve}: no candidate survived{Style.RESET_ALL}"
    return f"{Fore.YELLOW}{result.curve}: {len(labels)} candidates {', '.join(labels)}{Style.RESET_ALL}"


def determine_image(curve, lattice, dictionary, counter, conf=None, log=None, stats=None, verbose=True, aj=None):
    """
    Candidate labels for the mod-5 image of Jac(curve).

    Point-counter failures propagate (PointCountError); all other numerical
    trouble is logged and degrades to a larger candidate set. `aj` is an
    AnalyticJacobian or a zero-argument factory for one; by default it is
    built on first use.

    Returns:
        ImageResult
    """
    conf = conf or default_config()
    log = log or NullLog()
    stats = stats or RunStats(curve.label)

    # === STAGE: INITIAL CANDIDATES ===
    candidates = allowed_labels(lattice)
    stats.record_stage('conjugation', candidates)

    # === STAGE: LOCAL SAMPLING ===
    stop_when = None
    if conf['EARLY_SURJECTIVE_EXIT']:
        stop_when = DictionaryNarrower(dictionary, candidates).update
    stats.start_phase('sampling')
    samples = sample_frobenius(curve, conf['PRIME_BOUND'], counter, conf, stats=stats, log=log,
                               stop_when=stop_when)
    stats.end_phase('sampling')
    if not samples:
        log.write("sampling", f"{curve.label}: no usable Frobenius samples below {conf['PRIME_BOUND']}")

    # === STAGE: STATISTICAL NARROWING ===
    stats.start_phase('narrowing')
    report = narrow(samples, candidates, dictionary, conf)
    stats.end_phase('narrowing')
    stats.record_stage('local', report.retained)
    if report.surjective:
        result = ImageResult(curve.label, frozenset({FULL_IMAGE_LABEL}), True, report, stats=stats)
        if verbose:
            print(format_verdict(result))
        return result
    candidates = report.retained

    if aj is None:
        aj = _LazyJacobian(curve, conf, stats).get

    # === STAGE: RATIONAL TORSION ===
    answer = None
    if splits_on_rational_line(candidates, lattice):
        stats.start_phase('rational_torsion')
        try:
            answer = five_divides_rational_torsion(curve, samples, conf, stats=stats, log=log, aj=aj)
        except STAGE_ERRORS as e:
            log.write("rational_torsion", f"{curve.label}: {type(e).__name__}: {e}")
            answer = TorsionAnswer(None, f"failed: {type(e).__name__}")
        stats.end_phase('rational_torsion')
        candidates = filter_rational_torsion(candidates, lattice, answer.divisible)
        stats.record_stage('rational_torsion', candidates)

    # === STAGE: QUADRATIC TORSION ===
    decision = None
    if needs_quadratic_resolution(candidates, lattice):
        stats.start_phase('quadratic_torsion')
        try:
            decision = decide_quadratic_torsion(curve, samples, candidates, lattice, conf, stats=stats, log=log,
                                                aj=aj)
        except STAGE_ERRORS as e:
            log.write("quadratic", f"{curve.label}: {type(e).__name__}: {e}")
            decision = None
        stats.end_phase('quadratic_torsion')
        if decision is not None:
            candidates = apply_quadratic_decision(decision, candidates, lattice)
            stats.record_stage(f"quadratic_{decision.verdict.value}", candidates)

    result = ImageResult(curve.label, frozenset(candidates), candidates == {FULL_IMAGE_LABEL},
                         report, answer, decision, stats)
    if verbose:
        print(format_verdict(result))
    return result


def run_batch(curves, lattice, dictionary, counter, conf=None, log=None, verbose=True):
    """
    Determine the image for each curve. A curve whose point count or
    arithmetic fails is logged and skipped; the batch carries on.

    Returns:
        (list of ImageResult, RunStats with batch totals)
    """
    conf = conf or default_config()
    log = log or NullLog()
    totals = RunStats("batch")
    results = []
    for curve in tqdm(curves, desc=f"{Fore.CYAN}Curves{Style.RESET_ALL}", disable=not verbose):
        stats = RunStats(curve.label)
        try:
            results.append(determine_image(curve, lattice, dictionary, counter, conf, log=log,
                                           stats=stats, verbose=verbose))
        except PointCountError as e:
            log.write("point_count", f"{curve.label}: {e}")
            totals.record_discard('point_count', curve.label)
        except STAGE_ERRORS as e:
            log.write("curve", f"{curve.label}: {type(e).__name__}: {e}")
            totals.record_discard('curve_error', curve.label)
        if conf['DEBUG']:
            print(stats.summary_string())
        totals.merge(stats)
    return results, totals

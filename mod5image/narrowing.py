"""
narrowing.py: Statistical narrowing of the candidate set from Frobenius data.

Two statistics compare the empirical distribution of invariant pairs against
each candidate's theoretical distribution: squared distance (the filter) and
log-likelihood (corroboration and a confidence margin). All functions here are
pure; the same inputs always give the same report.
"""
import math
from collections import Counter
from typing import NamedTuple

from sage.all import QQ

from .image_config import FULL_IMAGE_LABEL, SQDIST_TOLERANCE, LOGLIKE_TOLERANCE, DEBUG


class NarrowingReport(NamedTuple):
    retained: frozenset
    sqdist: dict
    loglike: dict
    impossible: frozenset
    loglike_best: frozenset
    confidence: object        # best minus runner-up log-likelihood, or None
    surjective: bool = False


def empirical_distribution(samples):
    """Counter of invariant pairs over Frobenius samples."""
    return Counter(s.pair for s in samples)


def squared_distance(sampled, expected):
    """
    Sum over the pairs of either distribution of (expected freq - sampled
    freq)^2, absent pairs counting as frequency 0. Exact, returned as float.
    """
    n = sum(sampled.values())
    order = sum(expected.values())
    total = QQ(0)
    for pair in set(sampled) | set(expected):
        e = QQ(expected.get(pair, 0)) / order if order else QQ(0)
        s = QQ(sampled.get(pair, 0)) / n if n else QQ(0)
        total += (e - s)**2
    return float(total)


def log_likelihood(sampled, expected):
    """
    Sum of log P(pair) over the samples, drawing uniformly from the group.

    Returns:
        float, or None when some sampled pair has probability zero.
    """
    order = sum(expected.values())
    total = 0.0
    for pair, count in sampled.items():
        hits = expected.get(pair, 0)
        if hits == 0:
            return None
        total += count * math.log(hits / order)
    return total


def select_best(stats, tolerance, maximize=False):
    """Labels whose statistic is within `tolerance` of the optimum."""
    if not stats:
        return frozenset()
    if maximize:
        best = max(stats.values())
        return frozenset(label for label, v in stats.items() if best - v <= tolerance)
    best = min(stats.values())
    return frozenset(label for label, v in stats.items() if v - best <= tolerance)


class DictionaryNarrower:
    """
    Running intersection of dictionary lookups over the samples seen so far.

    `update` returns True once only the full-image label is left, which lets
    the sampler stop early and declare surjectivity.
    """

    def __init__(self, dictionary, candidates):
        self.dictionary = dictionary
        self.candidates = frozenset(candidates) | {FULL_IMAGE_LABEL}

    def update(self, sample):
        self.candidates = self.candidates & self.dictionary.lookup(sample.pair)
        return self.surjective

    @property
    def surjective(self):
        return self.candidates == frozenset({FULL_IMAGE_LABEL})


def narrow(samples, candidates, dictionary, conf=None):
    """
    Narrow `candidates` using the Frobenius samples.

    Steps: intersect dictionary lookups (short-circuit to surjective when
    only the full-image label survives), which removes every candidate the
    log-likelihood marks impossible; compare the remaining proper subgroups
    by squared distance, keeping the minimisers within tolerance.

    Returns:
        NarrowingReport
    """
    conf = conf or {}
    sq_tol = conf.get('SQDIST_TOLERANCE', SQDIST_TOLERANCE)
    ll_tol = conf.get('LOGLIKE_TOLERANCE', LOGLIKE_TOLERANCE)
    debug = conf.get('DEBUG', DEBUG)
    candidates = frozenset(candidates)

    if not samples:
        return NarrowingReport(candidates, {}, {}, frozenset(), frozenset(), None)

    sampled = empirical_distribution(samples)
    impossible = frozenset(
        label for label in candidates
        if label != FULL_IMAGE_LABEL and dictionary.spectrum(label) is not None
        and log_likelihood(sampled, dictionary.spectrum(label)) is None
    )

    # the intersection drops exactly the labels marked impossible above
    tracker = DictionaryNarrower(dictionary, candidates)
    for s in samples:
        tracker.update(s)
    if tracker.surjective:
        return NarrowingReport(tracker.candidates, {}, {}, impossible, frozenset(), None, surjective=True)
    remaining = tracker.candidates & (candidates | {FULL_IMAGE_LABEL})

    # the full image is decided by the short-circuit, not by distributions
    compared = {label for label in remaining if label != FULL_IMAGE_LABEL}
    compared = {label for label in compared if dictionary.spectrum(label) is not None}
    if not compared:
        return NarrowingReport(remaining, {}, {}, impossible, frozenset(), None)

    sqdist, loglike = {}, {}
    for label in sorted(compared):
        expected = dictionary.spectrum(label)
        sqdist[label] = squared_distance(sampled, expected)
        loglike[label] = log_likelihood(sampled, expected)

    retained = select_best(sqdist, sq_tol)
    ll_best = select_best(loglike, ll_tol, maximize=True)

    confidence = None
    runners = [v for label, v in loglike.items() if label not in ll_best]
    if ll_best and runners:
        confidence = max(loglike[label] for label in ll_best) - max(runners)

    if debug:
        print(f"[narrow] {len(samples)} samples, compared {len(compared)} subgroups")
        for label in sorted(compared, key=lambda l: sqdist[l])[:10]:
            print(f"  {label:<12} sqdist={sqdist[label]:.6f} loglike={loglike[label]:.4f}")
        print(f"[narrow] retained {sorted(retained)}; log-likelihood best {sorted(ll_best)}, margin {confidence}")

    return NarrowingReport(frozenset(retained), sqdist, loglike, impossible, ll_best, confidence)

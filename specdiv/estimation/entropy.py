"""
Tsallis entropy of order q of a community, estimated from the abundances of a sample, and its transformation into
Hill numbers (effective number of species).

HCDT entropy is (1 - sum p^q) / (q - 1), Shannon entropy at q = 1, richness minus 1 at q = 0, Simpson index at q = 2.
Diversity of order q is the deformed exponential of the entropy: D = exp_q(H).
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

import mpmath
import numpy as np
from scipy.special import digamma, poch

from specdiv.errors import InvalidInput, degenerate, negative, recorded, replay
from specdiv.estimation.estimators import CoverageEstimator, EntropyEstimator, ProbabilityEstimator, \
    RichnessEstimator, UNVEIL_RICHNESS, Unveiling, resolve
from specdiv.estimation.metrics import _sample_coverage, check_abundances, memoize, sample_stats
from specdiv.estimation.probabilities import _probabilities

logger = logging.getLogger(__name__)

# q closer to 1 than this is treated as 1
EPSILON = 1e-10

ENTROPY = "entropy"
DIVERSITY = "diversity"

COVERAGE_DEPENDENT = {EntropyEstimator.CHAO_SHEN, EntropyEstimator.MARCON, EntropyEstimator.UNVEIL_J,
                      EntropyEstimator.UNVEIL_C, EntropyEstimator.UNVEIL_IC}


@dataclass(frozen=True)
class EntropyEstimate:
    """
    an estimated entropy, or diversity, with the estimator actually used and the diagnostics of the computation
    """
    value: float
    estimator: str
    coverage: float = math.nan
    notices: tuple = ()
    q: float = 1.0
    measure: str = ENTROPY
    level: Optional[float] = None

    def to_diversity(self) -> "EntropyEstimate":
        if self.measure == DIVERSITY:
            return self
        return replace(self, value=float(exp_q(self.value, self.q)), measure=DIVERSITY)


def _is_shannon(q: float) -> bool:
    return abs(q - 1) < EPSILON


def check_order(q) -> float:
    q = float(q)
    if not math.isfinite(q) or q < 0:
        raise InvalidInput("The order of diversity q must be a non-negative number, got " + str(q))
    return q


def ln_q(x, q: float):
    """
    deformed logarithm of order q: (x^(1-q) - 1) / (1 - q), the natural logarithm at q = 1
    :param x: a positive number or an array
    :param q: the order
    """
    x = np.asarray(x, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if _is_shannon(q):
            result = np.log(x)
        else:
            result = np.expm1((1 - q) * np.log(x)) / (1 - q)
    return result if result.ndim else float(result)


def exp_q(x, q: float):
    """
    deformed exponential of order q, the inverse of ln_q: (1 + (1-q) x)^(1/(1-q)).
    Out of its domain, i.e. 1 + (1-q) x <= 0, it is 0 for q < 1 and +inf for q > 1
    :param x: a number or an array
    :param q: the order
    """
    x = np.asarray(x, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        if _is_shannon(q):
            result = np.exp(x)
        else:
            base = (1 - q) * x
            inside = base > -1
            result = np.where(inside, np.exp(np.log1p(np.where(inside, base, 0)) / (1 - q)),
                              0.0 if q < 1 else np.inf)
            result = np.where(np.isnan(x), np.nan, result)
    return result if result.ndim else float(result)


def tsallis(p: np.ndarray, q: float) -> float:
    """
    entropy of order q of a probability vector
    """
    p = np.asarray(p, dtype=float)
    p = p[p > 0]
    if q == 0:
        return float(len(p) - 1)
    if _is_shannon(q):
        return float(-np.sum(p * np.log(p)))
    return float((1 - np.sum(p ** q)) / (q - 1))


# Bias-corrected estimators

def series_weights(q: float, length: int) -> np.ndarray:
    """
    u_v = prod_{i=2..v} (i - q) / i for v = 1..length, i.e. 1/v at q = 1.
    The entropy of order q is sum_v u_v Delta(v) where Delta(v) is the probability that the species of an individual
    is not among v other individuals
    """
    if length < 1:
        return np.zeros(0)
    i = np.arange(2, length + 1)
    return np.concatenate([[1.0], np.cumprod((i - q) / i)])


@memoize()
def discovery_terms(abundances) -> np.ndarray:
    """
    Delta(k) = sum_i x_i/n C(n - x_i, k) / C(n - 1, k) for k = 0..n-1: the unbiased estimator of
    sum_i p_i (1 - p_i)^k (Zhang, 2012)
    :param abundances: integer species abundances
    :return: the array of Delta(k)
    """
    stats = sample_stats(abundances)
    n = int(round(stats.sample_size))
    delta = np.zeros(max(n, 1))
    delta[0] = 1.0
    values, frequencies = np.unique(stats.counts.astype(int), return_counts=True)
    for x, f_x in zip(values, frequencies):
        length = n - x
        if length < 1:
            continue
        k = np.arange(1, length + 1)
        # C(n-x, k) / C(n-1, k) built up term by term
        terms = np.cumprod((n - x - k + 1) / (n - k))
        delta[1:length + 1] += f_x * x / n * terms
    delta.setflags(write=False)
    return delta


def zhang_huang(abundances, q: float) -> float:
    """
    Zhang & Grabchak (2016) estimator, generalizing Zhang (2012) to any q: sum_{v=1}^{n-1} u_v Delta(v)
    """
    delta = discovery_terms(abundances)
    if len(delta) < 2:
        return 0.0
    return float(np.dot(series_weights(q, len(delta) - 1), delta[1:]))


def chao_jost_a(n: float, f1: int, f2: int) -> float:
    if f2 > 0:
        return (2 * f2) / ((n - 1) * f1 + 2 * f2)
    if f1 > 0:
        return 2 / ((n - 1) * (f1 - 1) + 2)
    return 1.0


def chao_jost(abundances, q: float) -> float:
    """
    Chao & Jost (2015) estimator: the Zhang & Grabchak series for the observed part, plus the contribution of the
    unobserved species estimated from singletons and doubletons:
    f1/n sum_{r>=n} u_r (1 - A)^(r-n+1)
    """
    stats = sample_stats(abundances)
    n = int(round(stats.sample_size))
    entropy_known_species = zhang_huang(abundances, q)
    a = chao_jost_a(n, stats.f1, stats.f2)
    if a == 1 or stats.f1 == 0:
        return entropy_known_species

    def term(r):
        return mpmath.rf(2 - q, r - 1) / mpmath.rf(2, r - 1) * (1 - a) ** (r - n + 1)

    tail = mpmath.nsum(term, [n, mpmath.inf])
    entropy_unknown_species = stats.f1 / n * float(tail)
    return entropy_known_species + entropy_unknown_species


def chao_shen(abundances, q: float, sample_coverage: float) -> float:
    """
    Chao & Shen (2003): Horvitz-Thompson correction of the coverage-adjusted frequencies
    """
    stats = sample_stats(abundances)
    n = stats.sample_size
    p = sample_coverage * stats.counts / n
    inclusion = 1 - (1 - p) ** n
    return float(np.sum(p * ln_q(1 / p, q) / inclusion))


def grassberger(abundances, q: float) -> float:
    """
    Grassberger (1988, 2003): each p^q is estimated by x!/(x-q)! / n^q, unbiased for Poisson-distributed abundances
    """
    stats = sample_stats(abundances)
    x = stats.counts
    n = stats.sample_size
    if _is_shannon(q):
        parity = np.where(x.astype(int) % 2 == 0, 1.0, -1.0)
        g = digamma(x) + parity * (digamma((x + 1) / 2) - digamma(x / 2)) / 2
        return float(math.log(n) - np.sum(x * g) / n)
    return float((1 - np.sum(poch(x + 1 - q, q)) / n ** q) / (q - 1))


@memoize()
def _ent_tsallis(abundances, q: float, estimator: EntropyEstimator, probability_estimator: ProbabilityEstimator,
                 unveiling: Unveiling, jack_alpha: float, jack_max: int,
                 coverage_estimator: CoverageEstimator) -> EntropyEstimate:
    stats = sample_stats(abundances)
    if stats.s_obs == 0:
        degenerate("The sample contains no species, entropy can not be estimated.")
        return EntropyEstimate(math.nan, str(estimator), q=q)

    estimator = resolve(estimator, stats)
    x = stats.counts
    if estimator is EntropyEstimator.NAIVE:
        return EntropyEstimate(tsallis(x / stats.sample_size, q), str(estimator), q=q)

    sample_coverage = math.nan
    if estimator in COVERAGE_DEPENDENT:
        sample_coverage = _sample_coverage(x, coverage_estimator)
        if not sample_coverage > 0:
            # the coverage estimator already reported the degenerate sample
            return EntropyEstimate(math.nan, str(estimator), sample_coverage, q=q)

    if estimator in UNVEIL_RICHNESS:
        estimate = _probabilities(x, probability_estimator, unveiling, UNVEIL_RICHNESS[estimator], jack_alpha,
                                  jack_max, coverage_estimator)
        value = tsallis(estimate.probabilities, q)
    elif estimator is EntropyEstimator.CHAO_SHEN:
        value = chao_shen(x, q, sample_coverage)
    elif estimator is EntropyEstimator.GRASSBERGER:
        value = grassberger(x, q)
    elif estimator is EntropyEstimator.MARCON:
        value = max(chao_shen(x, q, sample_coverage), grassberger(x, q))
    elif estimator is EntropyEstimator.ZHANG_HUANG:
        value = zhang_huang(x, q)
    else:
        value = chao_jost(x, q)

    if value < 0:
        negative("The " + str(estimator) + " estimate of entropy of order " + str(q) + " is negative: " + str(value))
    logger.debug("%s entropy of order %s: %s", estimator, q, value)
    return EntropyEstimate(value, str(estimator), sample_coverage, q=q)


def ent_tsallis(x, q: float = 1, estimator="UnveilJ", probability_estimator="Chao2015", unveiling="geometric",
                richness_estimator="jackknife", jack_alpha: float = 0.05, jack_max: int = 10,
                coverage_estimator="ZhangHuang", level=None) -> EntropyEstimate:
    """
    estimates the Tsallis (HCDT) entropy of order q of the community a sample was drawn from
    :param x: the species abundances. Probabilities are accepted with the naive estimator only
    :param q: the order of entropy, non-negative
    :param estimator: one of 'UnveilJ', 'UnveilC', 'UnveiliC', 'ChaoJost', 'ChaoShen', 'ZhangHuang', 'Grassberger',
    'Marcon', 'naive'
    :param probability_estimator: the probability tuning of the unveiling estimators
    :param unveiling: the distribution of the unobserved species of the unveiling estimators
    :param richness_estimator: the richness estimator used by the level-based extrapolation of richness
    :param jack_alpha: the risk level of the jackknife order selection
    :param jack_max: the highest jackknife order
    :param coverage_estimator: the estimator of the sample coverage
    :param level: if given, the entropy of a sample of that size, or of that coverage if in ]0;1[, is returned
    :return: the estimate, with the estimator actually used and the diagnostics
    """
    q = check_order(q)
    if level is not None:
        from specdiv.estimation.accumulation import ent_level
        return ent_level(x, q, level, estimator=estimator, probability_estimator=probability_estimator,
                         unveiling=unveiling, richness_estimator=richness_estimator, jack_alpha=jack_alpha,
                         jack_max=jack_max, coverage_estimator=coverage_estimator)
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    RichnessEstimator.parse(richness_estimator)
    result, notices = recorded(_ent_tsallis, check_abundances(x), q, EntropyEstimator.parse(estimator),
                               ProbabilityEstimator.parse(probability_estimator), Unveiling.parse(unveiling), jack_alpha,
                               int(jack_max),
                               CoverageEstimator.parse(coverage_estimator))
    replay(notices)
    return replace(result, notices=notices)


def ent_shannon(x, **kwargs) -> EntropyEstimate:
    return ent_tsallis(x, q=1, **kwargs)


def ent_simpson(x, **kwargs) -> EntropyEstimate:
    return ent_tsallis(x, q=2, **kwargs)


def ent_richness(x, **kwargs) -> EntropyEstimate:
    """
    entropy of order 0, i.e. the number of species minus 1
    """
    return ent_tsallis(x, q=0, **kwargs)


def div_hill(x, q: float = 1, **kwargs) -> EntropyEstimate:
    """
    estimates the diversity of order q, i.e. the Hill number or effective number of species, as the deformed
    exponential of the estimated entropy. Keyword arguments are those of ent_tsallis
    """
    return ent_tsallis(x, q=q, **kwargs).to_diversity()


def div_richness(x, **kwargs) -> EntropyEstimate:
    return div_hill(x, q=0, **kwargs)

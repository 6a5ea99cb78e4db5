"""
Estimation of the probabilities of the species of a community from a sample: the frequencies of the observed species
are tuned so that they sum to the estimated coverage, and the missing probability mass can be attributed to the
estimated number of unobserved species ("unveiling").
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
from scipy.optimize import brentq, minimize_scalar

from specdiv.errors import InvalidInput, degenerate, fallback, recorded, replay
from specdiv.estimation.estimators import CoverageEstimator, ProbabilityEstimator, RichnessEstimator, Unveiling, \
    resolve, substitute
from specdiv.estimation.metrics import RichnessEstimate, _richness, _sample_coverage, check_abundances, lchoose, \
    memoize, sample_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbabilityEstimate:
    """
    the estimated probabilities: the observed species first, in the order of the abundance vector, then the unveiled
    species, if any
    """
    probabilities: np.ndarray
    observed: int
    estimator: ProbabilityEstimator
    unveiling: Unveiling
    richness: Optional[RichnessEstimate]
    coverage: float
    notices: tuple = ()

    def __post_init__(self):
        # shared with the memo cache
        self.probabilities.setflags(write=False)

    @property
    def unseen(self) -> np.ndarray:
        return self.probabilities[self.observed:]


def _chao2013(p: np.ndarray, n: float, sample_coverage: float) -> np.ndarray:
    # Chao et al. (2013): the frequencies of rare species are the most overestimated
    absence = (1 - p) ** n
    lam = (1 - sample_coverage) / np.sum(p * absence)
    return p * (1 - lam * absence)


def _chao2015(x: np.ndarray, n: float, sample_coverage: float, f1: int, f2: int, f3: int) -> np.ndarray:
    """
    two-parameter tuning of Chao et al. (2015), p (1 - lambda exp(-theta x)).
    lambda makes the tuned probabilities sum to the coverage, theta makes their sum of squares match the unbiased
    estimate of the sum of squares of the community, less the part of the unobserved species
    """
    p = x / n
    unseen_squares = 2 * f2 / (n * (n - 1)) * ((n - 2) * f2 / ((n - 2) * f2 + 3 * max(f3, 1))) ** 2
    target = np.sum(x * (x - 1)) / (n * (n - 1)) - unseen_squares

    def tuned(theta):
        decay = np.exp(-theta * x)
        lam = (1 - sample_coverage) / np.sum(p * decay)
        return p * (1 - lam * decay)

    def loss(theta):
        return abs(np.sum(tuned(theta) ** 2) - target)

    theta = minimize_scalar(loss, bounds=(0, 1), method="bounded").x
    logger.debug("Chao2015 tuning, theta = %s", theta)
    return tuned(theta)


def _geometric(p_min: float, mass: float, s0: int) -> Optional[np.ndarray]:
    """
    probabilities of the unobserved species decreasing geometrically from the rarest observed one:
    p_min theta^k, k = 1..s0, summing to mass. Returns None if no theta in ]0;1[ exists
    """
    if s0 == 1:
        return np.array([mass])
    if mass >= p_min * s0:
        return None

    def difference(theta):
        return p_min * theta * (1 - theta ** s0) / (1 - theta) - mass

    theta = brentq(difference, 1e-12, 1 - 1e-12)
    return p_min * theta ** np.arange(1, s0 + 1)


@memoize()
def _probabilities(abundances, estimator: ProbabilityEstimator, unveiling: Unveiling,
                   richness_estimator: RichnessEstimator, jack_alpha: float, jack_max: int,
                   coverage_estimator: CoverageEstimator, strict: bool = False) -> ProbabilityEstimate:
    stats = sample_stats(abundances)
    x = stats.counts
    n = stats.sample_size
    p = x / n

    estimator = resolve(estimator, stats)
    unveiling = resolve(unveiling, stats)
    if estimator is ProbabilityEstimator.NAIVE and unveiling is Unveiling.NONE:
        return ProbabilityEstimate(p, stats.s_obs, estimator, unveiling, None, math.nan)

    sample_coverage = _sample_coverage(x, coverage_estimator)
    if math.isnan(sample_coverage) or sample_coverage == 0:
        degenerate("Probabilities can not be tuned with a sample coverage of 0, the frequencies are used.")
        return ProbabilityEstimate(p, stats.s_obs, ProbabilityEstimator.NAIVE, Unveiling.NONE, None,
                                   sample_coverage)

    if estimator is ProbabilityEstimator.CHAO2015:
        tuned = _chao2015(x, n, sample_coverage, stats.f1, stats.f2, stats.f(3))
    elif estimator is ProbabilityEstimator.CHAO2013:
        tuned = _chao2013(p, n, sample_coverage)
    else:
        # ChaoShen, and naive frequencies that have to leave room for unveiled species
        tuned = sample_coverage * p
    if np.any(tuned < 0):
        if strict:
            raise InvalidInput(str(estimator) + " tuning produced negative probabilities")
        estimator = substitute(estimator, "non-negative tuned probabilities")
        tuned = sample_coverage * p

    if unveiling is Unveiling.NONE:
        return ProbabilityEstimate(tuned / np.sum(tuned), stats.s_obs, estimator, unveiling, None, sample_coverage)

    estimate = _richness(x, richness_estimator, jack_alpha, jack_max)
    s0 = 0 if math.isnan(estimate.value) else max(int(round(estimate.value)) - stats.s_obs, 0)
    mass = 1 - float(np.sum(tuned))
    if s0 == 0 or mass <= 0:
        logger.debug("No unobserved species to unveil")
        return ProbabilityEstimate(tuned / np.sum(tuned), stats.s_obs, estimator, unveiling, estimate,
                                   sample_coverage)

    unseen = None
    if unveiling is Unveiling.GEOMETRIC:
        unseen = _geometric(float(tuned.min()), mass, s0)
        if unseen is None:
            fallback("The geometric distribution of the " + str(s0) + " unobserved species can not start below the "
                     "rarest observed species: uniform is used instead.")
            unveiling = Unveiling.UNIFORM
    if unseen is None:
        unseen = np.full(s0, mass / s0)

    result = np.concatenate([tuned, unseen])
    if np.any(result < 0):
        raise InvalidInput("Unveiling produced negative probabilities")
    return ProbabilityEstimate(result, stats.s_obs, estimator, unveiling, estimate, sample_coverage)


def probabilities(abundances, estimator="naive", unveiling="none", richness_estimator="jackknife",
                  jack_alpha: float = 0.05, jack_max: int = 10, coverage_estimator="ZhangHuang") -> ProbabilityEstimate:
    """
    estimates the probabilities of the species of a community from the abundances of a sample
    :param abundances: the species abundances
    :param estimator: one of 'naive', 'ChaoShen', 'Chao2013', 'Chao2015'
    :param unveiling: one of 'none', 'uniform', 'geometric'
    :param richness_estimator: the estimator of the number of species, observed or not, used for unveiling
    :param jack_alpha: the risk level of the jackknife order selection
    :param jack_max: the highest jackknife order
    :param coverage_estimator: the estimator of the sample coverage
    :return: the probabilities, summing to 1, with the estimators actually used
    """
    counts = check_abundances(abundances)
    if not np.any(counts > 0):
        raise InvalidInput("All abundances are zero")
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    if jack_max < 1:
        raise InvalidInput("jack_max must be at least 1")
    result, notices = recorded(_probabilities, counts, ProbabilityEstimator.parse(estimator),
                               Unveiling.parse(unveiling), RichnessEstimator.parse(richness_estimator), jack_alpha,
                               int(jack_max), CoverageEstimator.parse(coverage_estimator), True)
    replay(notices)
    return replace(result, notices=notices)


def hypergeometric_absence(abundances: np.ndarray, level: float) -> np.ndarray:
    """
    the probability that each species is absent from a subsample of size level drawn without replacement
    """
    n = float(np.sum(abundances))
    possible = abundances <= n - level
    absence = np.zeros(len(abundances))
    absence[possible] = np.exp(lchoose(n - abundances[possible], level) - lchoose(n, level))
    return absence

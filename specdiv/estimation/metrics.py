import functools
import logging
import math
from dataclasses import dataclass
from fractions import Fraction
from threading import RLock

import numpy as np
from cachetools import LRUCache, cached
from scipy.optimize import brentq
from scipy.special import gammaln
from scipy.stats import norm

from specdiv.distribution import AbundanceVector, as_abundance_vector
from specdiv.errors import InvalidInput, degenerate, recorded, replay
from specdiv.estimation.estimators import CoverageEstimator, RichnessEstimator, resolve

logger = logging.getLogger(__name__)


def _key(*args, **kwargs):
    def hashable(value):
        if isinstance(value, np.ndarray):
            return "ndarray", value.dtype.str, value.shape, value.tobytes()
        if isinstance(value, AbundanceVector):
            return hashable(value.counts)
        if isinstance(value, list):
            return hashable(np.asarray(value, dtype=float))
        return value
    return tuple(hashable(a) for a in args) + tuple(sorted((k, hashable(v)) for k, v in kwargs.items()))


def memoize(maxsize: int = 512):
    """
    caches a function of an abundance vector. The warnings emitted by the first call are stored with the result and
    emitted again on every call, so that callers recording diagnostics see them on cache hits too.
    The lock only protects the cache itself: diagnostics are captured through the process-wide warnings filters, so
    parallel computations use processes (multiprocessing), not threads
    :param maxsize: the number of abundance vectors to remember
    """
    def decorator(func):
        cache = LRUCache(maxsize=maxsize)

        @cached(cache, key=_key, lock=RLock())
        def compute(*args, **kwargs):
            return recorded(func, *args, **kwargs)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            if _key(*args, **kwargs) in cache:
                logger.debug("%s: cached result reused", func.__name__)
            result, notices = compute(*args, **kwargs)
            replay(notices)
            return result

        wrapper.cache = cache
        return wrapper
    return decorator


def check_abundances(abundances) -> np.ndarray:
    """
    returns the counts of an abundance vector, validated and read-only
    :param abundances: an AbundanceVector, a list, a numpy array or a pandas Series
    :return: the counts
    """
    return as_abundance_vector(abundances).counts


def get_frequency_count(abundances: np.ndarray, i: int) -> int:
    """
    returns the number of species that have an abundance of i
    :param abundances: the species abundances
    :param i: the abundance
    :return: the number of species with abundance i
    """
    return int(np.count_nonzero(abundances == i))


def get_singletons(abundances: np.ndarray) -> int:
    """
    returns the number of singletons species, i.e. those species that have been observed once
    :param abundances: the species abundances
    :return: the number of species with abundance 1
    """
    return get_frequency_count(abundances, 1)


def get_doubletons(abundances: np.ndarray) -> int:
    """
    returns the number of doubleton species, i.e. those species that have been observed twice
    :param abundances: the species abundances
    :return: the number of species with abundance 2
    """
    return get_frequency_count(abundances, 2)


def get_number_observed_species(abundances: np.ndarray) -> int:
    return int(np.count_nonzero(abundances))


def get_total_species_count(abundances: np.ndarray) -> float:
    """
    returns the sample size, i.e. the sum of all abundances
    """
    return float(np.sum(abundances))


@dataclass(frozen=True)
class SampleStats:
    """
    the statistics of an abundance vector every estimator starts from
    """
    counts: np.ndarray
    sample_size: float
    s_obs: int
    f1: int
    f2: int
    is_integer: bool

    @property
    def max_count(self) -> float:
        return float(self.counts.max()) if self.s_obs > 0 else 0.0

    def f(self, i: int) -> int:
        return get_frequency_count(self.counts, i)


@memoize()
def sample_stats(abundances) -> SampleStats:
    counts = check_abundances(abundances)
    observed = counts[counts > 0]
    observed.setflags(write=False)
    return SampleStats(counts=observed,
                       sample_size=get_total_species_count(observed),
                       s_obs=get_number_observed_species(observed),
                       f1=get_singletons(observed),
                       f2=get_doubletons(observed),
                       is_integer=bool(np.all(observed == np.round(observed))))


def lchoose(n, k):
    """
    logarithm of the binomial coefficient, vectorized, for real arguments
    """
    return gammaln(np.asarray(n, dtype=float) + 1) - gammaln(np.asarray(k, dtype=float) + 1) \
        - gammaln(np.asarray(n, dtype=float) - np.asarray(k, dtype=float) + 1)


# Coverage

def chao_ratio(stats: SampleStats) -> float:
    """
    the factor (n-1)f1 / ((n-1)f1 + 2f2) shared by Chao's coverage and its extrapolation.
    Without doubletons, the one-term approximation (n-1)(f1-1) / ((n-1)(f1-1) + 2) is used
    """
    n = stats.sample_size
    if stats.f1 == 0:
        return 0.0
    if stats.f2 > 0:
        return ((n - 1) * stats.f1) / ((n - 1) * stats.f1 + 2 * stats.f2)
    return ((n - 1) * (stats.f1 - 1)) / ((n - 1) * (stats.f1 - 1) + 2)


@memoize()
def _sample_coverage(abundances, estimator: CoverageEstimator) -> float:
    stats = sample_stats(abundances)
    n = stats.sample_size
    f1 = stats.f1
    f2 = stats.f2

    if stats.s_obs == 0:
        degenerate("The sample contains no individual, coverage can not be estimated.")
        return math.nan
    if f1 == stats.s_obs:
        degenerate("Sample coverage is 0, most estimators will return `NaN`.")
        return 0.0
    if f1 == 0:
        # no singleton: every species of the community has been observed
        return 1.0

    estimator = resolve(estimator, stats)
    if estimator is CoverageEstimator.TURING:
        value = 1 - f1 / n
    elif estimator is CoverageEstimator.CHAO:
        value = 1 - f1 / n * chao_ratio(stats)
    elif estimator is CoverageEstimator.GOOD:
        if n < 2:
            degenerate("Good's coverage requires at least two individuals.")
            return math.nan
        value = 1 - f1 / n + 2 * f2 / (n * (n - 1))
    else:
        # Zhang & Huang (2007): alternating sum over frequency classes, binomial coefficients in log space
        nu, f_nu = np.unique(stats.counts, return_counts=True)
        inverse_choose = np.exp(-lchoose(n, nu))
        signs = np.where(nu.astype(int) % 2 == 1, 1.0, -1.0)
        value = 1 - float(np.sum(signs * f_nu * inverse_choose))
    logger.debug("%s coverage of a sample of size %s: %s", estimator, n, value)
    # rounding noise only
    return min(max(value, 0.0), 1.0)


def coverage(abundances, estimator="ZhangHuang", level=None) -> float:
    """
    computes the sample coverage, i.e. the probability mass of the species already observed.
    A value of '1' indicates full coverage, whereas as value of '0' indicates no coverage.
    If a level is given, returns the expected coverage of a sample of that size instead (Chao & Jost, 2012)
    :param abundances: the species abundances
    :param estimator: one of 'ZhangHuang', 'Chao', 'Turing', 'Good'
    :param level: the sample size the coverage is computed at
    :return: the estimated coverage
    """
    counts = check_abundances(abundances)
    estimator = CoverageEstimator.parse(estimator)
    if level is None:
        return _sample_coverage(counts, estimator)
    return coverage_at_level(counts, level, estimator)


def coverage_at_level(abundances, level: float, estimator="ZhangHuang") -> float:
    """
    computes the expected coverage of a sample of size level, by interpolation (level < n)
    or extrapolation (level > n)
    :param abundances: the species abundances
    :param level: the sample size, may be real-valued
    :param estimator: the coverage estimator returned at level = n
    :return: the expected coverage
    """
    stats = sample_stats(abundances)
    n = stats.sample_size
    if level <= 0:
        raise InvalidInput("The level must be a positive sample size, got " + str(level))
    if not stats.is_integer:
        raise InvalidInput("Coverage at a level requires integer abundances")
    if level == n:
        return _sample_coverage(stats.counts, CoverageEstimator.parse(estimator))
    if level < n:
        x = stats.counts
        # species whose absence from a subsample of size level is possible
        possible = x <= n - level
        terms = x[possible] / n * np.exp(lchoose(n - x[possible], level) - lchoose(n - 1, level))
        return float(1 - np.sum(terms))
    if stats.f1 == 0:
        return 1.0
    return float(1 - stats.f1 / n * chao_ratio(stats) ** (level - n + 1))


def coverage_to_size(abundances, sample_coverage: float, estimator="ZhangHuang") -> int:
    """
    computes the sample size at which the expected coverage reaches sample_coverage
    :param abundances: the species abundances
    :param sample_coverage: the target coverage, in (0, 1)
    :param estimator: the coverage estimator of the observed sample
    :return: the sample size
    """
    if not 0 < sample_coverage < 1:
        raise InvalidInput("The sample coverage must be in ]0;1[, got " + str(sample_coverage))
    stats = sample_stats(abundances)
    n = stats.sample_size
    observed = coverage(stats.counts, estimator)
    if math.isnan(observed):
        return 0
    if sample_coverage == observed:
        return int(n)
    if sample_coverage < observed:
        def difference(m):
            return coverage_at_level(stats.counts, m) - sample_coverage
        if difference(1) >= 0:
            return 1
        if difference(n - 1) <= 0:
            return int(n)
        return int(round(brentq(difference, 1, n - 1)))
    # extrapolation, closed form of Chao & Jost (2012)
    if stats.f1 == 0:
        return int(n)
    ratio = chao_ratio(stats)
    if ratio <= 0:
        return int(n) + 1
    size = n + (math.log(n / stats.f1) + math.log(1 - sample_coverage)) / math.log(ratio) - 1
    return int(round(max(size, n)))


# Richness

@dataclass(frozen=True)
class RichnessEstimate:
    value: float
    estimator: RichnessEstimator
    order: int = 0


def chao1(s_obs: int, f1: int, f2: int, n: float = None) -> float:
    """
    Args:
        s_obs (int): Number of observed species
        f1 (int): Number of species observed only once --> singletons
        f2 (int): Number of species observed exactly twice --> doubletons
        n (float): sample size, for the small-sample correction (n-1)/n
    """
    correction = (n - 1) / n if n else 1
    if f2 == 0:
        return s_obs + correction * (f1 * (f1 - 1)) / 2
    return s_obs + correction * (f1 ** 2) / (2 * f2)


def iChao1(s_chao1: float, f1: int, f2: int, f3: int, f4: int, n: float) -> float:
    """
    improved Chao1 of Chiu et al. (2014), adding the contribution of the species seen three and four times
    """
    if f3 == 0 or n <= 3:
        return s_chao1
    f4 = max(f4, 1)
    correction_term = (n - 3) / (4 * n) * f3 / f4 * max(f1 - f2 * f3 * (n - 3) / (2 * (n - 1) * f4), 0)
    return s_chao1 + correction_term


def calculate_C_ace(F1_abund, N_rare_abund):
    """
    Calculates sample coverage of the rare species (C_ace).
    """
    if N_rare_abund == 0:
        return 0
    return 1 - (F1_abund / N_rare_abund)


def calculate_gamma_sq_ace(S_rare_abund, C_ace, Fi_abund, N_rare_abund):
    """
    Calculates gamma², the squared coefficient of variation of the rare species.
    """
    if C_ace == 0 or N_rare_abund <= 1:
        return 0

    sum_term = sum(i * (i - 1) * Fi_abund[i - 1] for i in range(1, min(11, len(Fi_abund) + 1)))
    return max(0, (S_rare_abund / C_ace) * (sum_term / (N_rare_abund * (N_rare_abund - 1))) - 1)


def ace(stats: SampleStats, rare_threshold: int = 10) -> float:
    """
    Calculates ACE (Abundance-based Coverage Estimator) for species richness.
    Species with more than rare_threshold individuals are abundant, the others are rare.
    Without rare species or with only rare singletons, the observed richness is returned.
    """
    data = stats.counts
    S_abund = int(np.sum(data > rare_threshold))
    S_rare_abund = int(np.sum(data <= rare_threshold))
    N_rare_abund = float(np.sum(data[data <= rare_threshold]))
    F1_abund = stats.f1
    Fi_abund = [stats.f(i) for i in range(1, rare_threshold + 1)]

    C_ace = calculate_C_ace(F1_abund, N_rare_abund)
    if C_ace == 0:
        return S_abund + S_rare_abund
    gamma_sq_ace = calculate_gamma_sq_ace(S_rare_abund, C_ace, Fi_abund, N_rare_abund)
    return S_abund + (S_rare_abund / C_ace) + (F1_abund / C_ace) * gamma_sq_ace


def jackknife_coefficients(n: int, k: int) -> list:
    """
    computes the coefficients a_k(j), j = 1..k, of the jackknife estimator of order k: S_k = sum_j a_k(j) f_j, with
    a_k(j) = 1 for j > k. They follow from the generalized jackknife of Quenouille applied to the expected richness of
    the leave-i-out subsamples. Exact rational arithmetic, the terms cancel each other out heavily
    :param n: the sample size
    :param k: the order
    :return: the list of coefficients for j = 1..k
    """
    weights = [Fraction((-1) ** i * (n - i) ** k, math.factorial(i) * math.factorial(k - i)) for i in range(k + 1)]
    coefficients = []
    for j in range(1, k + 1):
        # a species of abundance j disappears from a leave-i-out subsample with probability C(i, j) / C(n, j)
        absent = sum(weights[i] * Fraction(math.comb(i, j), math.comb(n, j)) for i in range(j, k + 1))
        coefficients.append(1 - absent)
    return coefficients


def jackknife(stats: SampleStats, jack_alpha: float = 0.05, jack_max: int = 10) -> RichnessEstimate:
    """
    jackknife richness estimator with automatic selection of the order (Burnham & Overton, 1979).
    Estimators of order 1 to jack_max are computed; the selected order is the smallest one whose difference with the
    next order is not significant at level jack_alpha
    :param stats: the sample statistics
    :param jack_alpha: the risk level of the test
    :param jack_max: the highest order
    :return: the estimated richness and the selected order
    """
    n = int(round(stats.sample_size))
    s_obs = stats.s_obs
    highest = max(1, min(jack_max, n - 1))
    frequencies = [stats.f(j) for j in range(1, highest + 2)]
    coefficients = [jackknife_coefficients(n, k) for k in range(1, highest + 1)]

    def estimate(k):
        a = coefficients[k - 1]
        return s_obs + float(sum((a[j] - 1) * frequencies[j] for j in range(k)))

    threshold = norm.ppf(1 - jack_alpha / 2)
    order = highest
    for k in range(1, highest):
        a_k = coefficients[k - 1] + [Fraction(1)]
        b = [float(a_next - a) for a_next, a in zip(coefficients[k], a_k)]
        difference = sum(bj * fj for bj, fj in zip(b, frequencies))
        if s_obs <= 1:
            order = k
            break
        variance = s_obs / (s_obs - 1) * (sum(bj ** 2 * fj for bj, fj in zip(b, frequencies)) -
                                          difference ** 2 / s_obs)
        if variance <= 0 or abs(difference) / math.sqrt(variance) <= threshold:
            order = k
            break
    logger.debug("jackknife order %s selected among %s", order, highest)
    return RichnessEstimate(estimate(order), RichnessEstimator.JACKKNIFE, order)


@memoize()
def _richness(abundances, estimator: RichnessEstimator, jack_alpha: float, jack_max: int) -> RichnessEstimate:
    stats = sample_stats(abundances)
    if stats.s_obs == 0:
        degenerate("The sample contains no species, richness can not be estimated.")
        return RichnessEstimate(math.nan, estimator)
    estimator = resolve(estimator, stats)
    if estimator is RichnessEstimator.NAIVE:
        return RichnessEstimate(float(stats.s_obs), estimator)
    if estimator is RichnessEstimator.JACKKNIFE:
        return jackknife(stats, jack_alpha, jack_max)
    if estimator is RichnessEstimator.ACE:
        return RichnessEstimate(float(ace(stats)), estimator)
    s_chao1 = chao1(stats.s_obs, stats.f1, stats.f2, stats.sample_size)
    if estimator is RichnessEstimator.CHAO1:
        return RichnessEstimate(s_chao1, estimator)
    return RichnessEstimate(iChao1(s_chao1, stats.f1, stats.f2, stats.f(3), stats.f(4), stats.sample_size), estimator)


def richness(abundances, estimator="jackknife", jack_alpha: float = 0.05, jack_max: int = 10) -> RichnessEstimate:
    """
    estimates the number of species of the community, observed or not
    :param abundances: the species abundances
    :param estimator: one of 'jackknife', 'Chao1', 'iChao1', 'ACE', 'naive'
    :param jack_alpha: the risk level of the jackknife order selection
    :param jack_max: the highest jackknife order
    :return: the estimate, with the estimator actually used
    """
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    if jack_max < 1:
        raise InvalidInput("jack_max must be at least 1")
    return _richness(check_abundances(abundances), RichnessEstimator.parse(estimator), jack_alpha, int(jack_max))

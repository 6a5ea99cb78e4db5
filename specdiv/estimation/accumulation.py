"""
Entropy and diversity of samples of another size than the observed one: interpolation (rarefaction) below the sample
size, extrapolation above it, and accumulation curves over a sequence of levels.
"""
import logging
import math
from dataclasses import replace
from functools import partial
from multiprocessing import Pool

import numpy as np
import pandas as pd
from scipy.stats import binom, hypergeom

from specdiv.bootstrap import bootstrap, std_error
from specdiv.distribution import as_abundance_vector
from specdiv.errors import InvalidInput, recorded, replay
from specdiv.estimation.entropy import EPSILON, EntropyEstimate, _ent_tsallis, check_order, exp_q, ln_q, tsallis
from specdiv.estimation.estimators import CoverageEstimator, EntropyEstimator, ProbabilityEstimator, \
    RichnessEstimator, Unveiling
from specdiv.estimation.metrics import _richness, coverage_at_level, coverage_to_size, sample_stats
from specdiv.estimation.probabilities import _probabilities, hypergeometric_absence
from specdiv.estimation.species_estimator import DiversityRecord, records_to_dataFrame

logger = logging.getLogger(__name__)

# extrapolating further than this multiple of the sample size is unreliable
EXTRAPOLATION_LIMIT = 3

SAMPLE = "Sample"
INTERPOLATION = "Interpolation"
EXTRAPOLATION = "Extrapolation"


def level_to_size(abundances, level, coverage_estimator="ZhangHuang") -> int:
    """
    converts a level to a sample size. A number in ]0;1[ is a sample coverage, anything else a sample size
    """
    if isinstance(level, (float, np.floating)) and 0 < level < 1:
        return coverage_to_size(abundances, float(level), coverage_estimator)
    if not level >= 1:
        raise InvalidInput("The level must be a sample size of at least 1 or a coverage in ]0;1[, got " + str(level))
    return int(round(level))


def simpson_at(x: np.ndarray, n: float, m: int) -> float:
    """
    expected sum of the squared frequencies of a sample of size m: 1/m + (m-1)/m sum x(x-1) / (n(n-1))
    """
    if n < 2:
        return 1.0
    return 1 / m + (m - 1) / m * float(np.sum(x * (x - 1))) / (n * (n - 1))


def interpolate(x: np.ndarray, n: int, m: int, q: float) -> float:
    """
    expected naive entropy of a subsample of size m drawn without replacement from the sample
    """
    if q == 0:
        return float(np.sum(1 - hypergeometric_absence(x, m))) - 1
    if q == 2:
        return 1 - simpson_at(x, n, m)
    k = np.arange(1, m + 1)
    contributions = (k / m) * ln_q(m / k, q)
    values, frequencies = np.unique(x.astype(int), return_counts=True)
    total = 0.0
    for value, f_value in zip(values, frequencies):
        total += f_value * float(np.sum(hypergeom.pmf(k, n, value, m) * contributions))
    return total


def binomial_expectation(probabilities: np.ndarray, size: int, q: float) -> float:
    """
    expected naive entropy of a sample of the given size drawn from the probabilities
    """
    k = np.arange(1, size + 1)
    contributions = (k / size) * ln_q(size / k, q)
    pmf = binom.pmf(k[None, :], size, probabilities[:, None])
    return float(np.sum(pmf @ contributions))


def extrapolate(x: np.ndarray, n: int, m: int, q: float, estimator: EntropyEstimator,
                probability_estimator: ProbabilityEstimator, unveiling: Unveiling,
                richness_estimator: RichnessEstimator, jack_alpha: float, jack_max: int,
                coverage_estimator: CoverageEstimator) -> float:
    """
    expected entropy of a sample of size m larger than the observed one
    """
    stats = sample_stats(x)
    if q == 0:
        # Chao et al. (2014)
        estimate = _richness(x, richness_estimator, jack_alpha, jack_max)
        f0 = max(estimate.value - stats.s_obs, 0)
        if f0 == 0:
            return stats.s_obs - 1
        return stats.s_obs + f0 * (1 - (1 - stats.f1 / (n * f0 + stats.f1)) ** (m - n)) - 1
    if q == 2:
        return 1 - simpson_at(x, n, m)
    h_obs = tsallis(x / n, q)
    if abs(q - 1) < EPSILON:
        h_est = _ent_tsallis(x, q, estimator, probability_estimator, unveiling, jack_alpha, jack_max,
                             coverage_estimator).value
        return n / m * h_obs + (1 - n / m) * h_est
    estimate = _probabilities(x, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                              coverage_estimator)
    return h_obs + binomial_expectation(estimate.probabilities, m, q) \
        - binomial_expectation(estimate.probabilities, n, q)


def _ent_level(x: np.ndarray, q: float, size: int, estimator: EntropyEstimator,
               probability_estimator: ProbabilityEstimator, unveiling: Unveiling,
               richness_estimator: RichnessEstimator, jack_alpha: float, jack_max: int,
               coverage_estimator: CoverageEstimator) -> EntropyEstimate:
    n = int(round(float(np.sum(x))))
    sample_coverage = coverage_at_level(x, size, coverage_estimator)
    if size == n:
        return EntropyEstimate(tsallis(x / n, q), SAMPLE, sample_coverage, q=q, level=size)
    if size < n:
        return EntropyEstimate(interpolate(x, n, size, q), INTERPOLATION, sample_coverage, q=q, level=size)
    if size > EXTRAPOLATION_LIMIT * n:
        logger.warning("Extrapolation to %s individuals, more than %s times the sample size %s, is unreliable", size,
                       EXTRAPOLATION_LIMIT, n)
    value = extrapolate(x, n, size, q, estimator, probability_estimator, unveiling, richness_estimator, jack_alpha,
                        jack_max, coverage_estimator)
    return EntropyEstimate(value, EXTRAPOLATION, sample_coverage, q=q, level=size)


def _parse_options(estimator, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                   coverage_estimator) -> dict:
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    if jack_max < 1:
        raise InvalidInput("jack_max must be at least 1")
    return dict(estimator=EntropyEstimator.parse(estimator),
                probability_estimator=ProbabilityEstimator.parse(probability_estimator),
                unveiling=Unveiling.parse(unveiling), richness_estimator=RichnessEstimator.parse(richness_estimator),
                jack_alpha=jack_alpha, jack_max=int(jack_max),
                coverage_estimator=CoverageEstimator.parse(coverage_estimator))


def _observed(abundances) -> np.ndarray:
    counts = as_abundance_vector(abundances).observed().counts
    if len(counts) == 0:
        raise InvalidInput("The sample contains no species")
    if not np.all(counts == np.round(counts)):
        raise InvalidInput("Interpolation and extrapolation require integer abundances")
    return counts


def ent_level(abundances, q: float, level, estimator="UnveilJ", probability_estimator="Chao2015",
              unveiling="geometric", richness_estimator="jackknife", jack_alpha: float = 0.05, jack_max: int = 10,
              coverage_estimator="ZhangHuang") -> EntropyEstimate:
    """
    estimates the entropy of order q of a sample of another size than the observed one
    :param abundances: the species abundances, integers
    :param q: the order of entropy
    :param level: a sample size, or a sample coverage if in ]0;1[
    :param estimator: the asymptotic entropy estimator, used to extrapolate Shannon entropy
    :param probability_estimator: the probability tuning used to extrapolate entropy of any order
    :param unveiling: the distribution of the unobserved species used to extrapolate entropy of any order
    :param richness_estimator: the richness estimator used to extrapolate richness
    :param jack_alpha: the risk level of the jackknife order selection
    :param jack_max: the highest jackknife order
    :param coverage_estimator: the estimator of the sample coverage
    :return: the estimate, with the sample size it was computed at
    """
    q = check_order(q)
    options = _parse_options(estimator, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                             coverage_estimator)
    x = _observed(abundances)
    size = level_to_size(x, level, options["coverage_estimator"])
    result, notices = recorded(_ent_level, x, q, size, **options)
    replay(notices)
    return replace(result, notices=notices)


def div_level(abundances, q: float, level, **kwargs) -> EntropyEstimate:
    """
    estimates the diversity of order q of a sample of another size than the observed one.
    Keyword arguments are those of ent_level
    """
    return ent_level(abundances, q, level, **kwargs).to_diversity()


def level_entropy(abundances, q: float, size: int, **options) -> float:
    """
    entropy at a sample size, as a plain number: the statistic of bootstrapped accumulation curves
    """
    counts = np.asarray(abundances, dtype=float)
    return _ent_level(counts[counts > 0], q, size, **options).value


def _level_record(item, x: np.ndarray, q: float, site: str, n_simulations: int, workers: int, diversity: bool,
                  options: dict) -> DiversityRecord:
    """
    the record of one level of an accumulation curve, its diagnostics left to the caller to replay
    """
    size, seed_sequence = item
    estimate, notices = recorded(_ent_level, x, q, size, **options)
    error = math.nan
    if n_simulations > 0:
        values, _ = recorded(bootstrap, x, partial(level_entropy, q=q, size=size, **options), n_simulations,
                             seed=seed_sequence, workers=workers,
                             probability_estimator=options["probability_estimator"],
                             unveiling=options["unveiling"], richness_estimator=options["richness_estimator"],
                             jack_alpha=options["jack_alpha"], jack_max=options["jack_max"],
                             coverage_estimator=options["coverage_estimator"])
        error = std_error(exp_q(values, q) if diversity else values)
    if diversity:
        estimate = estimate.to_diversity()
    return DiversityRecord(site=site, q=q, estimator=estimate.estimator, measure=estimate.measure,
                           value=estimate.value, std_error=error, coverage=estimate.coverage, level=size,
                           notices=notices)


def _accumulate(abundances, q: float, levels, n_simulations: int, seed, workers: int, diversity: bool,
                options: dict) -> pd.DataFrame:
    q = check_order(q)
    vector = as_abundance_vector(abundances)
    x = _observed(vector)
    n = int(round(float(np.sum(x))))
    if levels is None:
        levels = range(1, n + 1)
    sizes = [level_to_size(x, level, options["coverage_estimator"]) for level in levels]
    seed_sequences = np.random.SeedSequence(seed).spawn(len(sizes))

    if workers > 1 and len(sizes) > 1:
        # pool workers can not start processes: the simulations of each level run in its worker
        task = partial(_level_record, x=x, q=q, site=vector.site, n_simulations=n_simulations, workers=1,
                       diversity=diversity, options=options)
        with Pool(workers) as pool:
            records = pool.map(task, zip(sizes, seed_sequences))
    else:
        task = partial(_level_record, x=x, q=q, site=vector.site, n_simulations=n_simulations, workers=workers,
                       diversity=diversity, options=options)
        records = [task(item) for item in zip(sizes, seed_sequences)]
    for record in records:
        replay(record.notices)
    logger.debug("accumulation of order %s over %s levels", q, len(records))
    return records_to_dataFrame(records)


def accum_tsallis(abundances, q: float = 1, levels=None, n_simulations: int = 0, seed=None, workers: int = 1,
                  estimator="UnveilJ", probability_estimator="Chao2015", unveiling="geometric",
                  richness_estimator="jackknife", jack_alpha: float = 0.05, jack_max: int = 10,
                  coverage_estimator="ZhangHuang") -> pd.DataFrame:
    """
    computes the accumulation curve of entropy of order q, one row per level
    :param abundances: the species abundances, integers
    :param q: the order of entropy
    :param levels: the sample sizes or coverages, from 1 to the sample size by default
    :param n_simulations: the number of bootstrap simulations of the standard error, none if 0
    :param seed: the seed of the bootstrap simulations
    :param workers: the number of processes running the simulations
    :return: a data frame of diversity records
    """
    options = _parse_options(estimator, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                             coverage_estimator)
    return _accumulate(abundances, q, levels, n_simulations, seed, workers, False, options)


def accum_hill(abundances, q: float = 1, levels=None, n_simulations: int = 0, seed=None, workers: int = 1,
               estimator="UnveilJ", probability_estimator="Chao2015", unveiling="geometric",
               richness_estimator="jackknife", jack_alpha: float = 0.05, jack_max: int = 10,
               coverage_estimator="ZhangHuang") -> pd.DataFrame:
    """
    computes the accumulation curve of diversity of order q, one row per level. Arguments are those of accum_tsallis
    """
    options = _parse_options(estimator, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                             coverage_estimator)
    return _accumulate(abundances, q, levels, n_simulations, seed, workers, True, options)

"""
Bootstrap standard errors: samples of the same size as the observed one are drawn from the unveiled probabilities of
the community, and the statistic is recomputed on each of them.

Every repetition owns a random generator spawned from a single SeedSequence, so that the values only depend on the
seed, whatever the number of worker processes.
"""
import logging
import math
from functools import partial
from multiprocessing import Pool

import numpy as np

from specdiv.errors import InvalidInput, recorded
from specdiv.estimation.estimators import CoverageEstimator, ProbabilityEstimator, RichnessEstimator, Unveiling
from specdiv.estimation.metrics import check_abundances
from specdiv.estimation.probabilities import _probabilities

logger = logging.getLogger(__name__)


def resample(probabilities: np.ndarray, size: int, generator: np.random.Generator) -> np.ndarray:
    """
    draws the abundances of a sample of the given size from the probabilities
    """
    return generator.multinomial(size, probabilities / np.sum(probabilities))


def _repetition(seed_sequence: np.random.SeedSequence, probabilities: np.ndarray, size: int, statistic) -> float:
    generator = np.random.default_rng(seed_sequence)
    sample = resample(probabilities, size, generator)
    # the diagnostics of the simulated samples do not concern the observed one
    value, notices = recorded(statistic, sample)
    if notices:
        logger.debug("bootstrap repetition: %s", "; ".join(str(notice) for notice in notices))
    return value


def bootstrap(abundances, statistic, n_simulations: int, seed=None, workers: int = 1,
              probability_estimator="Chao2015", unveiling="geometric", richness_estimator="jackknife",
              jack_alpha: float = 0.05, jack_max: int = 10, coverage_estimator="ZhangHuang") -> np.ndarray:
    """
    computes a statistic on simulated samples
    :param abundances: the observed species abundances, integers
    :param statistic: a picklable function of an abundance vector returning a number
    :param n_simulations: the number of simulated samples
    :param seed: the seed of the random generators, or a SeedSequence
    :param workers: the number of worker processes, sequential if 1
    :return: the values of the statistic, in the order of the repetitions
    """
    counts = check_abundances(abundances)
    if n_simulations < 1:
        raise InvalidInput("The number of simulations must be positive")
    if workers < 1:
        raise InvalidInput("The number of workers must be positive")
    if not np.all(counts == np.round(counts)):
        raise InvalidInput("Bootstrap requires integer abundances")
    estimate = _probabilities(counts[counts > 0], ProbabilityEstimator.parse(probability_estimator),
                              Unveiling.parse(unveiling), RichnessEstimator.parse(richness_estimator), jack_alpha,
                              int(jack_max), CoverageEstimator.parse(coverage_estimator))
    size = int(round(np.sum(counts)))
    if not isinstance(seed, np.random.SeedSequence):
        seed = np.random.SeedSequence(seed)
    seed_sequences = seed.spawn(n_simulations)
    task = partial(_repetition, probabilities=estimate.probabilities, size=size, statistic=statistic)

    logger.debug("bootstrap: %s simulations of samples of size %s, %s worker(s)", n_simulations, size, workers)
    if workers == 1:
        values = [task(seed_sequence) for seed_sequence in seed_sequences]
    else:
        with Pool(workers) as pool:
            values = pool.map(task, seed_sequences)
    return np.array(values, dtype=float)


def std_error(values) -> float:
    """
    the standard deviation of the simulated values, ignoring NaN. NaN if fewer than two values are available
    """
    values = np.asarray(values, dtype=float)
    values = values[~np.isnan(values)]
    if len(values) < 2:
        return math.nan
    return float(np.std(values, ddof=1))

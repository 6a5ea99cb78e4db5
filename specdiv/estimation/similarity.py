"""
Similarity-based entropy and diversity (Leinster & Cobbold, 2012). Each species contributes through its ordinariness,
(Zp)_i, the probability mass of the species similar to it: the entropy of order q is sum_i p_i ln_q(1 / (Zp)_i).
With the identity matrix, it is Tsallis entropy.
"""
import logging
import math
from dataclasses import replace
from typing import Optional

import numpy as np
import pandas as pd

from specdiv.distribution import AbundanceVector, SpeciesDistribution, as_abundance_vector, as_species_distribution
from specdiv.errors import InvalidInput, recorded, replay
from specdiv.estimation.entropy import DIVERSITY, EntropyEstimate, check_order, exp_q, ln_q, series_weights
from specdiv.estimation.estimators import CoverageEstimator, ProbabilityEstimator, SimilarityEstimator, \
    UNVEIL_RICHNESS, Unveiling, resolve
from specdiv.estimation.metrics import _sample_coverage, memoize, sample_stats
from specdiv.estimation.partition import metacommunity
from specdiv.estimation.probabilities import _probabilities
from specdiv.estimation.species_estimator import DiversityRecord, records_to_dataFrame

logger = logging.getLogger(__name__)


def similarity_entropy(p: np.ndarray, z: np.ndarray, q: float) -> float:
    """
    entropy of order q of a probability vector given the similarity matrix of the species
    """
    keep = p > 0
    ordinariness = z @ p
    return float(np.sum(p[keep] * ln_q(1 / ordinariness[keep], q)))


def check_similarities(vector, similarities) -> np.ndarray:
    """
    aligns the similarity matrix with the species of the abundance vector.
    A data frame is matched by species names, an array by position
    :return: the matrix, in the order of the abundance vector
    """
    if isinstance(similarities, pd.DataFrame):
        unknown = [name for name in vector.names if name not in similarities.index]
        if unknown:
            raise InvalidInput("Species missing from the similarity matrix: " + ", ".join(unknown))
        similarities = similarities.loc[list(vector.names), list(vector.names)].to_numpy()
    z = np.asarray(similarities, dtype=float)
    if z.ndim != 2 or z.shape[0] != z.shape[1]:
        raise InvalidInput("The similarity matrix must be square")
    if z.shape[0] != len(vector):
        raise InvalidInput("The similarity matrix must have as many rows as there are species (" +
                           str(len(vector)) + "), got " + str(z.shape[0]))
    if np.isnan(z).any() or (z < 0).any() or (z > 1).any():
        raise InvalidInput("Similarities must be between 0 and 1")
    if not np.allclose(np.diag(z), 1):
        raise InvalidInput("Every species must have a similarity of 1 with itself")
    return z


def marcon_zhang(x: np.ndarray, z: np.ndarray, q: float) -> float:
    """
    Marcon & Zhang (2017): the Zhang & Grabchak series where the abundance of each species is replaced by the
    abundance of the species similar to it, sum_j z_ij x_j, whose ordinariness is estimated without bias by
    (sum_j z_ij x_j - 1) / (n - 1)
    """
    n = int(round(float(np.sum(x))))
    if n < 2:
        return 0.0
    ordinary = z @ x
    v = np.arange(1, n)
    u = series_weights(q, n - 1)
    entropy = 0.0
    for x_i, a_i in zip(x, ordinary):
        factors = np.clip((n - a_i - (v - 1)) / (n - v), 0, None)
        entropy += x_i / n * float(np.dot(u, np.cumprod(factors)))
    return entropy


def chao_shen_similarity(x: np.ndarray, z: np.ndarray, q: float, sample_coverage: float) -> float:
    n = float(np.sum(x))
    p = sample_coverage * x / n
    ordinariness = z @ p
    return float(np.sum(p * ln_q(1 / ordinariness, q) / (1 - (1 - p) ** n)))




@memoize()
def _ent_similarity(x: np.ndarray, z: np.ndarray, q: float, estimator: SimilarityEstimator,
                    probability_estimator: ProbabilityEstimator, unveiling: Unveiling, jack_alpha: float,
                    jack_max: int, coverage_estimator: CoverageEstimator,
                    sample_coverage: Optional[float] = None) -> EntropyEstimate:
    stats = sample_stats(x)
    estimator = resolve(estimator, stats)
    n = stats.sample_size
    if estimator is SimilarityEstimator.NAIVE:
        return EntropyEstimate(similarity_entropy(x / n, z, q), str(estimator), q=q)

    if sample_coverage is None:
        sample_coverage = _sample_coverage(x, coverage_estimator)
    if estimator is SimilarityEstimator.MAX:
        candidates = [_ent_similarity(x, z, q, other, probability_estimator, unveiling, jack_alpha, jack_max,
                                      coverage_estimator, sample_coverage).value
                      for other in SimilarityEstimator if other is not SimilarityEstimator.MAX]
        return EntropyEstimate(float(np.nanmax(candidates)), str(estimator), sample_coverage, q=q)

    if estimator is SimilarityEstimator.MARCON_ZHANG:
        zhang = marcon_zhang(x, z, q)
        if sample_coverage > 0:
            zhang = max(zhang, chao_shen_similarity(x, z, q, sample_coverage))
        return EntropyEstimate(zhang, str(estimator), sample_coverage, q=q)

    if not sample_coverage > 0:
        return EntropyEstimate(math.nan, str(estimator), sample_coverage, q=q)
    if estimator is SimilarityEstimator.CHAO_SHEN:
        return EntropyEstimate(chao_shen_similarity(x, z, q, sample_coverage), str(estimator), sample_coverage,
                               q=q)

    # the unveiling estimators tune the probabilities with their own coverage estimate
    estimate = _probabilities(x, probability_estimator, unveiling, UNVEIL_RICHNESS[estimator], jack_alpha, jack_max,
                              coverage_estimator)
    unseen = len(estimate.unseen)
    # unobserved species are similar to none of the observed ones
    extended = np.block([[z, np.zeros((len(x), unseen))],
                         [np.zeros((unseen, len(x))), np.eye(unseen)]])
    value = similarity_entropy(estimate.probabilities, extended, q)
    logger.debug("%s similarity entropy of order %s with %s unveiled species: %s", estimator, q, unseen, value)
    return EntropyEstimate(value, str(estimator), sample_coverage, q=q)


def _is_distribution(x) -> bool:
    if isinstance(x, (SpeciesDistribution, pd.DataFrame)):
        return True
    return not isinstance(x, (pd.Series, AbundanceVector)) and np.ndim(x) == 2


def _vector_similarity(vector: AbundanceVector, similarities, q: float, options: dict) -> EntropyEstimate:
    z = check_similarities(vector, similarities)
    keep = vector.counts > 0
    if not keep.any():
        raise InvalidInput("The sample " + vector.site + " contains no species")
    result, notices = recorded(_ent_similarity, vector.counts[keep], z[np.ix_(keep, keep)], q, **options)
    replay(notices)
    return replace(result, notices=notices)


def ent_similarity(x, similarities, q: float = 1, estimator="UnveilJ", probability_estimator="Chao2015",
                   unveiling="geometric", jack_alpha: float = 0.05, jack_max: int = 10,
                   coverage_estimator="ZhangHuang", sample_coverage: Optional[float] = None, gamma: bool = False):
    """
    estimates the similarity-based entropy of order q of a community, or of each community of a species distribution
    :param x: the species abundances, or a species distribution (a matrix or a data frame, one row per community)
    :param similarities: the similarity matrix of the species, values in [0;1] and 1 on the diagonal. A data frame is
    matched by species names, an array by position
    :param q: the order of entropy
    :param estimator: one of 'UnveilJ', 'UnveilC', 'UnveiliC', 'ChaoShen', 'MarconZhang', 'Max', 'naive'
    :param sample_coverage: a known sample coverage, used by 'ChaoShen' and 'MarconZhang' instead of its estimate
    :param gamma: with a species distribution, estimate the entropy of the metacommunity only
    :return: the estimate, with the estimator actually used and the diagnostics; a data frame of diversity records,
    one per community, for a species distribution
    """
    q = check_order(q)
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    if sample_coverage is not None and not 0 < sample_coverage <= 1:
        raise InvalidInput("sample_coverage must be in ]0;1]")
    options = dict(estimator=SimilarityEstimator.parse(estimator),
                   probability_estimator=ProbabilityEstimator.parse(probability_estimator),
                   unveiling=Unveiling.parse(unveiling), jack_alpha=jack_alpha, jack_max=int(jack_max),
                   coverage_estimator=CoverageEstimator.parse(coverage_estimator),
                   sample_coverage=None if sample_coverage is None else float(sample_coverage))
    if not _is_distribution(x):
        return _vector_similarity(as_abundance_vector(x), similarities, q, options)

    distribution = as_species_distribution(x)
    vectors = [metacommunity(distribution)] if gamma else distribution.rows()
    records = []
    for vector in vectors:
        estimate = _vector_similarity(vector, similarities, q, options)
        records.append(DiversityRecord(site=vector.site, q=q, estimator=estimate.estimator, measure=estimate.measure,
                                       value=estimate.value, coverage=estimate.coverage, notices=estimate.notices))
    logger.debug("similarity entropy of order %s of %s communities", q, len(records))
    return records_to_dataFrame(records)


def div_similarity(x, similarities, q: float = 1, **kwargs):
    """
    similarity-based diversity of order q, the deformed exponential of the similarity-based entropy.
    Keyword arguments are those of ent_similarity
    """
    result = ent_similarity(x, similarities, q, **kwargs)
    if isinstance(result, EntropyEstimate):
        return result.to_diversity()
    return result.assign(measure=DIVERSITY, value=exp_q(result["value"].to_numpy(), q))

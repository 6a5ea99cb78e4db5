"""
Partition of the diversity of a metacommunity into alpha (within communities) and beta (between communities)
components: gamma diversity = alpha diversity x beta diversity.
"""
import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from specdiv.distribution import AbundanceVector, as_species_distribution
from specdiv.errors import InvalidInput
from specdiv.estimation.entropy import DIVERSITY, ENTROPY, EPSILON, check_order, ent_tsallis, exp_q, ln_q
from specdiv.estimation.species_estimator import DiversityRecord, records_to_dataFrame

logger = logging.getLogger(__name__)

METACOMMUNITY = "metacommunity"


@dataclass(frozen=True)
class Component:
    entropy: DiversityRecord
    diversity: DiversityRecord


@dataclass(frozen=True)
class Partition:
    """
    the gamma, alpha and beta components of the diversity of order q, and the diversity of each community
    """
    q: float
    gamma: Component
    alpha: Component
    beta: Component
    communities: tuple

    def to_dataFrame(self) -> pd.DataFrame:
        records = [record
                   for component in (self.gamma, self.alpha, self.beta) + tuple(self.communities)
                   for record in (component.entropy, component.diversity)]
        return records_to_dataFrame(records)


def metacommunity(distribution, sites: list = None, weights=None) -> AbundanceVector:
    """
    builds the abundances of the metacommunity: the probabilities of the communities are averaged with their
    normalized weights, then multiplied by the total number of individuals. They are rounded if the abundances of the
    communities are integers
    :param distribution: a species distribution, or anything it can be built from
    :return: the abundance vector of the metacommunity
    """
    distribution = as_species_distribution(distribution, sites=sites, weights=weights)
    probabilities = distribution.as_probabilities().matrix
    meta = distribution.normalized_weights() @ probabilities * distribution.matrix.sum()
    if np.all(distribution.matrix == np.round(distribution.matrix)):
        meta = np.round(meta)
    return AbundanceVector(meta, list(distribution.species), METACOMMUNITY)


def _component(site: str, q: float, estimator: str, entropy: float, diversity: float, coverage: float = np.nan,
               notices: tuple = ()) -> Component:
    return Component(DiversityRecord(site, q, estimator, ENTROPY, entropy, coverage=coverage, notices=notices),
                     DiversityRecord(site, q, estimator, DIVERSITY, diversity, coverage=coverage, notices=notices))


def div_part(distribution, q: float = 1, estimator="UnveilJ", sites: list = None, weights=None,
             **kwargs) -> Partition:
    """
    partitions the diversity of order q of a metacommunity.
    Alpha entropy is the weighted mean of the entropies of the communities, gamma entropy is the entropy of the
    metacommunity; beta diversity is gamma diversity divided by alpha diversity
    :param distribution: a species distribution with at least two communities, or anything it can be built from
    :param q: the order of diversity
    :param estimator: the entropy estimator, applied to each community and to the metacommunity
    :param kwargs: the other arguments of ent_tsallis
    :return: the partition
    """
    q = check_order(q)
    distribution = as_species_distribution(distribution, sites=sites, weights=weights)
    if len(distribution) < 2:
        raise InvalidInput("A partition requires at least two communities")
    w = distribution.normalized_weights()

    communities = []
    for row in distribution.rows():
        estimate = ent_tsallis(row, q, estimator=estimator, **kwargs)
        communities.append(_component(row.site, q, estimate.estimator, estimate.value,
                                      float(exp_q(estimate.value, q)), estimate.coverage, estimate.notices))

    gamma_estimate = ent_tsallis(metacommunity(distribution), q, estimator=estimator, **kwargs)
    gamma_entropy = gamma_estimate.value
    gamma_diversity = float(exp_q(gamma_entropy, q))
    alpha_entropy = float(np.sum(w * np.array([c.entropy.value for c in communities])))
    alpha_diversity = float(exp_q(alpha_entropy, q))
    beta_diversity = gamma_diversity / alpha_diversity
    if abs(q - 1) < EPSILON:
        beta_entropy = gamma_entropy - alpha_entropy
    else:
        beta_entropy = float(ln_q(beta_diversity, q))
    logger.debug("partition of order %s: gamma %s, alpha %s, beta %s", q, gamma_diversity, alpha_diversity,
                 beta_diversity)

    return Partition(q,
                     _component("gamma", q, gamma_estimate.estimator, gamma_entropy, gamma_diversity,
                                gamma_estimate.coverage, gamma_estimate.notices),
                     _component("alpha", q, str(estimator), alpha_entropy, alpha_diversity),
                     _component("beta", q, str(estimator), beta_entropy, beta_diversity),
                     tuple(communities))

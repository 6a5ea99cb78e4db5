"""
Phylogenetic entropy and diversity (Marcon & Herault, 2015). An ultrametric tree is cut into slices between
consecutive node heights; in each slice, the species are grouped by the branches they belong to and the entropy of
the groups is computed. Phylogenetic entropy is the average of the slice entropies weighted by the slice lengths.
"""
import logging
from dataclasses import dataclass, replace

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, is_valid_linkage

from specdiv.distribution import AbundanceVector, as_abundance_vector
from specdiv.errors import InvalidInput, recorded, replay
from specdiv.estimation.accumulation import _ent_level, _observed, _parse_options, level_to_size
from specdiv.estimation.entropy import EntropyEstimate, _ent_tsallis, check_order
from specdiv.estimation.estimators import CoverageEstimator, EntropyEstimator, ProbabilityEstimator, Unveiling
from specdiv.estimation.species_estimator import DiversityRecord, records_to_dataFrame

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Slice:
    lower: float
    length: float
    clusters: np.ndarray


class PhyloTree:
    """
    an ultrametric tree given by a linkage matrix, as returned by scipy.cluster.hierarchy.linkage,
    and the labels of its leaves
    """

    def __init__(self, linkage, labels: list):
        linkage = np.asarray(linkage, dtype=float)
        if not is_valid_linkage(linkage):
            raise InvalidInput("The tree must be a valid linkage matrix")
        if len(labels) != linkage.shape[0] + 1:
            raise InvalidInput("The tree has " + str(linkage.shape[0] + 1) + " leaves but " + str(len(labels)) +
                               " labels were given")
        self.linkage = linkage
        self.labels = tuple(str(label) for label in labels)
        self.height = float(linkage[:, 2].max())
        if self.height <= 0:
            raise InvalidInput("The height of the tree must be positive")

    def cuts(self) -> list:
        """
        returns the slices of the tree, from the leaves to the root. The clusters of a slice are the branches
        crossing it, numbered from 1, in the order of the labels
        """
        heights = np.unique(np.concatenate([[0.0], self.linkage[:, 2]]))
        return [Slice(lower, upper - lower, fcluster(self.linkage, t=lower, criterion="distance"))
                for lower, upper in zip(heights[:-1], heights[1:])]

    def align(self, x) -> AbundanceVector:
        """
        reorders an abundance vector in the order of the leaves. Named species are matched by name, unnamed ones by
        position
        """
        if isinstance(x, (pd.Series, AbundanceVector)):
            vector = as_abundance_vector(x)
            unknown = [name for name in vector.names if name not in self.labels]
            if unknown:
                raise InvalidInput("Species missing from the tree: " + ", ".join(unknown))
            counts = dict(zip(vector.names, vector.counts))
            return AbundanceVector([counts.get(label, 0.0) for label in self.labels], list(self.labels), vector.site)
        vector = as_abundance_vector(x)
        if len(vector) != len(self.labels):
            raise InvalidInput("The abundance vector has " + str(len(vector)) + " species, the tree has " +
                               str(len(self.labels)) + " leaves")
        return AbundanceVector(vector.counts, list(self.labels), vector.site)

    def __len__(self):
        return len(self.labels)


def aggregate(counts: np.ndarray, clusters: np.ndarray) -> np.ndarray:
    """
    sums the abundances of the species of each cluster
    """
    return np.bincount(clusters - 1, weights=counts)


def _ent_phylo(tree: PhyloTree, counts: np.ndarray, q: float, options: dict) -> EntropyEstimate:
    entropy = 0.0
    leaves = None
    for cut in tree.cuts():
        estimate = _ent_tsallis(aggregate(counts, cut.clusters), q, **options)
        if leaves is None:
            leaves = estimate
        entropy += cut.length * estimate.value
    return EntropyEstimate(entropy / tree.height, leaves.estimator, leaves.coverage, q=q)


def ent_phylo(x, tree: PhyloTree, q: float = 1, estimator="UnveilJ", probability_estimator="Chao2015",
              unveiling="geometric", jack_alpha: float = 0.05, jack_max: int = 10,
              coverage_estimator="ZhangHuang") -> EntropyEstimate:
    """
    estimates the phylogenetic entropy of order q of a community
    :param x: the species abundances, a pandas Series or an AbundanceVector to match species by name
    :param tree: the phylogenetic tree of the species
    :param q: the order of entropy
    :param estimator: the entropy estimator applied to each slice of the tree
    :return: the estimate, with the estimator applied to the leaves and the diagnostics of all slices
    """
    q = check_order(q)
    if not 0 < jack_alpha < 1:
        raise InvalidInput("jack_alpha must be in ]0;1[")
    vector = tree.align(x)
    if vector.richness == 0:
        raise InvalidInput("The sample contains no species")
    options = dict(estimator=EntropyEstimator.parse(estimator),
                   probability_estimator=ProbabilityEstimator.parse(probability_estimator),
                   unveiling=Unveiling.parse(unveiling), jack_alpha=jack_alpha, jack_max=int(jack_max),
                   coverage_estimator=CoverageEstimator.parse(coverage_estimator))
    result, notices = recorded(_ent_phylo, tree, vector.counts, q, options)
    replay(notices)
    return replace(result, notices=notices)


def div_phylo(x, tree: PhyloTree, q: float = 1, **kwargs) -> EntropyEstimate:
    """
    phylogenetic diversity of order q, the deformed exponential of phylogenetic entropy.
    Keyword arguments are those of ent_phylo
    """
    return ent_phylo(x, tree, q, **kwargs).to_diversity()


def phylo_similarity(tree: PhyloTree, height: float) -> pd.DataFrame:
    """
    the similarity matrix of the cut of the tree at the given height: species of the same branch are similar (1),
    the others are not (0)
    """
    if not 0 <= height <= tree.height:
        raise InvalidInput("The height must be between 0 and the height of the tree, " + str(tree.height))
    clusters = fcluster(tree.linkage, t=height, criterion="distance")
    z = (clusters[:, None] == clusters[None, :]).astype(float)
    return pd.DataFrame(z, index=list(tree.labels), columns=list(tree.labels))


def _phylo_level(tree: PhyloTree, counts: np.ndarray, q: float, size: int, options: dict) -> EntropyEstimate:
    entropy = 0.0
    leaves = None
    for cut in tree.cuts():
        aggregated = aggregate(counts, cut.clusters)
        estimate = _ent_level(aggregated[aggregated > 0], q, size, **options)
        if leaves is None:
            leaves = estimate
        entropy += cut.length * estimate.value
    return EntropyEstimate(entropy / tree.height, leaves.estimator, leaves.coverage, q=q, level=size)


def accum_ent_phylo(x, tree: PhyloTree, q: float = 1, levels=None, estimator="UnveilJ",
                    probability_estimator="Chao2015", unveiling="geometric", richness_estimator="jackknife",
                    jack_alpha: float = 0.05, jack_max: int = 10, coverage_estimator="ZhangHuang") -> pd.DataFrame:
    """
    computes the accumulation curve of phylogenetic entropy: each slice of the tree is interpolated or extrapolated
    to the same sample size
    :param levels: the sample sizes or coverages, from 1 to the sample size by default
    :return: a data frame of diversity records, one per level
    """
    q = check_order(q)
    options = _parse_options(estimator, probability_estimator, unveiling, richness_estimator, jack_alpha, jack_max,
                             coverage_estimator)
    vector = tree.align(x)
    observed = _observed(vector)
    if levels is None:
        levels = range(1, int(round(float(np.sum(observed)))) + 1)

    records = []
    for level in levels:
        size = level_to_size(observed, level, options["coverage_estimator"])
        estimate, notices = recorded(_phylo_level, tree, vector.counts, q, size, options)
        replay(notices)
        records.append(DiversityRecord(site=vector.site, q=q, estimator=estimate.estimator, measure=estimate.measure,
                                       value=estimate.value, coverage=estimate.coverage, level=size,
                                       notices=notices))
    logger.debug("phylogenetic accumulation of order %s over %s levels", q, len(records))
    return records_to_dataFrame(records)

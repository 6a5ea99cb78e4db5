from specdiv.estimation.accumulation import accum_hill, accum_tsallis, div_level, ent_level
from specdiv.estimation.entropy import EntropyEstimate, div_hill, div_richness, ent_richness, ent_shannon, \
    ent_simpson, ent_tsallis, exp_q, ln_q
from specdiv.estimation.metrics import RichnessEstimate, coverage, coverage_to_size, richness
from specdiv.estimation.partition import Partition, div_part, metacommunity
from specdiv.estimation.phylogeny import PhyloTree, accum_ent_phylo, div_phylo, ent_phylo, phylo_similarity
from specdiv.estimation.probabilities import ProbabilityEstimate, probabilities
from specdiv.estimation.similarity import div_similarity, ent_similarity
from specdiv.estimation.species_estimator import DiversityEstimator, DiversityRecord

import logging
import math
from dataclasses import dataclass
from functools import partial
from multiprocessing import Pool
from typing import Optional

import numpy as np
import pandas as pd
from deprecation import deprecated
from pandas import DataFrame
from tqdm import tqdm

from specdiv.bootstrap import bootstrap, std_error
from specdiv.distribution import AbundanceVector, as_species_distribution
from specdiv.errors import InvalidInput, recorded
from specdiv.estimation.entropy import DIVERSITY, ENTROPY, _ent_tsallis, check_order, exp_q
from specdiv.estimation.estimators import CoverageEstimator, EntropyEstimator, ProbabilityEstimator, \
    RichnessEstimator, Unveiling

logger = logging.getLogger(__name__)

COLUMNS = ["site", "q", "estimator", "measure", "level", "coverage", "value", "std_error", "notices"]


@dataclass(frozen=True)
class DiversityRecord:
    """
    one estimated value: the community, the order, the estimator actually used, the measure ("entropy" or
    "diversity"), and the diagnostics emitted while computing it
    """
    site: str
    q: float
    estimator: str
    measure: str
    value: float
    std_error: float = math.nan
    coverage: float = math.nan
    level: Optional[float] = None
    notices: tuple = ()


def records_to_dataFrame(records: list) -> DataFrame:
    """
    returns a data frame with one row per record, the notices joined in a single string
    """
    return pd.DataFrame([[r.site, r.q, r.estimator, r.measure, r.level, r.coverage, r.value, r.std_error,
                          "; ".join(str(notice) for notice in r.notices)]
                         for r in records], columns=COLUMNS)


def entropy_value(abundances, q: float, options: dict) -> float:
    counts = np.asarray(abundances, dtype=float)
    return _ent_tsallis(counts[counts > 0], q, **options).value


def profile(vector: AbundanceVector, q_values: list, options: dict, richness_estimator: RichnessEstimator,
            n_bootstrap: int, seed_sequence: np.random.SeedSequence) -> list:
    """
    computes the entropy and diversity records of one community for every order.
    Runs in the worker processes: the diagnostics are captured per community, never raised
    """
    records = []
    observed = vector.observed().counts
    seeds = seed_sequence.spawn(len(q_values))
    for q, seed in zip(q_values, seeds):
        if len(observed) == 0:
            # an empty community only yields the degenerate diagnostic
            estimate, notices = recorded(_ent_tsallis, vector.counts, q, **options)
        else:
            estimate, notices = recorded(_ent_tsallis, observed, q, **options)
        entropy_error = diversity_error = math.nan
        if n_bootstrap > 0 and len(observed) > 0 and vector.is_integer:
            values, _ = recorded(bootstrap, observed, partial(entropy_value, q=q, options=options), n_bootstrap,
                                 seed=seed, probability_estimator=options["probability_estimator"],
                                 unveiling=options["unveiling"], richness_estimator=richness_estimator,
                                 jack_alpha=options["jack_alpha"], jack_max=options["jack_max"],
                                 coverage_estimator=options["coverage_estimator"])
            entropy_error = std_error(values)
            diversity_error = std_error(exp_q(values, q))
        records.append(DiversityRecord(vector.site, q, estimate.estimator, ENTROPY, estimate.value, entropy_error,
                                       estimate.coverage, notices=notices))
        records.append(DiversityRecord(vector.site, q, estimate.estimator, DIVERSITY,
                                       float(exp_q(estimate.value, q)), diversity_error, estimate.coverage,
                                       notices=notices))
    return records


class DiversityEstimator:
    """
    A class for the estimation of entropy and diversity profiles of the communities of a species distribution
    """

    def __init__(self, q_values: list = (0, 1, 2), estimator="UnveilJ", probability_estimator="Chao2015",
                 unveiling="geometric", richness_estimator="jackknife", coverage_estimator="ZhangHuang",
                 jack_alpha: float = 0.05, jack_max: int = 10, n_bootstrap: int = 0, seed=None, workers: int = 1,
                 verbose: bool = True):
        """
        :param q_values: the orders of diversity of the profile
        :param estimator: the entropy estimator
        :param probability_estimator: the probability tuning of the unveiling estimators
        :param unveiling: the distribution of the unobserved species of the unveiling estimators
        :param richness_estimator: the richness estimator used for unveiling by the bootstrap simulations
        :param coverage_estimator: the estimator of the sample coverage
        :param jack_alpha: the risk level of the jackknife order selection
        :param jack_max: the highest jackknife order
        :param n_bootstrap: the number of bootstrap simulations of the standard errors. Use 0 for none
        :param seed: the seed of the bootstrap simulations
        :param workers: the number of processes the communities are distributed to, sequential if 1
        :param verbose: flag indicating if a progress bar should be shown
        """
        if not 0 < jack_alpha < 1:
            raise InvalidInput("jack_alpha must be in ]0;1[")
        if jack_max < 1:
            raise InvalidInput("jack_max must be at least 1")
        if n_bootstrap < 0:
            raise InvalidInput("n_bootstrap must not be negative")
        if workers < 1:
            raise InvalidInput("workers must be at least 1")
        self.q_values = [check_order(q) for q in q_values]
        self.options = dict(estimator=EntropyEstimator.parse(estimator),
                            probability_estimator=ProbabilityEstimator.parse(probability_estimator),
                            unveiling=Unveiling.parse(unveiling), jack_alpha=jack_alpha, jack_max=int(jack_max),
                            coverage_estimator=CoverageEstimator.parse(coverage_estimator))
        self.richness_estimator = RichnessEstimator.parse(richness_estimator)
        self.n_bootstrap = n_bootstrap
        self.seed = seed
        self.workers = workers
        self.verbose = verbose

        # every application of the estimator adds one list of records per site
        self.metrics = {}

    def apply(self, data, sites: list = None, weights=None) -> None:
        """
        estimates the entropy and diversity of every community of the data, for every order
        :param data: a species distribution, a data frame, a matrix or an abundance vector
        """
        distribution = as_species_distribution(data, sites=sites, weights=weights)
        rows = distribution.rows()
        seed_sequences = np.random.SeedSequence(self.seed).spawn(len(rows))
        task = partial(_profile_task, q_values=self.q_values, options=self.options,
                       richness_estimator=self.richness_estimator, n_bootstrap=self.n_bootstrap)
        logger.info("Profiling %s communities for q in %s", len(rows), self.q_values)

        if self.workers == 1:
            results = [task(item) for item in tqdm(list(zip(rows, seed_sequences)), "Profiling communities",
                                                  disable=not self.verbose)]
        else:
            with Pool(self.workers) as pool:
                results = list(tqdm(pool.imap(task, zip(rows, seed_sequences)), "Profiling communities",
                                    total=len(rows), disable=not self.verbose))

        for row, records in zip(rows, results):
            self.metrics.setdefault(row.site, []).append(records)
            for record in records:
                for notice in record.notices:
                    logger.info("%s, q=%s: %s", row.site, record.q, notice)

    def records(self, include_all: bool = True) -> list:
        """
        :param include_all: all applications if True, the latest one of each site otherwise
        """
        return [record
                for site in self.metrics
                for observation in (self.metrics[site] if include_all else self.metrics[site][-1:])
                for record in observation]

    def to_dataFrame(self, include_all: bool = True) -> DataFrame:
        """
        returns the entropy and diversity profiles as a data frame, one row per site, order and measure
        :param include_all: the history of all applications if True, with their index in column "observation",
        the latest application of each site otherwise
        """
        if not include_all:
            return records_to_dataFrame(self.records(include_all=False))
        frames = []
        for site in self.metrics:
            for index, observation in enumerate(self.metrics[site]):
                frame = records_to_dataFrame(observation)
                frame.insert(1, "observation", index)
                frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=COLUMNS[:1] + ["observation"] + COLUMNS[1:])
        return pd.concat(frames, ignore_index=True)

    def summarize(self, site: str = None) -> None:
        """
        prints the latest entropy and diversity profile of a site, or of all sites
        """
        sites = self.metrics.keys() if site is None else [site]
        for site_id in sites:
            if site_id not in self.metrics:
                raise InvalidInput("Unknown site " + str(site_id))
            records = self.metrics[site_id][-1]
            print("### " + site_id + " ###")
            print("%-25s %-20s %-20s %-20s %s" % ("Order", "Estimator", "Entropy", "Diversity", "Stdev"))
            print("%-25s %-20s %-20s %-20s %s" % ("", "---------", "-------", "---------", "-----"))
            for entropy, diversity in zip(records[::2], records[1::2]):
                print("%-25s %-20s %-20s %-20s %s" % ("q=" + str(entropy.q), entropy.estimator,
                                                      "%.6g" % entropy.value, "%.6g" % diversity.value,
                                                      "-" if math.isnan(diversity.std_error)
                                                      else "%.6g" % diversity.std_error))
            notices = {notice for record in records for notice in record.notices}
            for notice in sorted(notices, key=str):
                print("%-25s %s" % ("Notice", str(notice)))
            print()

    @deprecated(deprecated_in="0.2.0", details="Use summarize() instead")
    def print_metrics(self) -> None:
        """
        prints the entropy and diversity profiles of the current observations
        """
        self.summarize()


def _profile_task(item, q_values, options, richness_estimator, n_bootstrap) -> list:
    vector, seed_sequence = item
    return profile(vector, q_values, options, richness_estimator, n_bootstrap, seed_sequence)

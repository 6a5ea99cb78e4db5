"""
Closed enumerations of the available estimators and the central fallback table.

Every estimator family is an enumeration whose values are the names accepted by the public functions. A requested
estimator whose prerequisite is not met by the sample is replaced following FALLBACKS; each substitution emits an
EstimatorFallbackWarning so that it ends up in the result record.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from specdiv.errors import InvalidInput, fallback

logger = logging.getLogger(__name__)


class _Choice(str, Enum):

    @classmethod
    def parse(cls, value):
        """
        resolves an estimator name, case-insensitive
        :param value: the name or an enumeration member
        :return: the enumeration member
        """
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value.lower() == str(value).lower():
                return member
        raise InvalidInput("Unknown " + cls.__name__ + " '" + str(value) + "'. Available: "
                           + ", ".join(m.value for m in cls))

    def __str__(self):
        return self.value


class CoverageEstimator(_Choice):
    ZHANG_HUANG = "ZhangHuang"
    CHAO = "Chao"
    TURING = "Turing"
    GOOD = "Good"


class RichnessEstimator(_Choice):
    JACKKNIFE = "jackknife"
    CHAO1 = "Chao1"
    ICHAO1 = "iChao1"
    ACE = "ACE"
    NAIVE = "naive"


class ProbabilityEstimator(_Choice):
    NAIVE = "naive"
    CHAO_SHEN = "ChaoShen"
    CHAO2013 = "Chao2013"
    CHAO2015 = "Chao2015"


class Unveiling(_Choice):
    NONE = "none"
    UNIFORM = "uniform"
    GEOMETRIC = "geometric"


class EntropyEstimator(_Choice):
    UNVEIL_J = "UnveilJ"
    UNVEIL_C = "UnveilC"
    UNVEIL_IC = "UnveiliC"
    CHAO_JOST = "ChaoJost"
    CHAO_SHEN = "ChaoShen"
    ZHANG_HUANG = "ZhangHuang"
    GRASSBERGER = "Grassberger"
    MARCON = "Marcon"
    NAIVE = "naive"


class SimilarityEstimator(_Choice):
    UNVEIL_J = "UnveilJ"
    UNVEIL_C = "UnveilC"
    UNVEIL_IC = "UnveiliC"
    CHAO_SHEN = "ChaoShen"
    MARCON_ZHANG = "MarconZhang"
    MAX = "Max"
    NAIVE = "naive"


# richness estimator used to count unseen species by each unveiling estimator
UNVEIL_RICHNESS = {
    EntropyEstimator.UNVEIL_J: RichnessEstimator.JACKKNIFE,
    EntropyEstimator.UNVEIL_C: RichnessEstimator.CHAO1,
    EntropyEstimator.UNVEIL_IC: RichnessEstimator.ICHAO1,
    SimilarityEstimator.UNVEIL_J: RichnessEstimator.JACKKNIFE,
    SimilarityEstimator.UNVEIL_C: RichnessEstimator.CHAO1,
    SimilarityEstimator.UNVEIL_IC: RichnessEstimator.ICHAO1,
}


@dataclass(frozen=True)
class Fallback:
    """
    an estimator, the prerequisite it has on the sample and the estimator used instead when it is not met.
    Rules without a check are only known to fail once the estimator has been computed, see substitute()
    """
    estimator: Enum
    prerequisite: str
    check: Optional[Callable]
    substitute: Enum


def _integer(stats) -> bool:
    return stats.is_integer


def _no_dominant_species(stats) -> bool:
    return stats.max_count <= stats.sample_size / 2


def _doubletons(stats) -> bool:
    return stats.f2 > 0


def _not_monospecific(stats) -> bool:
    return stats.s_obs > 1


def _build_table() -> dict:
    # keyed by (family, member): members of different families may share a name
    rules = [
        Fallback(CoverageEstimator.ZHANG_HUANG, "integer abundances", _integer, CoverageEstimator.CHAO),
        Fallback(CoverageEstimator.ZHANG_HUANG, "no species holding more than half of the individuals",
                 _no_dominant_species, CoverageEstimator.CHAO),
        Fallback(RichnessEstimator.JACKKNIFE, "integer abundances", _integer, RichnessEstimator.CHAO1),
        Fallback(ProbabilityEstimator.CHAO2015, "integer abundances", _integer, ProbabilityEstimator.NAIVE),
        Fallback(ProbabilityEstimator.CHAO2015, "at least one doubleton", _doubletons,
                 ProbabilityEstimator.CHAO2013),
        Fallback(ProbabilityEstimator.CHAO2013, "integer abundances", _integer, ProbabilityEstimator.NAIVE),
        Fallback(ProbabilityEstimator.CHAO2013, "more than one observed species", _not_monospecific,
                 ProbabilityEstimator.CHAO_SHEN),
        Fallback(ProbabilityEstimator.CHAO2015, "non-negative tuned probabilities", None,
                 ProbabilityEstimator.CHAO_SHEN),
        Fallback(ProbabilityEstimator.CHAO2013, "non-negative tuned probabilities", None,
                 ProbabilityEstimator.CHAO_SHEN),
        Fallback(ProbabilityEstimator.CHAO_SHEN, "integer abundances", _integer, ProbabilityEstimator.NAIVE),
        Fallback(Unveiling.UNIFORM, "integer abundances", _integer, Unveiling.NONE),
        Fallback(Unveiling.GEOMETRIC, "integer abundances", _integer, Unveiling.NONE),
    ]
    # bias corrections rely on the number of individuals
    for family in (EntropyEstimator, SimilarityEstimator):
        for member in family:
            if member.value != "naive":
                rules.append(Fallback(member, "integer abundances", _integer, family("naive")))
    table = {}
    for rule in rules:
        table.setdefault(_entry(rule.estimator), []).append(rule)
    return table


def _entry(estimator: Enum) -> tuple:
    return type(estimator), estimator.value


FALLBACKS = _build_table()


def resolve(estimator: Enum, stats) -> Enum:
    """
    follows the fallback table until an estimator whose prerequisites are met by the sample is found
    :param estimator: the requested estimator
    :param stats: the SampleStats of the abundance vector
    :return: the estimator to be used
    """
    seen = set()
    while estimator not in seen:
        seen.add(estimator)
        for rule in FALLBACKS.get(_entry(estimator), []):
            if rule.check is not None and not rule.check(stats):
                logger.debug("%s requires %s, using %s", rule.estimator, rule.prerequisite, rule.substitute)
                fallback(str(rule.estimator) + " requires " + rule.prerequisite + ": " + str(rule.substitute)
                         + " is used instead.")
                estimator = rule.substitute
                break
        else:
            return estimator
    return estimator


def substitute(estimator: Enum, prerequisite: str) -> Enum:
    """
    the estimator to use instead of one whose result turned out not to meet a prerequisite of the table
    :raise InvalidInput: if the table has no substitute for it
    """
    for rule in FALLBACKS.get(_entry(estimator), []):
        if rule.check is None and rule.prerequisite == prerequisite:
            logger.debug("%s did not produce %s, using %s", rule.estimator, prerequisite, rule.substitute)
            fallback(str(rule.estimator) + " did not produce " + prerequisite + ": " + str(rule.substitute)
                     + " is used instead.")
            return rule.substitute
    raise InvalidInput(str(estimator) + " did not produce " + prerequisite)

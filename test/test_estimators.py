import unittest

import numpy as np

from specdiv.errors import EstimatorFallbackWarning, InvalidInput
from specdiv.estimation.estimators import CoverageEstimator, EntropyEstimator, ProbabilityEstimator, \
    SimilarityEstimator, Unveiling, resolve
from specdiv.estimation.metrics import sample_stats


class TestEstimatorNames(unittest.TestCase):
    def test_parse_is_case_insensitive(self):
        """Estimator names are resolved regardless of case"""
        self.assertIs(EntropyEstimator.parse("unveilj"), EntropyEstimator.UNVEIL_J)
        self.assertIs(CoverageEstimator.parse("ZHANGHUANG"), CoverageEstimator.ZHANG_HUANG)

    def test_parse_member(self):
        """Enumeration members are accepted as they are"""
        self.assertIs(Unveiling.parse(Unveiling.GEOMETRIC), Unveiling.GEOMETRIC)

    def test_unknown_name(self):
        """Unknown names are rejected at the boundary"""
        with self.assertRaises(InvalidInput):
            ProbabilityEstimator.parse("Chao2020")


class TestFallbacks(unittest.TestCase):
    def setUp(self):
        self.no_doubletons = sample_stats(np.array([5, 3, 1, 1, 1]))
        self.frequencies = sample_stats(np.array([0.5, 0.25, 0.25]))

    def test_chao2015_without_doubletons(self):
        """Chao2015 requires doubletons"""
        with self.assertWarns(EstimatorFallbackWarning):
            estimator = resolve(ProbabilityEstimator.CHAO2015, self.no_doubletons)
        self.assertIs(estimator, ProbabilityEstimator.CHAO2013)

    def test_fallback_chain(self):
        """Fallbacks are followed until the prerequisites are met"""
        single = sample_stats(np.array([7]))
        with self.assertWarns(EstimatorFallbackWarning):
            estimator = resolve(ProbabilityEstimator.CHAO2015, single)
        self.assertIs(estimator, ProbabilityEstimator.CHAO_SHEN)

    def test_families_do_not_mix(self):
        """Estimators sharing a name in different families follow their own fallbacks"""
        with self.assertWarns(EstimatorFallbackWarning):
            probability = resolve(ProbabilityEstimator.CHAO_SHEN, self.frequencies)
        with self.assertWarns(EstimatorFallbackWarning):
            entropy = resolve(EntropyEstimator.CHAO_SHEN, self.frequencies)
        with self.assertWarns(EstimatorFallbackWarning):
            similarity = resolve(SimilarityEstimator.UNVEIL_J, self.frequencies)
        self.assertIs(probability, ProbabilityEstimator.NAIVE)
        self.assertIs(entropy, EntropyEstimator.NAIVE)
        self.assertIs(similarity, SimilarityEstimator.NAIVE)

    def test_no_fallback(self):
        """An estimator whose prerequisites are met is kept"""
        self.assertIs(resolve(EntropyEstimator.CHAO_JOST, self.no_doubletons), EntropyEstimator.CHAO_JOST)
        self.assertIs(resolve(CoverageEstimator.TURING, self.frequencies), CoverageEstimator.TURING)


if __name__ == '__main__':
    unittest.main()

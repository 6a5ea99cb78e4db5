import unittest

import numpy as np

from specdiv.errors import EstimatorFallbackWarning, InvalidInput
from specdiv.estimation.probabilities import probabilities


class TestProbabilities(unittest.TestCase):
    def setUp(self):
        self.data = [5, 3, 1, 1, 1]

    def test_naive(self):
        """Naive probabilities are the frequencies"""
        estimate = probabilities(self.data)
        np.testing.assert_allclose(estimate.probabilities, np.array(self.data) / 11)
        self.assertEqual(estimate.observed, 5)

    def test_chao_shen_sums_to_one(self):
        """Tuned probabilities are normalized without unveiling"""
        estimate = probabilities(self.data, "ChaoShen")
        self.assertAlmostEqual(float(np.sum(estimate.probabilities)), 1, places=12)

    def test_chao2015_requires_doubletons(self):
        """Chao2015 falls back to Chao2013 without doubletons"""
        with self.assertWarns(EstimatorFallbackWarning):
            estimate = probabilities(self.data, "Chao2015", "geometric")
        self.assertEqual(str(estimate.estimator), "Chao2013", "Chao2013 should have been used")
        self.assertIn("EstimatorFallback", [notice.kind for notice in estimate.notices])
        self.assertAlmostEqual(float(np.sum(estimate.probabilities)), 1, places=10)
        self.assertTrue(np.all(estimate.probabilities >= 0), "Probabilities must not be negative")
        self.assertGreater(len(estimate.probabilities), 5, "Unobserved species should have been unveiled")

    def test_chao2015_with_doubletons(self):
        """Chao2015 tuning keeps the observed species first"""
        data = [8, 4, 2, 2, 1, 1, 1, 3]
        estimate = probabilities(data, "Chao2015", "geometric")
        self.assertEqual(str(estimate.estimator), "Chao2015")
        self.assertAlmostEqual(float(np.sum(estimate.probabilities)), 1, places=10)
        self.assertTrue(np.all(estimate.probabilities[:estimate.observed] > 0))

    def test_uniform_unveiling(self):
        """Unobserved species share the missing probability equally"""
        estimate = probabilities(self.data, "ChaoShen", "uniform", richness_estimator="Chao1")
        # Chao1 = 5 + 10/11 * 3 rounds to 8
        self.assertEqual(len(estimate.probabilities), 8)
        self.assertEqual(len(estimate.unseen), 3)
        np.testing.assert_allclose(estimate.unseen, estimate.unseen[0])
        self.assertAlmostEqual(float(np.sum(estimate.probabilities)), 1, places=12)

    def test_geometric_unveiling_decreases(self):
        """Geometric unveiling gives decreasing probabilities below the rarest observed species"""
        # Chao1 estimates 30 species, 18 of them unobserved, sharing about 5% of the probability mass
        data = [50, 30, 20, 10, 5, 2, 1, 1, 1, 1, 1, 1]
        estimate = probabilities(data, "ChaoShen", "geometric", richness_estimator="Chao1")
        self.assertEqual(str(estimate.unveiling), "geometric")
        unseen = estimate.unseen
        self.assertEqual(len(unseen), 18)
        self.assertTrue(np.all(np.diff(unseen) < 0), "Unveiled probabilities should decrease")
        self.assertLess(unseen[0], float(np.min(estimate.probabilities[:estimate.observed])))
        self.assertAlmostEqual(float(np.sum(estimate.probabilities)), 1, places=10)

    def test_negative_tuning_is_rejected(self):
        """Chao2013 tuning of a sample with a rare species far below the abundant ones is negative"""
        with self.assertRaises(InvalidInput):
            probabilities([3, 3, 1], "Chao2013", "geometric")

    def test_read_only(self):
        """The estimated probabilities are shared with later calls and can not be modified"""
        estimate = probabilities([6, 4, 2, 2, 1], "ChaoShen")
        expected = estimate.probabilities.copy()
        with self.assertRaises(ValueError):
            estimate.probabilities[0] = 0
        np.testing.assert_array_equal(probabilities([6, 4, 2, 2, 1], "ChaoShen").probabilities, expected)

    def test_non_integer_input(self):
        """Probabilities can only be used as they are"""
        with self.assertWarns(EstimatorFallbackWarning):
            estimate = probabilities([0.5, 0.25, 0.25], "ChaoShen")
        self.assertEqual(str(estimate.estimator), "naive")
        np.testing.assert_allclose(estimate.probabilities, [0.5, 0.25, 0.25])

    def test_all_zero(self):
        """All-zero input is rejected"""
        with self.assertRaises(InvalidInput):
            probabilities([0, 0, 0])

    def test_negative(self):
        """Negative abundances are rejected"""
        with self.assertRaises(InvalidInput):
            probabilities([3, -1, 2])


if __name__ == '__main__':
    unittest.main()

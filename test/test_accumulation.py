import math
import unittest

import numpy as np

from specdiv.errors import InvalidInput
from specdiv.estimation.accumulation import accum_hill, accum_tsallis, ent_level, level_to_size
from specdiv.estimation.entropy import ent_tsallis, tsallis
from specdiv.estimation.metrics import richness


class TestLevels(unittest.TestCase):
    def setUp(self):
        self.data = [5, 3, 1, 1, 1]
        self.n = 11

    def test_observed_level(self):
        """At the sample size, the entropy is the naive entropy of the sample"""
        p = np.array(self.data) / self.n
        for q in (0, 1, 2):
            estimate = ent_level(self.data, q, self.n)
            self.assertAlmostEqual(estimate.value, tsallis(p, q), msg="q=" + str(q))
            self.assertEqual(estimate.estimator, "Sample")

    def test_single_individual(self):
        """A subsample of one individual contains one species"""
        self.assertAlmostEqual(ent_level(self.data, 0, 1).value, 0, places=10)
        self.assertAlmostEqual(ent_level(self.data, 2, 1).value, 0, places=10)
        self.assertAlmostEqual(ent_level(self.data, 1, 1).value, 0, places=10)

    def test_interpolation(self):
        """Interpolated entropy lies between the values at 1 and at the sample size"""
        estimate = ent_level(self.data, 1, 6)
        self.assertEqual(estimate.estimator, "Interpolation")
        self.assertGreater(estimate.value, 0)
        self.assertLess(estimate.value, ent_level(self.data, 1, self.n).value)

    def test_shannon_extrapolation(self):
        """Shannon entropy is extrapolated between the observed and the asymptotic estimate"""
        naive = ent_tsallis(self.data, 1, estimator="naive").value
        asymptotic = ent_tsallis(self.data, 1, estimator="ChaoJost").value
        estimate = ent_level(self.data, 1, 2 * self.n, estimator="ChaoJost")
        self.assertEqual(estimate.estimator, "Extrapolation")
        self.assertAlmostEqual(estimate.value, (naive + asymptotic) / 2, places=10)

    def test_richness_extrapolation(self):
        """Extrapolated richness converges to the estimated richness"""
        chao1 = richness(self.data, "Chao1").value
        far = ent_level(self.data, 0, 30 * self.n, richness_estimator="Chao1").value
        self.assertAlmostEqual(far + 1, chao1, places=3)

    def test_extrapolation_warning(self):
        """Extrapolating further than three times the sample size is reported"""
        with self.assertLogs("specdiv", level="WARNING"):
            ent_level(self.data, 2, 4 * self.n)

    def test_coverage_level(self):
        """A level in ]0;1[ is a sample coverage"""
        size = level_to_size(self.data, 0.5)
        self.assertGreaterEqual(size, 1)
        self.assertLess(size, self.n)
        self.assertEqual(ent_level(self.data, 1, 0.5).level, size)

    def test_ent_tsallis_level(self):
        """ent_tsallis computes the entropy at a level when one is given"""
        self.assertAlmostEqual(ent_tsallis(self.data, 1, level=6).value, ent_level(self.data, 1, 6).value)

    def test_invalid(self):
        """Levels require integer abundances and valid sizes"""
        with self.assertRaises(InvalidInput):
            ent_level([0.5, 0.25, 0.25], 1, 2)
        with self.assertRaises(InvalidInput):
            ent_level(self.data, 1, 0)
        with self.assertRaises(InvalidInput):
            ent_level([0, 0], 1, 2)


class TestAccumulation(unittest.TestCase):
    def setUp(self):
        self.data = [5, 3, 1, 1, 1]

    def test_default_levels(self):
        """The default curve goes from 1 to the sample size"""
        curve = accum_tsallis(self.data, q=0)
        self.assertEqual(len(curve), 11)
        self.assertEqual(list(curve["level"]), list(range(1, 12)))
        self.assertTrue(np.all(np.diff(curve["value"]) >= -1e-12), "Richness can only increase")
        self.assertTrue(curve["std_error"].isna().all())

    def test_hill(self):
        """The diversity curve is the deformed exponential of the entropy curve"""
        entropy = accum_tsallis(self.data, q=2, levels=[2, 11, 20])
        diversity = accum_hill(self.data, q=2, levels=[2, 11, 20])
        np.testing.assert_allclose(diversity["value"], 1 / (1 - entropy["value"]))
        self.assertEqual(list(diversity["measure"]), ["diversity"] * 3)

    def test_bootstrap_is_reproducible(self):
        """Standard errors only depend on the seed"""
        first = accum_tsallis(self.data, q=1, levels=[5, 11], n_simulations=10, seed=42)
        second = accum_tsallis(self.data, q=1, levels=[5, 11], n_simulations=10, seed=42)
        np.testing.assert_array_equal(first["std_error"], second["std_error"])
        self.assertFalse(math.isnan(first["std_error"][0]))

    def test_bootstrap_workers(self):
        """Results do not depend on the number of workers, whether levels or simulations are distributed"""
        for levels in ([5], [3, 5, 11]):
            sequential = accum_tsallis(self.data, q=1, levels=levels, n_simulations=8, seed=7)
            parallel = accum_tsallis(self.data, q=1, levels=levels, n_simulations=8, seed=7, workers=2)
            self.assertEqual(list(parallel["level"]), list(sequential["level"]))
            np.testing.assert_allclose(sequential["value"], parallel["value"])
            np.testing.assert_allclose(sequential["std_error"], parallel["std_error"])


if __name__ == '__main__':
    unittest.main()

import unittest

import numpy as np
import pandas as pd

from specdiv.errors import InvalidInput
from specdiv.estimation.entropy import ent_tsallis
from specdiv.estimation.similarity import chao_shen_similarity, div_similarity, ent_similarity


class TestSimilarity(unittest.TestCase):
    def setUp(self):
        self.data = [5, 3, 1, 1, 1]
        self.identity = np.eye(5)
        self.z = np.array([[1, 0.8, 0, 0, 0],
                           [0.8, 1, 0, 0, 0],
                           [0, 0, 1, 0.5, 0.2],
                           [0, 0, 0.5, 1, 0.2],
                           [0, 0, 0.2, 0.2, 1]])

    def test_identity(self):
        """With the identity matrix, similarity-based entropy is Tsallis entropy"""
        for estimator in ("naive", "ChaoShen", "UnveilJ"):
            for q in (0, 1, 2):
                self.assertAlmostEqual(ent_similarity(self.data, self.identity, q, estimator=estimator).value,
                                       ent_tsallis(self.data, q, estimator=estimator).value, places=8,
                                       msg=estimator + ", q=" + str(q))

    def test_all_similar(self):
        """A community of species all similar to each other has no entropy"""
        self.assertAlmostEqual(ent_similarity(self.data, np.ones((5, 5)), 1, estimator="naive").value, 0)
        self.assertAlmostEqual(div_similarity(self.data, np.ones((5, 5)), 2, estimator="naive").value, 1)

    def test_similarity_decreases_diversity(self):
        """Similar species are less diverse than distinct ones"""
        distinct = div_similarity(self.data, self.identity, 1, estimator="naive").value
        similar = div_similarity(self.data, self.z, 1, estimator="naive").value
        self.assertLess(similar, distinct)

    def test_marcon_zhang(self):
        """With the identity matrix, MarconZhang is the largest of ZhangHuang and ChaoShen"""
        expected = max(ent_tsallis(self.data, 2, estimator="ZhangHuang").value,
                       ent_tsallis(self.data, 2, estimator="ChaoShen").value)
        self.assertAlmostEqual(ent_similarity(self.data, self.identity, 2, estimator="MarconZhang").value, expected,
                               places=8)

    def test_max(self):
        """Max is the largest of the other estimates"""
        best = ent_similarity(self.data, self.z, 1, estimator="Max").value
        for estimator in ("naive", "ChaoShen", "MarconZhang", "UnveilJ", "UnveilC", "UnveiliC"):
            self.assertGreaterEqual(best + 1e-12, ent_similarity(self.data, self.z, 1, estimator=estimator).value,
                                    estimator)

    def test_names(self):
        """A similarity data frame is matched by species names"""
        names = ["a", "b", "c", "d", "e"]
        frame = pd.DataFrame(self.z, index=names, columns=names)
        shuffled = frame.loc[names[::-1], names[::-1]]
        x = pd.Series(self.data, index=names)
        self.assertAlmostEqual(ent_similarity(x, shuffled, 1, estimator="naive").value,
                               ent_similarity(self.data, self.z, 1, estimator="naive").value)

    def test_absent_species(self):
        """Species absent from the sample are ignored"""
        z = np.eye(6)
        self.assertAlmostEqual(ent_similarity(self.data + [0], z, 1, estimator="naive").value,
                               ent_tsallis(self.data, 1, estimator="naive").value)

    def test_invalid(self):
        """Misaligned or out of range similarities are rejected"""
        with self.assertRaises(InvalidInput):
            ent_similarity(self.data, np.eye(4))
        with self.assertRaises(InvalidInput):
            ent_similarity(self.data, np.ones((5, 4)))
        with self.assertRaises(InvalidInput):
            ent_similarity(self.data, 2 * self.identity)
        names = ["a", "b", "c", "d", "e"]
        frame = pd.DataFrame(self.identity, index=names, columns=names)
        with self.assertRaises(InvalidInput):
            ent_similarity(pd.Series(self.data, index=["a", "b", "c", "d", "x"]), frame)

    def test_diagonal(self):
        """A species must be fully similar to itself"""
        with self.assertRaises(InvalidInput):
            ent_similarity(self.data, np.full((5, 5), 0.1))

    def test_communities(self):
        """A species distribution gets one record per community"""
        communities = [self.data, [2, 2, 2, 2, 2]]
        frame = ent_similarity(communities, self.z, 1, estimator="naive")
        self.assertEqual(list(frame["site"]), ["site_1", "site_2"])
        self.assertTrue((frame["measure"] == "entropy").all())
        self.assertAlmostEqual(frame["value"].iloc[0], ent_similarity(self.data, self.z, 1, estimator="naive").value)
        diversity = div_similarity(communities, self.z, 2, estimator="naive")
        self.assertTrue((diversity["measure"] == "diversity").all())
        self.assertAlmostEqual(diversity["value"].iloc[1],
                               div_similarity([2, 2, 2, 2, 2], self.z, 2, estimator="naive").value)

    def test_gamma(self):
        """The metacommunity of communities weighted by their sizes sums their abundances"""
        frame = ent_similarity([self.data, [2, 2, 2, 2, 2]], self.z, 1, estimator="naive", gamma=True)
        self.assertEqual(list(frame["site"]), ["metacommunity"])
        self.assertAlmostEqual(frame["value"].iloc[0],
                               ent_similarity([7, 5, 3, 3, 3], self.z, 1, estimator="naive").value)

    def test_known_coverage(self):
        """A known sample coverage replaces its estimate"""
        estimate = ent_similarity(self.data, self.z, 1, estimator="ChaoShen", sample_coverage=0.9)
        self.assertEqual(estimate.coverage, 0.9)
        self.assertAlmostEqual(estimate.value,
                               chao_shen_similarity(np.array(self.data, dtype=float), self.z, 1, 0.9))
        with self.assertRaises(InvalidInput):
            ent_similarity(self.data, self.z, 1, sample_coverage=0)


if __name__ == '__main__':
    unittest.main()

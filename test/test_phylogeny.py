import math
import unittest

import numpy as np
import pandas as pd

from specdiv.errors import InvalidInput
from specdiv.estimation.phylogeny import PhyloTree, accum_ent_phylo, div_phylo, ent_phylo, phylo_similarity


class TestPhyloTree(unittest.TestCase):
    def setUp(self):
        # ((a, b):1, (c, d):1):1, every leaf at height 2
        self.linkage = [[0, 1, 1, 2], [2, 3, 1, 2], [4, 5, 2, 4]]
        self.tree = PhyloTree(self.linkage, ["a", "b", "c", "d"])

    def test_cuts(self):
        """The tree is cut at every node height"""
        cuts = self.tree.cuts()
        self.assertEqual([cut.lower for cut in cuts], [0, 1])
        self.assertEqual([cut.length for cut in cuts], [1, 1])
        self.assertEqual(len(set(cuts[0].clusters)), 4)
        self.assertEqual(len(set(cuts[1].clusters)), 2)
        self.assertEqual(cuts[1].clusters[0], cuts[1].clusters[1])

    def test_labels(self):
        """The number of labels must match the leaves"""
        with self.assertRaises(InvalidInput):
            PhyloTree(self.linkage, ["a", "b", "c"])

    def test_invalid_linkage(self):
        """The tree must be a linkage matrix"""
        with self.assertRaises(InvalidInput):
            PhyloTree([[0, 1, 1]], ["a", "b"])

    def test_similarity(self):
        """Species of the same branch are similar"""
        z = phylo_similarity(self.tree, 1)
        self.assertEqual(z.loc["a", "b"], 1)
        self.assertEqual(z.loc["a", "c"], 0)
        self.assertTrue(np.all(np.diag(z.to_numpy()) == 1))
        with self.assertRaises(InvalidInput):
            phylo_similarity(self.tree, 3)


class TestPhyloEntropy(unittest.TestCase):
    def setUp(self):
        self.tree = PhyloTree([[0, 1, 1, 2], [2, 3, 1, 2], [4, 5, 2, 4]], ["a", "b", "c", "d"])

    def test_shannon(self):
        """Phylogenetic entropy averages the entropy of the slices"""
        estimate = ent_phylo([1, 1, 1, 1], self.tree, 1, estimator="naive")
        self.assertAlmostEqual(estimate.value, 1.5 * math.log(2))

    def test_richness(self):
        """Phylogenetic diversity of order 0 is the mean number of branches, plus 1 for the root"""
        self.assertAlmostEqual(div_phylo([1, 1, 1, 1], self.tree, 0, estimator="naive").value, 3)

    def test_names(self):
        """Named abundances are matched with the leaves"""
        x = pd.Series([4, 1, 2, 3], index=["d", "c", "b", "a"])
        self.assertAlmostEqual(ent_phylo(x, self.tree, 1, estimator="naive").value,
                               ent_phylo([3, 2, 1, 4], self.tree, 1, estimator="naive").value)

    def test_unknown_species(self):
        """Species missing from the tree are rejected"""
        with self.assertRaises(InvalidInput):
            ent_phylo(pd.Series([1, 2], index=["a", "z"]), self.tree)

    def test_size(self):
        """Unnamed abundances must have one value per leaf"""
        with self.assertRaises(InvalidInput):
            ent_phylo([1, 2, 3], self.tree)

    def test_estimators(self):
        """Bias correction applies to every slice"""
        data = [10, 1, 3, 2]
        naive = ent_phylo(data, self.tree, 1, estimator="naive").value
        corrected = ent_phylo(data, self.tree, 1, estimator="ChaoShen").value
        self.assertGreater(corrected, naive)

    def test_accumulation(self):
        """At the sample size, the accumulated value is the naive phylogenetic entropy"""
        data = [2, 1, 3, 1]
        curve = accum_ent_phylo(data, self.tree, 1, levels=[1, 7])
        self.assertAlmostEqual(curve["value"][1], ent_phylo(data, self.tree, 1, estimator="naive").value)
        self.assertAlmostEqual(curve["value"][0], 0, places=10)


if __name__ == '__main__':
    unittest.main()

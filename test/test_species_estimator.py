import io
import unittest
from contextlib import redirect_stdout

import numpy as np
import pandas as pd

from specdiv.errors import InvalidInput
from specdiv.estimation.species_estimator import DiversityEstimator


class TestDiversityEstimator(unittest.TestCase):
    def setUp(self):
        self.abd = pd.DataFrame([[10, 0, 25, 10, 1, 1], [20, 15, 10, 35, 2, 1], [0, 10, 5, 2, 1, 3]],
                                index=["north", "center", "south"], columns=["a", "b", "c", "d", "e", "f"])

    def test_profiles(self):
        """Every site gets an entropy and a diversity value for every order"""
        estimator = DiversityEstimator(verbose=False)
        estimator.apply(self.abd)
        frame = estimator.to_dataFrame(include_all=False)
        self.assertEqual(len(frame), 18)
        self.assertEqual(set(frame["site"]), {"north", "center", "south"})
        self.assertEqual(set(frame["measure"]), {"entropy", "diversity"})
        self.assertTrue(frame["std_error"].isna().all(), "No standard error without bootstrap")

    def test_history(self):
        """Every application of the estimator is kept"""
        estimator = DiversityEstimator(q_values=[1], estimator="naive", verbose=False)
        estimator.apply(self.abd)
        estimator.apply(self.abd.iloc[:1])
        frame = estimator.to_dataFrame()
        self.assertIn("observation", frame.columns)
        self.assertEqual(len(frame), 8)
        self.assertEqual(sorted(frame[frame["site"] == "north"]["observation"].unique()), [0, 1])
        self.assertEqual(len(estimator.to_dataFrame(include_all=False)), 6)

    def test_degenerate_community(self):
        """A degenerate community is reported in the notices, not raised"""
        estimator = DiversityEstimator(q_values=[1], estimator="ChaoShen", verbose=False)
        estimator.apply([[1, 1, 1, 1], [5, 3, 2, 1]], sites=["singletons", "other"])
        frame = estimator.to_dataFrame(include_all=False)
        singletons = frame[frame["site"] == "singletons"]
        self.assertTrue(singletons["value"].isna().all())
        self.assertTrue(all("DegenerateSample" in notices for notices in singletons["notices"]))
        self.assertFalse(frame[frame["site"] == "other"]["value"].isna().any())

    def test_community_without_singletons(self):
        """A community without singletons has full coverage and does not abort the batch"""
        estimator = DiversityEstimator(q_values=[1], verbose=False)
        estimator.apply([[0, 3, 0], [5, 3, 2]], sites=["monospecific", "other"])
        frame = estimator.to_dataFrame(include_all=False)
        self.assertEqual(set(frame["site"]), {"monospecific", "other"})
        self.assertFalse(frame["value"].isna().any())

    def test_negative_tuning_does_not_abort(self):
        """A community whose probability tuning fails is estimated with ChaoShen's probabilities"""
        estimator = DiversityEstimator(q_values=[1], verbose=False)
        estimator.apply([[3, 3, 1], [5, 3, 2]], sites=["uneven", "other"])
        frame = estimator.to_dataFrame(include_all=False)
        self.assertFalse(frame["value"].isna().any())
        uneven = frame[frame["site"] == "uneven"]
        self.assertTrue(all("non-negative tuned probabilities" in notices for notices in uneven["notices"]))

    def test_fallback_notice(self):
        """Estimators that require counts fall back on probabilities"""
        estimator = DiversityEstimator(q_values=[2], verbose=False)
        estimator.apply([0.5, 0.25, 0.25])
        record = estimator.records()[0]
        self.assertEqual(record.estimator, "naive")
        self.assertIn("EstimatorFallback", [notice.kind for notice in record.notices])

    def test_bootstrap(self):
        """Standard errors only depend on the seed"""
        values = []
        for _ in range(2):
            estimator = DiversityEstimator(q_values=[1], estimator="naive", n_bootstrap=10, seed=3, verbose=False)
            estimator.apply(self.abd)
            values.append(estimator.to_dataFrame(include_all=False)["std_error"].to_numpy())
        np.testing.assert_array_equal(values[0], values[1])
        self.assertFalse(np.isnan(values[0]).any())

    def test_summarize(self):
        """The summary lists the orders of every site"""
        estimator = DiversityEstimator(verbose=False)
        estimator.apply(self.abd)
        output = io.StringIO()
        with redirect_stdout(output):
            estimator.summarize("north")
        self.assertIn("### north ###", output.getvalue())
        self.assertIn("q=2.0", output.getvalue())
        with self.assertRaises(InvalidInput):
            estimator.summarize("east")

    def test_print_metrics(self):
        """print_metrics is deprecated"""
        estimator = DiversityEstimator(q_values=[0], estimator="naive", verbose=False)
        estimator.apply(self.abd)
        with redirect_stdout(io.StringIO()):
            with self.assertWarns(DeprecationWarning):
                estimator.print_metrics()

    def test_invalid(self):
        """Invalid settings are rejected when the estimator is built"""
        with self.assertRaises(InvalidInput):
            DiversityEstimator(q_values=[-1])
        with self.assertRaises(InvalidInput):
            DiversityEstimator(estimator="Shannon")
        with self.assertRaises(InvalidInput):
            DiversityEstimator(workers=0)


if __name__ == '__main__':
    unittest.main()

import logging

import pandas as pd

from specdiv import DiversityEstimator, accum_hill, div_part

#Estimates diversity profiles of three sites, the partition of the diversity of the metacommunity they form and the
#accumulation curve of one of them
abundances = pd.DataFrame([[10, 0, 25, 10, 1, 1, 4],
                           [20, 15, 10, 35, 2, 1, 0],
                           [0, 10, 5, 2, 1, 3, 1]],
                          index=["north", "center", "south"],
                          columns=["sp_a", "sp_b", "sp_c", "sp_d", "sp_e", "sp_f", "sp_g"])

if __name__ == "__main__":
    # worker processes import this module, they must not run the analysis again
    logging.basicConfig(level=logging.INFO)

    estimator = DiversityEstimator(q_values=[0, 0.5, 1, 2], n_bootstrap=50, seed=1, workers=2)
    estimator.apply(abundances)
    estimator.summarize()
    print(estimator.to_dataFrame(include_all=False))

    for q in (0, 1, 2):
        print(div_part(abundances, q, weights=[1, 1, 1]).to_dataFrame())

    print(accum_hill(abundances.loc["center"], q=1, levels=range(10, 200, 10), n_simulations=20, seed=1))

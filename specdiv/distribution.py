"""
Boundary types. Whatever the shape of the input (a single vector, a matrix, a data frame), it is resolved once into
a SpeciesDistribution whose rows are AbundanceVectors; estimators work on one row at a time.
"""
import numpy as np
import pandas as pd

from specdiv.errors import InvalidInput

SINGLE = "single"
MULTI = "multi"


def _default_names(prefix: str, number: int) -> list:
    width = len(str(number))
    return [prefix + "_" + str(i).zfill(width) for i in range(1, number + 1)]


def _frozen(values) -> np.ndarray:
    try:
        array = np.array(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInput("Abundances must be numeric") from e
    if np.isnan(array).any():
        raise InvalidInput("Abundances must not contain NaN")
    if (array < 0).any():
        raise InvalidInput("Species probabilities or abundances must be positive.")
    array.setflags(write=False)
    return array


class AbundanceVector:
    """
    one community: the counts (or probabilities) of each species, their names and the name of the site
    """

    def __init__(self, counts, names: list = None, site: str = "site_1"):
        if isinstance(counts, pd.Series):
            names = list(counts.index.astype(str)) if names is None else names
            counts = counts.to_numpy()
        self.counts = _frozen(counts)
        if self.counts.ndim != 1:
            raise InvalidInput("An abundance vector must have a single dimension, got " + str(self.counts.ndim))
        if names is None:
            names = _default_names("sp", len(self.counts))
        if len(names) != len(self.counts):
            raise InvalidInput("The number of species names (" + str(len(names)) +
                               ") does not match the number of species (" + str(len(self.counts)) + ")")
        self.names = tuple(str(n) for n in names)
        self.site = str(site)

    @property
    def sample_size(self) -> float:
        return float(self.counts.sum())

    @property
    def richness(self) -> int:
        return int(np.count_nonzero(self.counts))

    @property
    def is_integer(self) -> bool:
        return bool(np.all(self.counts == np.round(self.counts)))

    def probabilities(self) -> np.ndarray:
        total = self.counts.sum()
        if total == 0:
            raise InvalidInput("All abundances are zero, probabilities are undefined")
        return self.counts / total

    def observed(self) -> "AbundanceVector":
        """
        returns the vector restricted to species with a non-zero count
        """
        keep = self.counts > 0
        return AbundanceVector(self.counts[keep], [n for n, k in zip(self.names, keep) if k], self.site)

    def __len__(self):
        return len(self.counts)

    def __repr__(self):
        return "AbundanceVector(site=" + self.site + ", species=" + str(len(self)) + ", n=" + \
            str(self.sample_size) + ")"


def as_abundance_vector(x) -> AbundanceVector:
    """
    accepts an AbundanceVector, a pandas Series, a list or a one-dimensional numpy array
    """
    if isinstance(x, AbundanceVector):
        return x
    if isinstance(x, SpeciesDistribution):
        if len(x) != 1:
            raise InvalidInput("Expected a single community, got " + str(len(x)))
        return x.rows()[0]
    return AbundanceVector(x)


class SpeciesDistribution:
    """
    several communities sharing the same species, with a weight per community.
    The input shape is resolved once: kind is "single" for a vector and "multi" for a matrix or a data frame.
    If no weights are given, the weight of each community is its number of individuals.
    """

    def __init__(self, x, sites: list = None, weights=None, species: list = None):
        if isinstance(x, pd.DataFrame):
            frame = x.copy()
            if "site" in frame.columns:
                frame = frame.set_index("site")
            if "weight" in frame.columns and weights is None:
                weights = frame.pop("weight").to_numpy()
            if sites is None:
                sites = [str(s) for s in frame.index] if not isinstance(frame.index, pd.RangeIndex) else None
            species = [str(c) for c in frame.columns] if species is None else species
            x = frame.to_numpy()
        elif isinstance(x, pd.Series):
            species = [str(s) for s in x.index] if species is None else species
            x = x.to_numpy()
        elif isinstance(x, AbundanceVector):
            species = list(x.names) if species is None else species
            sites = [x.site] if sites is None else sites
            x = x.counts

        matrix = _frozen(x)
        if matrix.ndim == 1:
            self.kind = SINGLE
            matrix = matrix.reshape(1, -1)
        elif matrix.ndim == 2:
            self.kind = MULTI
        else:
            raise InvalidInput("x may be a vector or a matrix")
        matrix.setflags(write=False)
        self.matrix = matrix

        if species is None:
            species = _default_names("sp", matrix.shape[1])
        if len(species) != matrix.shape[1]:
            raise InvalidInput("The number of species names must match the number of columns of the data matrix.")
        self.species = tuple(str(s) for s in species)

        if sites is None:
            sites = _default_names("site", matrix.shape[0])
        if len(sites) != matrix.shape[0]:
            raise InvalidInput("The length of sites must match the number of lines of the data matrix.")
        self.sites = tuple(str(s) for s in sites)

        if weights is None:
            weights = matrix.sum(axis=1)
        weights = _frozen(weights)
        if weights.shape != (matrix.shape[0],):
            raise InvalidInput("The length of weights must match the number of lines of the data matrix.")
        self.weights = weights

    def rows(self) -> list:
        return [AbundanceVector(row, self.species, site) for row, site in zip(self.matrix, self.sites)]

    def normalized_weights(self) -> np.ndarray:
        total = self.weights.sum()
        if total == 0:
            raise InvalidInput("The sum of community weights is zero")
        return self.weights / total

    def as_probabilities(self) -> "SpeciesDistribution":
        totals = self.matrix.sum(axis=1, keepdims=True)
        if (totals == 0).any():
            raise InvalidInput("A community has no individual, probabilities are undefined")
        return SpeciesDistribution(self.matrix / totals, list(self.sites), self.weights, list(self.species))

    def to_dataFrame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.matrix, columns=list(self.species))
        df.insert(0, "weight", self.weights)
        df.insert(0, "site", list(self.sites))
        return df

    def __len__(self):
        return self.matrix.shape[0]

    def __iter__(self):
        return iter(self.rows())


def as_species_distribution(x, sites: list = None, weights=None) -> SpeciesDistribution:
    if isinstance(x, SpeciesDistribution):
        return x
    return SpeciesDistribution(x, sites=sites, weights=weights)

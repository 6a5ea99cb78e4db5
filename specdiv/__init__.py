import logging

from specdiv.distribution import AbundanceVector, SpeciesDistribution
from specdiv.errors import DegenerateSampleWarning, EstimatorFallbackWarning, InvalidInput, NegativeEntropyWarning, \
    Notice
from specdiv.estimation import *

logging.getLogger(__name__).addHandler(logging.NullHandler())

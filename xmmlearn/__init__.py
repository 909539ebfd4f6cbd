"""
xmmlearn: Hidden Markov Models with Gaussian Mixture emissions for
continuous multimodal time series.
"""

from .exceptions import (XMMError, InvalidArgument, OutOfRange,
                         InvalidOperation, StructuralFormatError)
from .gmm import GMM
from .hmm import HMM, HMMResults
from .monitor import EMStopCriterion
from .training_set import Phrase, TrainingSet

__version__ = '0.1.0'

__all__ = ['HMM', 'HMMResults', 'GMM', 'Phrase', 'TrainingSet',
           'EMStopCriterion', 'XMMError', 'InvalidArgument', 'OutOfRange',
           'InvalidOperation', 'StructuralFormatError']

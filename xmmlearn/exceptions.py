"""
The :mod:`xmmlearn.exceptions` module gathers the error conditions
raised by the models and the training set.
"""

__all__ = ['XMMError', 'InvalidArgument', 'OutOfRange',
           'InvalidOperation', 'StructuralFormatError']


class XMMError(Exception):
    """Base class of all the errors raised by xmmlearn."""


class InvalidArgument(XMMError, ValueError):
    """Bad construction parameter or malformed input data.

    Raised for non-positive numbers of states or mixture components,
    unknown transition modes, malformed exit probabilities and
    observations whose dimension does not match the model.
    """


class OutOfRange(XMMError, IndexError):
    """A state, mixture component, time or phrase index is out of bounds."""


class InvalidOperation(XMMError, RuntimeError):
    """The operation is not available for this model.

    Bimodal-only methods called on a unimodal model, hierarchical-only
    methods called on a flat model, or decoding with an untrained model.
    """


class StructuralFormatError(XMMError, ValueError):
    """A serialized document is missing fields or has the wrong shape."""

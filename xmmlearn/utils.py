import numpy as np

from .exceptions import InvalidArgument, StructuralFormatError


def normalize(A, axis=None):
    """Normalize the input array so that it sums to 1 along ``axis``.

    Slices summing to zero are left untouched.

    Parameters
    ----------
    A : array
        Non-normalized input data.
    axis : int
        Dimension along which normalization is performed.

    Returns
    -------
    normalized_A : array
        A copy of ``A`` with normalized values along ``axis``.
    """
    A = np.array(A, dtype=float)
    Asum = A.sum(axis=axis, keepdims=True)
    Asum[Asum == 0] = 1.
    return A / Asum


def as_observation(observation, dimension):
    """Return ``observation`` as a 1-d float array of length ``dimension``."""
    observation = np.asarray(observation, dtype=float).ravel()
    if observation.shape[0] != dimension:
        raise InvalidArgument('Observation has dimension %d, expected %d'
                              % (observation.shape[0], dimension))
    return observation


def read_array(doc, key, size):
    """Read the flat numeric array ``doc[key]`` of exactly ``size`` values."""
    values = doc[key]
    if not isinstance(values, (list, tuple)):
        raise StructuralFormatError("Field '%s' must be an array" % key)
    if len(values) != size:
        raise StructuralFormatError("Field '%s' has %d values, expected %d"
                                    % (key, len(values), size))
    try:
        return np.asarray(values, dtype=float)
    except (TypeError, ValueError):
        raise StructuralFormatError("Field '%s' must hold numbers" % key)

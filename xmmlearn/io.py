"""
The :mod:`xmmlearn.io` module reads and writes models and training sets
as JSON documents.
"""

import json
import logging

from .exceptions import StructuralFormatError
from .hmm import HMM
from .training_set import TrainingSet

__all__ = ['save', 'load_model', 'load_training_set']

_log = logging.getLogger(__name__)


def save(obj, path):
    """Write an :class:`HMM`, a :class:`GMM` or a :class:`TrainingSet`
    to ``path``."""
    with open(path, 'w') as f:
        json.dump(obj.to_dict(), f, indent=2)
    _log.debug('Saved %r to %s', obj, path)


def _read_document(path):
    with open(path) as f:
        try:
            return json.load(f)
        except ValueError as e:
            raise StructuralFormatError('%s is not a valid JSON document: %s'
                                        % (path, e))


def load_model(path, model=None):
    """Read an HMM from ``path``.

    Parameters
    ----------
    path : string
    model : HMM, optional
        Model to read into. By default a new model is created, hierarchical
        if the document says so.

    Returns
    -------
    model : HMM
        The trained model.
    """
    doc = _read_document(path)
    if model is None:
        if not isinstance(doc, dict):
            raise StructuralFormatError('HMM document must be a mapping')
        model = HMM(hierarchical=doc.get('is_hierarchical') is True)
    model.from_dict(doc)
    return model


def load_training_set(path):
    return TrainingSet.from_dict(_read_document(path))

"""
The :mod:`xmmlearn.training_set` module implements the (multimodal)
training data containers: phrases and labeled collections of phrases.
"""

import logging

import numpy as np

from .exceptions import (InvalidArgument, InvalidOperation, OutOfRange,
                         StructuralFormatError)

__all__ = ['Phrase', 'TrainingSet']

_log = logging.getLogger(__name__)


def _check_dimensions(dimension, dimension_input):
    if dimension is None or int(dimension) < 1:
        raise InvalidArgument('The dimension must be > 0')
    if dimension_input is not None:
        if not 0 < int(dimension_input) < int(dimension):
            raise InvalidArgument('The dimension of the input modality must '
                                  'be in [1, dimension - 1]')


class Phrase(object):
    """A multimodal time series.

    Observations are stored as rows of a ``(length, dimension)`` array.
    In bimodal mode, each row concatenates the input modality (first
    ``dimension_input`` columns) and the output modality.

    Parameters
    ----------
    data : array-like, shape (length, dimension), optional
        Initial observations.
    dimension : int, optional
        Total dimension of the observations. Inferred from ``data``
        when omitted.
    dimension_input : int, optional
        Dimension of the input modality. A phrase is bimodal if and only
        if it is given.
    label : hashable, optional
        Class label of the phrase.
    """

    def __init__(self, data=None, dimension=None, dimension_input=None,
                 label=None):
        if data is not None:
            data = np.atleast_2d(np.asarray(data, dtype=float))
            if dimension is None:
                dimension = data.shape[1]
            elif data.shape[1] != dimension:
                raise InvalidArgument('Phrase data has dimension %d, expected '
                                      '%d' % (data.shape[1], dimension))
        _check_dimensions(dimension, dimension_input)
        self.dimension = int(dimension)
        self.dimension_input = (None if dimension_input is None
                                else int(dimension_input))
        self.label = label
        if data is None:
            data = np.zeros((0, self.dimension))
        self._data = data.copy()

    @property
    def is_bimodal(self):
        return self.dimension_input is not None

    @property
    def dimension_output(self):
        if not self.is_bimodal:
            raise InvalidOperation('Phrase is not bimodal')
        return self.dimension - self.dimension_input

    @property
    def length(self):
        return self._data.shape[0]

    def __len__(self):
        return self.length

    @property
    def data(self):
        """Read-only view of the observations."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def _check_time(self, t):
        if not -self.length <= t < self.length:
            raise OutOfRange('Time index %d out of bounds for a phrase of '
                             'length %d' % (t, self.length))

    def __getitem__(self, t):
        self._check_time(t)
        return self.data[t]

    def input(self, t):
        if not self.is_bimodal:
            raise InvalidOperation('Phrase is not bimodal')
        return self[t][:self.dimension_input]

    def output(self, t):
        if not self.is_bimodal:
            raise InvalidOperation('Phrase is not bimodal')
        return self[t][self.dimension_input:]

    def record(self, observation):
        observation = np.asarray(observation, dtype=float).ravel()
        if observation.shape[0] != self.dimension:
            raise InvalidArgument('Observation has dimension %d, expected %d'
                                  % (observation.shape[0], self.dimension))
        self._data = np.vstack((self._data, observation))

    def clear(self):
        self._data = np.zeros((0, self.dimension))

    def __eq__(self, other):
        if not isinstance(other, Phrase):
            return NotImplemented
        return (self.dimension == other.dimension and
                self.dimension_input == other.dimension_input and
                self.label == other.label and
                np.array_equal(self._data, other._data))

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __repr__(self):
        return '%s(length=%d, dimension=%d, dimension_input=%r, label=%r)' % (
            self.__class__.__name__, self.length, self.dimension,
            self.dimension_input, self.label)

    def to_dict(self):
        return {'dimension': self.dimension,
                'dimension_input': self.dimension_input,
                'label': self.label,
                'data': self._data.tolist()}

    @classmethod
    def from_dict(cls, doc):
        try:
            dimension = doc['dimension']
            data = np.asarray(doc['data'], dtype=float).reshape(-1, dimension)
            return cls(data, dimension=dimension,
                       dimension_input=doc['dimension_input'],
                       label=doc['label'])
        except (KeyError, TypeError, ValueError) as e:
            raise StructuralFormatError('Malformed phrase document: %s' % e)


class TrainingSet(object):
    """Labeled collection of phrases, ordered by phrase index.

    Parameters
    ----------
    dimension : int
        Total dimension of the observations.
    dimension_input : int, optional
        Dimension of the input modality. The training set is bimodal if
        and only if it is given.
    default_label : hashable, optional
        Label assigned to new phrases.

    Examples
    --------
    >>> ts = TrainingSet(dimension=2)
    >>> ts.add_phrase(0, [[0., 1.], [1., 2.]], label='a')
    >>> len(ts), ts[0].length
    (1, 2)
    """

    def __init__(self, dimension=1, dimension_input=None, default_label=None):
        _check_dimensions(dimension, dimension_input)
        self.dimension = int(dimension)
        self.dimension_input = (None if dimension_input is None
                                else int(dimension_input))
        self.default_label = default_label
        self.locked = False
        self._phrases = {}

    @property
    def is_bimodal(self):
        return self.dimension_input is not None

    @property
    def is_empty(self):
        return len(self._phrases) == 0

    def __len__(self):
        return len(self._phrases)

    def __iter__(self):
        for index in sorted(self._phrases):
            yield self._phrases[index]

    def items(self):
        for index in sorted(self._phrases):
            yield index, self._phrases[index]

    def __contains__(self, index):
        return index in self._phrases

    def __getitem__(self, index):
        try:
            return self._phrases[index]
        except KeyError:
            raise OutOfRange('Phrase %r does not exist' % (index,))

    def phrase_at(self, n):
        """Return the ``n``-th phrase in index order."""
        if not 0 <= n < len(self._phrases):
            raise OutOfRange('Phrase position %d out of bounds' % n)
        return self._phrases[sorted(self._phrases)[n]]

    @property
    def labels(self):
        return set(phrase.label for phrase in self._phrases.values())

    def _check_unlocked(self):
        if self.locked:
            raise InvalidOperation('Training set is locked')

    def _new_phrase(self, label=None):
        return Phrase(dimension=self.dimension,
                      dimension_input=self.dimension_input,
                      label=self.default_label if label is None else label)

    def add_phrase(self, index, data, label=None):
        self._check_unlocked()
        data = np.atleast_2d(np.asarray(data, dtype=float))
        if data.size == 0:
            data = None
        elif data.shape[1] != self.dimension:
            raise InvalidArgument('Phrase data has dimension %d, expected %d'
                                  % (data.shape[1], self.dimension))
        self._phrases[index] = Phrase(
            data, dimension=self.dimension,
            dimension_input=self.dimension_input,
            label=self.default_label if label is None else label)

    def record_phrase(self, index, observation):
        self._check_unlocked()
        if index not in self._phrases:
            self._phrases[index] = self._new_phrase()
        self._phrases[index].record(observation)

    def reset_phrase(self, index):
        self._check_unlocked()
        self._phrases[index] = self._new_phrase()

    def delete_phrase(self, index):
        self._check_unlocked()
        if index not in self._phrases:
            raise OutOfRange('Phrase %r does not exist' % (index,))
        del self._phrases[index]

    def delete_phrases_of_class(self, label):
        self._check_unlocked()
        if label not in self.labels:
            raise OutOfRange('Class %r does not exist' % (label,))
        for index in [i for i, p in self._phrases.items()
                      if p.label == label]:
            del self._phrases[index]

    def delete_empty_phrases(self):
        self._check_unlocked()
        for index in [i for i, p in self._phrases.items() if p.length == 0]:
            del self._phrases[index]

    def clear(self):
        self._check_unlocked()
        self._phrases.clear()

    def set_phrase_label(self, index, label):
        self[index].label = label

    def set_phrase_label_to_default(self, index):
        self[index].label = self.default_label

    def get_phrase_label(self, index):
        return self[index].label

    def sub_training_set(self, label):
        """Return a locked training set with the phrases of one class.

        The phrases are shared with this training set, not copied.
        """
        if label not in self.labels:
            raise OutOfRange('Class %r does not exist' % (label,))
        sub = TrainingSet(self.dimension, self.dimension_input,
                          default_label=label)
        sub._phrases = dict((i, p) for i, p in self._phrases.items()
                            if p.label == label)
        sub.locked = True
        return sub

    def __eq__(self, other):
        if not isinstance(other, TrainingSet):
            return NotImplemented
        return (self.dimension == other.dimension and
                self.dimension_input == other.dimension_input and
                self._phrases == other._phrases)

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __repr__(self):
        return '%s(n_phrases=%d, dimension=%d, dimension_input=%r)' % (
            self.__class__.__name__, len(self), self.dimension,
            self.dimension_input)

    def to_dict(self):
        return {'dimension': self.dimension,
                'dimension_input': self.dimension_input,
                'default_label': self.default_label,
                'phrases': [dict(index=i, **p.to_dict())
                            for i, p in self.items()]}

    @classmethod
    def from_dict(cls, doc):
        try:
            ts = cls(doc['dimension'], doc['dimension_input'],
                     default_label=doc['default_label'])
            for phrase_doc in doc['phrases']:
                phrase = Phrase.from_dict(phrase_doc)
                if (phrase.dimension != ts.dimension or
                        phrase.dimension_input != ts.dimension_input):
                    raise StructuralFormatError(
                        'Phrase %r does not match the training set '
                        'dimensions' % (phrase_doc['index'],))
                ts._phrases[phrase_doc['index']] = phrase
        except (KeyError, TypeError, InvalidArgument) as e:
            raise StructuralFormatError('Malformed training set document: %s'
                                        % e)
        _log.debug('Loaded %d phrases', len(ts))
        return ts

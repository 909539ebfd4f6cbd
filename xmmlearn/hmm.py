# Hidden Markov Models with Gaussian Mixture emissions

"""
The :mod:`xmmlearn.hmm` module implements hidden Markov models whose
states emit through Gaussian mixture models, trained with the
Baum-Welch algorithm and decoded incrementally, one observation at a
time. Models can be bimodal (regression of an output modality from an
input modality) and can act as submodels of a hierarchical model.
"""

import logging
from collections import deque, namedtuple

import numpy as np

from sklearn.base import BaseEstimator
from sklearn.utils import check_random_state

from .exceptions import (InvalidArgument, InvalidOperation, OutOfRange,
                         StructuralFormatError)
from .gmm import GMM, DEFAULT_COVARIANCE_OFFSET
from .monitor import EMStopCriterion, VerboseReporter
from .training_set import Phrase
from .utils import as_observation, normalize, read_array

__all__ = ['HMM', 'HMMResults', 'transition_modes',
           'UNTRAINED', 'TRAINING', 'TRAINED']

_log = logging.getLogger(__name__)

DEFAULT_N_STATES = 10
DEFAULT_EXITPROB_LAST_STATE = 0.1
BACKWARD_CLAMP = 1e100

# The position in this tuple is the serialized value of the mode
transition_modes = ('ergodic', 'left-right')

UNTRAINED = 'untrained'
TRAINING = 'training'
TRAINED = 'trained'

# Components of the hierarchical forward variable
ALPHA_H_INTERNAL = 0
ALPHA_H_CONTINUATION = 1
ALPHA_H_ENTRY = 2

HMMResults = namedtuple('HMMResults', ['instant_likelihood', 'log_likelihood',
                                       'progress', 'predicted_output'])

_DOCUMENT_FIELDS = ('is_hierarchical', 'estimate_means', 'dimension',
                    'dimension_input', 'n_states', 'n_mixture_components',
                    'covariance_offset', 'transition_mode', 'prior',
                    'transition', 'exit_probabilities', 'states')


class _PhraseStatistics(object):
    """Posterior statistics of one training phrase.

    Attributes
    ----------
    gamma : array, shape (length, n_states)
        Posterior state occupancy.
    gamma_per_mixture : array, shape (length, n_states, n_components)
        Posterior responsibility of each mixture component of each state.
    epsilon : array, shape (length - 1, n_states, n_states)
        Posterior joint occupancy of consecutive states.
    """

    __slots__ = ('gamma', 'gamma_per_mixture', 'epsilon')

    def __init__(self, length, n_states, n_components):
        self.gamma = np.zeros((length, n_states))
        self.gamma_per_mixture = np.zeros((length, n_states, n_components))
        self.epsilon = np.zeros((max(length - 1, 0), n_states, n_states))


class HMM(BaseEstimator):
    """Hidden Markov Model with Gaussian Mixture emissions.

    Representation of a hidden Markov model for continuous, possibly
    multimodal, time series. Each state emits through a :class:`GMM`.
    The model is trained on a :class:`TrainingSet` with the Baum-Welch
    algorithm and decoded in real time with :meth:`play`.

    Parameters
    ----------
    training_set : TrainingSet, optional
        Training data. The dimensions of the model are taken from it.
    n_states : int
        Number of hidden states.
    n_mixture_components : int
        Number of Gaussian components of each state.
    covariance_offset : float
        Offset added to the diagonal of the covariance matrices.
    transition_mode : string, one of ``transition_modes``
        ``'ergodic'`` (fully connected) or ``'left-right'``.
    estimate_means : bool
        If False, the means are not re-estimated by Baum-Welch.
    hierarchical : bool
        Whether the model is a submodel of a hierarchical model.
    dimension : int, optional
        Total dimension of the observations, when no training set is
        given. Defaults to 1.
    dimension_input : int, optional
        Dimension of the input modality. The model is bimodal if and
        only if it is set.
    likelihood_window : int
        Size of the window used to smooth the log-likelihood in
        :meth:`play`.
    em_min_steps, em_max_steps, em_percent_chg : int, int, float
        Stop criterion of the training (see :class:`EMStopCriterion`).
    verbose : int, default: 0
        Enable verbose output. If 1 then it logs progress and performance
        once in a while (the more iterations the lower the frequency). If
        greater than 1 then it logs progress and performance for every
        iteration.

    Attributes
    ----------
    startprob_ : array, shape (`n_states`,)
        Initial state occupation distribution.
    transmat_ : array, shape (`n_states`, `n_states`)
        Matrix of transition probabilities between states.
    states_ : list of GMM
        Emission model of each state.
    exitprob_ : array, shape (`n_states`,) or None
        Probability of exiting the submodel from each state
        (hierarchical models only).
    training_state_ : string
        One of ``'untrained'``, ``'training'``, ``'trained'``.

    Examples
    --------
    >>> from xmmlearn import HMM, TrainingSet
    >>> ts = TrainingSet(dimension=2)
    >>> ts.add_phrase(0, [[0., 0.], [0., 1.], [1., 1.], [1., 2.]])
    >>> hmm = HMM(ts, n_states=2, em_max_steps=10).fit()
    >>> hmm.training_state_
    'trained'
    """

    # Model Parameter Store, Emission Interface, Forward-Backward,
    # Baum-Welch re-estimation and real-time decoding all live in this
    # class. The per-phrase statistics are private to the training and
    # the decoding state (forward variables) is private to the session
    # started by init_playing().

    def __init__(self, training_set=None, n_states=DEFAULT_N_STATES,
                 n_mixture_components=1,
                 covariance_offset=DEFAULT_COVARIANCE_OFFSET,
                 transition_mode='left-right', estimate_means=True,
                 hierarchical=False, dimension=None, dimension_input=None,
                 likelihood_window=5, em_min_steps=10, em_max_steps=0,
                 em_percent_chg=0.01, verbose=0):
        self._allocated = False
        self.training_set = training_set
        if training_set is not None:
            dimension = training_set.dimension
            dimension_input = training_set.dimension_input
        elif dimension is None:
            dimension = 1
        self.dimension = dimension
        self.dimension_input = dimension_input
        self.hierarchical = hierarchical
        self.n_states = n_states
        self.n_mixture_components = n_mixture_components
        self.covariance_offset = covariance_offset
        self.transition_mode = transition_mode
        self.estimate_means = estimate_means
        self.likelihood_window = likelihood_window
        self.em_min_steps = em_min_steps
        self.em_max_steps = em_max_steps
        self.em_percent_chg = em_percent_chg
        self.verbose = verbose

        self._reset_structure()

    # Model Parameter Store

    @property
    def dimension(self):
        return self._dimension

    @dimension.setter
    def dimension(self, dimension):
        if dimension == getattr(self, '_dimension', None):
            return
        self._dimension = int(dimension)
        if self._allocated:
            self._reset_structure()

    @property
    def dimension_input(self):
        return self._dimension_input

    @dimension_input.setter
    def dimension_input(self, dimension_input):
        if dimension_input is not None:
            dimension_input = int(dimension_input)
        if self._allocated and dimension_input == self._dimension_input:
            return
        self._dimension_input = dimension_input
        if self._allocated:
            self._reset_structure()

    @property
    def hierarchical(self):
        return self._hierarchical

    @hierarchical.setter
    def hierarchical(self, hierarchical):
        hierarchical = bool(hierarchical)
        if hierarchical == getattr(self, '_hierarchical', None):
            return
        self._hierarchical = hierarchical
        if self._allocated:
            self._reset_structure()

    def _reset_structure(self):
        self._check_dimensions()
        self.allocate()
        self._init_transitions()

    @property
    def is_bimodal(self):
        return self.dimension_input is not None

    @property
    def dimension_output(self):
        if not self.is_bimodal:
            raise InvalidOperation('Model is not bimodal')
        return self.dimension - self.dimension_input

    @property
    def n_states(self):
        return self._n_states

    @n_states.setter
    def n_states(self, n_states):
        if n_states < 1:
            raise InvalidArgument('Number of states must be > 0')
        if n_states == getattr(self, '_n_states', None):
            return
        self._n_states = int(n_states)
        if self._allocated:
            self.allocate()
            self._init_transitions()
            self.training_state_ = UNTRAINED

    @property
    def n_mixture_components(self):
        return self._n_mixture_components

    @n_mixture_components.setter
    def n_mixture_components(self, n_mixture_components):
        if n_mixture_components < 1:
            raise InvalidArgument('The number of Gaussian mixture components '
                                  'must be > 0')
        if n_mixture_components == getattr(self, '_n_mixture_components',
                                           None):
            return
        self._n_mixture_components = int(n_mixture_components)
        if self._allocated:
            for state in self.states_:
                state.n_components = self._n_mixture_components
            self._stats = None
            self.training_state_ = UNTRAINED

    @property
    def covariance_offset(self):
        return self._covariance_offset

    @covariance_offset.setter
    def covariance_offset(self, covariance_offset):
        self._covariance_offset = covariance_offset
        if self._allocated:
            for state in self.states_:
                state.covariance_offset = covariance_offset

    @property
    def transition_mode(self):
        return self._transition_mode

    @transition_mode.setter
    def transition_mode(self, transition_mode):
        if transition_mode not in transition_modes:
            raise InvalidArgument("Wrong transition mode %r. Choose 'ergodic' "
                                  "or 'left-right'" % (transition_mode,))
        self._transition_mode = transition_mode

    @property
    def trained(self):
        return self.training_state_ == TRAINED

    def _check_dimensions(self):
        if self.dimension < 1:
            raise InvalidArgument('The dimension must be > 0')
        if self.dimension_input is not None and \
                not 0 < self.dimension_input < self.dimension:
            raise InvalidArgument('The dimension of the input modality must '
                                  'be in [1, dimension - 1]')

    def allocate(self):
        """(Re)allocate all the parameter containers.

        Only ``covariance_offset`` survives; every other parameter is
        reset and the per-phrase training statistics are dropped.
        """
        S = self._n_states
        self.startprob_ = np.zeros(S)
        self.transmat_ = np.zeros((S, S))
        self.states_ = [GMM(self._n_mixture_components, self.dimension,
                            self.dimension_input, self._covariance_offset)
                        for _ in range(S)]
        self.exitprob_ = None
        self._allocated = True
        if self.hierarchical:
            self.update_exit_probabilities()
        self._stats = None
        self._gamma_sum = np.zeros(S)
        self._gamma_sum_per_mixture = np.zeros((S, self._n_mixture_components))
        self.training_state_ = UNTRAINED
        self.init_playing()

    def _init_transitions(self):
        if self._transition_mode == 'ergodic':
            self.set_ergodic()
        else:
            self.set_left_right()

    def set_ergodic(self):
        """Uniform prior and transition probabilities."""
        S = self._n_states
        self.startprob_ = np.tile(1.0 / S, S)
        self.transmat_ = np.tile(1.0 / S, (S, S))

    def set_left_right(self):
        """Left-right topology: start in state 0, stay or move forward."""
        S = self._n_states
        self.startprob_ = np.zeros(S)
        self.startprob_[0] = 1.
        self.transmat_ = 0.5 * (np.eye(S) + np.eye(S, k=1))
        self.transmat_[S - 1, S - 1] = 1.

    def add_cyclic_transition(self, proba):
        """Set the probability of the transition from the last state to
        the first one."""
        if self.hierarchical:
            raise InvalidOperation('Cyclic transitions are not available for '
                                   'hierarchical models')
        self.transmat_[self._n_states - 1, 0] = proba

    def normalize_transitions(self):
        self.startprob_ = normalize(self.startprob_)
        self.transmat_ = normalize(self.transmat_, axis=1)

    def _check_state(self, state_index):
        if not 0 <= state_index < self._n_states:
            raise OutOfRange('State index %d is out of bounds' % state_index)

    def evaluate_n_states(self, factor):
        """Set the number of states to the length of the first phrase
        divided by ``factor``."""
        if self.training_set is None or self.training_set.is_empty:
            return
        self.n_states = self.training_set.phrase_at(0).length // factor

    # Emission Interface

    def observation_probability(self, observation, state_index,
                                mixture_component=None):
        """Emission density of ``observation`` in state ``state_index``.

        Parameters
        ----------
        observation : array_like, shape (`dimension`,)
        state_index : int
        mixture_component : int, optional
            If given, weighted density of this mixture component only.
        """
        self._check_state(state_index)
        return self.states_[state_index].observation_probability(
            observation, mixture_component)

    def observation_probability_input(self, observation_input, state_index,
                                      mixture_component=None):
        """Emission density of the input modality (bimodal models)."""
        if not self.is_bimodal:
            raise InvalidOperation("Model is not bimodal. Use the method "
                                   "'observation_probability'")
        self._check_state(state_index)
        return self.states_[state_index].observation_probability_input(
            observation_input, mixture_component)

    def observation_probability_bimodal(self, observation_input,
                                        observation_output, state_index,
                                        mixture_component=None):
        """Emission density of an input/output pair (bimodal models)."""
        if not self.is_bimodal:
            raise InvalidOperation("Model is not bimodal. Use the method "
                                   "'observation_probability'")
        self._check_state(state_index)
        return self.states_[state_index].observation_probability_bimodal(
            observation_input, observation_output, mixture_component)

    def _compute_mixture_probabilities(self, observation, input_only=False):
        """Weighted component densities, shape (n_states, n_components).

        Summing over the components gives the emission densities of the
        states. With ``input_only`` the densities of the input modality
        are used.
        """
        return np.array([state.component_probabilities(observation,
                                                       input_only)
                         for state in self.states_])

    def _compute_phrase_probabilities(self, phrase):
        """Weighted component densities of a whole phrase, shape
        (length, n_states, n_components)."""
        return np.array([self._compute_mixture_probabilities(phrase[t])
                         for t in range(phrase.length)])

    # Forward-Backward algorithm

    def _scale_forward_variable(self, alpha):
        norm_const = alpha.sum()
        if norm_const > 0:
            return alpha / norm_const, 1. / norm_const
        _log.debug('Null observation likelihood in every state, forward '
                   'variable reset to uniform')
        return np.tile(1.0 / self._n_states, self._n_states), 1.

    def _forward_init(self, frameprob):
        """Returns the scaled forward variable and the scaling constant."""
        return self._scale_forward_variable(self.startprob_ * frameprob)

    def _forward_update(self, alpha, frameprob):
        return self._scale_forward_variable(
            np.dot(alpha, self.transmat_) * frameprob)

    def _backward_init(self, ct):
        return np.tile(float(ct), self._n_states)

    def _backward_update(self, beta, ct, frameprob):
        with np.errstate(over='ignore', invalid='ignore'):
            beta = ct * np.dot(self.transmat_, beta * frameprob)
        degenerate = ~np.isfinite(beta)
        if degenerate.any():
            _log.debug('Non-finite backward variable clamped')
            beta[degenerate] = BACKWARD_CLAMP
        return beta

    def _do_forward_pass(self, frameprob):
        """Scaled forward algorithm.

        Parameters
        ----------
        frameprob : array, shape (length, n_states)
            Emission densities.

        Returns
        -------
        fwdlattice : array, shape (length, n_states)
            Normalized forward variables.
        scales : array, shape (length,)
            Scaling constants.
        """
        n_observations = frameprob.shape[0]
        fwdlattice = np.empty((n_observations, self._n_states))
        scales = np.empty(n_observations)
        fwdlattice[0], scales[0] = self._forward_init(frameprob[0])
        for t in range(1, n_observations):
            fwdlattice[t], scales[t] = self._forward_update(fwdlattice[t - 1],
                                                            frameprob[t])
        return fwdlattice, scales

    def _do_backward_pass(self, frameprob, scales):
        n_observations = frameprob.shape[0]
        bwdlattice = np.empty((n_observations, self._n_states))
        bwdlattice[-1] = self._backward_init(scales[-1])
        for t in range(n_observations - 2, -1, -1):
            bwdlattice[t] = self._backward_update(bwdlattice[t + 1],
                                                  scales[t], frameprob[t + 1])
        return bwdlattice

    def _forward_backward(self, phrase, stats):
        """Fill the posterior statistics of one phrase.

        Returns
        -------
        logprob : float
            Log-likelihood of the phrase.
        """
        mixprob = self._compute_phrase_probabilities(phrase)
        frameprob = mixprob.sum(axis=2)

        fwdlattice, scales = self._do_forward_pass(frameprob)
        bwdlattice = self._do_backward_pass(frameprob, scales)
        logprob = -np.log(scales).sum()

        stats.gamma[:] = fwdlattice * bwdlattice / scales[:, np.newaxis]

        stats.gamma_per_mixture[:] = stats.gamma[:, :, np.newaxis] * mixprob
        norm = frameprob[:, :, np.newaxis]
        np.divide(stats.gamma_per_mixture, norm, out=stats.gamma_per_mixture,
                  where=norm > 0)

        stats.epsilon[:] = (fwdlattice[:-1, :, np.newaxis] *
                            self.transmat_[np.newaxis] *
                            (bwdlattice[1:] * frameprob[1:])[:, np.newaxis, :])
        return logprob

    def _as_phrase(self, obs):
        if isinstance(obs, Phrase):
            phrase = obs
            if phrase.dimension != self.dimension or \
                    phrase.dimension_input != self.dimension_input:
                raise InvalidArgument('Phrase has dimension %d, expected %d'
                                      % (phrase.dimension, self.dimension))
        else:
            phrase = Phrase(obs, dimension=self.dimension,
                            dimension_input=self.dimension_input)
        if phrase.length == 0:
            raise InvalidArgument('Cannot evaluate an empty phrase')
        return phrase

    def forward_variables(self, obs):
        """Normalized forward variables of a phrase.

        Parameters
        ----------
        obs : Phrase or array_like, shape (length, `dimension`)

        Returns
        -------
        fwdlattice : array, shape (length, `n_states`)
        """
        phrase = self._as_phrase(obs)
        frameprob = self._compute_phrase_probabilities(phrase).sum(axis=2)
        return self._do_forward_pass(frameprob)[0]

    def score(self, obs):
        """Compute the log-likelihood of a phrase under the model.

        Parameters
        ----------
        obs : Phrase or array_like, shape (length, `dimension`)

        Returns
        -------
        logprob : float
        """
        phrase = self._as_phrase(obs)
        frameprob = self._compute_phrase_probabilities(phrase).sum(axis=2)
        return -np.log(self._do_forward_pass(frameprob)[1]).sum()

    # Training algorithm

    def _segments(self, length):
        """Bounds of ``n_states`` equal time segments of a phrase.

        The remainder of the division is left out. Phrases shorter than
        the number of states give every state the whole phrase.
        """
        step = length // self._n_states
        if step == 0:
            return [(0, length)] * self._n_states
        return [(n * step, (n + 1) * step) for n in range(self._n_states)]

    def _init_means_with_first_phrase(self):
        data = self.training_set.phrase_at(0).data
        for n, (start, stop) in enumerate(self._segments(len(data))):
            self.states_[n].means_[0] = data[start:stop].mean(axis=0)

    def _init_covariances_with_all_phrases_single(self):
        D = self.dimension
        for n, state in enumerate(self.states_):
            covar = np.zeros((D, D))
            count = 0
            for phrase in self.training_set:
                start, stop = self._segments(phrase.length)[n]
                diff = phrase.data[start:stop] - state.means_[0]
                covar += np.dot(diff.T, diff)
                count += stop - start
            state.covars_[0] = covar / count

    def _init_parameters_with_all_phrases_mixture(self):
        n_phrases = min(len(self.training_set), self._n_mixture_components)
        for c in range(n_phrases):
            data = self.training_set.phrase_at(c).data
            for n, (start, stop) in enumerate(self._segments(len(data))):
                segment = data[start:stop]
                mean = segment.mean(axis=0)
                diff = segment - mean
                self.states_[n].means_[c] = mean
                self.states_[n].covars_[c] = np.dot(diff.T, diff) / len(diff)

    def _check_training_set(self):
        ts = self.training_set
        if ts.dimension != self.dimension or \
                ts.dimension_input != self.dimension_input:
            raise InvalidArgument(
                'Training set dimensions (%d, %r) do not match the model '
                '(%d, %r)' % (ts.dimension, ts.dimension_input,
                              self.dimension, self.dimension_input))
        for index, phrase in ts.items():
            if phrase.dimension != self.dimension or \
                    phrase.dimension_input != self.dimension_input:
                raise InvalidArgument('Phrase %r has dimension %d, expected '
                                      '%d' % (index, phrase.dimension,
                                              self.dimension))
            if phrase.length == 0:
                raise InvalidArgument('Phrase %r is empty' % (index,))

    def init_training(self):
        """Initialize the parameters and the training statistics.

        The transition structure is reset according to
        ``transition_mode`` and the Gaussian parameters are seeded from
        the training set. Without training data only the structure is
        initialized.
        """
        self._init_transitions()
        for state in self.states_:
            state.init_parameters_to_default()
        self._stats = []
        self.training_state_ = TRAINING

        if self.training_set is None or self.training_set.is_empty:
            return
        self._check_training_set()

        if self._n_mixture_components > 1:
            self._init_parameters_with_all_phrases_mixture()
        else:
            self._init_means_with_first_phrase()
            self._init_covariances_with_all_phrases_single()
        for state in self.states_:
            state.add_covariance_offset()
            state.update_inverse_covariances()

        self._stats = [_PhraseStatistics(phrase.length, self._n_states,
                                         self._n_mixture_components)
                       for phrase in self.training_set]
        self._gamma_sum = np.zeros(self._n_states)
        self._gamma_sum_per_mixture = np.zeros((self._n_states,
                                                self._n_mixture_components))

    def finish_training(self):
        self.normalize_transitions()
        self.training_state_ = TRAINED

    def baum_welch_update(self):
        """Perform one iteration of the Baum-Welch algorithm.

        Returns
        -------
        logprob : float
            Total log-likelihood of the training set under the parameters
            used in the expectation step.
        """
        if self.training_state_ != TRAINING or self._stats is None:
            raise InvalidOperation('init_training() must be called before '
                                   'the EM updates')
        if not self._stats:
            raise InvalidOperation('The training set is empty')

        # Expectation step
        logprob = 0.
        for phrase, stats in zip(self.training_set, self._stats):
            logprob += self._forward_backward(phrase, stats)
        self._compute_gamma_sums()

        # Maximization step
        previous_covars = [state.covars_.copy() for state in self.states_]
        for state in self.states_:
            state.set_parameters_to_zero()
        self._estimate_mixture_coefficients()
        if self.estimate_means:
            self._estimate_means()
        self._estimate_covariances(previous_covars)
        if self._transition_mode == 'ergodic':
            self._estimate_prior()
        self._estimate_transitions()

        return logprob

    train_em_update = baum_welch_update

    def _compute_gamma_sums(self):
        self._gamma_sum = np.zeros(self._n_states)
        self._gamma_sum_per_mixture = np.zeros((self._n_states,
                                                self._n_mixture_components))
        for stats in self._stats:
            self._gamma_sum += stats.gamma.sum(axis=0)
            self._gamma_sum_per_mixture += stats.gamma_per_mixture.sum(axis=0)

    def _estimate_mixture_coefficients(self):
        for stats in self._stats:
            weights = stats.gamma_per_mixture.sum(axis=0)
            for i, state in enumerate(self.states_):
                state.weights_ += weights[i]
        for state in self.states_:
            state.normalize_mixture_coefficients()

    def _estimate_means(self):
        numerator = np.zeros((self._n_states, self._n_mixture_components,
                              self.dimension))
        for phrase, stats in zip(self.training_set, self._stats):
            numerator += np.einsum('tsc,td->scd', stats.gamma_per_mixture,
                                   phrase.data)
        for i, state in enumerate(self.states_):
            for c in range(self._n_mixture_components):
                if self._gamma_sum_per_mixture[i, c] > 0:
                    state.means_[c] = (numerator[i, c] /
                                       self._gamma_sum_per_mixture[i, c])

    def _estimate_covariances(self, previous_covars):
        for phrase, stats in zip(self.training_set, self._stats):
            for i, state in enumerate(self.states_):
                for c in range(self._n_mixture_components):
                    diff = phrase.data - state.means_[c]
                    weights = stats.gamma_per_mixture[:, i, c, np.newaxis]
                    weighted = weights * diff
                    state.covars_[c] += np.dot(weighted.T, diff)

        for i, state in enumerate(self.states_):
            estimated = []
            for c in range(self._n_mixture_components):
                if self._gamma_sum_per_mixture[i, c] > 0:
                    state.covars_[c] /= self._gamma_sum_per_mixture[i, c]
                    estimated.append(c)
                else:
                    state.covars_[c] = previous_covars[i][c]
            state.add_covariance_offset(estimated)
            state.update_inverse_covariances()

    def _estimate_prior(self):
        prior = np.zeros(self._n_states)
        for stats in self._stats:
            prior += stats.gamma[0]
        if prior.sum() > 0:
            self.startprob_ = prior / prior.sum()
        else:
            _log.warning('Null prior probabilities, prior left unchanged')

    def _estimate_transitions(self):
        transmat = np.zeros((self._n_states, self._n_states))
        for stats in self._stats:
            transmat += stats.epsilon.sum(axis=0)
        # rows of states never visited are left unnormalized
        visited = self._gamma_sum > 0
        transmat[visited] /= self._gamma_sum[visited, np.newaxis]
        self.transmat_ = transmat

    def fit(self, training_set=None):
        """Estimate model parameters with the Baum-Welch algorithm.

        The parameters are initialized from the training set, then EM
        iterations run until the stop criterion defined by
        ``em_min_steps``, ``em_max_steps`` and ``em_percent_chg`` is met.

        Parameters
        ----------
        training_set : TrainingSet, optional
            Training data. Defaults to the training set given at
            construction.

        Notes
        -----
        In general, `logprob` should be non-decreasing.  Decreasing
        `logprob` is generally a sign of overfitting (e.g. a covariance
        parameter getting too small).  You can fix this by getting more
        training data, or increasing ``covariance_offset``.
        """
        if training_set is not None:
            self._set_training_set(training_set)
        if self.training_set is None or self.training_set.is_empty:
            raise InvalidOperation('Cannot train a model without data')

        self.init_training()

        stop_criterion = EMStopCriterion(self.em_min_steps, self.em_max_steps,
                                         self.em_percent_chg)
        if self.verbose:
            verbose_reporter = VerboseReporter(self.verbose)
            verbose_reporter.init()

        self.log_likelihood_history_ = []
        logprob = -np.inf
        n_iterations = 0
        while True:
            old_logprob = logprob
            logprob = self.baum_welch_update()
            self.log_likelihood_history_.append(logprob)
            if self.verbose:
                verbose_reporter.update(n_iterations, logprob,
                                        logprob - old_logprob)
            n_iterations += 1
            if stop_criterion.has_converged(n_iterations, logprob,
                                            old_logprob):
                break

        self.finish_training()
        _log.debug('Training finished after %d iterations, log-likelihood '
                   '%.4f', n_iterations, logprob)
        return self

    train = fit

    def _set_training_set(self, training_set):
        self.training_set = training_set
        if (training_set.dimension != self.dimension or
                training_set.dimension_input != self.dimension_input):
            self._dimension = training_set.dimension
            self._dimension_input = training_set.dimension_input
            self._reset_structure()

    def sample(self, n_samples=1, random_state=None):
        """Generate random samples from the model.

        Parameters
        ----------
        n_samples : int
            Number of samples to generate.
        random_state: RandomState or an int seed (0 by default)
            A random number generator instance.

        Returns
        -------
        (obs, states)
        obs : array_like, shape (`n_samples`, `dimension`)
        states : array_like, shape (`n_samples`,)
        """
        random_state = check_random_state(random_state)
        startprob_cdf = np.cumsum(self.startprob_)
        transmat_cdf = np.cumsum(self.transmat_, axis=1)

        states = np.empty(n_samples, dtype=int)
        obs = np.empty((n_samples, self.dimension))
        currstate = (startprob_cdf > random_state.rand()).argmax()
        for t in range(n_samples):
            if t > 0:
                currstate = (transmat_cdf[currstate] >
                             random_state.rand()).argmax()
            states[t] = currstate
            obs[t] = self.states_[currstate].sample(1, random_state)[0]
        return obs, states

    # Real-time decoding

    def init_playing(self):
        """Start a new decoding session."""
        self._forward_initialized = False
        self._alpha = np.zeros(self._n_states)
        if self.hierarchical:
            self._alpha_h = np.zeros((3, self._n_states))
        self._likelihood_buffer = deque(maxlen=self.likelihood_window)
        self.results_ = HMMResults(
            instant_likelihood=0., log_likelihood=0., progress=0.,
            predicted_output=(np.zeros(self.dimension_output)
                              if self.is_bimodal else None))

    def play(self, observation):
        """Update the decoding session with a new observation.

        Parameters
        ----------
        observation : array_like
            Observation of size `dimension`. Bimodal models also accept
            the input modality alone; any output part is ignored.

        Returns
        -------
        results : HMMResults
            Instantaneous likelihood, smoothed log-likelihood, time
            progression and, for bimodal models, the output predicted
            from the input modality.
        """
        if self.training_state_ != TRAINED:
            raise InvalidOperation('The model must be trained before '
                                   'decoding')
        observation = np.asarray(observation, dtype=float).ravel()
        if self.is_bimodal:
            if observation.shape[0] not in (self.dimension_input,
                                            self.dimension):
                raise InvalidArgument('Observation has dimension %d, expected '
                                      '%d or %d' % (observation.shape[0],
                                                    self.dimension_input,
                                                    self.dimension))
            observation = observation[:self.dimension_input]
        else:
            observation = as_observation(observation, self.dimension)

        frameprob = self._compute_mixture_probabilities(
            observation, input_only=self.is_bimodal).sum(axis=1)
        if self._forward_initialized:
            self._alpha, ct = self._forward_update(self._alpha, frameprob)
        else:
            self._likelihood_buffer.clear()
            self._alpha, ct = self._forward_init(frameprob)
        self._forward_initialized = True
        if self.hierarchical:
            self._alpha_h[ALPHA_H_INTERNAL] = self._alpha

        predicted_output = None
        if self.is_bimodal:
            predicted_output = self.regression(observation)

        instant_likelihood = 1. / ct
        self._likelihood_buffer.append(np.log(instant_likelihood))
        self.results_ = HMMResults(
            instant_likelihood=instant_likelihood,
            log_likelihood=float(np.mean(self._likelihood_buffer)),
            progress=self._time_progression(),
            predicted_output=predicted_output)
        return self.results_

    def _state_occupancy(self):
        if self.hierarchical:
            return (self._alpha_h[ALPHA_H_INTERNAL] +
                    self._alpha_h[ALPHA_H_CONTINUATION])
        return self._alpha

    def regression(self, observation_input, out=None):
        """Predict the output modality from the input modality.

        The predictions of the states are weighted by the current state
        occupancy probabilities.

        Parameters
        ----------
        observation_input : array_like, shape (`dimension_input`,)
        out : array, shape (`dimension_output`,), optional
            If given, the prediction is written into this array.

        Returns
        -------
        predicted_output : array, shape (`dimension_output`,)
        """
        if not self.is_bimodal:
            raise InvalidOperation('Regression requires a bimodal model')
        if out is None:
            out = np.zeros(self.dimension_output)
        else:
            out[:] = 0.
        occupancy = self._state_occupancy()
        state_prediction = np.zeros(self.dimension_output)
        for i, state in enumerate(self.states_):
            state.regression(observation_input, out=state_prediction)
            out += occupancy[i] * state_prediction
        return out

    def _time_progression(self):
        if self._n_states == 1:
            return 0.
        if self.hierarchical:
            occupancy = self._alpha_h[ALPHA_H_INTERNAL]
        else:
            occupancy = self._alpha
        return float(np.dot(occupancy, np.arange(self._n_states)) /
                     (self._n_states - 1))

    @property
    def forward_variable(self):
        """Copy of the current forward variable of the decoding session."""
        return self._alpha.copy()

    # Hierarchical submodels

    def _check_hierarchical(self):
        if not self.hierarchical:
            raise InvalidOperation('Model is not hierarchical: method cannot '
                                   'be used')

    def forward_variable_h(self, index):
        """Copy of one component of the hierarchical forward variable.

        Index 0 holds the contribution of the internal transitions and is
        written by :meth:`play`. Indices 1 (continuation) and 2 (entry)
        are written by the parent model with
        :meth:`set_forward_variable_h`.
        """
        self._check_hierarchical()
        if not 0 <= index < 3:
            raise OutOfRange('Forward variable component %d out of bounds'
                             % index)
        return self._alpha_h[index].copy()

    def set_forward_variable_h(self, index, values):
        self._check_hierarchical()
        if index == ALPHA_H_INTERNAL:
            raise InvalidOperation('Forward variable component 0 is computed '
                                   'by the model')
        if index not in (ALPHA_H_CONTINUATION, ALPHA_H_ENTRY):
            raise OutOfRange('Forward variable component %d out of bounds'
                             % index)
        values = np.asarray(values, dtype=float).ravel()
        if values.shape[0] != self._n_states:
            raise InvalidArgument('Forward variable must have %d values'
                                  % self._n_states)
        self._alpha_h[index] = values

    def update_exit_probabilities(self, exit_probabilities=None):
        """Set the exit probabilities of the states.

        Parameters
        ----------
        exit_probabilities : array_like, shape (`n_states`,), optional
            Defaults to a null exit probability for all states except the
            last one.
        """
        self._check_hierarchical()
        if exit_probabilities is None:
            self.exitprob_ = np.zeros(self._n_states)
            self.exitprob_[-1] = DEFAULT_EXITPROB_LAST_STATE
            return
        try:
            exit_probabilities = np.asarray(exit_probabilities,
                                            dtype=float).ravel()
        except (TypeError, ValueError):
            raise InvalidArgument('Wrong format for exit probabilities')
        if exit_probabilities.shape[0] != self._n_states:
            raise InvalidArgument('Wrong format for exit probabilities: '
                                  'expected %d values' % self._n_states)
        self.exitprob_ = exit_probabilities.copy()

    def add_exit_point(self, state_index, proba):
        self._check_hierarchical()
        self._check_state(state_index)
        self.exitprob_[state_index] = proba

    # File IO

    def to_dict(self):
        doc = {'is_hierarchical': bool(self.hierarchical),
               'estimate_means': bool(self.estimate_means),
               'dimension': self.dimension,
               'dimension_input': self.dimension_input,
               'n_states': self._n_states,
               'n_mixture_components': self._n_mixture_components,
               'covariance_offset': self._covariance_offset,
               'transition_mode': transition_modes.index(
                   self._transition_mode),
               'prior': self.startprob_.tolist(),
               'transition': self.transmat_.ravel().tolist()}
        if self.hierarchical:
            doc['exit_probabilities'] = self.exitprob_.tolist()
        doc['states'] = [state.to_dict() for state in self.states_]
        return doc

    def from_dict(self, doc):
        """Read the model from a document produced by :meth:`to_dict`.

        The whole document is validated before the model is modified.
        The model is reallocated to the sizes of the document and marked
        as trained.
        """
        if not isinstance(doc, dict):
            raise StructuralFormatError('HMM document must be a mapping')
        if not isinstance(doc.get('is_hierarchical'), bool):
            raise StructuralFormatError("Missing boolean field "
                                        "'is_hierarchical'")
        if doc['is_hierarchical'] != bool(self.hierarchical):
            if self.hierarchical:
                raise StructuralFormatError('Trying to read a '
                                            'non-hierarchical model in a '
                                            'hierarchical model.')
            raise StructuralFormatError('Trying to read a hierarchical model '
                                        'in a non-hierarchical model.')
        expected = [f for f in _DOCUMENT_FIELDS
                    if f != 'exit_probabilities' or self.hierarchical]
        if list(doc) != expected:
            raise StructuralFormatError('HMM document fields %s do not match '
                                        'the expected fields %s'
                                        % (list(doc), expected))

        estimate_means = _read_scalar(doc, 'estimate_means', bool)
        dimension = _read_scalar(doc, 'dimension', int)
        dimension_input = doc['dimension_input']
        if dimension_input is not None:
            dimension_input = _read_scalar(doc, 'dimension_input', int)
        S = _read_scalar(doc, 'n_states', int)
        C = _read_scalar(doc, 'n_mixture_components', int)
        covariance_offset = _read_scalar(doc, 'covariance_offset', float)
        mode = _read_scalar(doc, 'transition_mode', int)
        if not 0 <= mode < len(transition_modes):
            raise StructuralFormatError('Unknown transition mode %d' % mode)
        if S < 1 or C < 1 or dimension < 1:
            raise StructuralFormatError('Sizes must be > 0')
        prior = read_array(doc, 'prior', S)
        transition = read_array(doc, 'transition', S * S).reshape(S, S)
        exitprob = None
        if self.hierarchical:
            exitprob = read_array(doc, 'exit_probabilities', S)
        if not isinstance(doc['states'], list) or len(doc['states']) != S:
            raise StructuralFormatError("Field 'states' must be an array of "
                                        "%d models" % S)
        states = []
        for state_doc in doc['states']:
            state = GMM(C, dimension, dimension_input, covariance_offset)
            state.from_dict(state_doc)
            if state.n_components != C:
                raise StructuralFormatError('State has %d mixture components, '
                                            'expected %d'
                                            % (state.n_components, C))
            states.append(state)

        self.estimate_means = estimate_means
        self._dimension = dimension
        self._dimension_input = dimension_input
        self._n_states = S
        self._n_mixture_components = C
        self._covariance_offset = covariance_offset
        self._transition_mode = transition_modes[mode]
        self.allocate()
        self.startprob_ = prior
        self.transmat_ = transition
        self.states_ = states
        if self.hierarchical:
            self.exitprob_ = exitprob
        self.training_state_ = TRAINED


def _read_scalar(doc, key, kind):
    value = doc[key]
    if kind is bool:
        valid = isinstance(value, bool)
    elif kind is int:
        valid = isinstance(value, int) and not isinstance(value, bool)
    else:
        valid = (isinstance(value, (int, float)) and
                 not isinstance(value, bool))
    if not valid:
        raise StructuralFormatError("Field '%s' must be of type %s"
                                    % (key, kind.__name__))
    return kind(value)

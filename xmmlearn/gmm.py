# Gaussian Mixture Models used as HMM state emissions

"""
The :mod:`xmmlearn.gmm` module implements the Gaussian mixture
emission model of the HMM states, with full covariance matrices and
Gaussian mixture regression for bimodal observations.
"""

import logging

import numpy as np

from scipy.special import logsumexp
from sklearn.utils import check_random_state

from .exceptions import (InvalidArgument, InvalidOperation, OutOfRange,
                         StructuralFormatError)
from .utils import normalize, read_array

__all__ = ['GMM', 'DEFAULT_COVARIANCE_OFFSET']

DEFAULT_COVARIANCE_OFFSET = 1e-3

_log = logging.getLogger(__name__)


def _log_gaussian_density(x, mean, inverse_covariance, log_determinant):
    diff = x - mean
    mahalanobis = np.dot(diff, np.dot(inverse_covariance, diff))
    return -0.5 * (mahalanobis + len(x) * np.log(2 * np.pi) +
                   log_determinant)


class GMM(object):
    """Gaussian Mixture Model with full covariances.

    Representation of the emission distribution of one HMM state. In
    bimodal mode the observations concatenate an input and an output
    modality, and the model can predict the output from the input
    (Gaussian mixture regression).

    Parameters
    ----------
    n_components : int
        Number of Gaussian components.
    dimension : int
        Total dimension of the observations.
    dimension_input : int, optional
        Dimension of the input modality (bimodal models only).
    covariance_offset : float
        Offset added to the diagonal of the covariance matrices after
        each estimation, to avoid degenerate Gaussians.

    Attributes
    ----------
    weights_ : array, shape (`n_components`,)
        Mixture coefficients.
    means_ : array, shape (`n_components`, `dimension`)
        Mean of each component.
    covars_ : array, shape (`n_components`, `dimension`, `dimension`)
        Covariance matrix of each component.
    beta_ : array, shape (`n_components`,)
        Normalized responsibilities of the components for the last input
        passed to :meth:`likelihood`.
    """

    def __init__(self, n_components=1, dimension=1, dimension_input=None,
                 covariance_offset=DEFAULT_COVARIANCE_OFFSET):
        if n_components < 1:
            raise InvalidArgument('The number of Gaussian mixture components '
                                  'must be > 0')
        if dimension < 1:
            raise InvalidArgument('The dimension must be > 0')
        if dimension_input is not None and \
                not 0 < dimension_input < dimension:
            raise InvalidArgument('The dimension of the input modality must '
                                  'be in [1, dimension - 1]')
        self._n_components = int(n_components)
        self.dimension = int(dimension)
        self.dimension_input = (None if dimension_input is None
                                else int(dimension_input))
        self.covariance_offset = covariance_offset
        self.allocate()

    @property
    def is_bimodal(self):
        return self.dimension_input is not None

    @property
    def dimension_output(self):
        if not self.is_bimodal:
            raise InvalidOperation('Model is not bimodal')
        return self.dimension - self.dimension_input

    @property
    def n_components(self):
        return self._n_components

    @n_components.setter
    def n_components(self, n_components):
        if n_components < 1:
            raise InvalidArgument('The number of Gaussian mixture components '
                                  'must be > 0')
        if n_components == self._n_components:
            return
        self._n_components = int(n_components)
        self.allocate()

    def allocate(self):
        C, D = self._n_components, self.dimension
        self.weights_ = np.zeros(C)
        self.means_ = np.zeros((C, D))
        self.covars_ = np.zeros((C, D, D))
        self.beta_ = np.zeros(C)
        self.init_parameters_to_default()

    def init_parameters_to_default(self):
        C, D = self._n_components, self.dimension
        self.weights_ = np.tile(1.0 / C, C)
        self.means_ = np.zeros((C, D))
        self.covars_ = np.tile(np.eye(D), (C, 1, 1))
        self.add_covariance_offset()
        self.update_inverse_covariances()

    def copy(self):
        other = GMM(self._n_components, self.dimension, self.dimension_input,
                    self.covariance_offset)
        other.weights_ = self.weights_.copy()
        other.means_ = self.means_.copy()
        other.covars_ = self.covars_.copy()
        other.update_inverse_covariances()
        return other

    def _check_component(self, mixture_component):
        if not 0 <= mixture_component < self._n_components:
            raise OutOfRange('Mixture component index %d out of bounds'
                             % mixture_component)

    # Methods used by the HMM during training

    def set_parameters_to_zero(self):
        """Zero the mixture coefficients and the covariances."""
        self.weights_[:] = 0.
        self.covars_[:] = 0.

    def normalize_mixture_coefficients(self):
        if self.weights_.sum() > 0:
            self.weights_ = normalize(self.weights_)
        else:
            _log.debug('Null mixture coefficients, reset to uniform')
            self.weights_ = np.tile(1.0 / self._n_components,
                                    self._n_components)

    def add_covariance_offset(self, components=None):
        """Add ``covariance_offset`` to the covariance diagonals.

        Parameters
        ----------
        components : sequence of int, optional
            Components to regularize. Defaults to all components.
        """
        if components is None:
            components = range(self._n_components)
        offset = self.covariance_offset * np.eye(self.dimension)
        for c in components:
            self.covars_[c] += offset

    def update_inverse_covariances(self):
        """Refresh the inverses and log-determinants used by the densities."""
        self._inverse_covars = np.zeros_like(self.covars_)
        self._covars_logdet = np.zeros(self._n_components)
        for c, covar in enumerate(self.covars_):
            self._covars_logdet[c], self._inverse_covars[c] = \
                self._invert(covar, c)
        if self.is_bimodal:
            Di = self.dimension_input
            self._inverse_covars_input = np.zeros((self._n_components, Di, Di))
            self._covars_logdet_input = np.zeros(self._n_components)
            for c, covar in enumerate(self.covars_):
                logdet, inverse = self._invert(covar[:Di, :Di], c)
                self._covars_logdet_input[c] = logdet
                self._inverse_covars_input[c] = inverse

    @staticmethod
    def _invert(covar, c):
        sign, logdet = np.linalg.slogdet(covar)
        if sign <= 0 or not np.isfinite(logdet):
            raise InvalidArgument('Covariance matrix of component %d is not '
                                  'positive definite' % c)
        return logdet, np.linalg.inv(covar)

    # Observation probabilities

    def _log_component_densities(self, x, input_only=False):
        if input_only:
            Di = self.dimension_input
            return np.array([
                _log_gaussian_density(x, self.means_[c, :Di],
                                      self._inverse_covars_input[c],
                                      self._covars_logdet_input[c])
                for c in range(self._n_components)])
        return np.array([
            _log_gaussian_density(x, self.means_[c], self._inverse_covars[c],
                                  self._covars_logdet[c])
            for c in range(self._n_components)])

    def _weighted_log_densities(self, x, input_only=False):
        with np.errstate(divide='ignore'):
            log_weights = np.log(self.weights_)
        return log_weights + self._log_component_densities(x, input_only)

    def _mixture_probability(self, x, mixture_component, input_only=False):
        logprob = self._weighted_log_densities(x, input_only)
        if mixture_component is None:
            p = np.exp(logsumexp(logprob))
        else:
            self._check_component(mixture_component)
            p = np.exp(logprob[mixture_component])
        if not np.isfinite(p):
            return 0.
        return float(p)

    def component_probabilities(self, observation, input_only=False):
        """Weighted densities of all the components at once.

        Parameters
        ----------
        observation : array_like
            Full observation, or input modality when ``input_only``.
        input_only : bool
            Use the densities of the input marginal (bimodal models).

        Returns
        -------
        probs : array, shape (`n_components`,)
            Non-finite densities are reported as 0.
        """
        x = np.asarray(observation, dtype=float)
        if input_only:
            if not self.is_bimodal:
                raise InvalidOperation('Model is not bimodal')
            x = x[:self.dimension_input]
        with np.errstate(over='ignore'):
            probs = np.exp(self._weighted_log_densities(x, input_only))
        probs[~np.isfinite(probs)] = 0.
        return probs

    def observation_probability(self, observation, mixture_component=None):
        """Density of a full observation.

        Parameters
        ----------
        observation : array_like, shape (`dimension`,)
        mixture_component : int, optional
            If given, return the weighted density of this component only,
            otherwise the density of the mixture.
        """
        x = np.asarray(observation, dtype=float)
        return self._mixture_probability(x, mixture_component)

    def observation_probability_input(self, observation_input,
                                      mixture_component=None):
        """Density of the input modality only (bimodal models)."""
        if not self.is_bimodal:
            raise InvalidOperation("Model is not bimodal. Use the method "
                                   "'observation_probability'")
        x = np.asarray(observation_input, dtype=float)[:self.dimension_input]
        return self._mixture_probability(x, mixture_component,
                                         input_only=True)

    def observation_probability_bimodal(self, observation_input,
                                        observation_output,
                                        mixture_component=None):
        """Joint density of an input/output pair (bimodal models)."""
        if not self.is_bimodal:
            raise InvalidOperation("Model is not bimodal. Use the method "
                                   "'observation_probability'")
        x = np.concatenate((np.asarray(observation_input, dtype=float),
                            np.asarray(observation_output, dtype=float)))
        return self._mixture_probability(x, mixture_component)

    # Regression

    def likelihood(self, observation_input):
        """Update the component responsibilities for an input observation.

        Returns the density of the input under the mixture and stores the
        normalized responsibilities in ``beta_``.
        """
        if not self.is_bimodal:
            raise InvalidOperation('Model is not bimodal')
        x = np.asarray(observation_input, dtype=float)[:self.dimension_input]
        with np.errstate(divide='ignore'):
            logprob = np.log(self.weights_) + \
                self._log_component_densities(x, input_only=True)
        total = logsumexp(logprob)
        if np.isfinite(total):
            self.beta_ = np.exp(logprob - total)
            return float(np.exp(total))
        self.beta_ = np.tile(1.0 / self._n_components, self._n_components)
        return 0.

    def regression(self, observation_input, out=None):
        """Predict the output modality from the input modality.

        Parameters
        ----------
        observation_input : array_like, shape (`dimension_input`,)
        out : array, shape (`dimension_output`,), optional
            If given, the prediction is written into this array.

        Returns
        -------
        predicted_output : array, shape (`dimension_output`,)
        """
        self.likelihood(observation_input)
        Di = self.dimension_input
        x = np.asarray(observation_input, dtype=float)[:Di]
        if out is None:
            out = np.zeros(self.dimension_output)
        else:
            out[:] = 0.
        for c in range(self._n_components):
            covar = self.covars_[c]
            projection = np.dot(covar[Di:, :Di], self._inverse_covars_input[c])
            conditional_mean = self.means_[c, Di:] + \
                np.dot(projection, x - self.means_[c, :Di])
            out += self.beta_[c] * conditional_mean
        return out

    def sample(self, n_samples=1, random_state=None):
        """Generate random observations from the mixture.

        Returns
        -------
        X : array, shape (`n_samples`, `dimension`)
        """
        random_state = check_random_state(random_state)
        weights_cdf = np.cumsum(self.weights_)
        X = np.empty((n_samples, self.dimension))
        for n in range(n_samples):
            c = min((weights_cdf > random_state.rand()).argmax(),
                    self._n_components - 1)
            X[n] = random_state.multivariate_normal(self.means_[c],
                                                    self.covars_[c])
        return X

    # File IO

    def to_dict(self):
        return {'n_components': self._n_components,
                'dimension': self.dimension,
                'dimension_input': self.dimension_input,
                'covariance_offset': self.covariance_offset,
                'weights': self.weights_.tolist(),
                'means': self.means_.ravel().tolist(),
                'covariances': self.covars_.ravel().tolist()}

    def from_dict(self, doc):
        """Read parameters from a document produced by :meth:`to_dict`."""
        try:
            n_components = int(doc['n_components'])
            dimension = int(doc['dimension'])
            dimension_input = doc['dimension_input']
            covariance_offset = float(doc['covariance_offset'])
            C, D = n_components, dimension
            weights = read_array(doc, 'weights', C)
            means = read_array(doc, 'means', C * D).reshape(C, D)
            covars = read_array(doc, 'covariances', C * D * D)
        except (KeyError, TypeError, ValueError) as e:
            raise StructuralFormatError('Malformed GMM document: %s' % e)
        if dimension_input != self.dimension_input:
            raise StructuralFormatError('GMM document has input dimension %r, '
                                        'expected %r' % (dimension_input,
                                                         self.dimension_input))
        if dimension != self.dimension:
            raise StructuralFormatError('GMM document has dimension %d, '
                                        'expected %d' % (dimension,
                                                         self.dimension))
        self._n_components = n_components
        self.covariance_offset = covariance_offset
        self.weights_ = weights
        self.means_ = means
        self.covars_ = covars.reshape(C, D, D)
        self.beta_ = np.zeros(C)
        self.update_inverse_covariances()

    def __repr__(self):
        return '%s(n_components=%d, dimension=%d, dimension_input=%r)' % (
            self.__class__.__name__, self._n_components, self.dimension,
            self.dimension_input)

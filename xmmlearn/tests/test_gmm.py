import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from xmmlearn import (GMM, InvalidArgument, InvalidOperation, OutOfRange,
                      StructuralFormatError)


def bimodal_gmm():
    g = GMM(n_components=1, dimension=2, dimension_input=1,
            covariance_offset=0.)
    g.means_[0] = [0., 1.]
    g.covars_[0] = [[1., 0.5], [0.5, 1.]]
    g.update_inverse_covariances()
    return g


def test_default_parameters():
    g = GMM(n_components=2, dimension=3, covariance_offset=0.1)
    assert_allclose(g.weights_, [.5, .5])
    assert_array_equal(g.means_, 0.)
    for covar in g.covars_:
        assert_allclose(covar, 1.1 * np.eye(3))


def test_invalid_construction():
    with pytest.raises(InvalidArgument):
        GMM(n_components=0)
    with pytest.raises(InvalidArgument):
        GMM(dimension=0)
    with pytest.raises(InvalidArgument):
        GMM(dimension=2, dimension_input=2)


def test_standard_normal_density():
    g = GMM(covariance_offset=0.)
    assert_allclose(g.observation_probability([0.]), 1. / np.sqrt(2 * np.pi))
    assert_allclose(g.observation_probability([1.]),
                    np.exp(-0.5) / np.sqrt(2 * np.pi))


def test_component_densities_sum_to_mixture():
    g = GMM(n_components=3, dimension=2)
    g.means_ = np.array([[0., 0.], [1., 1.], [-1., 2.]])
    g.weights_ = np.array([.2, .3, .5])
    x = [0.5, 0.5]
    parts = [g.observation_probability(x, c) for c in range(3)]
    assert_allclose(sum(parts), g.observation_probability(x))


def test_component_out_of_range():
    g = GMM(n_components=2)
    with pytest.raises(OutOfRange):
        g.observation_probability([0.], 2)


def test_far_observation_has_null_density():
    g = GMM(covariance_offset=0.)
    assert g.observation_probability([1e6]) == 0.


def test_bimodal_only_methods():
    g = GMM(dimension=2)
    with pytest.raises(InvalidOperation):
        g.observation_probability_input([0.])
    with pytest.raises(InvalidOperation):
        g.observation_probability_bimodal([0.], [0.])
    with pytest.raises(InvalidOperation):
        g.regression([0.])


def test_input_marginal_density():
    g = bimodal_gmm()
    assert_allclose(g.observation_probability_input([0.]),
                    1. / np.sqrt(2 * np.pi))
    assert_allclose(g.observation_probability_bimodal([0.], [1.]),
                    g.observation_probability([0., 1.]))


def test_regression():
    g = bimodal_gmm()
    assert_allclose(g.regression([2.]), [2.])
    out = np.zeros(1)
    assert g.regression([-2.], out=out) is out
    assert_allclose(out, [0.])


def test_likelihood_responsibilities():
    g = GMM(n_components=2, dimension=2, dimension_input=1)
    g.means_ = np.array([[0., 0.], [3., 0.]])
    g.update_inverse_covariances()
    total = g.likelihood([0.1])
    assert total > 0
    assert_allclose(g.beta_.sum(), 1.)
    assert g.beta_[0] > g.beta_[1]


def test_singular_covariance():
    g = GMM(dimension=2, covariance_offset=0.)
    g.covars_[0] = np.zeros((2, 2))
    with pytest.raises(InvalidArgument):
        g.update_inverse_covariances()


def test_null_mixture_coefficients():
    g = GMM(n_components=4)
    g.set_parameters_to_zero()
    g.normalize_mixture_coefficients()
    assert_allclose(g.weights_, .25)


def test_partial_covariance_offset():
    g = GMM(n_components=2, covariance_offset=0.5)
    g.set_parameters_to_zero()
    g.add_covariance_offset([1])
    assert_allclose(g.covars_[:, 0, 0], [0., .5])


def test_resize():
    g = GMM(n_components=1, dimension=2)
    g.n_components = 3
    assert g.weights_.shape == (3,)
    assert g.covars_.shape == (3, 2, 2)


def test_copy_is_independent():
    g = bimodal_gmm()
    other = g.copy()
    other.means_[0, 0] = 10.
    assert g.means_[0, 0] == 0.


def test_sample():
    g = GMM(n_components=2, dimension=2)
    g.means_ = np.array([[0., 0.], [100., 100.]])
    g.weights_ = np.array([0., 1.])
    X = g.sample(20, random_state=0)
    assert X.shape == (20, 2)
    assert np.all(X > 90.)


def test_document_round_trip():
    g = bimodal_gmm()
    other = GMM(dimension=2, dimension_input=1)
    other.from_dict(g.to_dict())
    assert other.to_dict() == g.to_dict()
    assert_allclose(other.regression([2.]), [2.])


def test_document_errors():
    doc = bimodal_gmm().to_dict()
    with pytest.raises(StructuralFormatError):
        GMM(dimension=2).from_dict(doc)
    with pytest.raises(StructuralFormatError):
        GMM(dimension=3, dimension_input=1).from_dict(doc)
    truncated = dict(doc, covariances=doc['covariances'][:3])
    with pytest.raises(StructuralFormatError):
        GMM(dimension=2, dimension_input=1).from_dict(truncated)
    del doc['weights']
    with pytest.raises(StructuralFormatError):
        GMM(dimension=2, dimension_input=1).from_dict(doc)


@pytest.mark.parametrize('dimension, variance', [
    (150, 1e-3),  # determinant underflows
    (200, 100.),  # determinant overflows
])
def test_extreme_determinants(dimension, variance):
    g = GMM(dimension=dimension, covariance_offset=0.)
    g.covars_[0] = variance * np.eye(dimension)
    g.update_inverse_covariances()
    expected = -0.5 * dimension * np.log(2 * np.pi * variance)
    p = g.observation_probability(np.zeros(dimension))
    assert p > 0
    assert_allclose(np.log(p), expected)


def test_indefinite_covariance():
    g = GMM(dimension=2, covariance_offset=0.)
    g.covars_[0] = [[1., 2.], [2., 1.]]
    with pytest.raises(InvalidArgument):
        g.update_inverse_covariances()


def test_component_probabilities():
    g = GMM(n_components=3, dimension=2, dimension_input=1)
    g.means_ = np.array([[0., 0.], [1., 1.], [-1., 2.]])
    g.weights_ = np.array([.2, .3, .5])
    x = [0.5, 1.5]
    assert_allclose(g.component_probabilities(x),
                    [g.observation_probability(x, c) for c in range(3)])
    assert_allclose(g.component_probabilities([0.5], input_only=True),
                    [g.observation_probability_input([0.5], c)
                     for c in range(3)])
    assert_array_equal(g.component_probabilities([1e6, 1e6]), 0.)
    with pytest.raises(InvalidOperation):
        GMM().component_probabilities([0.], input_only=True)

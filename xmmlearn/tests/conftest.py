import numpy as np
import pytest

from xmmlearn import TrainingSet


def two_level_phrase(random_state, n_samples=20, low=0., high=5.,
                     scale=0.1):
    """Column vector holding ``n_samples`` samples around ``low`` then
    ``n_samples`` around ``high``."""
    return np.concatenate([
        random_state.normal(low, scale, n_samples),
        random_state.normal(high, scale, n_samples)])[:, np.newaxis]


@pytest.fixture
def random_state():
    return np.random.RandomState(42)


@pytest.fixture
def two_level_set(random_state):
    ts = TrainingSet(dimension=1, default_label='steps')
    for n in range(3):
        ts.add_phrase(n, two_level_phrase(random_state))
    return ts


@pytest.fixture
def linear_set(random_state):
    """Bimodal training set where the output is ``2 * input + 1``."""
    ts = TrainingSet(dimension=2, dimension_input=1)
    for n in range(2):
        x = np.linspace(0., 1., 50)
        y = 2 * x + 1 + random_state.normal(0., 0.01, x.shape)
        ts.add_phrase(n, np.column_stack((x, y)))
    return ts

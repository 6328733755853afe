import numpy as np
import pytest

from softreg.ml_model import SoftmaxRegression
from softreg.train import TOY_FEATURES, TOY_LABELS


@pytest.fixture
def toy_data():
    return TOY_FEATURES.copy(), TOY_LABELS.copy()


@pytest.fixture
def fitted_model(toy_data):
    X, y = toy_data
    return SoftmaxRegression(lr=0.1, iterations=2000, l2=1e-3, random_state=0).fit(X, y)


@pytest.fixture
def random_matrix():
    rng = np.random.default_rng(7)
    return rng.normal(scale=3.0, size=(25, 2))

import numpy as np
import pytest

from neohazard._math import _sigmoid

TRUE_BETA = np.array([-0.5, 1.5, -1.0, 0.8, 0.0, 0.5, -0.7])


@pytest.fixture
def logistic_data():
    """400 rows drawn from a logistic model with known coefficients."""
    rng = np.random.default_rng(7)
    X = rng.standard_normal((400, 6))
    p = _sigmoid(TRUE_BETA[0] + X @ TRUE_BETA[1:])
    y = (rng.random(400) < p).astype(int)
    return X, y, TRUE_BETA.copy()


@pytest.fixture
def separable_clusters():
    """Two well separated clusters in all six features, train and test."""
    rng = np.random.default_rng(11)

    def draw(n_per_class):
        neg = rng.normal(-2.0, 0.5, size=(n_per_class, 6))
        pos = rng.normal(2.0, 0.5, size=(n_per_class, 6))
        X = np.vstack([neg, pos])
        y = np.r_[np.zeros(n_per_class, dtype=int), np.ones(n_per_class, dtype=int)]
        return X, y

    X_train, y_train = draw(30)
    X_test, y_test = draw(10)
    return X_train, y_train, X_test, y_test


def _one_feature(magnitudes):
    x = np.r_[-magnitudes[::-1], magnitudes]
    X = np.zeros((x.size, 6))
    X[:, 0] = x
    y = (x > 0).astype(int)
    return X, y


@pytest.fixture
def one_feature_split():
    """
    100 training rows and 20 held-out rows; only the first feature varies
    and the label is 1 exactly when it is positive.
    """
    X_train, y_train = _one_feature(np.linspace(0.2, 2.0, 50))
    X_test, y_test = _one_feature(np.linspace(0.25, 1.9, 10))
    return X_train, y_train, X_test, y_test

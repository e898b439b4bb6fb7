import threading
import warnings

import numpy as np
import pandas as pd
import pytest
from sklearn.linear_model import LogisticRegression

from neohazard import (
    DegenerateInputWarning,
    NonConvergenceWarning,
    PredictiveEvaluator,
    RegularizedFitter,
    RunCancelledError,
    ShapeError,
)
from neohazard._math import _sigmoid
from neohazard.preprocessing import StandardScaler

STRENGTHS = [0.3, 0.1, 0.03, 0.01, 0.003]


def test_fit_is_deterministic(logistic_data):
    X, y, _ = logistic_data
    path_a = RegularizedFitter(l1_ratio=0.5).fit(X, y, STRENGTHS)
    path_b = RegularizedFitter(l1_ratio=0.5).fit(X, y, STRENGTHS)
    assert np.array_equal(path_a.coef_, path_b.coef_)
    assert np.array_equal(path_a.n_iter, path_b.n_iter)


def test_path_shape_and_convergence(logistic_data):
    X, y, _ = logistic_data
    path = RegularizedFitter().fit(X, y, STRENGTHS)
    assert path.coef_.shape == (7, len(STRENGTHS))
    assert len(path) == len(STRENGTHS)
    assert path.all_converged
    lams = [lam for lam, _ in path]
    assert lams == STRENGTHS
    assert np.array_equal(path.at(0.01), path.coefficients(3))
    with pytest.raises(KeyError):
        path.at(0.5)


def test_weak_penalty_recovers_generating_signs(logistic_data):
    X, y, beta = logistic_data
    coef = RegularizedFitter().fit(X, y, [0.1, 0.001]).coefficients(-1)
    strong = np.abs(beta[1:]) >= 0.5
    assert np.all(np.sign(coef[1:][strong]) == np.sign(beta[1:][strong]))


def test_lasso_kkt_conditions_hold(logistic_data):
    X, y, _ = logistic_data
    lam = 0.02
    coef = RegularizedFitter(standardize=False, tol=1e-9).fit(X, y, [lam]).coefficients(0)
    p = _sigmoid(coef[0] + X @ coef[1:])
    grad = X.T @ (p - y) / X.shape[0]
    assert abs(np.mean(p - y)) < 1e-6
    for j, w in enumerate(coef[1:]):
        if w != 0.0:
            assert grad[j] + lam * np.sign(w) == pytest.approx(0.0, abs=1e-5)
        else:
            assert abs(grad[j]) <= lam + 1e-6


def test_ridge_matches_sklearn(logistic_data):
    X, y, _ = logistic_data
    lam = 0.05
    coef = RegularizedFitter(l1_ratio=0.0, standardize=False, tol=1e-10).fit(X, y, [lam]).coefficients(0)
    # sklearn minimises 0.5 |w|^2 + C * sum(loss)
    ref = LogisticRegression(C=1.0 / (lam * X.shape[0]), tol=1e-12, max_iter=10_000).fit(X, y)
    assert coef[0] == pytest.approx(ref.intercept_[0], abs=1e-4)
    assert np.allclose(coef[1:], ref.coef_.ravel(), atol=1e-4)


def test_slopes_shrink_monotonically_with_penalty():
    rng = np.random.default_rng(3)
    X = np.zeros((300, 6))
    X[:, 0] = rng.standard_normal(300)
    y = (rng.random(300) < _sigmoid(2.0 * X[:, 0])).astype(int)
    strengths = np.logspace(0, -3, 25)
    with pytest.warns(DegenerateInputWarning):
        path = RegularizedFitter().fit(X, y, strengths)
    slope = path.coef_[1]
    # strengths decrease along the path, so |slope| must not decrease
    assert np.all(np.diff(np.abs(slope)) >= -1e-9)
    assert slope[0] == 0.0
    assert slope[-1] > 0.0
    assert np.all(path.coef_[2:] == 0.0)


def test_one_feature_example(one_feature_split):
    X_train, y_train, X_test, y_test = one_feature_split
    with pytest.warns(DegenerateInputWarning):
        path = RegularizedFitter().fit(X_train, y_train, [1.0, 0.1, 0.01])
    coef = path.coefficients(-1)
    assert coef[1] > 0.0
    result = PredictiveEvaluator().evaluate(coef, X_test, y_test)
    assert result.accuracy == 1.0


def test_constant_column_coefficient_is_exactly_zero(logistic_data):
    X, y, _ = logistic_data
    X = X.copy()
    X[:, 3] = 5.0
    with pytest.warns(DegenerateInputWarning):
        path = RegularizedFitter().fit(X, y, STRENGTHS)
    assert np.all(path.coef_[4] == 0.0)
    assert np.all(np.isfinite(path.coef_))


def test_single_class_labels_terminate():
    X = np.random.default_rng(0).standard_normal((50, 6))
    y = np.ones(50, dtype=int)
    with pytest.warns(DegenerateInputWarning):
        path = RegularizedFitter().fit(X, y, [1.0, 0.1])
    assert np.all(path.coef_[1:] == 0.0)
    assert np.all(path.coef_[0] > 10.0)
    assert path.all_converged


def test_iteration_cap_warns_and_tags(logistic_data):
    X, y, _ = logistic_data
    with pytest.warns(NonConvergenceWarning):
        path = RegularizedFitter(max_iter=1).fit(X, y, [0.01])
    assert not path.converged[0]
    assert np.all(np.isfinite(path.coef_))


def test_invalid_strengths_and_shapes(logistic_data):
    X, y, _ = logistic_data
    fitter = RegularizedFitter()
    with pytest.raises(ValueError):
        fitter.fit(X, y, [0.01, 0.1])
    with pytest.raises(ValueError):
        fitter.fit(X, y, [0.1, 0.1])
    with pytest.raises(ValueError):
        fitter.fit(X, y, [])
    with pytest.raises(ValueError):
        fitter.fit(X, y, [0.1, -0.1])
    with pytest.raises(ShapeError):
        fitter.fit(X, y[:-1], [0.1])
    with pytest.raises(ValueError):
        RegularizedFitter(l1_ratio=1.5)


def test_cancelled_fit_returns_nothing(logistic_data):
    X, y, _ = logistic_data
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(RunCancelledError):
        RegularizedFitter().fit(X, y, STRENGTHS, cancel=cancel)


def test_path_is_immutable_and_named(logistic_data):
    X, y, _ = logistic_data
    names = ["a", "b", "c", "d", "e", "f"]
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        path = RegularizedFitter().fit(pd.DataFrame(X, columns=names), y, [0.1, 0.01])
    with pytest.raises(ValueError):
        path.coef_[0, 0] = 1.0
    frame = path.to_frame()
    assert list(frame.index) == ["intercept"] + names
    assert list(frame.columns) == [0.1, 0.01]


def test_scaler_round_trip_of_coefficients():
    rng = np.random.default_rng(8)
    X = rng.normal(5.0, 3.0, size=(50, 3))
    X[:, 2] = 7.0
    scaler = StandardScaler().fit(X)
    assert scaler.scale_[2] == 1.0
    w, b = np.array([0.4, -1.2, 0.0]), 0.3
    w_raw, b_raw = scaler.unscale_coef(w, b)
    assert np.allclose(scaler.transform(X) @ w + b, X @ w_raw + b_raw)
    with pytest.raises(RuntimeError):
        StandardScaler().transform(X)

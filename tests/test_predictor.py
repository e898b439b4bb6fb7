import numpy as np
import pytest

from neohazard import ShapeError, hazard_probability, linear_predictor
from neohazard.predictor import add_intercept


def test_probability_matches_logistic_formula():
    beta = np.array([0.3, 1.0, -2.0, 0.5, 0.0, 0.1, -0.4])
    x = np.array([0.2, 0.1, -1.0, 3.0, 0.5, 0.7])
    z = beta[0] + x @ beta[1:]
    assert hazard_probability(beta, x) == pytest.approx(1.0 / (1.0 + np.exp(-z)))


def test_single_row_returns_float_and_matrix_returns_array():
    beta = np.zeros(7)
    assert isinstance(hazard_probability(beta, np.ones(6)), float)
    out = hazard_probability(beta, np.ones((4, 6)))
    assert out.shape == (4,)
    assert np.allclose(out, 0.5)


@pytest.mark.parametrize("scale", [1e3, 1e8, 1e300])
def test_probability_strictly_inside_unit_interval(scale):
    beta = np.array([0.0, scale, -scale, 0.0, 0.0, 0.0, 0.0])
    X = np.array([
        [1.0, -1.0, 0.0, 0.0, 0.0, 0.0],
        [-1.0, 1.0, 0.0, 0.0, 0.0, 0.0],
        [0.5, 0.0, 0.0, 0.0, 0.0, 0.0],
    ])
    p = hazard_probability(beta, X)
    assert np.all(p > 0.0)
    assert np.all(p < 1.0)


def test_linear_predictor_is_clamped():
    beta = np.array([100.0, 0, 0, 0, 0, 0, 0])
    assert linear_predictor(beta, np.zeros(6)) == 30.0
    assert linear_predictor(-beta, np.zeros(6)) == -30.0


def test_length_mismatch_raises_shape_error():
    beta = np.zeros(7)
    with pytest.raises(ShapeError):
        hazard_probability(beta, np.zeros(5))
    with pytest.raises(ShapeError):
        hazard_probability(beta, np.zeros((3, 7)))
    with pytest.raises(ShapeError):
        hazard_probability(np.zeros((2, 7)), np.zeros(6))


def test_add_intercept_prepends_ones():
    Xa = add_intercept(np.arange(6.0).reshape(2, 3))
    assert Xa.shape == (2, 4)
    assert np.all(Xa[:, 0] == 1.0)
    with pytest.raises(ShapeError):
        add_intercept(np.arange(3.0))

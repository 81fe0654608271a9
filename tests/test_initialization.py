import numpy as np
import pytest

from riskcd._math import _sigmoid
from riskcd.exceptions import ConfigurationError, DimensionMismatchError, NumericalError
from riskcd.initialization import (
    constant_columns,
    continuous_fit,
    initialize,
    randomized_round,
    rescale_to_range,
)
from riskcd.preprocessing import add_intercept


def _data(n=150, seed=2):
    rng = np.random.default_rng(seed)
    X = rng.integers(0, 2, size=(n, 3)).astype(float)
    y = (rng.random(n) < _sigmoid(-0.4 + X @ np.array([1.2, -0.8, 0.5]))).astype(float)
    return add_intercept(X), y, np.ones(n)


# Test 1
def test_randomized_round_stays_between_floor_and_ceil():
    rng = np.random.default_rng(0)
    v = np.array([-2.5, -0.2, 0.0, 1.7, 3.0])
    for _ in range(50):
        r = randomized_round(v, rng)
        assert np.all((r == np.floor(v)) | (r == np.ceil(v)))
    assert np.array_equal(randomized_round(np.array([4.0, -3.0]), rng), [4, -3])


# Test 2
def test_randomized_round_is_unbiased():
    rng = np.random.default_rng(1)
    r = randomized_round(np.full(20000, 0.3), rng)
    assert abs(r.mean() - 0.3) < 0.02


# Test 3
def test_rescale_to_range():
    beta = np.array([0.7, 2.0, -3.0])
    scaled, scalar = rescale_to_range(beta, -5, 5)
    assert scalar == 1.0 and np.array_equal(scaled, beta), "Integer betas within range are left alone"

    scaled, scalar = rescale_to_range(np.array([0.7, 0.5, 2.0, -4.0]), -10, 10)
    assert scalar == pytest.approx(2.5)
    assert np.max(np.abs(scaled[1:])) == pytest.approx(10.0)

    scaled, scalar = rescale_to_range(np.array([1.5, 0.0, 0.0]), -10, 10)
    assert scalar == 1.0 and np.array_equal(scaled, [1.5, 0.0, 0.0])


# Test 4
def test_initialize_from_user_beta_and_gamma():
    X, y, w = _data()
    gamma, beta = initialize(X, y, w, -5, 5, gamma=1.0, beta=np.array([0.3, 0.5, -2.2, 1.1]))
    assert beta.dtype == np.int64
    assert np.all((beta[1:] >= -5) & (beta[1:] <= 5))
    assert beta[2] == -5
    assert gamma == pytest.approx(2.2 / 5.0)


# Test 5
def test_initialize_from_user_beta_refits_gamma():
    X, y, w = _data()
    gamma, beta = initialize(X, y, w, -5, 5, beta=np.array([0, 2, -1, 1]))
    assert gamma > 0
    assert np.array_equal(beta[1:], [2, -1, 1])


# Test 6
def test_initialize_from_logistic_fit():
    X, y, w = _data()
    coef = continuous_fit(X, y, w)
    assert coef.shape == (4,)
    gamma, beta = initialize(X, y, w, -3, 3, coef=coef, rng=np.random.default_rng(0))
    assert gamma > 0
    assert np.all((beta[1:] >= -3) & (beta[1:] <= 3))
    assert np.max(np.abs(beta[1:])) == 3


# Test 7
def test_initialize_errors():
    X, y, w = _data(n=30)
    with pytest.raises(NumericalError):
        initialize(X, y, w, beta=np.array([0.0, np.nan, 1.0, 1.0]))
    with pytest.raises(ConfigurationError):
        initialize(X, y, w, gamma=-1.0, beta=np.zeros(4))
    with pytest.raises(DimensionMismatchError):
        initialize(X, y, w, beta=np.zeros(2))


# Test 8
def test_constant_feature_is_rejected():
    X, y, w = _data()
    X[:, 2] = 3.0
    assert constant_columns(X, w).tolist() == [2]
    coef = continuous_fit(X, y, w)
    assert np.isnan(coef[2]) and np.all(np.isfinite(np.delete(coef, 2)))
    with pytest.raises(NumericalError, match="single value"):
        initialize(X, y, w, coef=coef, rng=np.random.default_rng(0))
    with pytest.raises(NumericalError, match="single value"):
        initialize(X, y, w, beta=np.array([0, 2, -1, 1]))


# Test 9
def test_constant_columns_ignore_zero_weight_rows():
    X, y, w = _data()
    X[:, 1] = 1.0
    X[0, 1] = 0.0
    assert constant_columns(X, w).tolist() == []
    w[0] = 0.0
    assert constant_columns(X, w).tolist() == [1]

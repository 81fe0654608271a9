import numpy as np
import pandas as pd
import pytest

import riskcd.model_selection as ms
from riskcd import ConfigurationError, DimensionMismatchError, NumericalError
from riskcd._math import _sigmoid
from riskcd.metrics import binomial_deviance, roc_auc_score
from riskcd.model_selection import cross_validate, lambda_grid, stratified_folds
from riskcd.preprocessing import build_design

GRID = [0.0, 0.01, 0.1]


def _make_data(n=150, seed=0):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.integers(0, 2, size=(n, 4)), columns=["a1", "a2", "a3", "a4"])
    y = (rng.random(n) < _sigmoid(-0.3 + X.to_numpy() @ np.array([1.5, -1.0, 0.0, 2.0]))).astype(int)
    return X, y


def _quick(**kwargs):
    params = dict(n_train_runs=2, max_iters=20, a=-5, b=5)
    params.update(kwargs)
    return params


# Test 1
def test_stratified_folds_preserve_class_balance():
    rng = np.random.default_rng(0)
    y = (rng.random(200) < 0.3).astype(int)
    folds = stratified_folds(y, nfolds=5, seed=1)
    assert set(folds.tolist()) == set(range(5))
    pos, neg = y.sum(), (1 - y).sum()
    for f in range(5):
        in_fold = y[folds == f]
        assert abs(in_fold.sum() - pos / 5) <= 1
        assert abs((1 - in_fold).sum() - neg / 5) <= 1
    assert np.array_equal(folds, stratified_folds(y, nfolds=5, seed=1))


# Test 2
def test_stratified_folds_validation():
    with pytest.raises(ConfigurationError):
        stratified_folds(np.array([0, 1, 0, 1]), nfolds=1)
    with pytest.raises(ConfigurationError):
        stratified_folds(np.array([0, 1, 0, 1]), nfolds=5)


# Test 3
def test_lambda_grid_is_decreasing():
    X, y = _make_data()
    d = build_design(X, y)
    grid = lambda_grid(d.X, d.y, d.weights, nlambda=10)
    assert grid.shape == (10,)
    assert np.all(np.diff(grid) < 0)
    assert grid[-1] == pytest.approx(grid[0] * 1e-4)


# Test 4
def test_cross_validate_summary():
    X, y = _make_data()
    cv = cross_validate(X, y, nfolds=3, lambda0=GRID, seed=3, **_quick())
    assert cv.fold_deviance.shape == (3, 3)
    assert cv.available.all()
    assert np.all(np.isfinite(cv.mean_deviance))
    assert cv.lambda_min in GRID
    assert cv.lambda_1se >= cv.lambda_min
    assert cv.select("1se") == cv.lambda_1se
    with pytest.raises(ConfigurationError):
        cv.select("best")
    frame = cv.to_frame()
    assert list(frame.columns[:2]) == ["lambda0", "mean_deviance"]
    assert len(frame) == 3


# Test 5
def test_cross_validate_is_deterministic_and_parallel_safe():
    X, y = _make_data()
    seq = cross_validate(X, y, nfolds=3, lambda0=GRID, seed=11, n_jobs=1, **_quick())
    again = cross_validate(X, y, nfolds=3, lambda0=GRID, seed=11, n_jobs=1, **_quick())
    par = cross_validate(X, y, nfolds=3, lambda0=GRID, seed=11, n_jobs=2, **_quick())
    assert np.array_equal(seq.foldids, again.foldids)
    assert np.allclose(seq.fold_deviance, again.fold_deviance)
    assert np.allclose(seq.fold_deviance, par.fold_deviance)


# Test 6
def test_cross_validate_with_explicit_folds():
    X, y = _make_data()
    foldids = np.tile([10, 20, 30], 50)
    cv = cross_validate(X, y, foldids=foldids, lambda0=[0.0, 0.05], seed=0, **_quick())
    assert set(cv.foldids.tolist()) == {0, 1, 2}
    with pytest.raises(DimensionMismatchError):
        cross_validate(X, y, foldids=foldids[:-1], lambda0=[0.0], **_quick())
    with pytest.raises(ConfigurationError):
        cross_validate(X, y, foldids=np.zeros(150), lambda0=[0.0], **_quick())


# Test 7
def test_unavailable_lambda_is_skipped(monkeypatch):
    X, y = _make_data()
    real = ms.train_restarts

    def fails_at_large_penalty(*args, **kwargs):
        if kwargs["lambda0"] == 0.1:
            raise NumericalError("no usable start")
        return real(*args, **kwargs)

    monkeypatch.setattr(ms, "train_restarts", fails_at_large_penalty)
    cv = cross_validate(X, y, nfolds=3, lambda0=GRID, seed=3, **_quick())
    assert cv.available.tolist() == [True, True, False]
    assert np.isnan(cv.mean_deviance[2])
    assert cv.lambda_min != 0.1 and cv.lambda_1se != 0.1

    def always_fails(*args, **kwargs):
        raise NumericalError("no usable start")

    monkeypatch.setattr(ms, "train_restarts", always_fails)
    with pytest.raises(NumericalError):
        cross_validate(X, y, nfolds=3, lambda0=GRID, seed=3, **_quick())


# Test 8
def test_metrics():
    y = np.array([0, 1, 1, 0, 1])
    p = np.array([0.2, 0.7, 0.6, 0.4, 0.9])
    expected = -2 * np.mean(y * np.log(p) + (1 - y) * np.log(1 - p))
    assert binomial_deviance(y, p) == pytest.approx(expected)
    w = np.array([1.0, 2.0, 0.0, 1.0, 1.0])
    keep = w > 0
    weighted = -2 * np.sum(w[keep] * (y[keep] * np.log(p[keep]) + (1 - y[keep]) * np.log(1 - p[keep]))) / w.sum()
    assert binomial_deviance(y, p, w) == pytest.approx(weighted)
    assert roc_auc_score(y, p) == pytest.approx(1.0)
    assert roc_auc_score([0, 1, 0, 1], [0.5, 0.5, 0.2, 0.8]) == pytest.approx(0.875)
    with pytest.raises(ValueError):
        roc_auc_score([1, 1], [0.2, 0.3])

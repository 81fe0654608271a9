import numpy as np
import pandas as pd
import pytest

from riskcd import RiskScoreClassifier, RiskScoreCV
from riskcd._math import _sigmoid


def _make_data(n=160, seed=1):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame(rng.integers(0, 2, size=(n, 4)), columns=["f1", "f2", "f3", "f4"])
    y = (rng.random(n) < _sigmoid(-0.5 + X.to_numpy() @ np.array([2.0, -1.5, 0.0, 1.0]))).astype(int)
    return X, y


# Test 1
def test_classifier_fit_predict():
    X, y = _make_data()
    clf = RiskScoreClassifier(a=-5, b=5, n_train_runs=2, seed=0).fit(X, y)
    proba = clf.predict_proba(X)
    assert proba.shape == (160, 2)
    assert np.allclose(proba.sum(axis=1), 1.0)
    preds = clf.predict(X)
    assert set(np.unique(preds)).issubset({0, 1})
    assert 0.0 <= clf.score(X, y) <= 1.0
    assert clf.feature_names_ == ["f1", "f2", "f3", "f4"]
    assert np.array_equal(clf.classes_, [0, 1])
    assert np.allclose(_sigmoid(clf.decision_function(X)), proba[:, 1])


# Test 2
def test_classifier_tables():
    X, y = _make_data()
    clf = RiskScoreClassifier(a=-5, b=5, n_train_runs=2, seed=0).fit(X, y)
    card = clf.score_card_
    assert list(card.columns) == ["feature", "points"]
    assert set(card["feature"]).issubset(set(X.columns))
    score_map = clf.score_map_
    scores = clf.predict_score(X)
    for s in np.unique(scores):
        assert clf.risk_for_score(int(s)) == pytest.approx(
            score_map.loc[score_map["score"] == s, "risk"].iloc[0], abs=1e-4
        )


# Test 3
def test_classifier_params():
    clf = RiskScoreClassifier(lambda0=0.01, seed=3)
    params = clf.get_params()
    assert params["lambda0"] == 0.01 and params["seed"] == 3
    clf.set_params(lambda0=0.02, b=4)
    assert clf.lambda0 == 0.02 and clf.b == 4
    with pytest.raises(ValueError):
        clf.set_params(alpha=1.0)
    with pytest.raises(RuntimeError):
        clf.predict(pd.DataFrame({"f1": [1]}))


# Test 4
def test_cv_estimator_picks_from_grid():
    X, y = _make_data()
    est = RiskScoreCV(lambda0=[0.0, 0.02, 0.2], nfolds=3, cv_rule="1se",
                      a=-5, b=5, n_train_runs=2, max_iters=20, seed=4)
    est.fit(X, y)
    assert est.lambda0_ in (0.0, 0.02, 0.2)
    assert est.lambda0_ == est.cv_result_.lambda_1se
    assert est.model_.lambda0 == est.lambda0_
    assert est.predict_proba(X).shape == (160, 2)
    assert est.get_params()["cv_rule"] == "1se"

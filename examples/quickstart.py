"""
Quickstart example for the riskcd package.

Fits a small points table on synthetic binary data and prints the score card
and the score -> risk map. Run with:

    python examples/quickstart.py
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from riskcd import RiskScoreClassifier


def main() -> None:
    rng = np.random.default_rng(7)
    X = pd.DataFrame(
        rng.integers(0, 2, size=(200, 5)),
        columns=["age_over_60", "hypertension", "smoker", "diabetes", "prior_event"],
    )
    logit = -1.5 + 1.2 * X["age_over_60"] + 0.8 * X["hypertension"] + 1.6 * X["prior_event"]
    y = (rng.random(200) < 1.0 / (1.0 + np.exp(-logit))).astype(int)

    clf = RiskScoreClassifier(lambda0=0.005, a=-5, b=5, n_train_runs=5, seed=1234)
    clf.fit(X, y)

    print("score card:\n", clf.score_card_.to_string(index=False))
    print("score map:\n", clf.score_map_.to_string(index=False))
    print("risk for 3 points:", round(clf.risk_for_score(3), 4))
    print("accuracy:", clf.score(X, y))


if __name__ == "__main__":
    main()

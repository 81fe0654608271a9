"""
Low-level solvers for integer risk score models.

``_CDLogistic`` is a continuous weighted logistic regression used to seed the
integer search. ``_IntegerCD`` alternates exact integer coordinate updates of
the point vector ``beta`` with a 1-D update of the scale ``gamma``.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from ._math import (
    _LOGIT_BOUND,
    _objective,
    _sigmoid,
    _softplus,
)
from .exceptions import ConfigurationError, DimensionMismatchError, NumericalError

__all__ = [
    "OptimizerStatus",
    "_CDLogistic",
    "_IntegerCD",
    "_coordinate_search",
    "_update_gamma",
]

_MAX_STEP = 10.0


class _CDLogistic:
    """Coordinate descent for unpenalised weighted logistic regression."""

    def __init__(
        self,
        tol: float = 1e-6,
        max_iter: int = 1000,
        verbose: bool = False,
    ) -> None:
        self.tol = float(tol)
        self.max_iter = int(max_iter)
        self.verbose = bool(verbose)
        self.w_: Optional[np.ndarray] = None
        self.b_: float = 0.0
        self.n_iter_: int = 0

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        *,
        sample_weight: Optional[np.ndarray] = None,
    ) -> "_CDLogistic":
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)

        n, p = X.shape
        sw = np.ones(n, dtype=np.float64) if sample_weight is None else np.asarray(sample_weight, dtype=np.float64)
        w = np.zeros(p, dtype=np.float64)

        py = np.clip(np.average(y, weights=sw) if sw.sum() > 0 else np.mean(y), 1e-6, 1 - 1e-6)
        b = float(np.log(py / (1 - py)))

        z = X @ w + b
        p_hat = _sigmoid(z)

        for it in range(1, self.max_iter + 1):
            max_dw = 0.0
            for j in range(p):
                xj = X[:, j]
                wght = sw * p_hat * (1 - p_hat)
                h_j = max(float(np.mean(wght * xj * xj)), 1e-12)
                r_j = float(np.mean(sw * (p_hat - y) * xj))

                dw = float(np.clip(-r_j / h_j, -_MAX_STEP, _MAX_STEP))
                if dw != 0.0:
                    z += dw * xj
                    p_hat = _sigmoid(z)
                    w[j] += dw
                max_dw = max(max_dw, abs(dw))

            g_b = float(np.mean(sw * (p_hat - y)))
            h_b = max(float(np.mean(sw * p_hat * (1 - p_hat))), 1e-12)
            db = float(np.clip(g_b / h_b, -_MAX_STEP, _MAX_STEP))
            b -= db
            z -= db
            p_hat = _sigmoid(z)

            self.n_iter_ = it
            if max_dw <= self.tol and abs(db) <= self.tol:
                break

        if self.verbose:
            print(f"[init] logistic fit finished after {self.n_iter_} iterations")
        self.w_ = w
        self.b_ = b
        return self


# --------------------------------------------------------------------------- #
# Integer coordinate search
# --------------------------------------------------------------------------- #

def _candidate_losses(
    ks: np.ndarray,
    base: np.ndarray,
    xj: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    gamma: float,
    penalty: float,
) -> np.ndarray:
    """Loss of every integer value in ``ks`` for one coordinate."""
    ks = np.atleast_1d(np.asarray(ks, dtype=np.float64))
    z = gamma * (base[:, None] + xj[:, None] * ks[None, :])
    loss = weights[:, None] * (_softplus(z) - y[:, None] * z)
    return np.mean(loss, axis=0) + penalty * (ks != 0)


def _smallest_magnitude(values: np.ndarray) -> int:
    return int(values[int(np.argmin(np.abs(values)))])


def _coordinate_search(
    base: np.ndarray,
    xj: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    gamma: float,
    current: int,
    lo: int,
    hi: int,
    penalty: float = 0.0,
    max_enumerate: int = 64,
) -> Tuple[int, float, bool]:
    """
    Best integer value of one coefficient with every other value held fixed.

    ``base`` holds the unscaled scores with this coordinate removed, so the
    candidate ``k`` yields logits ``gamma * (base + k * xj)``. ``penalty`` is
    charged for every nonzero ``k`` (the L0 term of this coordinate).

    Returns ``(value, loss, improved)``. Among values whose loss ties with the
    minimum the smallest magnitude is returned; if every candidate ties with
    ``current`` the search is a no-op and ``improved`` is False.
    """
    def loss(ks):
        return _candidate_losses(ks, base, xj, y, weights, gamma, penalty)

    f_cur = float(loss(current)[0])

    if hi - lo + 1 <= max_enumerate:
        ks = np.arange(lo, hi + 1)
        vals = loss(ks)
        best = float(np.min(vals))
        tie = 1e-12 * max(1.0, abs(best))
        if float(np.max(vals)) - best <= tie and abs(f_cur - best) <= tie:
            return int(current), f_cur, False
        choice = _smallest_magnitude(ks[vals <= best + tie])
        f_choice = float(vals[choice - lo])
    else:
        # the unpenalised loss is convex in k: bisect on its forward difference
        def unpenalised(k):
            return float(_candidate_losses(k, base, xj, y, weights, gamma, 0.0)[0])

        tie = 1e-12 * max(1.0, abs(f_cur))
        left, right = lo, hi
        while left < right:
            mid = (left + right) // 2
            if unpenalised(mid + 1) - unpenalised(mid) >= -tie:
                right = mid
            else:
                left = mid + 1
        first_min = left
        left, right = first_min, hi
        while left < right:
            mid = (left + right) // 2
            if unpenalised(mid + 1) - unpenalised(mid) > tie:
                right = mid
            else:
                left = mid + 1
        last_min = left

        if first_min == lo and last_min == hi and penalty == 0.0 \
                and abs(unpenalised(lo) - f_cur) <= tie:
            return int(current), f_cur, False

        candidates = {int(np.clip(0, first_min, last_min))}
        if lo <= 0 <= hi:
            candidates.add(0)
        ks = np.array(sorted(candidates))
        vals = loss(ks)
        best = float(np.min(vals))
        tie = 1e-12 * max(1.0, abs(best))
        choice = _smallest_magnitude(ks[vals <= best + tie])
        f_choice = float(vals[int(np.where(ks == choice)[0][0])])

    if f_choice > f_cur + tie:
        return int(current), f_cur, False
    return choice, f_choice, f_choice < f_cur - tie


def _intercept_bounds(base: np.ndarray, gamma: float) -> Tuple[int, int]:
    """Integer intercept range outside of which every logit is saturated."""
    reach = _LOGIT_BOUND / gamma
    lo = int(math.floor(-float(np.max(base)) - reach))
    hi = int(math.ceil(-float(np.min(base)) + reach))
    return lo, hi


# --------------------------------------------------------------------------- #
# Scale update
# --------------------------------------------------------------------------- #

def _update_gamma(
    s: np.ndarray,
    y: np.ndarray,
    weights: np.ndarray,
    gamma0: float,
    *,
    max_iter: int = 50,
    tol: float = 1e-10,
) -> Tuple[float, bool]:
    """
    Minimise ``mean(w * logloss(y, sigmoid(gamma * s)))`` over ``gamma >= 0``.

    Safeguarded Newton inside a bisection bracket. Returns ``(gamma, ok)``;
    ``ok`` is False when all scores are equal, in which case ``gamma0`` is
    returned unchanged.
    """
    s = np.asarray(s, dtype=np.float64)
    if s.size == 0 or float(np.ptp(s)) == 0.0:
        return float(gamma0), False

    def grad(g):
        return float(np.mean(weights * s * (_sigmoid(g * s) - y)))

    def hess(g):
        p = _sigmoid(g * s)
        return float(np.mean(weights * s * s * p * (1 - p)))

    if grad(0.0) >= 0.0:
        return 0.0, True

    abs_s = np.abs(s)
    g_max = _LOGIT_BOUND / float(np.min(abs_s[abs_s > 0]))

    lo = 0.0
    hi = min(max(float(gamma0), 1.0), g_max)
    while grad(hi) < 0.0 and hi < g_max:
        lo = hi
        hi = min(2.0 * hi, g_max)
    if grad(hi) < 0.0:
        # scores separate the classes: the loss keeps falling up to saturation
        return g_max, True

    g = float(gamma0) if lo < gamma0 < hi else 0.5 * (lo + hi)
    for _ in range(max_iter):
        d = grad(g)
        if d < 0.0:
            lo = g
        else:
            hi = g
        if abs(d) <= tol or hi - lo <= tol * max(1.0, g):
            break
        h = hess(g)
        step = g - d / h if h > 0.0 else -1.0
        g = step if lo < step < hi else 0.5 * (lo + hi)
    return g, True


# --------------------------------------------------------------------------- #
# Coordinate descent
# --------------------------------------------------------------------------- #

class OptimizerStatus(Enum):
    INIT = "init"
    SWEEPING = "sweeping"
    CONVERGED = "converged"
    MAX_ITERS_REACHED = "max_iters_reached"


class _IntegerCD:
    """
    Coordinate descent over integer points with a continuous scale.

    Each sweep updates every coordinate of ``beta`` (intercept included) to
    its best integer value, in identity or shuffled order, then refreshes
    ``gamma`` once. Stops when a sweep lowers the penalised objective by less
    than ``tol`` (absolute or relative) or after ``max_iters`` sweeps.
    """

    def __init__(
        self,
        lambda0: float = 0.0,
        a: int = -10,
        b: int = 10,
        max_iters: int = 100,
        tol: float = 1e-5,
        shuffle: bool = True,
        max_enumerate: int = 64,
        verbose: bool = False,
    ) -> None:
        self.lambda0 = float(lambda0)
        self.a = int(a)
        self.b = int(b)
        self.max_iters = int(max_iters)
        self.tol = float(tol)
        self.shuffle = bool(shuffle)
        self.max_enumerate = int(max_enumerate)
        self.verbose = bool(verbose)
        self.status_ = OptimizerStatus.INIT
        self.gamma_: Optional[float] = None
        self.beta_: Optional[np.ndarray] = None
        self.objective_: float = math.inf
        self.trace_: List[float] = []
        self.n_iter_: int = 0

    def _validate(self, X, y, weights, gamma, beta) -> None:
        n, p = X.shape
        if beta.shape != (p,):
            raise DimensionMismatchError(f"beta must have length {p}, got shape {beta.shape}.")
        if y.shape != (n,) or weights.shape != (n,):
            raise DimensionMismatchError("y and weights must have one entry per row of X.")
        if self.a > self.b:
            raise ConfigurationError(f"Lower bound a={self.a} exceeds upper bound b={self.b}.")
        if not np.isfinite(gamma) or not np.all(np.isfinite(beta)):
            raise NumericalError("gamma and beta must be finite before optimisation.")
        if gamma < 0:
            raise ConfigurationError("gamma must be non-negative.")
        coef = beta[1:]
        if np.any(coef != np.round(coef)) or np.any(coef < self.a) or np.any(coef > self.b):
            raise ConfigurationError(f"beta[1:] must be integers within [{self.a}, {self.b}].")

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        weights: np.ndarray,
        gamma: float,
        beta: np.ndarray,
        *,
        rng: Optional[np.random.Generator] = None,
    ) -> "_IntegerCD":
        X = np.asarray(X, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        weights = np.asarray(weights, dtype=np.float64)
        beta = np.asarray(beta, dtype=np.float64).copy()
        gamma = float(gamma)

        self.status_ = OptimizerStatus.INIT
        self._validate(X, y, weights, gamma, beta)
        beta[0] = np.round(beta[0])
        if rng is None:
            rng = np.random.default_rng()

        n, p = X.shape
        scores = X @ beta
        obj = _objective(X, y, gamma, beta, weights, self.lambda0)
        self.trace_ = [obj]
        self.n_iter_ = 0
        self.status_ = OptimizerStatus.SWEEPING

        for it in range(1, self.max_iters + 1):
            obj_before = obj
            order = rng.permutation(p) if self.shuffle else np.arange(p)

            for j in order:
                xj = X[:, j]
                base = scores - beta[j] * xj
                if j == 0:
                    if gamma <= 0.0:
                        continue
                    lo, hi = _intercept_bounds(base, gamma)
                    penalty = 0.0
                else:
                    lo, hi = self.a, self.b
                    penalty = self.lambda0
                value, _, _ = _coordinate_search(
                    base, xj, y, weights, gamma, int(beta[j]), lo, hi,
                    penalty=penalty, max_enumerate=self.max_enumerate,
                )
                if value != beta[j]:
                    beta[j] = value
                    scores = base + value * xj

            gamma_new, ok = _update_gamma(scores, y, weights, gamma)
            if ok and gamma_new != gamma:
                obj_cur = _objective(X, y, gamma, beta, weights, self.lambda0)
                obj_new = _objective(X, y, gamma_new, beta, weights, self.lambda0)
                if obj_new <= obj_cur:
                    gamma = gamma_new

            obj = _objective(X, y, gamma, beta, weights, self.lambda0)
            self.trace_.append(obj)
            self.n_iter_ = it
            if self.verbose:
                print(f"[cd] sweep {it}: objective={obj:.6f} gamma={gamma:.4g} "
                      f"nonzero={int(np.count_nonzero(beta[1:]))}")

            decrease = obj_before - obj
            if decrease < self.tol or decrease / max(abs(obj_before), 1e-12) < self.tol:
                self.status_ = OptimizerStatus.CONVERGED
                break
        else:
            self.status_ = OptimizerStatus.MAX_ITERS_REACHED

        self.gamma_ = gamma
        self.beta_ = beta.astype(np.int64)
        self.objective_ = obj
        return self

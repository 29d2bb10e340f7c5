from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.optimize import minimize, nnls

from winprob.modeling.base import LearnerSpec
from winprob.modeling.errors import ConfigurationError, NumericalInstabilityError
from winprob.modeling.folds import assign_folds
from winprob.modeling.types import CombinationWeights, FoldAssignment

logger = logging.getLogger(__name__)

METHODS = ("nnls", "nnloglik")
DEFAULT_EPS = 1e-5


def simplex_project(v: np.ndarray) -> np.ndarray:
    """Project onto the probability simplex: w>=0, sum w = 1.

    Deterministic O(d log d) algorithm.
    """
    v = np.asarray(v, dtype=float)
    if v.ndim != 1:
        raise ValueError("v must be 1D")

    n = v.shape[0]
    if n == 0:
        raise ValueError("empty vector")

    u = np.sort(v)[::-1]
    cssv = np.cumsum(u)
    rho = np.nonzero(u * np.arange(1, n + 1) > (cssv - 1))[0]
    if len(rho) == 0:
        # fallback: uniform
        return np.ones(n) / n
    rho = rho[-1]
    theta = (cssv[rho] - 1.0) / float(rho + 1)
    w = np.maximum(v - theta, 0.0)

    s = w.sum()
    if s <= 0:
        return np.ones(n) / n
    return w / s


def _check_inputs(Z: np.ndarray, y: np.ndarray) -> None:
    if Z.ndim != 2:
        raise ValueError("Z must be 2D")
    if y.ndim != 1:
        raise ValueError("y must be 1D")
    if Z.shape[0] != y.shape[0]:
        raise ValueError("mismatched rows")
    if Z.shape[1] == 0:
        raise ConfigurationError("Z has no learner columns")

    bad_rows, bad_cols = np.nonzero(~np.isfinite(Z))
    if bad_rows.size:
        vals = [(int(r), int(c), float(Z[r, c])) for r, c in zip(bad_rows[:5], bad_cols[:5])]
        raise NumericalInstabilityError("Prediction matrix contains non-finite entries", values=vals)

    labels = set(np.unique(y).tolist())
    if not labels <= {0.0, 1.0}:
        raise NumericalInstabilityError("Labels must be binary 0/1", values=sorted(labels - {0.0, 1.0})[:5])


def _mse(Z: np.ndarray, y: np.ndarray, w: np.ndarray) -> float:
    return float(np.mean((Z @ w - y) ** 2))


def _nnls(Z: np.ndarray, y: np.ndarray) -> np.ndarray:
    try:
        w, _ = nnls(Z, y)
    except RuntimeError as e:
        raise NumericalInstabilityError(f"NNLS did not converge: {e}") from e
    if not np.all(np.isfinite(w)):
        raise NumericalInstabilityError("NNLS returned non-finite weights", values=w.tolist())
    return w


def _normalized(w: np.ndarray) -> np.ndarray:
    s = float(w.sum())
    if s <= 0:
        return np.ones(w.shape[0]) / w.shape[0]
    return w / s


def cv_nnls_risk(Z: np.ndarray, y: np.ndarray, folds: FoldAssignment) -> Tuple[float, float]:
    """Held-out squared error of raw vs sum-to-one NNLS weights.

    For every fold the weights are fit on the other folds' rows of Z and scored
    on the fold's own rows. Returns (raw_sse, normalized_sse) summed over folds.
    """
    if folds.n != Z.shape[0]:
        raise ConfigurationError(f"Fold plan covers {folds.n} rows but Z has {Z.shape[0]}")
    raw = norm = 0.0
    for _, tr, te in folds.iter_splits():
        w = _nnls(Z[tr], y[tr])
        if float(w.sum()) <= 0:
            w = _normalized(w)
        raw += float(np.sum((Z[te] @ w - y[te]) ** 2))
        norm += float(np.sum((Z[te] @ _normalized(w) - y[te]) ** 2))
    return raw, norm


def fit_nnls_weights(
    Z: np.ndarray, y: np.ndarray, folds: Optional[FoldAssignment] = None
) -> Tuple[np.ndarray, bool, float]:
    """Non-negative least squares of y on Z.

    Returns (weights, renormalized, mse). The weights are rescaled to sum to 1
    only when that lowers the cross-validated squared error over `folds`
    (default: contiguous 10-fold, or leave-one-out below 10 rows).
    """
    m = Z.shape[1]
    w = _nnls(Z, y)

    s = float(w.sum())
    if s <= 0:
        logger.warning("NNLS weights collapsed to zero; falling back to uniform weights")
        u = np.ones(m) / m
        return u, True, _mse(Z, y, u)

    if folds is None:
        folds = assign_folds(Z.shape[0], min(10, Z.shape[0]))
    raw_cv, norm_cv = cv_nnls_risk(Z, y, folds)
    logger.info(f"NNLS cross-validated SSE: raw={raw_cv:.6f} normalized={norm_cv:.6f} (sum w={s:.4f})")

    if norm_cv < raw_cv or np.isclose(norm_cv, raw_cv, rtol=1e-9, atol=1e-15):
        w_norm = w / s
        return w_norm, True, _mse(Z, y, w_norm)
    return w, False, _mse(Z, y, w)


def fit_nnloglik_weights(Z: np.ndarray, y: np.ndarray, *, eps: float = DEFAULT_EPS) -> Tuple[np.ndarray, float]:
    """Maximize the binomial log-likelihood of y under Z @ w with w on the simplex.

    Z is clamped to [eps, 1-eps] so every convex combination stays inside (0, 1).
    Returns (weights, negative mean log-likelihood).
    """
    eps = float(eps)
    if not 0.0 < eps < 0.5:
        raise ConfigurationError(f"eps must be in (0, 0.5), got {eps}")

    Zc = np.clip(Z, eps, 1.0 - eps)
    n, m = Zc.shape

    def nll(w: np.ndarray) -> float:
        p = np.clip(Zc @ w, eps, 1.0 - eps)
        return float(-np.mean(y * np.log(p) + (1.0 - y) * np.log1p(-p)))

    def grad(w: np.ndarray) -> np.ndarray:
        p = np.clip(Zc @ w, eps, 1.0 - eps)
        r = y / p - (1.0 - y) / (1.0 - p)
        return -(Zc.T @ r) / n

    w0 = np.ones(m) / m
    res = minimize(
        nll,
        w0,
        jac=grad,
        method="SLSQP",
        bounds=[(0.0, 1.0)] * m,
        constraints=[{"type": "eq", "fun": lambda w: np.sum(w) - 1.0, "jac": lambda w: np.ones_like(w)}],
        options={"maxiter": 1000, "ftol": 1e-12},
    )

    if not np.all(np.isfinite(res.x)):
        raise NumericalInstabilityError(f"Log-likelihood solver diverged: {res.message}", values=res.x.tolist())

    # SLSQP may leave ~1e-17 negatives or a sum off by rounding.
    w = simplex_project(res.x)
    f = nll(w)
    f0 = nll(w0)

    if not res.success:
        if not np.isfinite(f) or f > f0:
            raise NumericalInstabilityError(
                f"Log-likelihood solver failed to converge: {res.message}",
                values={"weights": w.tolist(), "nll": f, "nll_start": f0},
            )
        logger.warning(f"SLSQP stopped early ({res.message}); keeping improved weights, nll={f:.6f}")

    return w, f


def solve_weights(
    Z,
    y,
    method: str = "nnloglik",
    *,
    eps: float = DEFAULT_EPS,
    folds: Optional[FoldAssignment] = None,
) -> CombinationWeights:
    """Fit the meta-model over out-of-fold predictions.

    Z: DataFrame (n, L) with learner-name columns; y: (n,) binary labels.
    folds: plan used to cross-validate the nnls renormalization; usually the
    same plan that produced Z.
    """
    method = str(method or "").strip().lower()
    if method not in METHODS:
        raise ConfigurationError(f"method must be one of: {', '.join(METHODS)} (got {method!r})")

    if isinstance(Z, pd.DataFrame):
        names = [str(c) for c in Z.columns]
        Zm = Z.to_numpy(dtype=float)
    else:
        Zm = np.asarray(Z, dtype=float)
        names = [f"learner_{j}" for j in range(Zm.shape[1])] if Zm.ndim == 2 else []
    y = np.asarray(y, dtype=float).ravel()
    _check_inputs(Zm, y)

    if method == "nnls":
        w, renorm, obj = fit_nnls_weights(Zm, y, folds)
    else:
        w, obj = fit_nnloglik_weights(Zm, y, eps=eps)
        renorm = True

    weights = CombinationWeights(
        weights=pd.Series(w, index=names, name="weight"),
        method=method,
        renormalized=renorm,
        objective=obj,
    )
    logger.info(f"Combination weights ({method}): " + ", ".join(f"{k}={v:.4f}" for k, v in weights.weights.items()))
    return weights


@dataclass(frozen=True, eq=False)
class EnsembleModel:
    """Full-data learner models plus combination weights."""

    learners: Tuple[LearnerSpec, ...]
    full_models: Mapping[str, Any]
    weights: CombinationWeights
    feature_names: Tuple[str, ...] = ()

    def __post_init__(self):
        names = [s.name for s in self.learners]
        missing = [n for n in names if n not in self.full_models]
        if missing:
            raise ConfigurationError(f"No full-data model for learner(s): {missing}")
        unweighted = [n for n in names if n not in self.weights.weights.index]
        if unweighted:
            raise ConfigurationError(f"No combination weight for learner(s): {unweighted}")
        object.__setattr__(self, "full_models", dict(self.full_models))
        object.__setattr__(self, "feature_names", tuple(self.feature_names))

    @property
    def learner_names(self) -> List[str]:
        return [s.name for s in self.learners]

    def _matrix(self, X) -> np.ndarray:
        if isinstance(X, pd.DataFrame) and self.feature_names:
            missing = [c for c in self.feature_names if c not in X.columns]
            if missing:
                raise ConfigurationError(f"Missing feature column(s): {missing}")
            X = X[list(self.feature_names)]
        X = np.asarray(X, dtype=float)
        if X.ndim == 1:
            X = X.reshape(1, -1)
        if self.feature_names and X.shape[1] != len(self.feature_names):
            raise ConfigurationError(f"Expected {len(self.feature_names)} features, got {X.shape[1]}")
        return X

    def predict_components(self, X) -> pd.DataFrame:
        Xm = self._matrix(X)
        cols = {s.name: np.asarray(s.predict(self.full_models[s.name], Xm), dtype=float).ravel() for s in self.learners}
        return pd.DataFrame(cols, columns=self.learner_names)

    def predict(self, X) -> np.ndarray:
        comp = self.predict_components(X)
        w = self.weights.as_array(self.learner_names)
        return comp.to_numpy(dtype=float) @ w


def build_ensemble(stack, weights: CombinationWeights, feature_names: Sequence[str] = ()) -> EnsembleModel:
    return EnsembleModel(
        learners=tuple(stack.learners),
        full_models=stack.full_models,
        weights=weights,
        feature_names=tuple(feature_names),
    )

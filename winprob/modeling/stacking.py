"""Out-of-fold stacking.

Every (learner, fold) unit trains on rows outside the fold and predicts the rows
inside it. Units share nothing but read-only X/y and the fold plan, so they are
dispatched through joblib (threads by default) and merged into Z only after
all of them return.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from winprob.modeling.base import LearnerSpec, check_learners
from winprob.modeling.errors import ConfigurationError, LearnerTrainingFailure
from winprob.modeling.types import FoldAssignment

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class StackResult:
    Z: pd.DataFrame  # (n, L) out-of-fold predictions, columns = learner names
    full_models: Dict[str, Any]
    learners: Tuple[LearnerSpec, ...]
    folds: FoldAssignment

    @property
    def learner_names(self) -> List[str]:
        return [s.name for s in self.learners]


def _checked_predictions(spec: LearnerSpec, fold, model: Any, X: np.ndarray) -> np.ndarray:
    try:
        p = np.asarray(spec.predict(model, X), dtype=float).ravel()
    except Exception as e:
        raise LearnerTrainingFailure(spec.name, fold, f"predict raised {e!r}") from e

    if p.shape[0] != X.shape[0]:
        raise LearnerTrainingFailure(spec.name, fold, f"expected {X.shape[0]} predictions, got {p.shape[0]}")
    if not np.all(np.isfinite(p)):
        bad = int(np.sum(~np.isfinite(p)))
        raise LearnerTrainingFailure(spec.name, fold, f"{bad} non-finite predictions")
    return p


def _fit_fold(spec: LearnerSpec, fold: int, X: np.ndarray, y: np.ndarray, train_idx: np.ndarray, test_idx: np.ndarray):
    try:
        model = spec.train(X[train_idx], y[train_idx])
    except Exception as e:
        raise LearnerTrainingFailure(spec.name, fold, f"train raised {e!r}") from e

    p = _checked_predictions(spec, fold, model, X[test_idx])
    return spec.name, test_idx, p


def _fit_full(spec: LearnerSpec, X: np.ndarray, y: np.ndarray) -> Any:
    try:
        return spec.train(X, y)
    except Exception as e:
        raise LearnerTrainingFailure(spec.name, None, f"train raised {e!r}") from e


def fit_stack(
    X,
    y,
    learners: List[LearnerSpec],
    folds: FoldAssignment,
    *,
    n_jobs: int = 1,
    prefer: str = "threads",
    progress: bool = False,
) -> StackResult:
    """Build the out-of-fold matrix Z and the full-data model for each learner."""

    learners = check_learners(learners)
    index = X.index if isinstance(X, pd.DataFrame) else None
    X = np.asarray(X, dtype=float)
    y = np.asarray(y).ravel()

    if X.ndim != 2:
        raise ConfigurationError("X must be 2D")
    if X.shape[0] != y.shape[0]:
        raise ConfigurationError(f"X has {X.shape[0]} rows but y has {y.shape[0]}")
    if folds.n != X.shape[0]:
        raise ConfigurationError(f"Fold plan covers {folds.n} rows, data has {X.shape[0]}")

    units = [(spec, f, tr, te) for spec in learners for f, tr, te in folds.iter_splits()]
    logger.info(f"Stacking {len(learners)} learners x {folds.n_folds} folds ({len(units)} units, n_jobs={n_jobs})")

    # Barrier: Parallel returns only after every unit has finished (or one has raised).
    results = Parallel(n_jobs=n_jobs, prefer=prefer)(delayed(_fit_fold)(spec, f, X, y, tr, te) for spec, f, tr, te in units)

    Z = np.full((X.shape[0], len(learners)), np.nan)
    col = {spec.name: j for j, spec in enumerate(learners)}
    for name, test_idx, p in results:
        Z[test_idx, col[name]] = p

    full_models: Dict[str, Any] = {}
    for spec in tqdm(learners, desc="full-data fits", disable=not progress):
        full_models[spec.name] = _fit_full(spec, X, y)
        logger.info(f"Fitted full-data model: {spec.name}")

    Z_df = pd.DataFrame(Z, columns=[s.name for s in learners], index=index)
    return StackResult(Z=Z_df, full_models=full_models, learners=tuple(learners), folds=folds)

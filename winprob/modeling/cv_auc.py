"""Cross-validated AUC with influence-curve confidence intervals.

AUC is computed within each fold and averaged. The variance comes from the
influence curve of the AUC estimator in each fold, which accounts for the
predictions of a fold all coming from one model.
"""
from __future__ import annotations

import logging
from typing import List

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.metrics import roc_auc_score

from winprob.modeling.errors import ConfigurationError
from winprob.modeling.types import AUCReport, CombinationWeights, FoldAssignment, Interval, LearnerAUC

logger = logging.getLogger(__name__)


def _fold_ic_sq_mean(p: np.ndarray, y: np.ndarray, auc: float, w1: float, w0: float) -> float:
    """Mean squared influence-curve value for one fold."""

    n_pos = float(np.sum(y == 1))
    n_neg = float(np.sum(y == 0))
    n = p.shape[0]

    # ascending by prediction, positives before tied negatives
    asc = np.lexsort((-y, p))
    frac_neg_smaller = np.empty(n)
    frac_neg_smaller[asc] = np.cumsum(y[asc] == 0) / n_neg

    # descending by prediction, negatives before tied positives
    desc = np.lexsort((y, -p))
    frac_pos_larger = np.empty(n)
    frac_pos_larger[desc] = np.cumsum(y[desc] == 1) / n_pos

    ic = np.where(y == 1, w1 * (frac_neg_smaller - auc), w0 * (frac_pos_larger - auc))
    return float(np.mean(ic**2))


def cv_auc(
    predictions,
    labels,
    folds: FoldAssignment,
    *,
    confidence: float = 0.95,
    name: str = "",
) -> LearnerAUC:
    """Fold-averaged AUC, influence-curve SE and normal-approximation CI."""

    if not 0.0 < float(confidence) < 1.0:
        raise ConfigurationError(f"confidence must be in (0, 1), got {confidence}")

    p = np.asarray(predictions, dtype=float).ravel()
    y = np.asarray(labels, dtype=int).ravel()
    if p.shape != y.shape or folds.n != y.shape[0]:
        raise ConfigurationError("predictions, labels and fold plan must have the same length")

    n = y.shape[0]
    if not (np.any(y == 1) and np.any(y == 0)):
        raise ConfigurationError(f"AUC undefined for {name or 'predictions'}: labels contain a single class")
    w1 = n / float(np.sum(y == 1))
    w0 = n / float(np.sum(y == 0))

    fold_aucs: List[float] = []
    ic_terms: List[float] = []
    for f in range(folds.n_folds):
        mask = folds.folds == f
        yf = y[mask]
        if yf.min() == yf.max():
            raise ConfigurationError(f"AUC undefined for {name or 'predictions'}: fold {f} has a single class")
        pf = p[mask]
        auc_f = float(roc_auc_score(yf, pf))
        fold_aucs.append(auc_f)
        ic_terms.append(_fold_ic_sq_mean(pf, yf, auc_f, w1, w0))

    auc = float(np.mean(fold_aucs))
    se = float(np.sqrt(np.mean(ic_terms) / n))
    z = float(stats.norm.ppf(confidence + (1.0 - confidence) / 2.0))
    ci = Interval(low=max(0.0, auc - z * se), high=min(1.0, auc + z * se))
    return LearnerAUC(learner=name, auc=auc, se=se, ci=ci, fold_aucs=tuple(fold_aucs))


def evaluate_cv_auc(
    Z: pd.DataFrame,
    labels,
    folds: FoldAssignment,
    weights: CombinationWeights,
    *,
    confidence: float = 0.95,
) -> AUCReport:
    """Per-learner CV-AUC with CIs, plus the ensemble's point AUC."""

    y = np.asarray(labels, dtype=int).ravel()
    per_learner: List[LearnerAUC] = []
    for name in Z.columns:
        res = cv_auc(Z[name].to_numpy(dtype=float), y, folds, confidence=confidence, name=str(name))
        per_learner.append(res)
        logger.info(f"CV-AUC {name}: {res.auc:.4f} [{res.ci.low:.4f}, {res.ci.high:.4f}]")

    # The weights were optimized on Z itself, so treating Z @ w like another
    # out-of-fold column understates its variance. Only a point estimate is
    # reported; a CI would need a nested cross-validation layer.
    names = [str(c) for c in Z.columns]
    zw = Z.to_numpy(dtype=float) @ weights.as_array(names)
    if y.min() == y.max():
        raise ConfigurationError("AUC undefined: labels contain a single class")
    ens = LearnerAUC(learner="ensemble", auc=float(roc_auc_score(y, zw)))
    logger.info(f"Ensemble AUC (no CI without nested CV): {ens.auc:.4f}")

    return AUCReport(learners=tuple(per_learner), ensemble=ens, confidence=float(confidence))

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd


# Grid / calibration column names shared by grid.py and calibration.py
DIFF_COL = "score_differential"
TIME_COL = "time_left"
PRED_COL = "predicted_probability"
EMP_COL = "empirical_probability"


@dataclass(frozen=True)
class Interval:
    low: float
    high: float


@dataclass(frozen=True, eq=False)
class FoldAssignment:
    """Row index -> fold index in [0, n_folds)."""

    folds: np.ndarray
    n_folds: int
    shuffle: bool = False
    seed: Optional[int] = None

    def __post_init__(self):
        arr = np.asarray(self.folds, dtype=int).copy()
        arr.setflags(write=False)
        object.__setattr__(self, "folds", arr)

    @property
    def n(self) -> int:
        return int(self.folds.shape[0])

    def sizes(self) -> List[int]:
        return [int(c) for c in np.bincount(self.folds, minlength=self.n_folds)]

    def train_test_indices(self, fold: int) -> Tuple[np.ndarray, np.ndarray]:
        test = np.flatnonzero(self.folds == int(fold))
        train = np.flatnonzero(self.folds != int(fold))
        return train, test

    def iter_splits(self) -> Iterator[Tuple[int, np.ndarray, np.ndarray]]:
        for f in range(self.n_folds):
            tr, te = self.train_test_indices(f)
            yield f, tr, te


@dataclass(frozen=True, eq=False)
class CombinationWeights:
    """Meta-model mixing weights, indexed by learner name."""

    weights: pd.Series
    method: str
    renormalized: bool = False
    objective: float = float("nan")

    def __post_init__(self):
        object.__setattr__(self, "weights", self.weights.astype(float).copy())

    @property
    def names(self) -> List[str]:
        return [str(n) for n in self.weights.index]

    def as_array(self, order: List[str]) -> np.ndarray:
        return self.weights.reindex(order).to_numpy(dtype=float)

    def to_dict(self) -> dict:
        return {
            "method": self.method,
            "renormalized": bool(self.renormalized),
            "objective": float(self.objective),
            "weights": {k: float(v) for k, v in self.weights.items()},
        }


@dataclass(frozen=True)
class LearnerAUC:
    learner: str
    auc: float
    se: float = float("nan")
    ci: Optional[Interval] = None
    fold_aucs: Tuple[float, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AUCReport:
    learners: Tuple[LearnerAUC, ...]
    ensemble: LearnerAUC
    confidence: float = 0.95

    def get(self, name: str) -> LearnerAUC:
        for r in self.learners:
            if r.learner == name:
                return r
        raise KeyError(name)

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for r in list(self.learners) + [self.ensemble]:
            rows.append(
                {
                    "learner": r.learner,
                    "auc": r.auc,
                    "se": r.se,
                    "ci_low": r.ci.low if r.ci else np.nan,
                    "ci_high": r.ci.high if r.ci else np.nan,
                }
            )
        return pd.DataFrame(rows)

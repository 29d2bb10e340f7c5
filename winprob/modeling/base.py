from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

import numpy as np

from winprob.modeling.errors import ConfigurationError


TrainFn = Callable[[np.ndarray, np.ndarray], Any]
PredictFn = Callable[[Any, np.ndarray], np.ndarray]


@dataclass(frozen=True)
class LearnerSpec:
    """Uniform train/predict capability for one base learner.

    The stacking engine only ever calls `train(X, y)` and `predict(model, X)`;
    the model object is opaque to it.
    """

    name: str
    train: TrainFn
    predict: PredictFn


class BaseLearner(ABC):
    """Binary classifier adapter producing P(label == 1).

    Implementations build a fresh (unfitted) estimator per training call so that
    fold models never share state.
    """

    name: str
    version: str = "1"

    def __init__(self, *, seed: int = 0):
        self.seed = int(seed)

    @abstractmethod
    def make_estimator(self) -> Any:
        raise NotImplementedError

    def train(self, X: np.ndarray, y: np.ndarray) -> Any:
        est = self.make_estimator()
        est.fit(np.asarray(X, dtype=float), np.asarray(y, dtype=int))
        return est

    def predict(self, model: Any, X: np.ndarray) -> np.ndarray:
        proba = model.predict_proba(np.asarray(X, dtype=float))
        classes = list(getattr(model, "classes_", [0, 1]))
        if 1 not in classes:
            raise ValueError(f"{self.name}: model was trained without positive labels")
        return np.asarray(proba[:, classes.index(1)], dtype=float)

    def as_spec(self) -> LearnerSpec:
        return LearnerSpec(name=self.name, train=self.train, predict=self.predict)

    def diagnostics(self) -> Dict[str, Any]:
        return {"learner": self.name, "version": self.version, "seed": self.seed}


def check_learners(learners: List[LearnerSpec]) -> List[LearnerSpec]:
    """Reject empty or ambiguous learner sets (Z columns are keyed by name)."""

    learners = list(learners)
    if not learners:
        raise ConfigurationError("At least one learner is required")

    seen = set()
    for spec in learners:
        if not isinstance(spec, LearnerSpec):
            raise ConfigurationError(f"Expected LearnerSpec, got {type(spec).__name__}")
        if not spec.name:
            raise ConfigurationError("Learner names must be non-empty")
        if spec.name in seen:
            raise ConfigurationError(f"Duplicate learner name: {spec.name}")
        seen.add(spec.name)
    return learners

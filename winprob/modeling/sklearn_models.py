from __future__ import annotations

from typing import Callable, Dict, List, Sequence

from sklearn.dummy import DummyClassifier
from sklearn.ensemble import HistGradientBoostingClassifier, RandomForestClassifier
from sklearn.impute import SimpleImputer
from sklearn.linear_model import LogisticRegression
from sklearn.neural_network import MLPClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import PolynomialFeatures, SplineTransformer, StandardScaler

from winprob.modeling.base import BaseLearner, LearnerSpec
from winprob.modeling.errors import ConfigurationError


def _with_imputer(*steps):
    # Median is robust; also keeps behavior deterministic.
    named = [("imputer", SimpleImputer(strategy="median"))]
    named.extend(steps)
    return Pipeline(named)


class MeanLearner(BaseLearner):
    """Predicts the training prevalence. Useful as a floor for the ensemble."""

    name = "mean"

    def make_estimator(self):
        return DummyClassifier(strategy="prior")


class ElasticNetLearner(BaseLearner):
    name = "glmnet"

    def __init__(self, *, C: float = 1.0, l1_ratio: float = 0.5, seed: int = 0):
        super().__init__(seed=seed)
        self.C = float(C)
        self.l1_ratio = float(l1_ratio)

    def make_estimator(self):
        return _with_imputer(
            ("scale", StandardScaler()),
            (
                "model",
                LogisticRegression(
                    penalty="elasticnet",
                    solver="saga",
                    C=self.C,
                    l1_ratio=self.l1_ratio,
                    max_iter=5000,
                    random_state=self.seed,
                ),
            ),
        )


class GAMLearner(BaseLearner):
    """Additive cubic-spline logistic regression."""

    name = "gam"

    def __init__(self, *, n_knots: int = 5, C: float = 1.0, seed: int = 0):
        super().__init__(seed=seed)
        self.n_knots = int(n_knots)
        self.C = float(C)

    def make_estimator(self):
        return _with_imputer(
            ("splines", SplineTransformer(n_knots=self.n_knots, degree=3)),
            ("model", LogisticRegression(C=self.C, max_iter=5000)),
        )


class MARSLearner(BaseLearner):
    """Piecewise-linear hinge basis with pairwise interactions, logistic link.

    Stands in for multivariate adaptive regression splines; knots are fixed on a
    uniform grid instead of being searched greedily.
    """

    name = "mars"

    def __init__(self, *, n_knots: int = 8, C: float = 1.0, seed: int = 0):
        super().__init__(seed=seed)
        self.n_knots = int(n_knots)
        self.C = float(C)

    def make_estimator(self):
        return _with_imputer(
            ("hinges", SplineTransformer(n_knots=self.n_knots, degree=1, knots="uniform")),
            ("interactions", PolynomialFeatures(degree=2, interaction_only=True, include_bias=False)),
            ("scale", StandardScaler()),
            ("model", LogisticRegression(C=self.C, max_iter=5000)),
        )


class RandomForestLearner(BaseLearner):
    name = "random_forest"

    def __init__(
        self,
        *,
        n_estimators: int = 500,
        max_depth: int | None = None,
        min_samples_leaf: int = 5,
        n_jobs: int = 1,
        seed: int = 0,
    ):
        super().__init__(seed=seed)
        self.n_estimators = int(n_estimators)
        self.max_depth = max_depth
        self.min_samples_leaf = int(min_samples_leaf)
        self.n_jobs = int(n_jobs)

    def make_estimator(self):
        return _with_imputer(
            (
                "model",
                RandomForestClassifier(
                    n_estimators=self.n_estimators,
                    max_depth=self.max_depth,
                    min_samples_leaf=self.min_samples_leaf,
                    random_state=self.seed,
                    n_jobs=self.n_jobs,
                ),
            ),
        )


class GBTLearner(BaseLearner):
    """Gradient boosted trees (sklearn HistGradientBoostingClassifier)."""

    name = "gbt"

    def __init__(
        self,
        *,
        max_depth: int = 4,
        learning_rate: float = 0.05,
        max_iter: int = 300,
        min_samples_leaf: int = 20,
        seed: int = 0,
    ):
        super().__init__(seed=seed)
        self.max_depth = int(max_depth)
        self.learning_rate = float(learning_rate)
        self.max_iter = int(max_iter)
        self.min_samples_leaf = int(min_samples_leaf)

    def make_estimator(self):
        # Handles NaN natively, no imputer needed.
        return HistGradientBoostingClassifier(
            max_depth=self.max_depth,
            learning_rate=self.learning_rate,
            max_iter=self.max_iter,
            min_samples_leaf=self.min_samples_leaf,
            random_state=self.seed,
        )


class NeuralNetLearner(BaseLearner):
    name = "nnet"

    def __init__(self, *, hidden: Sequence[int] = (8,), alpha: float = 1e-3, seed: int = 0):
        super().__init__(seed=seed)
        self.hidden = tuple(int(h) for h in hidden)
        self.alpha = float(alpha)

    def make_estimator(self):
        return _with_imputer(
            ("scale", StandardScaler()),
            (
                "model",
                MLPClassifier(
                    hidden_layer_sizes=self.hidden,
                    alpha=self.alpha,
                    max_iter=2000,
                    random_state=self.seed,
                ),
            ),
        )


def _xgboost(seed: int = 0) -> BaseLearner:
    # Optional dependency; only imported when requested.
    from winprob.modeling.xgb_models import XGBoostLearner

    return XGBoostLearner(seed=seed)


LEARNER_REGISTRY: Dict[str, Callable[..., BaseLearner]] = {
    "mean": MeanLearner,
    "glmnet": ElasticNetLearner,
    "gam": GAMLearner,
    "mars": MARSLearner,
    "random_forest": RandomForestLearner,
    "gbt": GBTLearner,
    "nnet": NeuralNetLearner,
    "xgboost": _xgboost,
}

DEFAULT_LEARNERS: List[str] = ["mean", "glmnet", "gam", "mars", "random_forest", "gbt", "nnet"]


def register_learner(name: str, factory: Callable[..., BaseLearner]) -> None:
    if name in LEARNER_REGISTRY:
        raise ConfigurationError(f"Learner already registered: {name}")
    LEARNER_REGISTRY[name] = factory


def make_learners(names: Sequence[str] | None = None, *, seed: int = 0) -> List[LearnerSpec]:
    """Look up learners by name and bind the run's seed."""

    names = list(names) if names else list(DEFAULT_LEARNERS)
    unknown = [n for n in names if n not in LEARNER_REGISTRY]
    if unknown:
        raise ConfigurationError(
            f"Unknown learner(s): {unknown}. Registered: {sorted(LEARNER_REGISTRY)}"
        )
    return [LEARNER_REGISTRY[n](seed=seed).as_spec() for n in names]

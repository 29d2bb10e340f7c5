from __future__ import annotations

from winprob.modeling.base import BaseLearner


class XGBoostLearner(BaseLearner):
    """XGBoost binary classifier.

    Lazy-imports xgboost so the default learner set doesn't need the dependency.
    """

    name = "xgboost"

    def __init__(
        self,
        *,
        n_estimators: int = 400,
        learning_rate: float = 0.05,
        max_depth: int = 4,
        subsample: float = 0.8,
        colsample_bytree: float = 1.0,
        reg_lambda: float = 1.0,
        min_child_weight: float = 5.0,
        n_jobs: int = 1,
        seed: int = 0,
    ):
        super().__init__(seed=seed)
        self.params = {
            "n_estimators": int(n_estimators),
            "learning_rate": float(learning_rate),
            "max_depth": int(max_depth),
            "subsample": float(subsample),
            "colsample_bytree": float(colsample_bytree),
            "reg_lambda": float(reg_lambda),
            "min_child_weight": float(min_child_weight),
            "random_state": self.seed,
            "n_jobs": int(n_jobs),
            "objective": "binary:logistic",
            "eval_metric": "logloss",
        }

    def make_estimator(self):
        try:
            from xgboost import XGBClassifier
        except ImportError as e:
            raise RuntimeError("xgboost is not installed. Install with: pip install 'winprob-superlearner[xgboost]'") from e

        return XGBClassifier(**self.params)

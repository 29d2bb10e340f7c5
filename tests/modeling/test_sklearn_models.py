"""Unit tests for the registered base learners."""

import sys

import numpy as np
import pytest

from winprob.modeling.base import BaseLearner, LearnerSpec, check_learners
from winprob.modeling.errors import ConfigurationError
from winprob.modeling.sklearn_models import (
    DEFAULT_LEARNERS,
    LEARNER_REGISTRY,
    MeanLearner,
    make_learners,
    register_learner,
)


@pytest.fixture
def small_xy():
    rng = np.random.default_rng(0)
    X = np.column_stack([rng.integers(-5, 6, size=200), rng.integers(0, 21, size=200)]).astype(float)
    y = (X[:, 0] + rng.normal(0, 2, size=200) > 0).astype(int)
    return X, y


class TestRegistry:
    def test_default_names_resolve(self):
        specs = make_learners(seed=3)

        assert [s.name for s in specs] == DEFAULT_LEARNERS
        assert all(isinstance(s, LearnerSpec) for s in specs)

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError, match="Unknown learner"):
            make_learners(["glmnet", "svm"])

    def test_register_rejects_duplicates(self):
        with pytest.raises(ConfigurationError):
            register_learner("mean", MeanLearner)

    def test_register_new_learner(self):
        class Prior(MeanLearner):
            name = "prior_copy"

        register_learner("prior_copy", Prior)
        try:
            assert [s.name for s in make_learners(["prior_copy"])] == ["prior_copy"]
        finally:
            LEARNER_REGISTRY.pop("prior_copy")

    def test_check_learners_type(self):
        with pytest.raises(ConfigurationError):
            check_learners([object()])


class TestLearners:
    """Each default learner trains and returns probabilities."""

    @pytest.mark.parametrize("name", DEFAULT_LEARNERS)
    def test_fit_predict_probabilities(self, name, small_xy):
        X, y = small_xy
        spec = make_learners([name], seed=0)[0]

        model = spec.train(X, y)
        p = spec.predict(model, X)

        assert p.shape == (200,)
        assert np.all((p >= 0.0) & (p <= 1.0))

    def test_fresh_estimator_per_training(self, small_xy):
        X, y = small_xy
        learner = LEARNER_REGISTRY["glmnet"](seed=0)

        a = learner.train(X, y)
        b = learner.train(X[:100], y[:100])

        assert a is not b

    def test_mean_learner_predicts_prevalence(self, small_xy):
        X, y = small_xy
        spec = MeanLearner().as_spec()

        p = spec.predict(spec.train(X, y), X)

        np.testing.assert_allclose(p, y.mean())

    def test_single_class_training_fails(self, small_xy):
        X, _ = small_xy
        spec = make_learners(["glmnet"])[0]

        with pytest.raises(ValueError):
            spec.train(X, np.zeros(len(X), dtype=int))

    def test_seed_is_threaded(self):
        learner = LEARNER_REGISTRY["random_forest"](seed=11)

        assert learner.make_estimator().named_steps["model"].random_state == 11
        assert isinstance(learner, BaseLearner)
        assert learner.diagnostics()["seed"] == 11


class TestXGBoost:
    def test_optional_xgboost_learner(self, small_xy):
        pytest.importorskip("xgboost")
        X, y = small_xy
        spec = make_learners(["xgboost"], seed=1)[0]

        p = spec.predict(spec.train(X, y), X)

        assert spec.name == "xgboost"
        assert np.all((p >= 0.0) & (p <= 1.0))

    def test_missing_xgboost_names_the_distribution_extra(self, monkeypatch):
        monkeypatch.setitem(sys.modules, "xgboost", None)
        learner = LEARNER_REGISTRY["xgboost"](seed=0)

        with pytest.raises(RuntimeError, match=r"pip install 'winprob-superlearner\[xgboost\]'"):
            learner.make_estimator()

"""Shared fixtures: synthetic game states and toy learners."""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from winprob.modeling.base import LearnerSpec  # noqa: E402


def _identity_train(X, y):
    return None


def perfect_learner(name: str = "perfect") -> LearnerSpec:
    """Column 0 of X is the label itself."""
    return LearnerSpec(name=name, train=_identity_train, predict=lambda m, X: np.asarray(X)[:, 0].astype(float))


def anti_learner(name: str = "anti") -> LearnerSpec:
    return LearnerSpec(name=name, train=_identity_train, predict=lambda m, X: 1.0 - np.asarray(X)[:, 0].astype(float))


def noise_learner(name: str = "noise", seed: int = 0) -> LearnerSpec:
    """Uniform noise keyed on column 1 (a row id), so it ignores the label."""

    def predict(model, X):
        ids = np.asarray(X)[:, 1].astype(int)
        return np.random.default_rng(seed).uniform(size=100_000)[ids]

    return LearnerSpec(name=name, train=_identity_train, predict=predict)


def memorizing_learner(name: str = "memo") -> LearnerSpec:
    """Predicts 1.0 for rows it trained on (by row id in column 1), else 0.0."""

    def train(X, y):
        return set(np.asarray(X)[:, 1].astype(int).tolist())

    def predict(seen, X):
        ids = np.asarray(X)[:, 1].astype(int)
        return np.array([1.0 if i in seen else 0.0 for i in ids])

    return LearnerSpec(name=name, train=train, predict=predict)


@pytest.fixture
def balanced_xy():
    """100 rows, alternating labels; X = [label, row_id]."""
    n = 100
    y = np.arange(n) % 2
    X = np.column_stack([y, np.arange(n)]).astype(float)
    return X, y


@pytest.fixture
def toy_learners():
    return [perfect_learner(), anti_learner(), noise_learner("noise_a", seed=1), noise_learner("noise_b", seed=2)]


@pytest.fixture
def game_states() -> pd.DataFrame:
    """Synthetic in-game states: leading side wins more often, late leads more so."""
    rng = np.random.default_rng(42)
    n = 400
    diff = rng.integers(-6, 7, size=n)
    time_left = rng.integers(0, 21, size=n)
    logit = 0.6 * diff * (1.0 + (20 - time_left) / 20.0)
    p_win = 1.0 / (1.0 + np.exp(-logit))
    u = rng.uniform(size=n)
    win = (u < p_win).astype(int)
    tie = ((~win.astype(bool)) & (u < p_win + 0.1)).astype(int)
    return pd.DataFrame(
        {
            "game_id": np.repeat(np.arange(n // 4), 4),
            "score_differential": diff,
            "time_left": time_left,
            "win": win,
            "tie": tie,
        }
    )

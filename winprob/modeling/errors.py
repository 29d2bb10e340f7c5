from __future__ import annotations

from typing import Any, Optional


class SuperLearnerError(Exception):
    """Base class for pipeline failures."""


class ConfigurationError(SuperLearnerError, ValueError):
    """Invalid fold counts, learner sets, ranges or bin widths.

    Raised before any training starts.
    """


class LearnerTrainingFailure(SuperLearnerError):
    """A learner failed on a specific fold (fold=None means the full-data refit)."""

    def __init__(self, learner: str, fold: Optional[int], reason: str):
        self.learner = learner
        self.fold = fold
        self.reason = reason
        where = "full-data refit" if fold is None else f"fold {fold}"
        super().__init__(f"Learner '{learner}' failed on {where}: {reason}")


class NumericalInstabilityError(SuperLearnerError, ArithmeticError):
    """Weight solver did not converge, or inputs make the objective undefined."""

    def __init__(self, message: str, *, values: Any = None):
        self.values = values
        if values is not None:
            message = f"{message} (offending values: {values!r})"
        super().__init__(message)


class DataJoinWarning(UserWarning):
    """Grid cells without an empirical counterpart. Expected; values stay missing."""

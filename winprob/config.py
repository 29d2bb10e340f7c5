from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from winprob.modeling.ensemble import DEFAULT_EPS, METHODS
from winprob.modeling.errors import ConfigurationError
from winprob.modeling.grid import check_grid_ranges
from winprob.modeling.sklearn_models import DEFAULT_LEARNERS


# Very fine bins: nearly one grid cell per bin, i.e. near-exact matching of
# predicted vs empirical. Use something like 0.05 for a smoothed curve.
DEFAULT_BIN_WIDTH = 1e-7
DEFAULT_TIME_LEFT_RANGE: Tuple[int, int] = (0, 60)


@dataclass(frozen=True)
class SuperLearnerConfig:
    n_folds: int = 10
    shuffle: bool = False
    seed: int = 0
    method: str = "nnloglik"
    eps: float = DEFAULT_EPS
    confidence: float = 0.95
    bin_width: float = DEFAULT_BIN_WIDTH
    time_left_range: Tuple[int, int] = DEFAULT_TIME_LEFT_RANGE
    # None: cover every differential observed in the data (mirrored for ties)
    differential_range: Optional[Tuple[int, int]] = None
    learners: Tuple[str, ...] = tuple(DEFAULT_LEARNERS)
    label_column: str = "win"
    tie_column: Optional[str] = None
    group_column: str = "game_id"
    differential_column: str = "score_differential"
    time_column: str = "time_left"
    # Empty: (differential_column, time_column)
    feature_columns: Tuple[str, ...] = ()
    n_jobs: int = 1

    def __post_init__(self):
        object.__setattr__(self, "time_left_range", tuple(self.time_left_range))
        if self.differential_range is not None:
            object.__setattr__(self, "differential_range", tuple(self.differential_range))
        object.__setattr__(self, "learners", tuple(self.learners))
        object.__setattr__(self, "feature_columns", tuple(self.feature_columns))

    def features(self) -> List[str]:
        return list(self.feature_columns) or [self.differential_column, self.time_column]

    def validate(self) -> "SuperLearnerConfig":
        if int(self.n_folds) < 2:
            raise ConfigurationError(f"n_folds must be >= 2, got {self.n_folds}")
        if self.method not in METHODS:
            raise ConfigurationError(f"method must be one of: {', '.join(METHODS)} (got {self.method!r})")
        if not 0.0 < float(self.bin_width) <= 1.0:
            raise ConfigurationError(f"bin_width must be in (0, 1], got {self.bin_width}")
        if not 0.0 < float(self.confidence) < 1.0:
            raise ConfigurationError(f"confidence must be in (0, 1), got {self.confidence}")
        if not self.learners:
            raise ConfigurationError("At least one learner is required")
        check_grid_ranges(self.time_left_range, self.differential_range)
        if int(self.n_jobs) == 0:
            raise ConfigurationError("n_jobs cannot be 0")
        return self

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for k, v in d.items():
            if isinstance(v, tuple):
                d[k] = list(v)
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SuperLearnerConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config key(s): {unknown}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Path) -> "SuperLearnerConfig":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Config file is not valid JSON: {path}: {e}") from e
        return cls.from_dict(data)

    def with_overrides(self, **overrides: Any) -> "SuperLearnerConfig":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

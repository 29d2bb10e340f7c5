from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from winprob.config import SuperLearnerConfig
from winprob.modeling.base import LearnerSpec, check_learners
from winprob.modeling.calibration import (
    calibration_bins,
    calibration_curve_bins,
    calibration_curve_df,
    calibration_error,
    empirical_rates,
)
from winprob.modeling.cv_auc import evaluate_cv_auc
from winprob.modeling.ensemble import EnsembleModel, build_ensemble, solve_weights
from winprob.modeling.errors import ConfigurationError
from winprob.modeling.folds import assign_folds
from winprob.modeling.grid import (
    build_grid,
    check_grid_ranges,
    differential_range_from_data,
    predict_tie_grid,
    predict_win_grid,
)
from winprob.modeling.sklearn_models import make_learners
from winprob.modeling.stacking import StackResult, fit_stack
from winprob.modeling.types import DIFF_COL, TIME_COL, AUCReport, CombinationWeights, FoldAssignment

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class PipelineResult:
    config: SuperLearnerConfig
    folds: FoldAssignment
    stack: StackResult
    weights: CombinationWeights
    ensemble: EnsembleModel
    auc: AUCReport
    win_grid: pd.DataFrame
    tie_grid: pd.DataFrame
    win_calibration: pd.DataFrame
    tie_calibration: Optional[pd.DataFrame]
    reliability: pd.DataFrame
    oof_frame: pd.DataFrame

    @property
    def Z(self) -> pd.DataFrame:
        return self.stack.Z

    def summary(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "n_obs": int(self.folds.n),
            "fold_sizes": self.folds.sizes(),
            "weights": self.weights.to_dict(),
            "ensemble_auc": self.auc.ensemble.auc,
            "learner_auc": {r.learner: r.auc for r in self.auc.learners},
            "win_calibration_error": calibration_error(self.win_calibration),
            "n_negative_tie_probabilities": int((self.tie_grid["predicted_probability"] < 0).sum()),
        }
        if self.tie_calibration is not None:
            out["tie_calibration_error"] = calibration_error(self.tie_calibration)
        return out

    def write(self, out_dir: Path) -> List[Path]:
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        tables = {
            "oof_predictions.csv": self.oof_frame,
            "auc.csv": self.auc.to_frame(),
            "win_grid.csv": self.win_grid,
            "tie_grid.csv": self.tie_grid,
            "calibration_win.csv": self.win_calibration,
            "reliability_oof.csv": self.reliability,
        }
        if self.tie_calibration is not None:
            tables["calibration_tie.csv"] = self.tie_calibration

        written: List[Path] = []
        for name, df in tables.items():
            p = out_dir / name
            df.to_csv(p, index=False)
            written.append(p)

        for name, payload in (
            ("weights.json", self.weights.to_dict()),
            ("config.json", self.config.to_dict()),
            ("summary.json", self.summary()),
        ):
            p = out_dir / name
            p.write_text(json.dumps(payload, indent=2, default=float))
            written.append(p)

        logger.info(f"Wrote {len(written)} artifacts -> {out_dir}")
        return written


def _grid_feature_builder(config: SuperLearnerConfig, features: List[str]):
    rename = {DIFF_COL: config.differential_column, TIME_COL: config.time_column}

    def build(grid: pd.DataFrame) -> pd.DataFrame:
        g = grid.rename(columns=rename)
        missing = [c for c in features if c not in g.columns]
        if missing:
            raise ConfigurationError(f"Grid cannot supply feature column(s) {missing}")
        return g[features]

    return build


def _labels(df: pd.DataFrame, column: str) -> np.ndarray:
    if column not in df.columns:
        raise ConfigurationError(f"Label column {column!r} not in dataset")
    y = df[column]
    if y.isna().any() or not set(pd.unique(y)) <= {0, 1}:
        raise ConfigurationError(f"Label column {column!r} must be binary 0/1 without missing values")
    return y.to_numpy(dtype=int)


def run_pipeline(
    df: pd.DataFrame,
    config: SuperLearnerConfig | None = None,
    learners: Optional[List[LearnerSpec]] = None,
    *,
    progress: bool = False,
) -> PipelineResult:
    """Dataset -> folds -> stack -> weights -> ensemble -> AUC, grids, calibration."""

    config = (config or SuperLearnerConfig()).validate()
    features = config.features()

    # Everything that can be rejected up front is rejected before training.
    missing = [c for c in features + [config.differential_column, config.time_column] if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Dataset lacks column(s): {sorted(set(missing))}")
    y = _labels(df, config.label_column)
    if config.tie_column is not None:
        _labels(df, config.tie_column)
    learners = check_learners(learners if learners is not None else make_learners(config.learners, seed=config.seed))
    diff_range = config.differential_range or differential_range_from_data(df, config.differential_column)
    check_grid_ranges(config.time_left_range, diff_range)

    df = df.reset_index(drop=True)
    if config.group_column in df.columns:
        logger.info(f"{len(df)} observations from {df[config.group_column].nunique()} groups ({config.group_column})")

    folds = assign_folds(len(df), config.n_folds, shuffle=config.shuffle, seed=config.seed if config.shuffle else None)

    stack = fit_stack(df[features], y, learners, folds, n_jobs=config.n_jobs, progress=progress)
    weights = solve_weights(stack.Z, y, config.method, eps=config.eps, folds=folds)
    ensemble = build_ensemble(stack, weights, feature_names=features)
    auc = evaluate_cv_auc(stack.Z, y, folds, weights, confidence=config.confidence)

    fb = _grid_feature_builder(config, features)
    win_grid = predict_win_grid(ensemble, config.time_left_range, diff_range, feature_builder=fb)
    tie_grid = predict_tie_grid(ensemble, build_grid(config.time_left_range, diff_range), feature_builder=fb)

    emp_win = empirical_rates(
        df, label=config.label_column, differential=config.differential_column, time_left=config.time_column
    )
    win_cal = calibration_bins(win_grid, emp_win, config.bin_width)

    tie_cal = None
    if config.tie_column is not None:
        emp_tie = empirical_rates(
            df, label=config.tie_column, differential=config.differential_column, time_left=config.time_column
        )
        tie_cal = calibration_bins(tie_grid, emp_tie, config.bin_width)

    oof_ensemble = stack.Z.to_numpy(dtype=float) @ weights.as_array(stack.learner_names)
    reliability = calibration_curve_df(calibration_curve_bins(y_true=y, p_pred=oof_ensemble))

    oof = stack.Z.copy()
    oof.insert(0, "fold", folds.folds)
    oof.insert(1, config.label_column, y)
    if config.group_column in df.columns:
        oof.insert(0, config.group_column, df[config.group_column].to_numpy())
    oof["ensemble"] = oof_ensemble

    return PipelineResult(
        config=config,
        folds=folds,
        stack=stack,
        weights=weights,
        ensemble=ensemble,
        auc=auc,
        win_grid=win_grid,
        tie_grid=tie_grid,
        win_calibration=win_cal,
        tie_calibration=tie_cal,
        reliability=reliability,
        oof_frame=oof,
    )

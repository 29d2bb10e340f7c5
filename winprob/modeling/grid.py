from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from winprob.modeling.errors import ConfigurationError
from winprob.modeling.types import DIFF_COL, PRED_COL, TIME_COL

logger = logging.getLogger(__name__)

FeatureBuilder = Callable[[pd.DataFrame], pd.DataFrame]


def _int_range(r: Sequence[int], what: str) -> Tuple[int, int]:
    try:
        lo, hi = r
    except (TypeError, ValueError):
        raise ConfigurationError(f"{what} range must be a (low, high) pair, got {r!r}") from None
    if int(lo) != lo or int(hi) != hi:
        raise ConfigurationError(f"{what} range bounds must be integers, got {r!r}")
    lo, hi = int(lo), int(hi)
    if lo > hi:
        raise ConfigurationError(f"{what} range is empty: low {lo} > high {hi}")
    return lo, hi


def check_grid_ranges(
    time_left_range: Sequence[int], differential_range: Optional[Sequence[int]] = None
) -> Tuple[Tuple[int, int], Optional[Tuple[int, int]]]:
    """Integer bounds for the win/tie grids, or ConfigurationError.

    The win grid covers d >= 0, so the differential range must reach 0.
    """
    t = _int_range(time_left_range, "time_left")
    if t[0] < 0:
        raise ConfigurationError(f"time_left cannot be negative, got {t[0]}")
    d = None
    if differential_range is not None:
        d = _int_range(differential_range, "score_differential")
        if d[1] < 0:
            raise ConfigurationError(
                f"score_differential range {differential_range!r} has no non-negative value for the win grid"
            )
    return t, d


def build_grid(time_left_range: Sequence[int], differential_range: Sequence[int]) -> pd.DataFrame:
    """Every (score differential, time left) combination, both bounds inclusive.

    Time counts down, so rows run from the most time left to the least.
    """
    t_lo, t_hi = _int_range(time_left_range, "time_left")
    d_lo, d_hi = _int_range(differential_range, "score_differential")
    if t_lo < 0:
        raise ConfigurationError(f"time_left cannot be negative, got {t_lo}")

    idx = pd.MultiIndex.from_product(
        [np.arange(d_lo, d_hi + 1), np.arange(t_hi, t_lo - 1, -1)],
        names=[DIFF_COL, TIME_COL],
    )
    grid = idx.to_frame(index=False)
    logger.info(f"Grid: {len(grid)} cells (diff {d_lo}..{d_hi}, time {t_hi}..{t_lo})")
    return grid


def differential_range_from_data(df: pd.DataFrame, column: str = DIFF_COL, *, symmetric: bool = True) -> Tuple[int, int]:
    """Integer range covering every observed differential.

    symmetric=True widens it to (-m, m) so every d has its mirror -d for ties.
    """
    vals = pd.to_numeric(df[column], errors="coerce").dropna()
    if vals.empty:
        raise ConfigurationError(f"No numeric values in column {column!r}")
    lo, hi = int(np.floor(vals.min())), int(np.ceil(vals.max()))
    if symmetric:
        m = max(abs(lo), abs(hi))
        return -m, m
    return lo, hi


def default_feature_builder(model) -> FeatureBuilder:
    names = list(getattr(model, "feature_names", ()) or [DIFF_COL, TIME_COL])

    def build(grid: pd.DataFrame) -> pd.DataFrame:
        missing = [c for c in names if c not in grid.columns]
        if missing:
            raise ConfigurationError(f"Grid lacks model feature column(s) {missing}; pass a feature_builder")
        return grid[names]

    return build


def predict_grid(model, grid: pd.DataFrame, *, feature_builder: Optional[FeatureBuilder] = None) -> pd.DataFrame:
    """Return a copy of `grid` with predicted_probability filled in."""

    fb = feature_builder or default_feature_builder(model)
    out = grid.copy()
    out[PRED_COL] = np.asarray(model.predict(fb(grid)), dtype=float)
    return out


def predict_win_grid(
    model,
    time_left_range: Sequence[int],
    differential_range: Sequence[int],
    *,
    feature_builder: Optional[FeatureBuilder] = None,
) -> pd.DataFrame:
    """Win-probability surface over non-negative differentials."""

    _, (d_lo, d_hi) = check_grid_ranges(time_left_range, differential_range)
    grid = build_grid(time_left_range, (max(0, d_lo), d_hi))
    return predict_grid(model, grid, feature_builder=feature_builder)


def predict_tie_grid(model, grid: pd.DataFrame, *, feature_builder: Optional[FeatureBuilder] = None) -> pd.DataFrame:
    """Tie probability from the two mirrored win predictions.

    For every cell with d >= 0: p_win = P(win | d), p_loss = P(win | -d) (the
    other side's view), tie = 1 - (p_win + p_loss). Negative values are left
    as-is; they mark miscalibration the calibration table should show.
    """
    fb = feature_builder or default_feature_builder(model)
    g = grid.loc[grid[DIFF_COL] >= 0].reset_index(drop=True)
    mirror = g.copy()
    mirror[DIFF_COL] = -mirror[DIFF_COL]

    p_win = np.asarray(model.predict(fb(g)), dtype=float)
    p_loss = np.asarray(model.predict(fb(mirror)), dtype=float)

    out = g.copy()
    out["p_win"] = p_win
    out["p_loss"] = p_loss
    out[PRED_COL] = 1.0 - (p_win + p_loss)

    n_neg = int((out[PRED_COL] < 0).sum())
    if n_neg:
        logger.warning(f"{n_neg} of {len(out)} tie probabilities are negative (p_win + p_loss > 1)")
    return out

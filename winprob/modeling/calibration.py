"""Calibration tables.

- Grid calibration: join grid predictions with empirical outcome rates at the
  same (differential, time left) and summarize per fixed-width probability bin.
- Reliability curve for labelled predictions (e.g. the ensemble's out-of-fold
  predictions).
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Iterable, Tuple

import numpy as np
import pandas as pd

from winprob.modeling.errors import ConfigurationError, DataJoinWarning
from winprob.modeling.types import DIFF_COL, EMP_COL, PRED_COL, TIME_COL

logger = logging.getLogger(__name__)

KEYS = [DIFF_COL, TIME_COL]
BIN_COLUMNS = ["bin_lower", "bin_upper", "mean_predicted", "mean_empirical", "count", "n_empirical"]


def empirical_rates(
    df: pd.DataFrame,
    *,
    label: str,
    differential: str = DIFF_COL,
    time_left: str = TIME_COL,
) -> pd.DataFrame:
    """Observed positive-outcome rate at each exact (differential, time left)."""

    missing = [c for c in (label, differential, time_left) if c not in df.columns]
    if missing:
        raise ConfigurationError(f"Missing column(s) for empirical rates: {missing}")

    g = df.groupby([differential, time_left])[label].agg(["mean", "size"]).reset_index()
    g.columns = [DIFF_COL, TIME_COL, EMP_COL, "n_obs"]
    return g


def _check_width(bin_width: float) -> float:
    w = float(bin_width)
    if not np.isfinite(w) or w <= 0.0 or w > 1.0:
        raise ConfigurationError(f"bin_width must be in (0, 1], got {bin_width}")
    return w


def _n_unit_bins(w: float) -> int:
    return int(np.ceil(round(1.0 / w, 9)))


def _floor_div(x: np.ndarray, w: float) -> np.ndarray:
    k = np.floor(x / w)
    # floor(x / w) can land one off when k*w is not exactly representable
    k = np.where(k * w > x, k - 1, k)
    return np.where((k + 1) * w <= x, k + 1, k)


def bin_index(p: np.ndarray, bin_width: float) -> np.ndarray:
    """Bin k covers [k*w, (k+1)*w); the last bin inside [0, 1] is cut at 1 and includes it.

    Values above 1 get bins of their own starting at 1, so a width that does
    not divide 1 never mixes them into the last unit-interval bin.
    """

    w = _check_width(bin_width)
    p = np.asarray(p, dtype=float)
    n_bins = _n_unit_bins(w)

    k = _floor_div(p, w)
    k = np.where(p > 1.0, n_bins + _floor_div(p - 1.0, w), k)
    k = np.where(p == 1.0, n_bins - 1, k)
    return k.astype(np.int64)


def bin_bounds(k: np.ndarray, bin_width: float) -> Tuple[np.ndarray, np.ndarray]:
    """(lower, upper) edges for the bins numbered by bin_index."""

    w = _check_width(bin_width)
    k = np.asarray(k, dtype=float)
    n_bins = _n_unit_bins(w)

    lower = np.where(k >= n_bins, 1.0 + (k - n_bins) * w, k * w)
    upper = np.where(k == n_bins - 1, 1.0, lower + w)
    return lower, upper


def calibration_bins(cells: pd.DataFrame, empirical: pd.DataFrame, bin_width: float) -> pd.DataFrame:
    """Per-bin mean predicted vs mean empirical probability.

    Cells without an empirical match keep NaN: they are counted but left out
    of mean_empirical. Predictions outside [0, 1] go to bins beyond that range.
    """
    w = _check_width(bin_width)

    for name, frame, cols in (("cells", cells, KEYS + [PRED_COL]), ("empirical", empirical, KEYS + [EMP_COL])):
        missing = [c for c in cols if c not in frame.columns]
        if missing:
            raise ConfigurationError(f"{name} table lacks column(s): {missing}")
    if empirical.duplicated(subset=KEYS).any():
        raise ConfigurationError("Empirical table has duplicate (differential, time left) keys")

    joined = cells[KEYS + [PRED_COL]].merge(empirical[KEYS + [EMP_COL]], on=KEYS, how="left")

    n_missing = int(joined[EMP_COL].isna().sum())
    if n_missing:
        warnings.warn(
            f"{n_missing} of {len(joined)} grid cells have no empirical counterpart",
            DataJoinWarning,
            stacklevel=2,
        )

    p = joined[PRED_COL].to_numpy(dtype=float)
    n_out = int(np.sum((p < 0.0) | (p > 1.0)))
    if n_out:
        logger.warning(f"{n_out} predictions outside [0, 1] binned beyond the unit interval")

    joined["bin"] = bin_index(p, w)
    agg = joined.groupby("bin").agg(
        mean_predicted=(PRED_COL, "mean"),
        mean_empirical=(EMP_COL, "mean"),
        count=(PRED_COL, "size"),
        n_empirical=(EMP_COL, "count"),
    )
    agg = agg.reset_index().sort_values("bin")

    agg["bin_lower"], agg["bin_upper"] = bin_bounds(agg["bin"].to_numpy(), w)

    return agg[BIN_COLUMNS].reset_index(drop=True)


def calibration_error(bins: pd.DataFrame) -> float:
    """Weighted mean |predicted - empirical| over bins with empirical data."""

    b = bins.dropna(subset=["mean_empirical"])
    wts = b["n_empirical"].to_numpy(dtype=float)
    if b.empty or wts.sum() <= 0:
        return float("nan")
    diff = np.abs(b["mean_predicted"].to_numpy(dtype=float) - b["mean_empirical"].to_numpy(dtype=float))
    return float(np.sum(wts * diff) / wts.sum())


@dataclass(frozen=True)
class CalibrationCurve:
    prob_pred: np.ndarray
    prob_true: np.ndarray
    count: np.ndarray


def calibration_curve_bins(*, y_true: Iterable[float], p_pred: Iterable[float], n_bins: int = 10) -> CalibrationCurve:
    """Reliability curve over n_bins equal-width bins of [0, 1].

    Bins follow bin_index: [a, b) with 1.0 in the last bin. Predictions are
    clipped to [0, 1] first, so nothing lands outside the curve.
    """

    y = np.asarray(list(y_true), dtype=float)
    p = np.asarray(list(p_pred), dtype=float)

    if y.shape != p.shape:
        raise ValueError("y_true and p_pred must have same shape")
    n_bins = int(n_bins)
    if n_bins < 1:
        raise ValueError(f"n_bins must be >= 1, got {n_bins}")

    p = np.clip(p, 0.0, 1.0)
    idx = np.clip(bin_index(p, 1.0 / n_bins), 0, n_bins - 1)

    count = np.bincount(idx, minlength=n_bins)
    with np.errstate(invalid="ignore", divide="ignore"):
        prob_pred = np.bincount(idx, weights=p, minlength=n_bins) / count
        prob_true = np.bincount(idx, weights=y, minlength=n_bins) / count

    # empty bins stay NaN
    return CalibrationCurve(prob_pred=prob_pred, prob_true=prob_true, count=count)


def calibration_curve_df(curve: CalibrationCurve) -> pd.DataFrame:
    n = len(curve.count)
    lower, upper = bin_bounds(np.arange(n), 1.0 / n)
    return pd.DataFrame(
        {
            "bin_lower": lower,
            "bin_upper": upper,
            "prob_pred": curve.prob_pred,
            "prob_true": curve.prob_true,
            "count": curve.count,
        }
    )

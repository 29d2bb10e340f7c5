"""Unit tests for calibration binning."""

import warnings

import numpy as np
import pandas as pd
import pytest

from winprob.modeling.calibration import (
    bin_index,
    calibration_bins,
    calibration_curve_bins,
    calibration_curve_df,
    calibration_error,
    empirical_rates,
)
from winprob.modeling.errors import ConfigurationError, DataJoinWarning
from winprob.modeling.types import DIFF_COL, EMP_COL, PRED_COL, TIME_COL


def _cells(preds):
    n = len(preds)
    return pd.DataFrame({DIFF_COL: np.arange(n), TIME_COL: np.zeros(n, dtype=int), PRED_COL: preds})


def _empirical(values, diffs=None):
    diffs = np.arange(len(values)) if diffs is None else np.asarray(diffs)
    return pd.DataFrame({DIFF_COL: diffs, TIME_COL: np.zeros(len(diffs), dtype=int), EMP_COL: values})


class TestBinIndex:
    def test_half_open_bins(self):
        np.testing.assert_array_equal(bin_index(np.array([0.0, 0.24, 0.25, 0.5, 0.99]), 0.25), [0, 0, 1, 2, 3])

    def test_one_is_in_last_bin(self):
        assert bin_index(np.array([1.0]), 0.25)[0] == 3
        assert bin_index(np.array([1.0]), 0.3)[0] == 3

    def test_out_of_range_kept(self):
        np.testing.assert_array_equal(bin_index(np.array([-0.1, 1.1]), 0.25), [-1, 4])

    def test_above_one_gets_own_bins_when_width_does_not_divide_one(self):
        np.testing.assert_array_equal(bin_index(np.array([0.95, 1.0, 1.05, 1.35]), 0.3), [3, 3, 4, 5])

    @pytest.mark.parametrize("width", [0.0, -0.1, 1.5, np.nan])
    def test_invalid_width(self, width):
        with pytest.raises(ConfigurationError):
            bin_index(np.array([0.5]), width)


class TestCalibrationBins:
    def test_identity_calibration(self):
        """Predicted == empirical everywhere gives equal means in every bin."""
        rng = np.random.default_rng(0)
        p = rng.uniform(size=500)

        bins = calibration_bins(_cells(p), _empirical(p), 0.05)

        np.testing.assert_allclose(bins["mean_predicted"], bins["mean_empirical"], atol=1e-12)
        assert bins["count"].sum() == 500
        assert calibration_error(bins) == pytest.approx(0.0, abs=1e-12)

    def test_missing_empirical_counted_not_averaged(self):
        cells = _cells([0.10, 0.12, 0.14])
        emp = _empirical([0.2, 0.4], diffs=[0, 1])

        with pytest.warns(DataJoinWarning, match="1 of 3"):
            bins = calibration_bins(cells, emp, 0.25)

        assert len(bins) == 1
        row = bins.iloc[0]
        assert row["count"] == 3
        assert row["n_empirical"] == 2
        assert row["mean_empirical"] == pytest.approx(0.3)
        assert row["mean_predicted"] == pytest.approx(0.12)

    def test_bin_without_any_empirical_is_missing(self):
        cells = _cells([0.1, 0.9])
        emp = _empirical([0.1], diffs=[0])

        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DataJoinWarning)
            bins = calibration_bins(cells, emp, 0.5)

        assert np.isnan(bins.iloc[1]["mean_empirical"])
        assert bins.iloc[1]["count"] == 1

    def test_bin_edges(self):
        bins = calibration_bins(_cells([0.25, 1.0]), _empirical([0.25, 1.0]), 0.25)

        assert list(bins["bin_lower"]) == [0.25, 0.75]
        assert list(bins["bin_upper"]) == [0.5, 1.0]

    def test_above_one_bin_edges(self):
        bins = calibration_bins(_cells([0.95, 1.05]), _empirical([1.0, 1.0]), 0.3)

        assert list(bins["bin_lower"]) == pytest.approx([0.9, 1.0])
        assert list(bins["bin_upper"]) == pytest.approx([1.0, 1.3])
        assert list(bins["mean_predicted"]) == pytest.approx([0.95, 1.05])

    def test_negative_predictions_reported(self):
        bins = calibration_bins(_cells([-0.05, 0.2]), _empirical([0.0, 0.2]), 0.1)

        assert bins.iloc[0]["bin_lower"] < 0
        assert bins.iloc[0]["mean_predicted"] == pytest.approx(-0.05)

    def test_fine_width_near_unique(self):
        p = np.array([0.1, 0.1000005, 0.5, 0.7])
        bins = calibration_bins(_cells(p), _empirical(p), 1e-7)

        assert len(bins) == 4
        assert (bins["count"] == 1).all()

    def test_duplicate_empirical_keys_rejected(self):
        with pytest.raises(ConfigurationError):
            calibration_bins(_cells([0.1, 0.2]), _empirical([0.1, 0.2], diffs=[0, 0]), 0.1)

    def test_missing_columns_rejected(self):
        with pytest.raises(ConfigurationError):
            calibration_bins(_cells([0.1]).drop(columns=[PRED_COL]), _empirical([0.1]), 0.1)


class TestEmpiricalRates:
    def test_rates_per_state(self):
        df = pd.DataFrame(
            {
                "lead": [1, 1, 1, 2, 2],
                "clock": [5, 5, 5, 3, 4],
                "won": [1, 0, 1, 1, 0],
            }
        )

        emp = empirical_rates(df, label="won", differential="lead", time_left="clock")

        assert list(emp.columns) == [DIFF_COL, TIME_COL, EMP_COL, "n_obs"]
        row = emp[(emp[DIFF_COL] == 1) & (emp[TIME_COL] == 5)].iloc[0]
        assert row[EMP_COL] == pytest.approx(2 / 3)
        assert row["n_obs"] == 3
        assert len(emp) == 3


class TestReliabilityCurve:
    def test_counts_and_means(self):
        curve = calibration_curve_bins(y_true=[0, 1, 1, 0], p_pred=[0.05, 0.95, 0.9, 0.15], n_bins=10)

        assert curve.count.sum() == 4
        assert curve.prob_true[9] == 1.0
        assert np.isnan(curve.prob_pred[5])

    def test_bins_are_left_closed_like_grid_bins(self):
        """0.25 opens bin 1 of 4, as in bin_index; 1.0 closes the last bin."""
        curve = calibration_curve_bins(y_true=[0, 1, 1], p_pred=[0.25, 0.5, 1.0], n_bins=4)

        np.testing.assert_array_equal(curve.count, [0, 1, 1, 1])
        assert curve.prob_pred[1] == 0.25

    def test_frame_carries_bin_edges(self):
        df = calibration_curve_df(calibration_curve_bins(y_true=[0, 1], p_pred=[0.1, 0.9], n_bins=4))

        assert list(df["bin_lower"]) == [0.0, 0.25, 0.5, 0.75]
        assert list(df["bin_upper"]) == [0.25, 0.5, 0.75, 1.0]
        assert df["count"].sum() == 2

"""Tests for timeline preprocessing utilities."""

from datetime import date

import numpy as np
import pytest

from src.utils.preprocessing import (
    add_months,
    add_years,
    age_in_years,
    chunk_dates,
    describe_interval,
    elapsed_days,
    moving_average,
    standardize_parameter_name,
    to_day_offsets,
)


# ------------------------------------------------------------------
# Parameter names
# ------------------------------------------------------------------

class TestStandardizeParameterName:
    @pytest.mark.parametrize("raw, expected", [
        ("HbA1c", "hba1c"),
        ("Hemoglobin A1c", "hba1c"),
        ("A1C", "hba1c"),
        ("LDL-C", "ldl_cholesterol"),
        ("  Fasting Blood Sugar ", "fasting_glucose"),
        ("Systolic Blood Pressure", "systolic_bp"),
        ("Vitamin D", "vitamin_d"),
    ])
    def test_aliases_and_normalization(self, raw, expected):
        assert standardize_parameter_name(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "---"])
    def test_empty_name_rejected(self, raw):
        with pytest.raises(ValueError):
            standardize_parameter_name(raw)


# ------------------------------------------------------------------
# Calendar arithmetic
# ------------------------------------------------------------------

class TestCalendar:
    def test_elapsed_days_across_leap_day(self):
        assert elapsed_days(date(2024, 2, 28), date(2024, 3, 1)) == 2
        assert elapsed_days(date(2023, 2, 28), date(2023, 3, 1)) == 1

    def test_elapsed_days_is_exact_difference(self):
        d1, d2 = date(2019, 12, 31), date(2024, 6, 1)
        assert elapsed_days(d1, d2) == (d2 - d1).days
        assert elapsed_days(d2, d1) == -(d2 - d1).days
        assert elapsed_days(d1, d1) == 0

    def test_add_years_leap_day_falls_back(self):
        assert add_years(date(2020, 2, 29), 1) == date(2021, 2, 28)
        assert add_years(date(2020, 2, 29), 4) == date(2024, 2, 29)

    def test_add_months_clamps_to_month_end(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 11, 15), 3) == date(2024, 2, 15)

    def test_age_in_years_counts_completed_years(self):
        birth = date(1979, 3, 10)
        assert age_in_years(birth, date(2024, 3, 9)) == 44
        assert age_in_years(birth, date(2024, 3, 10)) == 45

    def test_day_offsets(self):
        offsets = to_day_offsets([date(2024, 1, 1), date(2024, 1, 11), date(2024, 3, 1)])
        np.testing.assert_array_equal(offsets, [0, 10, 60])
        assert to_day_offsets([]).size == 0


# ------------------------------------------------------------------
# Smoothing
# ------------------------------------------------------------------

class TestMovingAverage:
    def test_linear_series_unchanged(self):
        values = [1.0, 2.0, 3.0, 4.0, 5.0]
        np.testing.assert_allclose(moving_average(values, 3), values)

    def test_spike_is_damped(self):
        smoothed = moving_average([1.0, 5.0, 1.0], 3)
        np.testing.assert_allclose(smoothed, [1.0, 7.0 / 3.0, 1.0])

    def test_window_one_is_identity(self):
        values = [3.0, 1.0, 4.0]
        np.testing.assert_allclose(moving_average(values, 1), values)

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            moving_average([1.0, 2.0], 0)


# ------------------------------------------------------------------
# Intervals and windows
# ------------------------------------------------------------------

class TestIntervals:
    @pytest.mark.parametrize("days, text", [
        (365, "every year"),
        (730, "every 2 years"),
        (1095, "every 3 years"),
        (1826, "every 5 years"),
        (3650, "every 10 years"),
        (182, "every 6 months"),
        (10, "every 10 days"),
    ])
    def test_describe_interval(self, days, text):
        assert describe_interval(days) == text

    def test_describe_interval_rejects_non_positive(self):
        with pytest.raises(ValueError):
            describe_interval(0)

    def test_chunk_dates(self):
        dates = [date(2024, 1, 15), date(2024, 2, 15), date(2024, 4, 15), date(2024, 5, 16)]
        assert chunk_dates(dates, 3) == [[0, 1, 2], [1, 2], [2, 3], [3]]

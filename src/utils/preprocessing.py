"""
Utility functions for preparing timeline data for analysis
"""

import calendar
import re
from datetime import date
from typing import Dict, List, Sequence

import numpy as np


# Free-text names seen in extracted lab reports -> canonical parameter keys
PARAMETER_ALIASES: Dict[str, str] = {
    'a1c': 'hba1c',
    'hb_a1c': 'hba1c',
    'hemoglobin_a1c': 'hba1c',
    'glycated_hemoglobin': 'hba1c',
    'glycosylated_hemoglobin': 'hba1c',
    'fbs': 'fasting_glucose',
    'fasting_blood_sugar': 'fasting_glucose',
    'fasting_plasma_glucose': 'fasting_glucose',
    'glucose_fasting': 'fasting_glucose',
    'ldl': 'ldl_cholesterol',
    'ldl_c': 'ldl_cholesterol',
    'hdl': 'hdl_cholesterol',
    'hdl_c': 'hdl_cholesterol',
    'cholesterol': 'total_cholesterol',
    'cholesterol_total': 'total_cholesterol',
    'tg': 'triglycerides',
    'sbp': 'systolic_bp',
    'systolic_blood_pressure': 'systolic_bp',
    'dbp': 'diastolic_bp',
    'diastolic_blood_pressure': 'diastolic_bp',
    'body_mass_index': 'bmi',
    'body_weight': 'weight',
    'serum_creatinine': 'creatinine',
    'prostate_specific_antigen': 'psa',
}


def standardize_parameter_name(name: str) -> str:
    """
    Normalize a parameter name to its canonical key

    Args:
        name: Name as produced by the extraction service

    Returns:
        Lower-case, underscore separated canonical key
    """
    key = re.sub(r'[^a-z0-9]+', '_', name.strip().lower()).strip('_')
    if not key:
        raise ValueError(f"Cannot standardize empty parameter name: {name!r}")
    return PARAMETER_ALIASES.get(key, key)


def elapsed_days(start: date, end: date) -> int:
    """Calendar days from start to end (negative when end precedes start)"""
    return (end - start).days


def add_years(start: date, years: int) -> date:
    """Same calendar day `years` later; Feb 29 falls back to Feb 28"""
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def add_months(start: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the last day of that month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def age_in_years(birth_date: date, on: date) -> int:
    """Completed years of age on the given date"""
    years = on.year - birth_date.year
    if add_years(birth_date, years) > on:
        years -= 1
    return years


def to_day_offsets(dates: Sequence[date]) -> np.ndarray:
    """Convert dates to day offsets from the first date (ordinal day count)"""
    if not dates:
        return np.array([], dtype=np.float64)
    origin = dates[0].toordinal()
    return np.array([d.toordinal() - origin for d in dates], dtype=np.float64)


def moving_average(values: Sequence[float], window: int = 3) -> np.ndarray:
    """
    Centered moving average with symmetric shrinking at the edges

    Each point is averaged with the same number of neighbours on both
    sides, so a straight line passes through unchanged and only noise
    is damped. Even window sizes are rounded up to the next odd size.

    Args:
        values: Series to smooth
        window: Window size (1 disables smoothing)

    Returns:
        Smoothed series of the same length
    """
    data = np.asarray(values, dtype=np.float64)
    if window < 1:
        raise ValueError(f"Smoothing window must be >= 1, got {window}")
    half = window // 2
    n = len(data)
    smoothed = np.empty(n, dtype=np.float64)
    for i in range(n):
        h = min(half, i, n - 1 - i)
        smoothed[i] = data[i - h:i + h + 1].mean()
    return smoothed


def describe_interval(days: int) -> str:
    """Plain-language description of a repeat interval, e.g. 'every 3 years'"""
    if days <= 0:
        raise ValueError(f"Interval must be positive, got {days} days")
    if days % 365 == 0 or days % 365 in (1, 2):
        years = round(days / 365.25)
        return "every year" if years == 1 else f"every {years} years"
    months = round(days / 30.44)
    if months >= 1 and abs(months * 30.44 - days) <= 3:
        if months == 12:
            return "every year"
        return "every month" if months == 1 else f"every {months} months"
    return "every day" if days == 1 else f"every {days} days"


def chunk_dates(dates: List[date], max_span_months: int) -> List[List[int]]:
    """
    Index windows of dates spanning at most `max_span_months`

    For each start index i, returns the indices j >= i whose date lies
    within `max_span_months` calendar months of dates[i]. Dates must be
    sorted ascending.
    """
    windows = []
    for i, start in enumerate(dates):
        limit = add_months(start, max_span_months)
        windows.append([j for j in range(i, len(dates)) if dates[j] <= limit])
    return windows

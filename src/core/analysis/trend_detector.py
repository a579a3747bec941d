"""
Trend Detector - infers the direction of change in one parameter's history

Algorithm:
  1. Fewer than `min_points` distinct days -> InsufficientData
  2. Smooth with a centered moving average
  3. Fit value vs. day offset by least squares; slope = rate of change
  4. t-test on the slope (p < alpha) decides whether the trend is real
  5. Direction follows the slope sign when significant, else stable
  6. Significance from the clinical threshold table; a >20% move inside
     any 3-month window is always high
  7. Confidence grows with point count and shrinks with residual spread

No single point may carry a trend on its own: the fit is repeated with
each point left out, and if dropping any one of them collapses or flips
the slope the series is reported as stable.
"""

import logging
from concurrent.futures import Executor
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import stats

from src.core.base_analyzer import BaseAnalyzer
from src.core.errors import AnalysisNote, InsufficientData, NoteKind
from src.core.guidelines.models import GuidelineRef
from src.core.risk.models import Evidence, RiskSignal, SignalKind
from src.core.timeline.models import DataPoint, TimelineSnapshot
from src.utils.preprocessing import chunk_dates, moving_average, to_day_offsets

from .models import Significance, Trend, TrendAnalysis, TrendDirection

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25

TrendResult = Union[Trend, InsufficientData]


class TrendDetector(BaseAnalyzer):
    """Per-parameter statistical trend inference over sparse, irregular series"""

    name = "trend"

    def __init__(self, config: Dict[str, Any] = None):
        super().__init__(config)
        self.window = self.config.get('smoothing_window', 3)
        self.alpha = self.config.get('significance_alpha', 0.05)
        self.min_points = max(3, self.config.get('min_points', 3))
        self.rapid_fraction = self.config.get('rapid_change_fraction', 0.20)
        self.rapid_window_months = self.config.get('rapid_change_window_months', 3)
        self.leverage_ratio = self.config.get('leverage_ratio', 0.25)
        self.confidence_scale = self.config.get('confidence_scale', 0.10)
        self.thresholds = self.config.get('clinical_thresholds', {})
        self.relative_thresholds = self.config.get(
            'default_relative_thresholds', {'moderate': 0.10, 'high': 0.25}
        )
        self.severity_by_significance = self.config.get(
            'severity_by_significance', {'low': 25.0, 'moderate': 55.0, 'high': 85.0}
        )

    # ------------------------------------------------------------------
    # Single parameter
    # ------------------------------------------------------------------

    def detect(self, points: Sequence[DataPoint]) -> TrendResult:
        """Infer the trend for one parameter's data points"""
        series = self._one_per_day(points)
        parameter = series[0].parameter_name if series else (
            points[0].parameter_name if points else "unknown"
        )
        if len(series) < self.min_points:
            return InsufficientData(
                parameter=parameter, point_count=len(series), required=self.min_points
            )

        dates = [p.date for p in series]
        x = to_day_offsets(dates)
        y = np.array([p.value for p in series], dtype=np.float64)
        unit = series[-1].unit
        rapid = self._rapid_change(dates, y)

        if np.ptp(y) == 0:
            return Trend(
                parameter=parameter,
                direction=TrendDirection.STABLE,
                rate_of_change=0.0,
                annual_rate=0.0,
                significance=Significance.HIGH if rapid else Significance.LOW,
                confidence=self._confidence(len(y), 0.0, y),
                p_value=1.0,
                rapid_change=rapid,
                unit=unit,
                data_points=tuple(series),
            )

        slope, intercept, p_value = self._fit(x, y)
        significant = p_value < self.alpha

        notes: Tuple[AnalysisNote, ...] = ()
        if significant and self._single_point_driven(x, y, slope):
            logger.info(
                "Trend for %s rests on a single point; reporting as stable", parameter
            )
            significant = False
            notes = (
                AnalysisNote(
                    kind=NoteKind.SINGLE_POINT_LEVERAGE,
                    message=(
                        "One result looks very different from the others. "
                        "We did not count it as a trend on its own."
                    ),
                    subject=parameter,
                ),
            )

        if significant:
            direction = TrendDirection.INCREASING if slope > 0 else TrendDirection.DECREASING
        else:
            direction = TrendDirection.STABLE

        annual_rate = slope * DAYS_PER_YEAR
        if rapid:
            significance = Significance.HIGH
        elif direction is TrendDirection.STABLE:
            significance = Significance.LOW
        else:
            significance = self._clinical_significance(parameter, annual_rate, y)

        residuals = y - (intercept + slope * x)
        confidence = self._confidence(len(y), float(np.std(residuals)), y)

        return Trend(
            parameter=parameter,
            direction=direction,
            rate_of_change=float(slope),
            annual_rate=float(annual_rate),
            significance=significance,
            confidence=confidence,
            p_value=float(p_value),
            rapid_change=rapid,
            unit=unit,
            data_points=tuple(series),
            notes=notes,
        )

    # ------------------------------------------------------------------
    # Whole snapshot
    # ------------------------------------------------------------------

    def analyze(
        self,
        snapshot: TimelineSnapshot,
        as_of: date,
        executor: Optional[Executor] = None,
        **context,
    ) -> TrendAnalysis:
        """
        Detect trends for every parameter in the snapshot.

        Parameters are independent; when an executor is given they are
        analyzed concurrently.
        """
        visible = snapshot.until(as_of)
        analysis = TrendAnalysis()

        histories = {}
        for parameter in visible.parameters():
            resolved, conflicts = visible.resolved_history(parameter)
            histories[parameter] = resolved
            analysis.conflicts.extend(conflicts)
            analysis.notes.extend(c.note for c in conflicts)

        if executor is not None:
            futures = {p: executor.submit(self.detect, pts) for p, pts in histories.items()}
            results = {p: f.result() for p, f in futures.items()}
        else:
            results = {p: self.detect(pts) for p, pts in histories.items()}

        for parameter in sorted(results):
            result = results[parameter]
            if isinstance(result, InsufficientData):
                analysis.insufficient.append(result)
                analysis.notes.append(result.note)
            else:
                analysis.trends.append(result)
                analysis.notes.extend(result.notes)

        logger.debug(
            "Trend analysis for %s: %d trends, %d insufficient, %d conflicts",
            snapshot.user_id,
            len(analysis.trends),
            len(analysis.insufficient),
            len(analysis.conflicts),
        )
        return analysis

    # ------------------------------------------------------------------
    # Risk signals
    # ------------------------------------------------------------------

    def adverse_direction(self, parameter: str) -> Optional[TrendDirection]:
        """Direction that counts as a worsening for this parameter (None = either)"""
        entry = self.thresholds.get(parameter)
        if not entry or 'adverse' not in entry:
            return None
        return TrendDirection(entry['adverse'])

    def is_concerning(self, trend: Trend) -> bool:
        if trend.rapid_change:
            return True
        if trend.direction is TrendDirection.STABLE:
            return False
        adverse = self.adverse_direction(trend.parameter)
        return adverse is None or adverse is trend.direction

    def severity(self, trend: Trend) -> float:
        """Trend risk normalized to [0, 100]"""
        base = self.severity_by_significance[trend.significance.value]
        return float(min(100.0, base * (0.6 + 0.4 * trend.confidence)))

    def to_signals(
        self,
        trends: Iterable[Trend],
        guideline_refs: Dict[str, List[GuidelineRef]],
        created_at: datetime,
    ) -> List[RiskSignal]:
        """One TREND signal per concerning trend"""
        signals = []
        for trend in trends:
            if not self.is_concerning(trend):
                continue
            if trend.rapid_change and trend.direction is TrendDirection.STABLE:
                title = f"{trend.parameter} changed quickly"
            else:
                title = f"{trend.parameter} is {trend.direction.value}"
            signals.append(
                RiskSignal(
                    kind=SignalKind.TREND,
                    severity=self.severity(trend),
                    subject=trend.parameter,
                    title=title,
                    evidence=Evidence(
                        data_points=trend.data_points,
                        trends=(trend,),
                        guideline_refs=tuple(guideline_refs.get(trend.parameter, ())),
                    ),
                    created_at=created_at,
                )
            )
        return signals

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _one_per_day(points: Sequence[DataPoint]) -> List[DataPoint]:
        """Sort by date and keep the last value seen for each day"""
        by_day: Dict[date, DataPoint] = {}
        for p in sorted(points, key=lambda p: p.date):
            by_day[p.date] = p
        return [by_day[d] for d in sorted(by_day)]

    def _smooth(self, y: np.ndarray) -> np.ndarray:
        return moving_average(y, min(self.window, len(y)))

    def _fit(self, x: np.ndarray, y: np.ndarray) -> Tuple[float, float, float]:
        result = stats.linregress(x, self._smooth(y))
        p_value = result.pvalue
        if not np.isfinite(p_value):
            p_value = 1.0
        return float(result.slope), float(result.intercept), float(p_value)

    def _single_point_driven(self, x: np.ndarray, y: np.ndarray, slope: float) -> bool:
        """True if removing any one point collapses or reverses the slope"""
        for i in range(len(x)):
            keep = np.arange(len(x)) != i
            x_i, y_i = x[keep], y[keep]
            if np.ptp(x_i) == 0:
                return True
            slope_i = np.polyfit(x_i, self._smooth(y_i), 1)[0]
            if slope_i * slope <= 0 or abs(slope_i) < self.leverage_ratio * abs(slope):
                return True
        return False

    def _rapid_change(self, dates: List[date], y: np.ndarray) -> bool:
        """More than `rapid_fraction` relative change within any rolling window"""
        for window in chunk_dates(dates, self.rapid_window_months):
            start = window[0]
            base = y[start]
            if base == 0:
                continue
            for j in window[1:]:
                if abs(y[j] - base) / abs(base) > self.rapid_fraction:
                    return True
        return False

    def _clinical_significance(
        self, parameter: str, annual_rate: float, y: np.ndarray
    ) -> Significance:
        magnitude = abs(annual_rate)
        entry = self.thresholds.get(parameter)
        if entry:
            moderate, high = entry['moderate'], entry['high']
        else:
            level = max(abs(float(np.mean(y))), 1e-9)
            moderate = self.relative_thresholds['moderate'] * level
            high = self.relative_thresholds['high'] * level

        if magnitude >= high:
            return Significance.HIGH
        if magnitude >= moderate:
            return Significance.MODERATE
        return Significance.LOW

    def _confidence(self, n: int, residual_std: float, y: np.ndarray) -> float:
        """More points and lower residual spread give higher confidence, in [0, 1]"""
        count_factor = 1.0 - np.exp(-n / 2.0)
        level = max(abs(float(np.mean(y))), float(np.std(y)), 1e-9)
        relative_spread = residual_std / level
        fit_factor = 1.0 / (1.0 + relative_spread / self.confidence_scale)
        return float(np.clip(count_factor * fit_factor, 0.0, 1.0))

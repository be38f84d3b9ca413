"""
Environment scoring and history analysis
"""

import statistics
import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta
from typing import Deque, List, Optional

from studyfocus.config import (
    HISTORY_MAX_LENGTH,
    LIGHT_WEIGHT,
    MOTION_WEIGHT,
    OPTIMAL_HOUR_MIN_SCORE,
    OPTIMAL_TIMES_LIMIT,
    OPTIMAL_TIMES_MIN_HISTORY,
    STATUS_GOOD_THRESHOLD,
    STATUS_OPTIMAL_THRESHOLD,
    STATUS_POOR_THRESHOLD,
    TREND_MARGIN,
    TREND_WINDOW,
)
from studyfocus.models import (
    DimensionAnalysis,
    EnvironmentAnalysis,
    EnvironmentExport,
    EnvironmentStatus,
    MotionLevel,
    OptimalStudyTime,
    OptimalStudyTimes,
    SensorSample,
    Trend,
    TrendDirection,
)
from studyfocus.utils import now_local, round_half_up, to_local


def get_overall_status(score: int) -> EnvironmentStatus:
    """Map an overall score to its status band."""
    if score >= STATUS_OPTIMAL_THRESHOLD:
        return EnvironmentStatus.OPTIMAL
    if score >= STATUS_GOOD_THRESHOLD:
        return EnvironmentStatus.GOOD
    if score >= STATUS_POOR_THRESHOLD:
        return EnvironmentStatus.POOR
    return EnvironmentStatus.CRITICAL


def analyze_lighting(light_level: Optional[float]) -> DimensionAnalysis:
    """
    Score a light percentage.

    Bands:
    - 50-80%: optimal reading light
    - 40-90%: good, with a nudge towards the optimal band
    - 25-40%: too dim
    - above 90%: too bright / glare
    - below 25%: unsuitable
    """
    if light_level is None:
        return DimensionAnalysis(
            score=50,
            issues=["Unable to measure light levels"],
            recommendations=["Manually check your lighting setup"],
        )

    if 50 <= light_level <= 80:
        return DimensionAnalysis(score=100)

    if 40 <= light_level <= 90:
        if light_level < 50:
            tip = "Consider increasing brightness slightly for optimal reading"
        else:
            tip = "Light level is a bit high - you may want to reduce glare"
        return DimensionAnalysis(score=80, recommendations=[tip])

    if 25 <= light_level < 40:
        return DimensionAnalysis(
            score=40,
            issues=["Lighting is too dim for comfortable reading"],
            recommendations=[
                "Increase room lighting or add a desk lamp",
                "Position yourself closer to a window if possible",
            ],
        )

    if light_level > 90:
        return DimensionAnalysis(
            score=40,
            issues=["Lighting is too bright and may cause glare"],
            recommendations=[
                "Reduce overhead lighting or move away from direct light",
                "Consider using blinds to control natural light",
            ],
        )

    return DimensionAnalysis(
        score=20,
        issues=["Lighting conditions are not suitable for studying"],
        recommendations=["Significant lighting adjustment needed"],
    )


def analyze_motion(motion_level: Optional[str]) -> DimensionAnalysis:
    """Score a motion level; anything unrecognised gets a neutral 50."""
    if motion_level == MotionLevel.LOW:
        return DimensionAnalysis(score=100)

    if motion_level == MotionLevel.MEDIUM:
        return DimensionAnalysis(
            score=70,
            recommendations=["Try to minimize movement for better focus"],
        )

    if motion_level == MotionLevel.HIGH:
        return DimensionAnalysis(
            score=30,
            issues=["High movement detected - may indicate distraction"],
            recommendations=[
                "Take a short break if feeling restless",
                "Consider changing your study position",
                "Ensure your study area is comfortable",
            ],
        )

    return DimensionAnalysis(score=50, issues=["Unable to measure movement levels"])


def _direction(recent: float, older: float) -> TrendDirection:
    if recent > older + TREND_MARGIN:
        return TrendDirection.IMPROVING
    if recent < older - TREND_MARGIN:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


class EnvironmentAnalyzer:
    """
    Turns sensor samples into environment scores and keeps a bounded
    history (newest first) for trends and optimal-time suggestions.
    """

    def __init__(self, max_history: int = HISTORY_MAX_LENGTH):
        self.max_history = max_history
        # appendleft keeps newest first; maxlen evicts the oldest from the right
        self._history: Deque[EnvironmentAnalysis] = deque(maxlen=max_history)
        self._lock = threading.RLock()

    def analyze(self, sample: SensorSample, timestamp: Optional[datetime] = None) -> EnvironmentAnalysis:
        """
        Score a sensor sample and record it in history.
        Never raises on missing or unrecognised readings.
        """
        light = analyze_lighting(sample.light_level)
        motion = analyze_motion(sample.motion_level)

        score = round_half_up(light.score * LIGHT_WEIGHT + motion.score * MOTION_WEIGHT)

        analysis = EnvironmentAnalysis(
            timestamp=to_local(timestamp) if timestamp else now_local(),
            light_level=sample.light_level,
            motion_level=sample.motion_level,
            light_score=light.score,
            motion_score=motion.score,
            score=score,
            status=get_overall_status(score),
            recommendations=tuple(light.recommendations + motion.recommendations),
            issues=tuple(light.issues + motion.issues),
        )

        with self._lock:
            self._history.appendleft(analysis)

        return analysis

    @property
    def latest(self) -> Optional[EnvironmentAnalysis]:
        with self._lock:
            return self._history[0] if self._history else None

    def get_history(self, limit: Optional[int] = None) -> List[EnvironmentAnalysis]:
        """Copy of the history, newest first"""
        with self._lock:
            history = list(self._history)
        return history[:limit] if limit is not None else history

    def clear_history(self):
        with self._lock:
            self._history.clear()

    def get_average_score(self, time_range: timedelta = timedelta(hours=24)) -> Optional[int]:
        """Rounded mean score over the given time range, None if nothing recorded"""
        cutoff = now_local() - time_range
        scores = [a.score for a in self.get_history() if a.timestamp > cutoff]
        if not scores:
            return None
        return round_half_up(statistics.mean(scores))

    def get_trends(self) -> Trend:
        """
        Compare the most recent window against the one before it.
        An empty older window counts as equal to the recent one.
        """
        history = self.get_history()

        if len(history) < TREND_WINDOW:
            return Trend(
                lighting=TrendDirection.INSUFFICIENT_DATA,
                motion=TrendDirection.INSUFFICIENT_DATA,
                overall=TrendDirection.INSUFFICIENT_DATA,
            )

        recent = history[:TREND_WINDOW]
        older = history[TREND_WINDOW:TREND_WINDOW * 2]

        def compare(field: str) -> TrendDirection:
            recent_avg = statistics.mean(getattr(a, field) for a in recent)
            if not older:
                return TrendDirection.STABLE
            older_avg = statistics.mean(getattr(a, field) for a in older)
            return _direction(recent_avg, older_avg)

        return Trend(
            lighting=compare("light_score"),
            motion=compare("motion_score"),
            overall=compare("score"),
        )

    def get_optimal_study_times(self) -> OptimalStudyTimes:
        """Best local hours of the day by average score"""
        history = self.get_history()

        if len(history) < OPTIMAL_TIMES_MIN_HISTORY:
            return OptimalStudyTimes(
                recommended=[],
                message="Not enough data to determine optimal study times",
            )

        hourly_scores = defaultdict(list)
        for analysis in history:
            hourly_scores[to_local(analysis.timestamp).hour].append(analysis.score)

        hourly_averages = {
            hour: statistics.mean(scores) for hour, scores in hourly_scores.items()
        }

        good_hours = sorted(
            ((hour, avg) for hour, avg in hourly_averages.items() if avg > OPTIMAL_HOUR_MIN_SCORE),
            key=lambda item: (-item[1], item[0]),
        )[:OPTIMAL_TIMES_LIMIT]

        recommended = [
            OptimalStudyTime(
                hour=hour,
                score=round_half_up(avg),
                time_range=f"{hour}:00 - {hour + 1}:00",
            )
            for hour, avg in good_hours
        ]

        if recommended:
            message = "Based on your environment data, these are your optimal study times"
        else:
            message = (
                "Your environment seems to vary throughout the day. "
                "Try different times to find what works best."
            )

        return OptimalStudyTimes(recommended=recommended, message=message)

    def export_data(self) -> EnvironmentExport:
        return EnvironmentExport(
            history=self.get_history(),
            trends=self.get_trends(),
            average_score=self.get_average_score(),
            optimal_times=self.get_optimal_study_times(),
            exported_at=now_local(),
        )

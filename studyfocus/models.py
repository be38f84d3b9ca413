"""
Data models for the StudyFocus backend
"""

from datetime import date, datetime
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field
from enum import Enum

from studyfocus.config import (
    DAILY_GOAL_SECONDS,
    DEFAULT_BREAK_MINUTES,
    DEFAULT_SESSION_MINUTES,
    WEEKLY_GOAL_SECONDS,
)


class MotionLevel(str, Enum):
    """Motion classification from the accelerometer"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EnvironmentStatus(str, Enum):
    """Coarse classification of the environment score"""
    OPTIMAL = "optimal"
    GOOD = "good"
    POOR = "poor"
    CRITICAL = "critical"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    INSUFFICIENT_DATA = "insufficient_data"


class SessionState(str, Enum):
    """States of the study/break cycle"""
    IDLE = "idle"
    ACTIVE = "active"
    PAUSED = "paused"
    BREAK = "break"
    COMPLETED = "completed"


class SessionEvent(str, Enum):
    """Events accepted by the session state machine"""
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    RESET = "reset"
    TICK = "tick"
    EXPIRE = "expire"  # time remaining reached zero


# ==================== ENVIRONMENT ====================

class SensorSample(BaseModel):
    """One sensor reading; levels may be missing or unrecognised"""
    model_config = {"frozen": True}

    light_level: Optional[float] = None  # 0-100 percentage
    motion_level: Optional[str] = None  # "low" / "medium" / "high"


class DimensionAnalysis(BaseModel):
    """Score plus guidance for a single dimension (light or motion)"""
    score: int
    recommendations: List[str] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)


class EnvironmentAnalysis(BaseModel):
    """Result of scoring one sensor sample"""
    model_config = {"frozen": True}

    timestamp: datetime
    light_level: Optional[float] = None
    motion_level: Optional[str] = None
    light_score: int
    motion_score: int
    score: int  # weighted: light 70%, motion 30%
    status: EnvironmentStatus
    recommendations: Tuple[str, ...] = ()
    issues: Tuple[str, ...] = ()


class Trend(BaseModel):
    lighting: TrendDirection
    motion: TrendDirection
    overall: TrendDirection


class OptimalStudyTime(BaseModel):
    hour: int  # 0-23, local time
    score: int
    time_range: str


class OptimalStudyTimes(BaseModel):
    recommended: List[OptimalStudyTime] = Field(default_factory=list)
    message: str


class EnvironmentExport(BaseModel):
    """Everything the analyzer knows, for backup or sharing"""
    history: List[EnvironmentAnalysis]
    trends: Trend
    average_score: Optional[int] = None
    optimal_times: OptimalStudyTimes
    exported_at: datetime


class SensorStatus(BaseModel):
    light_sensor: bool
    accelerometer: bool
    is_monitoring: bool


# ==================== SESSION TIMER ====================

class SessionConfig(BaseModel):
    """Session and break lengths; fixed for one session/break cycle"""
    model_config = {"frozen": True}

    session_duration_seconds: int
    break_duration_seconds: int = Field(default=0, ge=0)

    @classmethod
    def from_minutes(cls, session_minutes: float, break_minutes: float) -> "SessionConfig":
        return cls(
            session_duration_seconds=int(round(session_minutes * 60)),
            break_duration_seconds=int(round(break_minutes * 60)),
        )


class Rejection(BaseModel):
    """A transition the state machine refused"""
    state: SessionState
    event: SessionEvent
    reason: str


class TransitionResult(BaseModel):
    """Outcome of a timer command"""
    accepted: bool
    event: SessionEvent
    previous_state: SessionState
    state: SessionState
    time_remaining: int
    reason: Optional[str] = None
    session_completed: bool = False
    elapsed_study_seconds: Optional[int] = None  # set on end and on completion


class TimerSnapshot(BaseModel):
    """Read-only view of the timer for display"""
    state: SessionState
    time_remaining: int
    progress_percentage: float
    session_duration_seconds: int
    break_duration_seconds: int
    formatted_time: str
    subject: Optional[str] = None
    current_streak: int = 0


class SessionRecord(BaseModel):
    """Emitted when a study session finishes or is ended early"""
    started_at: datetime
    ended_at: datetime
    planned_seconds: int
    studied_seconds: int
    completed: bool
    subject: Optional[str] = None


class Preferences(BaseModel):
    """Stored user preferences; session lengths in minutes like the settings screen"""
    session_minutes: float = Field(default=DEFAULT_SESSION_MINUTES, gt=0)
    break_minutes: float = Field(default=DEFAULT_BREAK_MINUTES, ge=0)
    daily_goal_seconds: int = Field(default=DAILY_GOAL_SECONDS, gt=0)
    weekly_goal_seconds: int = Field(default=WEEKLY_GOAL_SECONDS, gt=0)

    def session_config(self) -> SessionConfig:
        return SessionConfig.from_minutes(self.session_minutes, self.break_minutes)


# ==================== API ====================

class StartSessionRequest(BaseModel):
    subject: Optional[str] = None


class SubjectRequest(BaseModel):
    subject: Optional[str] = None


class SessionConfigRequest(BaseModel):
    """User-facing session lengths in minutes"""
    session_minutes: float = Field(gt=0)
    break_minutes: float = Field(default=0, ge=0)


class PreferencesUpdate(BaseModel):
    """Partial preferences change; omitted fields keep their stored value"""
    session_minutes: Optional[float] = Field(default=None, gt=0)
    break_minutes: Optional[float] = Field(default=None, ge=0)
    daily_goal_seconds: Optional[int] = Field(default=None, gt=0)
    weekly_goal_seconds: Optional[int] = Field(default=None, gt=0)


class StoredSession(BaseModel):
    id: int
    started_at: datetime
    ended_at: datetime
    planned_seconds: int
    studied_seconds: int
    completed: bool
    subject: Optional[str] = None


class SubjectBreakdown(BaseModel):
    subject: str
    study_seconds: int
    sessions: int


class DayBreakdown(BaseModel):
    date: date
    study_seconds: int
    sessions: int


class DailySummary(BaseModel):
    date: date
    session_count: int
    completed_sessions: int
    total_study_seconds: int
    daily_goal_seconds: int
    daily_progress_percentage: float
    goal_achieved: bool
    subject_breakdown: List[SubjectBreakdown] = Field(default_factory=list)
    average_environment_score: Optional[int] = None
    environment_samples: int


class WeeklySummary(BaseModel):
    """Totals for the Sunday-to-Saturday week containing a date"""
    week_start: date
    week_end: date
    session_count: int
    completed_sessions: int
    total_study_seconds: int
    weekly_goal_seconds: int
    goal_achieved: bool
    daily_breakdown: List[DayBreakdown]
    subject_breakdown: List[SubjectBreakdown] = Field(default_factory=list)

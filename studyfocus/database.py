"""
Database setup and models for local storage
"""

import logging
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import create_engine, Column, Integer, Float, String, DateTime, Boolean, func
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from studyfocus.config import DAILY_GOAL_SECONDS, DATABASE_URL, WEEKLY_GOAL_SECONDS
from studyfocus.models import (
    DailySummary,
    DayBreakdown,
    EnvironmentAnalysis,
    Preferences,
    SessionRecord,
    StoredSession,
    SubjectBreakdown,
    WeeklySummary,
)
from studyfocus.utils import round_half_up, to_local

logger = logging.getLogger(__name__)

Base = declarative_base()


class EnvironmentSnapshotDB(Base):
    """Database model for environment analyses"""
    __tablename__ = "environment_snapshots"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    timestamp = Column(DateTime, index=True)  # naive local time
    light_level = Column(Float, nullable=True)
    motion_level = Column(String, nullable=True)
    light_score = Column(Integer)
    motion_score = Column(Integer)
    score = Column(Integer)
    status = Column(String)  # 'optimal', 'good', 'poor', 'critical'
    created_at = Column(DateTime, default=datetime.utcnow)


class StudySessionDB(Base):
    """Database model for finished study sessions"""
    __tablename__ = "study_sessions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    started_at = Column(DateTime, index=True)  # naive local time
    ended_at = Column(DateTime)
    planned_seconds = Column(Integer)
    studied_seconds = Column(Integer)
    completed = Column(Boolean, default=False)
    subject = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class PreferencesDB(Base):
    """Single-row table of user preferences"""
    __tablename__ = "preferences"

    id = Column(Integer, primary_key=True)
    session_minutes = Column(Float)
    break_minutes = Column(Float)
    daily_goal_seconds = Column(Integer)
    weekly_goal_seconds = Column(Integer)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def make_session_factory(database_url: str = DATABASE_URL) -> sessionmaker:
    """Create an engine for the URL and return a bound session factory"""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # readings are written from background threads
        connect_args["check_same_thread"] = False
    engine = create_engine(database_url, connect_args=connect_args)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(session_factory: sessionmaker):
    """Create all tables"""
    Base.metadata.create_all(bind=session_factory.kw["bind"])
    logger.info("Database initialized")


def _naive_local(dt: datetime) -> datetime:
    return to_local(dt).replace(tzinfo=None)


def save_environment_snapshot(db: Session, analysis: EnvironmentAnalysis) -> Optional[int]:
    row = EnvironmentSnapshotDB(
        timestamp=_naive_local(analysis.timestamp),
        light_level=analysis.light_level,
        motion_level=analysis.motion_level,
        light_score=analysis.light_score,
        motion_score=analysis.motion_score,
        score=analysis.score,
        status=analysis.status.value,
    )
    try:
        db.add(row)
        db.commit()
    except Exception:
        logger.exception("Error storing environment snapshot")
        db.rollback()
        return None
    return row.id


def save_study_session(db: Session, record: SessionRecord) -> Optional[int]:
    row = StudySessionDB(
        started_at=_naive_local(record.started_at),
        ended_at=_naive_local(record.ended_at),
        planned_seconds=record.planned_seconds,
        studied_seconds=record.studied_seconds,
        completed=record.completed,
        subject=record.subject,
    )
    try:
        db.add(row)
        db.commit()
    except Exception:
        logger.exception("Error storing study session")
        db.rollback()
        return None
    return row.id


def get_recent_sessions(db: Session, limit: int = 20) -> List[StoredSession]:
    rows = db.query(StudySessionDB).order_by(
        StudySessionDB.started_at.desc(), StudySessionDB.id.desc()
    ).limit(limit).all()

    return [
        StoredSession(
            id=r.id,
            started_at=to_local(r.started_at),
            ended_at=to_local(r.ended_at),
            planned_seconds=r.planned_seconds,
            studied_seconds=r.studied_seconds,
            completed=r.completed,
            subject=r.subject,
        )
        for r in rows
    ]


# ==================== PREFERENCES ====================

PREFERENCES_ROW_ID = 1


def get_stored_preferences(db: Session) -> Optional[Preferences]:
    row = db.get(PreferencesDB, PREFERENCES_ROW_ID)
    if row is None:
        return None
    return Preferences(
        session_minutes=row.session_minutes,
        break_minutes=row.break_minutes,
        daily_goal_seconds=row.daily_goal_seconds,
        weekly_goal_seconds=row.weekly_goal_seconds,
    )


def load_preferences(db: Session) -> Preferences:
    """Stored preferences, or the defaults if none were saved yet"""
    return get_stored_preferences(db) or Preferences()


def save_preferences(db: Session, preferences: Preferences) -> Preferences:
    row = db.get(PreferencesDB, PREFERENCES_ROW_ID)
    if row is None:
        row = PreferencesDB(id=PREFERENCES_ROW_ID)
        db.add(row)
    row.session_minutes = preferences.session_minutes
    row.break_minutes = preferences.break_minutes
    row.daily_goal_seconds = preferences.daily_goal_seconds
    row.weekly_goal_seconds = preferences.weekly_goal_seconds
    try:
        db.commit()
    except Exception:
        logger.exception("Error storing preferences")
        db.rollback()
        raise
    return preferences


# ==================== SUMMARIES ====================

def _sessions_between(db: Session, start: datetime, end: datetime) -> List[StudySessionDB]:
    return db.query(StudySessionDB).filter(
        StudySessionDB.started_at >= start,
        StudySessionDB.started_at <= end
    ).all()


def _subject_breakdown(sessions: List[StudySessionDB]) -> List[SubjectBreakdown]:
    """Per-subject totals, largest first; untagged sessions are left out"""
    totals = defaultdict(lambda: [0, 0])
    for s in sessions:
        if s.subject:
            totals[s.subject][0] += s.studied_seconds
            totals[s.subject][1] += 1

    breakdown = [
        SubjectBreakdown(subject=subject, study_seconds=seconds, sessions=count)
        for subject, (seconds, count) in totals.items()
    ]
    breakdown.sort(key=lambda b: (-b.study_seconds, b.subject))
    return breakdown


def week_start_for(target_date: date) -> date:
    """Sunday on or before the date"""
    return target_date - timedelta(days=(target_date.weekday() + 1) % 7)


def get_daily_summary(db: Session, target_date: date,
                      daily_goal_seconds: int = DAILY_GOAL_SECONDS) -> DailySummary:
    """Sessions and environment quality for one local calendar day"""
    start_of_day = datetime.combine(target_date, datetime.min.time())
    end_of_day = datetime.combine(target_date, datetime.max.time())

    sessions = _sessions_between(db, start_of_day, end_of_day)

    sample_count, average_score = db.query(
        func.count(EnvironmentSnapshotDB.id),
        func.avg(EnvironmentSnapshotDB.score),
    ).filter(
        EnvironmentSnapshotDB.timestamp >= start_of_day,
        EnvironmentSnapshotDB.timestamp <= end_of_day
    ).one()

    total_study = sum(s.studied_seconds for s in sessions)
    progress = total_study / daily_goal_seconds * 100 if daily_goal_seconds > 0 else 0.0

    return DailySummary(
        date=target_date,
        session_count=len(sessions),
        completed_sessions=sum(1 for s in sessions if s.completed),
        total_study_seconds=total_study,
        daily_goal_seconds=daily_goal_seconds,
        daily_progress_percentage=round(progress, 2),
        goal_achieved=total_study >= daily_goal_seconds,
        subject_breakdown=_subject_breakdown(sessions),
        # AVG comes back as Decimal on PostgreSQL
        average_environment_score=round_half_up(average_score) if average_score is not None else None,
        environment_samples=sample_count,
    )


def get_weekly_summary(db: Session, target_date: date,
                       weekly_goal_seconds: int = WEEKLY_GOAL_SECONDS) -> WeeklySummary:
    """Totals for the Sunday-to-Saturday week containing the date, with day and subject breakdowns"""
    week_start = week_start_for(target_date)
    week_end = week_start + timedelta(days=6)

    sessions = _sessions_between(
        db,
        datetime.combine(week_start, datetime.min.time()),
        datetime.combine(week_end, datetime.max.time()),
    )

    days = {week_start + timedelta(days=i): [0, 0] for i in range(7)}
    for s in sessions:
        day = days[s.started_at.date()]
        day[0] += s.studied_seconds
        day[1] += 1

    total_study = sum(s.studied_seconds for s in sessions)

    return WeeklySummary(
        week_start=week_start,
        week_end=week_end,
        session_count=len(sessions),
        completed_sessions=sum(1 for s in sessions if s.completed),
        total_study_seconds=total_study,
        weekly_goal_seconds=weekly_goal_seconds,
        goal_achieved=total_study >= weekly_goal_seconds,
        daily_breakdown=[
            DayBreakdown(date=day, study_seconds=seconds, sessions=count)
            for day, (seconds, count) in days.items()
        ],
        subject_breakdown=_subject_breakdown(sessions),
    )

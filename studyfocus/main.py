"""
FastAPI Backend for StudyFocus
Wires the environment analyzer, session timer and sensors into a REST API
"""

import logging
import threading
import time
from contextlib import asynccontextmanager
from datetime import date, datetime
from enum import Enum
from typing import Callable, List, Optional

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session, sessionmaker

from studyfocus.config import (
    API_HOST,
    API_PORT,
    ENVIRONMENT_SAMPLE_INTERVAL,
    LIGHT_SIMULATION_INTERVAL,
    LOG_LEVEL,
    TIMER_TICK_INTERVAL,
)
from studyfocus.database import (
    get_daily_summary,
    get_recent_sessions,
    get_stored_preferences,
    get_weekly_summary,
    init_db,
    load_preferences,
    make_session_factory,
    save_environment_snapshot,
    save_preferences,
    save_study_session,
)
from studyfocus.environment_analyzer import EnvironmentAnalyzer
from studyfocus.models import (
    DailySummary,
    EnvironmentAnalysis,
    EnvironmentExport,
    OptimalStudyTimes,
    Preferences,
    PreferencesUpdate,
    SensorSample,
    SensorStatus,
    SessionConfigRequest,
    SessionRecord,
    StartSessionRequest,
    StoredSession,
    SubjectRequest,
    TimerSnapshot,
    TransitionResult,
    Trend,
    WeeklySummary,
)
from studyfocus.scheduler import IntervalRunner
from studyfocus.sensor_service import SensorService
from studyfocus.serial_reader import SerialReader
from studyfocus.session_timer import SessionTimer
from studyfocus.utils import now_local

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


class TimerCommand(str, Enum):
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    RESET = "reset"
    TICK = "tick"


# ==================== DEPENDENCIES ====================

def get_analyzer(request: Request) -> EnvironmentAnalyzer:
    return request.app.state.analyzer


def get_timer(request: Request) -> SessionTimer:
    return request.app.state.timer


def get_sensor_service(request: Request) -> SensorService:
    return request.app.state.sensor_service


def get_db(request: Request):
    """Get database session"""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


# ==================== BACKGROUND WORK ====================

def record_session(session_factory: sessionmaker, record: SessionRecord):
    """Timer listener: store each finished session"""
    db = session_factory()
    try:
        save_study_session(db, record)
    finally:
        db.close()


class EnvironmentSampler:
    """
    Sensor listener: scores incoming samples and stores the result,
    at most once per interval.
    """

    def __init__(self, analyzer: EnvironmentAnalyzer, session_factory: sessionmaker,
                 min_interval: float = ENVIRONMENT_SAMPLE_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self.analyzer = analyzer
        self.session_factory = session_factory
        self.min_interval = min_interval
        self._clock = clock
        self._last_sample: Optional[float] = None
        self._lock = threading.Lock()

    def __call__(self, sample: SensorSample) -> Optional[EnvironmentAnalysis]:
        now = self._clock()
        with self._lock:
            if self._last_sample is not None and now - self._last_sample < self.min_interval:
                return None
            self._last_sample = now

        analysis = self.analyzer.analyze(sample)
        db = self.session_factory()
        try:
            save_environment_snapshot(db, analysis)
        finally:
            db.close()
        return analysis


def create_app(
    analyzer: Optional[EnvironmentAnalyzer] = None,
    timer: Optional[SessionTimer] = None,
    sensor_service: Optional[SensorService] = None,
    session_factory: Optional[sessionmaker] = None,
    serial_reader: Optional[SerialReader] = None,
    run_background: bool = True,
) -> FastAPI:
    """
    Build the application. Every service is an explicit instance kept on
    app.state; pass your own to share or fake them.
    """
    analyzer = analyzer or EnvironmentAnalyzer()
    timer = timer or SessionTimer(Preferences().session_config())
    sensor_service = sensor_service or SensorService()
    session_factory = session_factory or make_session_factory()

    runners: List[IntervalRunner] = []

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        logging.basicConfig(
            level=LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        logger.info("Starting StudyFocus backend...")
        init_db(session_factory)

        db = session_factory()
        try:
            stored = get_stored_preferences(db)
        finally:
            db.close()
        if stored is not None:
            timer.configure(stored.session_config())

        unsubscribe_timer = timer.add_listener(lambda record: record_session(session_factory, record))
        unsubscribe_sensors = sensor_service.add_listener(
            EnvironmentSampler(analyzer, session_factory)
        )

        reader = None
        if run_background:
            reader = serial_reader or SerialReader(sensor_service)
            if not reader.start_reading():
                logger.warning("Could not connect to serial port. Using simulated light data.")
                runners.append(IntervalRunner(
                    "light-simulation", LIGHT_SIMULATION_INTERVAL, sensor_service.simulate_light
                ))
            runners.append(IntervalRunner("timer-tick", TIMER_TICK_INTERVAL, timer.tick))
            for runner in runners:
                runner.start()

        yield

        logger.info("Shutting down...")
        for runner in runners:
            runner.stop()
        runners.clear()
        if reader:
            reader.stop_reading()
        unsubscribe_timer()
        unsubscribe_sensors()
        sensor_service.cleanup()

    app = FastAPI(
        title="StudyFocus API",
        description="Study session timer and environment monitoring backend",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.analyzer = analyzer
    app.state.timer = timer
    app.state.sensor_service = sensor_service
    app.state.session_factory = session_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_routes(app)
    return app


# ==================== API ENDPOINTS ====================

def register_routes(app: FastAPI):

    @app.get("/")
    def root(timer: SessionTimer = Depends(get_timer),
             sensor_service: SensorService = Depends(get_sensor_service)):
        """Root endpoint - API status"""
        return {
            "status": "running",
            "name": "StudyFocus API",
            "version": VERSION,
            "session_state": timer.state.value,
            "sensors_monitoring": sensor_service.is_monitoring,
        }

    # ---------- environment ----------

    @app.get("/api/environment", response_model=EnvironmentAnalysis)
    def latest_environment(analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        """Most recent environment analysis"""
        latest = analyzer.latest
        if latest is None:
            raise HTTPException(status_code=404, detail="No environment data yet")
        return latest

    @app.post("/api/environment/analyze", response_model=EnvironmentAnalysis)
    def analyze_sample(sample: SensorSample,
                       analyzer: EnvironmentAnalyzer = Depends(get_analyzer),
                       db: Session = Depends(get_db)):
        """Score a sensor sample pushed by a client"""
        analysis = analyzer.analyze(sample)
        save_environment_snapshot(db, analysis)
        return analysis

    @app.get("/api/environment/history", response_model=List[EnvironmentAnalysis])
    def environment_history(limit: Optional[int] = None,
                            analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        """Recent analyses, newest first"""
        if limit is not None and limit < 0:
            raise HTTPException(status_code=400, detail="limit must be non-negative")
        return analyzer.get_history(limit)

    @app.delete("/api/environment/history")
    def clear_environment_history(analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        analyzer.clear_history()
        return {"cleared": True}

    @app.get("/api/environment/trends", response_model=Trend)
    def environment_trends(analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        return analyzer.get_trends()

    @app.get("/api/environment/optimal-times", response_model=OptimalStudyTimes)
    def optimal_study_times(analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        return analyzer.get_optimal_study_times()

    @app.get("/api/environment/export", response_model=EnvironmentExport)
    def export_environment(analyzer: EnvironmentAnalyzer = Depends(get_analyzer)):
        return analyzer.export_data()

    @app.get("/api/sensors/status", response_model=SensorStatus)
    def sensor_status(sensor_service: SensorService = Depends(get_sensor_service)):
        return sensor_service.get_sensor_status()

    @app.post("/api/sensors/calibrate", response_model=SensorStatus)
    def calibrate_sensors(sensor_service: SensorService = Depends(get_sensor_service)):
        """Restart motion detection from fresh accelerometer readings"""
        sensor_service.calibrate_motion()
        return sensor_service.get_sensor_status()

    # ---------- timer ----------

    @app.get("/api/timer", response_model=TimerSnapshot)
    def timer_snapshot(timer: SessionTimer = Depends(get_timer)):
        return timer.snapshot()

    @app.put("/api/timer/config", response_model=TimerSnapshot)
    def configure_timer(body: SessionConfigRequest,
                        timer: SessionTimer = Depends(get_timer),
                        db: Session = Depends(get_db)):
        """
        Change session/break lengths (minutes).
        Only allowed while idle or after a completed session.
        """
        preferences = load_preferences(db).model_copy(update=body.model_dump())
        apply_preferences(timer, preferences)
        save_preferences(db, preferences)
        return timer.snapshot()

    @app.put("/api/timer/subject", response_model=TimerSnapshot)
    def set_subject(body: SubjectRequest, timer: SessionTimer = Depends(get_timer)):
        timer.set_subject(body.subject)
        return timer.snapshot()

    @app.post("/api/timer/start", response_model=TransitionResult)
    def start_session(body: Optional[StartSessionRequest] = None,
                      timer: SessionTimer = Depends(get_timer)):
        """Start a session, optionally for a subject"""
        result = timer.start(subject=body.subject if body else None)
        if not result.accepted:
            raise HTTPException(status_code=409, detail=result.reason)
        return result

    @app.post("/api/timer/{command}", response_model=TransitionResult)
    def timer_command(command: TimerCommand, timer: SessionTimer = Depends(get_timer)):
        """
        Apply a timer command. Rejected transitions leave the timer
        unchanged and answer 409 with the reason.
        """
        actions = {
            TimerCommand.PAUSE: timer.pause,
            TimerCommand.RESUME: timer.resume,
            TimerCommand.END: timer.end,
            TimerCommand.RESET: timer.reset,
            TimerCommand.TICK: timer.tick,
        }
        result = actions[command]()
        if not result.accepted:
            raise HTTPException(status_code=409, detail=result.reason)
        return result

    # ---------- preferences ----------

    @app.get("/api/preferences", response_model=Preferences)
    def get_preferences(db: Session = Depends(get_db)):
        return load_preferences(db)

    @app.put("/api/preferences", response_model=Preferences)
    def update_preferences(body: PreferencesUpdate,
                           timer: SessionTimer = Depends(get_timer),
                           db: Session = Depends(get_db)):
        """Change some preferences; session lengths only while the timer is between cycles"""
        current = load_preferences(db)
        preferences = current.model_copy(update=body.model_dump(exclude_none=True))
        if preferences.session_config() != current.session_config():
            apply_preferences(timer, preferences)
        return save_preferences(db, preferences)

    # ---------- analytics ----------

    @app.get("/api/sessions/recent", response_model=List[StoredSession])
    def recent_sessions(limit: int = 20, db: Session = Depends(get_db)):
        return get_recent_sessions(db, limit)

    @app.get("/api/daily-summary", response_model=DailySummary)
    def daily_summary(date: Optional[str] = None, db: Session = Depends(get_db)):
        """
        Daily study totals and environment quality.
        If no date provided, returns today's summary.
        """
        target_date = parse_date(date)
        return get_daily_summary(db, target_date, load_preferences(db).daily_goal_seconds)

    @app.get("/api/weekly-summary", response_model=WeeklySummary)
    def weekly_summary(date: Optional[str] = None, db: Session = Depends(get_db)):
        """
        Totals for the Sunday-to-Saturday week containing the date,
        broken down by day and by subject. Defaults to the current week.
        """
        target_date = parse_date(date)
        return get_weekly_summary(db, target_date, load_preferences(db).weekly_goal_seconds)


def parse_date(value: Optional[str]) -> date:
    """YYYY-MM-DD query value, or today's local date when missing"""
    if not value:
        return now_local().date()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise HTTPException(status_code=400, detail="date must be YYYY-MM-DD")


def apply_preferences(timer: SessionTimer, preferences: Preferences):
    if not timer.configure(preferences.session_config()):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot change configuration while {timer.state.value}",
        )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=API_HOST, port=API_PORT)

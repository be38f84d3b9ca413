"""
Configuration settings for the StudyFocus backend
"""

import os

# Serial port configuration (light / accelerometer board)
SERIAL_PORT = os.environ.get("STUDYFOCUS_SERIAL_PORT", "/dev/ttyUSB0")
BAUD_RATE = int(os.environ.get("STUDYFOCUS_BAUD_RATE", "9600"))

# Local timezone used for timestamps and hour-of-day grouping
TIMEZONE = os.environ.get("STUDYFOCUS_TIMEZONE", "Europe/Berlin")

# Logging
LOG_LEVEL = os.environ.get("STUDYFOCUS_LOG_LEVEL", "INFO")

# Light sensor conversion
LUX_FULL_SCALE = 1000.0  # lux mapped to 100%

# Motion detection
MOTION_THRESHOLD = 0.1  # delta magnitude, "low" below half of this
MOTION_HISTORY_SIZE = 10

# Environment scoring
LIGHT_WEIGHT = 0.7
MOTION_WEIGHT = 0.3
HISTORY_MAX_LENGTH = 50
TREND_WINDOW = 5
TREND_MARGIN = 5  # points of hysteresis before calling a trend
OPTIMAL_TIMES_MIN_HISTORY = 10
OPTIMAL_HOUR_MIN_SCORE = 70
OPTIMAL_TIMES_LIMIT = 3

# Status thresholds (inclusive lower bounds)
STATUS_OPTIMAL_THRESHOLD = 90
STATUS_GOOD_THRESHOLD = 70
STATUS_POOR_THRESHOLD = 50

# Session defaults
DEFAULT_SESSION_MINUTES = 25
DEFAULT_BREAK_MINUTES = 5
DAILY_GOAL_SECONDS = 4 * 60 * 60
WEEKLY_GOAL_SECONDS = 20 * 60 * 60

# Background cadences in seconds
TIMER_TICK_INTERVAL = 1.0
ENVIRONMENT_SAMPLE_INTERVAL = 1.0
LIGHT_SIMULATION_INTERVAL = 3.0

# Database - SQLite by default, any SQLAlchemy URL works
DATABASE_URL = os.environ.get("STUDYFOCUS_DATABASE_URL", "sqlite:///./studyfocus.db")

# API settings
API_HOST = "0.0.0.0"
API_PORT = 8000

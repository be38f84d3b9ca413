"""
Sensor sampling: converts raw light and accelerometer data into
SensorSample values and notifies subscribers
"""

import logging
import math
import random
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Optional, Set

from studyfocus.config import LUX_FULL_SCALE, MOTION_HISTORY_SIZE, MOTION_THRESHOLD
from studyfocus.models import MotionLevel, SensorSample, SensorStatus
from studyfocus.utils import clamp, now_local, round_half_up

logger = logging.getLogger(__name__)


def lux_to_percentage(illuminance: float) -> int:
    """
    Convert lux to a 0-100 light percentage.
    Typical indoor lighting is 100-1000 lux; good reading light 500-1000 lux.
    """
    return round_half_up(clamp(illuminance / LUX_FULL_SCALE * 100, 0, 100))


def classify_motion(average_motion: float, threshold: float = MOTION_THRESHOLD) -> MotionLevel:
    if average_motion < threshold * 0.5:
        return MotionLevel.LOW
    if average_motion < threshold:
        return MotionLevel.MEDIUM
    return MotionLevel.HIGH


class SensorService:
    """
    Holds the latest light and motion levels.

    Light arrives as lux and motion as raw accelerometer axes; both are
    reduced to the percentages/levels the analyzer scores. Each instance
    owns its own listener set.
    """

    def __init__(self, motion_threshold: float = MOTION_THRESHOLD,
                 motion_history_size: int = MOTION_HISTORY_SIZE):
        self.motion_threshold = motion_threshold
        self.motion_history: Deque[float] = deque(maxlen=motion_history_size)

        self.light_level: Optional[int] = None
        self.motion_level: MotionLevel = MotionLevel.LOW
        self.last_updated: Optional[datetime] = None

        self.is_light_sensor_available = False
        self.is_accelerometer_available = False
        self.is_monitoring = False

        self._last_magnitude: float = 0.0
        self._listeners: Set[Callable[[SensorSample], None]] = set()
        self._lock = threading.RLock()

    def handle_light_data(self, illuminance: float):
        """Record a light reading in lux"""
        with self._lock:
            self.is_light_sensor_available = True
            self.light_level = lux_to_percentage(illuminance)
            self.last_updated = now_local()
        self._notify_listeners()

    def handle_accelerometer_data(self, x: float, y: float, z: float):
        """
        Record an accelerometer reading.
        Motion is the change in acceleration magnitude, averaged over
        the recent readings.
        """
        with self._lock:
            self.is_accelerometer_available = True
            magnitude = math.sqrt(x ** 2 + y ** 2 + z ** 2)
            self.motion_history.append(abs(magnitude - self._last_magnitude))
            self._last_magnitude = magnitude

            average_motion = sum(self.motion_history) / len(self.motion_history)
            self.motion_level = classify_motion(average_motion, self.motion_threshold)
            self.last_updated = now_local()
        self._notify_listeners()

    def simulate_light(self):
        """Random indoor light level for hosts without a light sensor"""
        variation = (random.random() - 0.5) * 30
        level = clamp(60 + variation, 20, 95)
        with self._lock:
            self.light_level = round_half_up(level)
            self.last_updated = now_local()
        self._notify_listeners()

    def calibrate_motion(self):
        """Forget motion history so the level is recomputed from fresh readings"""
        with self._lock:
            self.motion_history.clear()
        logger.info("Motion detection calibrated")

    def get_current_data(self) -> SensorSample:
        with self._lock:
            return SensorSample(
                light_level=self.light_level,
                motion_level=self.motion_level.value,
            )

    def get_sensor_status(self) -> SensorStatus:
        with self._lock:
            return SensorStatus(
                light_sensor=self.is_light_sensor_available,
                accelerometer=self.is_accelerometer_available,
                is_monitoring=self.is_monitoring,
            )

    def add_listener(self, callback: Callable[[SensorSample], None]) -> Callable[[], None]:
        """Subscribe to sensor updates. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.add(callback)

        def unsubscribe():
            with self._lock:
                self._listeners.discard(callback)

        return unsubscribe

    def _notify_listeners(self):
        with self._lock:
            listeners = list(self._listeners)
        sample = self.get_current_data()
        for callback in listeners:
            try:
                callback(sample)
            except Exception:
                logger.exception("Error notifying sensor listener")

    def cleanup(self):
        with self._lock:
            self._listeners.clear()
            self.is_monitoring = False

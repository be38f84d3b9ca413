"""
Background interval loops for timer ticks and environment sampling
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class IntervalRunner:
    """
    Calls a function at a fixed cadence on a daemon thread.
    Errors are logged and the loop keeps going; stop() ends it.
    """

    def __init__(self, name: str, interval: float, callback: Callable[[], None]):
        self.name = name
        self.interval = interval
        self.callback = callback
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.callback()
            except Exception:
                logger.exception("%s loop iteration failed", self.name)

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("%s started (every %.1fs)", self.name, self.interval)

    def stop(self, timeout: float = 2.0):
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

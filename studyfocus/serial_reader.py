"""
Serial port reader for the light / accelerometer board
"""

import logging
import threading
import time
from typing import Optional, Tuple, Union

import serial

from studyfocus.config import BAUD_RATE, SERIAL_PORT
from studyfocus.sensor_service import SensorService

logger = logging.getLogger(__name__)

LightReading = Tuple[str, float]
AccelReading = Tuple[str, float, float, float]


def parse_line(line: str) -> Optional[Union[LightReading, AccelReading]]:
    """
    Parse one line from the board.
    Expected formats:
        light,<lux>            e.g. light,523.5
        accel,<x>,<y>,<z>      e.g. accel,0.01,-0.02,0.98
    Returns None for anything else.
    """
    parts = [p.strip() for p in line.strip().split(",")]
    if not parts or not parts[0]:
        return None

    kind = parts[0].lower()
    try:
        if kind == "light" and len(parts) == 2:
            return ("light", float(parts[1]))
        if kind == "accel" and len(parts) == 4:
            return ("accel", float(parts[1]), float(parts[2]), float(parts[3]))
    except ValueError:
        return None
    return None


class SerialReader:
    """
    Reads sensor lines from the serial port in a background thread and
    feeds them into a SensorService.
    """

    def __init__(self, sensor_service: SensorService,
                 port: str = SERIAL_PORT, baud_rate: int = BAUD_RATE):
        self.sensor_service = sensor_service
        self.port = port
        self.baud_rate = baud_rate
        self.serial_connection: Optional[serial.Serial] = None
        self.is_running = False
        self.read_thread: Optional[threading.Thread] = None

    def connect(self) -> bool:
        """
        Open the serial port.
        Returns True if successful, False otherwise.
        """
        try:
            self.serial_connection = serial.Serial(
                port=self.port,
                baudrate=self.baud_rate,
                timeout=1
            )
        except serial.SerialException as e:
            logger.warning("Error connecting to %s: %s", self.port, e)
            return False

        logger.info("Connected to %s at %s baud", self.port, self.baud_rate)
        # Board resets when the port opens
        time.sleep(2)
        self.serial_connection.reset_input_buffer()
        return True

    def disconnect(self):
        if self.serial_connection and self.serial_connection.is_open:
            self.serial_connection.close()
            logger.info("Disconnected from %s", self.port)

    def handle_line(self, line: str) -> bool:
        """Push one line into the sensor service; False if it was skipped"""
        reading = parse_line(line)
        if reading is None:
            return False
        if reading[0] == "light":
            self.sensor_service.handle_light_data(reading[1])
        else:
            _, x, y, z = reading
            self.sensor_service.handle_accelerometer_data(x, y, z)
        return True

    def _read_loop(self):
        logger.info("Serial reading started")

        while self.is_running:
            try:
                if self.serial_connection and self.serial_connection.in_waiting > 0:
                    line = self.serial_connection.readline().decode("utf-8", errors="ignore")
                    self.handle_line(line)
                else:
                    time.sleep(0.05)
            except (serial.SerialException, OSError):
                # an unplugged board surfaces as OSError (EIO) on POSIX
                logger.exception("Error reading from serial")
                time.sleep(0.5)

        logger.info("Serial reading stopped")

    def start_reading(self) -> bool:
        """Start the background reading thread"""
        if self.is_running:
            return True

        if not self.serial_connection or not self.serial_connection.is_open:
            if not self.connect():
                return False

        self.is_running = True
        self.sensor_service.is_monitoring = True
        self.read_thread = threading.Thread(target=self._read_loop, name="serial-reader", daemon=True)
        self.read_thread.start()
        return True

    def stop_reading(self):
        self.is_running = False

        if self.read_thread:
            self.read_thread.join(timeout=2)
            self.read_thread = None

        self.disconnect()

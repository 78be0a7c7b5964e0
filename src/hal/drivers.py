"""
Motor Controller Driver
=======================

Serial interface to a chain of motor controllers addressed by integer id.

Serial Protocol:
    Commands (host → controller):
        $PNG,<id>*XX                  - Presence check
        $CFG,<id>,<json config>*XX    - Apply full configuration
        $CTL,<id>,<mode>,<value>*XX   - Control request
            POSITION  value = goal position (mechanism rotations), motion profiled
            VOLTAGE   value = applied volts
            FOLLOW    value = leader id, negative to oppose the leader
            NEUTRAL   value ignored

    Replies (controller → host):
        $ACK,<id>*XX                            - Presence reply
        $STS,<id>,<pos>,<vel>,<volts>,<amps>*XX - Status at the controller's rate
"""

import json
import threading
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Set

import serial

from .motor_data import MotorConfiguration

logger = logging.getLogger(__name__)


class ControlMode(Enum):
    """Control request types understood by the controllers."""
    POSITION = "POSITION"
    VOLTAGE = "VOLTAGE"
    FOLLOW = "FOLLOW"
    NEUTRAL = "NEUTRAL"


@dataclass
class MotorStatus:
    """Latest status reported by one controller."""
    timestamp: float = 0.0
    position: float = 0.0
    velocity: float = 0.0
    applied_volts: float = 0.0
    stator_current: float = 0.0
    valid: bool = False


class MotorDriver(ABC):
    """Capability the real backend drives motors through."""

    @abstractmethod
    def ping(self, motor_id: int) -> bool:
        """Return True if a controller answers for motor_id."""
        pass

    @abstractmethod
    def apply_configuration(self, motor_id: int, config: MotorConfiguration) -> None:
        pass

    @abstractmethod
    def set_control(self, motor_id: int, mode: ControlMode, value: float = 0.0) -> None:
        pass

    @abstractmethod
    def get_status(self, motor_id: int) -> MotorStatus:
        pass

    def read_position(self, motor_id: int) -> float:
        return self.get_status(motor_id).position

    def close(self) -> None:
        pass


@dataclass
class SerialBusConfig:
    """Configuration for the motor controller serial bus."""
    port: str = "/dev/ttyACM0"
    baudrate: int = 1000000
    timeout: float = 0.01

    # Presence check at bind time
    ping_timeout_s: float = 0.25

    # Status validity
    max_status_age_s: float = 0.1


class SerialMotorBus(MotorDriver):
    """
    Serial link to the motor controllers.

    A background thread parses status frames into a per-id cache, so
    get_status never waits on the wire.
    """

    def __init__(self, config: Optional[SerialBusConfig] = None):
        self.config = config or SerialBusConfig()
        self._serial: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self._running = False
        self._read_thread: Optional[threading.Thread] = None

        self._status: Dict[int, MotorStatus] = {}
        self._acked: Set[int] = set()

        # Statistics
        self._frames_sent = 0
        self._status_received = 0
        self._parse_errors = 0

    def open(self) -> None:
        """
        Open the serial port and start the reader thread.

        Raises:
            serial.SerialException: if the port cannot be opened
        """
        self._serial = serial.Serial(
            port=self.config.port,
            baudrate=self.config.baudrate,
            timeout=self.config.timeout
        )

        # Clear any stale data
        self._serial.reset_input_buffer()

        self._running = True
        self._read_thread = threading.Thread(target=self._read_loop, daemon=True)
        self._read_thread.start()

        logger.info(f"Motor bus opened on {self.config.port}")

    def close(self) -> None:
        """Put every known motor in neutral and close the port."""
        for motor_id in list(self._status):
            self.set_control(motor_id, ControlMode.NEUTRAL)

        self._running = False
        if self._read_thread:
            self._read_thread.join(timeout=1.0)

        if self._serial:
            self._serial.close()
            self._serial = None

        logger.info("Motor bus closed")

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def ping(self, motor_id: int) -> bool:
        """Send a presence check and wait up to ping_timeout_s for the reply."""
        with self._lock:
            self._acked.discard(motor_id)
        self._send_raw(f"PNG,{motor_id}")

        deadline = time.time() + self.config.ping_timeout_s
        while time.time() < deadline:
            with self._lock:
                if motor_id in self._acked:
                    return True
            time.sleep(0.002)

        with self._lock:
            return motor_id in self._acked

    def apply_configuration(self, motor_id: int, config: MotorConfiguration) -> None:
        payload = json.dumps(config.to_dict(), separators=(',', ':'), sort_keys=True)
        self._send_raw(f"CFG,{motor_id},{payload}")
        logger.debug(f"Configuration applied to motor {motor_id}")

    def set_control(self, motor_id: int, mode: ControlMode, value: float = 0.0) -> None:
        self._send_raw(f"CTL,{motor_id},{mode.value},{value:.4f}")

    def get_status(self, motor_id: int) -> MotorStatus:
        """
        Latest cached status for a motor.

        Returns:
            MotorStatus with valid=False if no status or if it is stale
        """
        with self._lock:
            cached = self._status.get(motor_id)
            if cached is None:
                return MotorStatus()
            status = MotorStatus(
                timestamp=cached.timestamp,
                position=cached.position,
                velocity=cached.velocity,
                applied_volts=cached.applied_volts,
                stator_current=cached.stator_current,
                valid=cached.valid
            )

        age = time.time() - status.timestamp
        if age > self.config.max_status_age_s:
            status.valid = False

        return status

    def _send_raw(self, payload: str):
        """Send raw frame with checksum."""
        if not self.is_open:
            logger.warning(f"Motor bus not open, dropping frame {payload.split(',', 1)[0]}")
            return

        checksum = self._compute_checksum(payload)
        message = f"${payload}*{checksum:02X}\r\n"

        try:
            self._serial.write(message.encode('ascii'))
            self._frames_sent += 1
        except serial.SerialException as e:
            logger.error(f"Failed to send frame: {e}")

    @staticmethod
    def _compute_checksum(payload: str) -> int:
        """Compute XOR checksum of payload."""
        checksum = 0
        for c in payload:
            checksum ^= ord(c)
        return checksum

    def _read_loop(self):
        """Background thread reading controller frames."""
        buffer = ""

        while self._running:
            try:
                if self._serial and self._serial.in_waiting:
                    data = self._serial.read(self._serial.in_waiting).decode('ascii', errors='ignore')
                    buffer += data

                    while '\n' in buffer:
                        line, buffer = buffer.split('\n', 1)
                        line = line.strip()
                        if line:
                            self._parse_frame(line)
                else:
                    time.sleep(0.001)

            except (serial.SerialException, OSError) as e:
                logger.warning(f"Read error: {e}")
                time.sleep(0.1)

    def _parse_frame(self, message: str):
        """Parse an ACK or STS frame."""
        if not message.startswith('$') or '*' not in message:
            self._parse_errors += 1
            return

        try:
            payload, checksum_str = message[1:].rsplit('*', 1)
            expected_checksum = int(checksum_str, 16)
            actual_checksum = self._compute_checksum(payload)

            if expected_checksum != actual_checksum:
                self._parse_errors += 1
                logger.debug(f"Checksum mismatch: expected {expected_checksum:02X}, got {actual_checksum:02X}")
                return

            parts = payload.split(',')

            if parts[0] == 'ACK' and len(parts) == 2:
                with self._lock:
                    self._acked.add(int(parts[1]))

            elif parts[0] == 'STS' and len(parts) == 6:
                motor_id = int(parts[1])
                status = MotorStatus(
                    timestamp=time.time(),
                    position=float(parts[2]),
                    velocity=float(parts[3]),
                    applied_volts=float(parts[4]),
                    stator_current=float(parts[5]),
                    valid=True
                )
                with self._lock:
                    self._status[motor_id] = status
                self._status_received += 1

            else:
                self._parse_errors += 1

        except (ValueError, IndexError) as e:
            self._parse_errors += 1
            logger.debug(f"Failed to parse frame: {e}")

    @property
    def stats(self) -> dict:
        """Get bus statistics."""
        return {
            "frames_sent": self._frames_sent,
            "status_received": self._status_received,
            "parse_errors": self._parse_errors
        }

"""
Shared test fixtures for actuator layer unit tests.
"""

import pytest

from src.hal.drivers import MotorDriver, MotorStatus, ControlMode
from src.hal.inputs import SubsystemInputs
from src.hal.motor_data import MotorData
from src.telemetry.sink import MemoryTelemetry


class FakeMotorDriver(MotorDriver):
    """In-memory driver recording every call."""

    def __init__(self, present_ids=None, positions=None):
        self.present_ids = set(present_ids or [])
        self.positions = dict(positions or {})
        self.pinged = []
        self.applied = {}
        self.controls = []
        self.closed = False

    def ping(self, motor_id):
        self.pinged.append(motor_id)
        return motor_id in self.present_ids

    def apply_configuration(self, motor_id, config):
        self.applied[motor_id] = config

    def set_control(self, motor_id, mode: ControlMode, value=0.0):
        self.controls.append((motor_id, mode, value))

    def get_status(self, motor_id):
        return MotorStatus(
            timestamp=0.0,
            position=self.positions.get(motor_id, 0.0),
            velocity=0.5,
            applied_volts=3.0,
            stator_current=12.0,
            valid=True,
        )

    def close(self):
        self.closed = True


@pytest.fixture
def leader():
    """Leading motor as in a typical elevator."""
    return MotorData(5).with_current_limit(40.0).with_inverted(True)


@pytest.fixture
def follower():
    return MotorData(6).with_current_limit(40.0)


@pytest.fixture
def fake_driver():
    """Driver with motors 5..9 present."""
    return FakeMotorDriver(present_ids=[5, 6, 7, 8, 9], positions={5: 1.25})


@pytest.fixture
def telemetry():
    return MemoryTelemetry()


@pytest.fixture
def recorded_inputs():
    """Ten recorded periods of a mechanism moving forward."""
    return [
        SubsystemInputs(
            timestamp=0.02 * (i + 1),
            position=0.1 * i,
            velocity=5.0,
            applied_volts=2.0,
            connected=True,
            sys_id_state="quasistatic-forward" if i >= 5 else "None",
        )
        for i in range(10)
    ]

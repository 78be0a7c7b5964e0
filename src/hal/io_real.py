"""
Real Subsystem IO
=================

Drives physical motor controllers through a MotorDriver (the serial bus by
default). Followers are put in follower mode on the leader's id and are not
commanded directly afterwards.
"""

import logging
import time
from typing import List, Optional

import serial

from .drivers import MotorDriver, SerialMotorBus, SerialBusConfig, ControlMode
from .errors import HardwareUnavailable
from .inputs import SubsystemInputs
from .io import SubsystemIO
from .motor_data import MotorData

logger = logging.getLogger(__name__)


class SubsystemIOReal(SubsystemIO):
    """IO backend for physical hardware."""

    def __init__(
        self,
        driver: Optional[MotorDriver] = None,
        bus_config: Optional[SerialBusConfig] = None,
    ):
        super().__init__()
        self._owns_driver = driver is None
        self.driver = driver or SerialMotorBus(bus_config)
        self.bound_follower_ids: List[int] = []
        self._goal_position = 0.0

    def _bind(self, leading: MotorData, following: List[MotorData]) -> None:
        leader_id = leading.get_motor_id()

        if isinstance(self.driver, SerialMotorBus) and not self.driver.is_open:
            try:
                self.driver.open()
            except serial.SerialException as e:
                raise HardwareUnavailable(leader_id, f"cannot open bus: {e}") from e

        # Check every id before touching any configuration
        for motor in [leading] + following:
            if not self.driver.ping(motor.get_motor_id()):
                logger.error(f"Motor {motor.get_motor_id()} did not answer")
                if self._owns_driver:
                    self.driver.close()
                raise HardwareUnavailable(motor.get_motor_id())

        self.driver.apply_configuration(leader_id, leading.get_motor_config())

        leader_inverted = leading.get_motor_config().motor_output.inverted
        self.bound_follower_ids = []
        for motor in following:
            motor_id = motor.get_motor_id()
            self.driver.apply_configuration(motor_id, motor.get_motor_config())

            oppose = motor.get_motor_config().motor_output.inverted != leader_inverted
            self.driver.set_control(
                motor_id, ControlMode.FOLLOW, -leader_id if oppose else leader_id
            )
            self.bound_follower_ids.append(motor_id)

    def update_inputs(self, inputs: SubsystemInputs) -> None:
        self._require_bound()
        status = self.driver.get_status(self.leading_motor.get_motor_id())

        inputs.timestamp = time.time()
        inputs.position = status.position
        inputs.velocity = status.velocity
        inputs.applied_volts = status.applied_volts
        inputs.stator_current = status.stator_current
        inputs.goal_position = self._goal_position
        inputs.connected = status.valid

    def set_goal_position(self, goal_position: float) -> None:
        self._require_bound()
        self._goal_position = goal_position
        self.driver.set_control(
            self.leading_motor.get_motor_id(), ControlMode.POSITION, goal_position
        )

    def set_voltage(self, applied_volts: float) -> None:
        self._require_bound()
        self.driver.set_control(
            self.leading_motor.get_motor_id(), ControlMode.VOLTAGE, applied_volts
        )

    def get_position(self) -> float:
        self._require_bound()
        return self.driver.read_position(self.leading_motor.get_motor_id())

    def close(self) -> None:
        """Put every bound motor in neutral, then release an owned driver."""
        if self.is_bound:
            for motor_id in [self.leading_motor.get_motor_id()] + self.bound_follower_ids:
                self.driver.set_control(motor_id, ControlMode.NEUTRAL)
            logger.info(f"Motors {self.leading_motor.get_motor_id()}, "
                        f"{self.bound_follower_ids} set to neutral")
        if self._owns_driver:
            self.driver.close()

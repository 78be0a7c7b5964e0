"""
Subsystem
=========

Owns one motor group and the IO backend it is bound to, and runs once per
control period:

    1. ask the backend to refresh the inputs
    2. publish the inputs to telemetry under the subsystem name
    3. advance the SysId routine, which writes its state label into the
       inputs (seen by the next publish)

Typical use:

    elevator = Subsystem("elevator", RobotState.SIM)
    elevator.set_leading_motor(MotorData(5).with_current_limit(40))
    elevator.add_following_motor(MotorData(6))
    elevator.bind()                        # group is fixed from here on
    scheduler.register(elevator.periodic)

Passing leading_motor to the constructor binds immediately, so every
follower must be passed along with it.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from ..hal.errors import BackendMisuse, InvalidConfiguration
from ..hal.inputs import SubsystemInputs
from ..hal.io import SubsystemIO, RobotState, create_io
from ..hal.io_sim import DCMotorConfig
from ..hal.motor_data import MotorData, MotorGroup
from ..telemetry.sink import TelemetrySink, NullTelemetry
from .sysid import SysIdRoutine, SysIdConfig, Direction

logger = logging.getLogger(__name__)


@dataclass
class SubsystemConfig:
    """Subsystem timing, SysId and simulation parameters."""
    period_s: float = 0.02
    sysid: SysIdConfig = field(default_factory=SysIdConfig)
    sim_motor: DCMotorConfig = field(default_factory=DCMotorConfig)


class Subsystem:
    """
    A named mechanism driven through one IO backend.

    The subsystem adds no control logic of its own: commands go straight
    to the backend.
    """

    def __init__(
        self,
        name: str,
        robot_state: RobotState,
        leading_motor: Optional[MotorData] = None,
        following_motors: Sequence[MotorData] = (),
        io: Optional[SubsystemIO] = None,
        telemetry: Optional[TelemetrySink] = None,
        config: Optional[SubsystemConfig] = None,
    ):
        self.name = name
        self.robot_state = robot_state
        self.config = config or SubsystemConfig()
        if self.config.period_s <= 0:
            raise InvalidConfiguration(f"Control period must be positive, got {self.config.period_s}")
        self.telemetry = telemetry or NullTelemetry()

        self.group = MotorGroup(leading=leading_motor, following=list(following_motors))
        self.inputs = SubsystemInputs()

        if io is None:
            io = self._create_io()
        self.io = io

        self.sysid = SysIdRoutine(
            self.config.sysid,
            drive=self.set_voltage,
            record_state=self._record_sysid_state,
        )

        if leading_motor is not None:
            self.bind()

    def _create_io(self) -> SubsystemIO:
        if self.robot_state == RobotState.SIM:
            return create_io(
                RobotState.SIM,
                motor_config=self.config.sim_motor,
                period_s=self.config.period_s,
            )
        return create_io(self.robot_state)

    @property
    def is_bound(self) -> bool:
        return self.io.is_bound

    def set_leading_motor(self, leading_motor_data: MotorData) -> None:
        if self.is_bound:
            raise BackendMisuse(f"{self.name}: cannot change leading motor after binding")
        self.group.leading = leading_motor_data

    def add_following_motor(self, following_motor_data: MotorData) -> None:
        if self.is_bound:
            raise BackendMisuse(f"{self.name}: cannot add following motor after binding")
        self.group.following.append(following_motor_data)

    def bind(self) -> None:
        """
        Bind the current group to the backend.

        Raises:
            BackendMisuse: if already bound
            InvalidConfiguration: if no leading motor is set
            HardwareUnavailable: if a real motor id does not answer
        """
        self.inputs = SubsystemInputs()
        self.io.initialize_motors(self.group.leading, self.group.following)
        logger.info(
            f"Subsystem '{self.name}' bound in {self.robot_state.name} mode, "
            f"motors {self.group.motor_ids}"
        )

    def _require_bound(self, operation: str):
        if not self.is_bound:
            raise BackendMisuse(f"{self.name}: {operation} called before bind()")

    def periodic(self) -> None:
        """Called once per control period by the scheduler."""
        self._require_bound("periodic()")

        self.io.update_inputs(self.inputs)
        self.telemetry.publish(self.name, self.inputs)
        self.sysid.step(self.config.period_s)

    def _record_sysid_state(self, label: str) -> None:
        self.inputs.sys_id_state = label

    # -- commands ------------------------------------------------------

    def set_goal_position(self, goal_position: float) -> None:
        self.io.set_goal_position(goal_position)

    def set_voltage(self, applied_volts: float) -> None:
        self.io.set_voltage(applied_volts)

    def get_position(self) -> float:
        return self.io.get_position()

    # -- characterization ----------------------------------------------

    def run_sysid(self, direction: Direction = Direction.FORWARD) -> None:
        """Start the full quasistatic then dynamic characterization."""
        self._require_bound("run_sysid()")
        self.sysid.start(direction)

    def sysid_quasistatic(self, direction: Direction = Direction.FORWARD) -> None:
        self._require_bound("sysid_quasistatic()")
        self.sysid.quasistatic(direction)

    def sysid_dynamic(self, direction: Direction = Direction.FORWARD) -> None:
        self._require_bound("sysid_dynamic()")
        self.sysid.dynamic(direction)

    def close(self) -> None:
        self.sysid.stop()
        self.io.close()

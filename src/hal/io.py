"""
Subsystem IO
============

Backend interface a Subsystem delegates to. Three implementations exist:

    REAL    SubsystemIOReal    motor controllers on the serial bus
    SIM     SubsystemIOSim     DC motor physics model
    REPLAY  SubsystemIOReplay  previously recorded inputs

The backend is chosen once from RobotState and bound once.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional, Sequence

from .errors import BackendMisuse, InvalidConfiguration
from .inputs import SubsystemInputs
from .motor_data import MotorData

logger = logging.getLogger(__name__)


class RobotState(Enum):
    """Execution context for a subsystem."""
    REAL = "real"
    SIM = "sim"
    REPLAY = "replay"


class SubsystemIO(ABC):
    """
    Base class for IO backends.

    Handles the bind-once lifecycle; subclasses implement the _bind hook and
    the command/query methods.
    """

    def __init__(self):
        self._bound = False
        self.leading_motor: Optional[MotorData] = None
        self.following_motors: List[MotorData] = []

    @property
    def is_bound(self) -> bool:
        return self._bound

    def initialize_motors(
        self,
        leading_motor_data: MotorData,
        following_motor_data: Sequence[MotorData] = (),
    ) -> None:
        """
        Bind configurations to concrete motors.

        Configurations are copied at this point; later changes to the
        passed MotorData objects do not reach the backend.

        Raises:
            BackendMisuse: if already bound
            InvalidConfiguration: if no leading motor is given
        """
        if self._bound:
            raise BackendMisuse(f"{self.__class__.__name__} is already initialized")
        if leading_motor_data is None:
            raise InvalidConfiguration("A leading motor is required to initialize IO")

        self.leading_motor = leading_motor_data.snapshot()
        self.following_motors = [m.snapshot() for m in following_motor_data]

        self._bind(self.leading_motor, self.following_motors)
        self._bound = True

        logger.info(
            f"{self.__class__.__name__} bound leader {self.leading_motor.get_motor_id()} "
            f"with {len(self.following_motors)} follower(s)"
        )

    def _require_bound(self):
        if not self._bound:
            raise BackendMisuse(f"{self.__class__.__name__} used before initialize_motors")

    @abstractmethod
    def _bind(self, leading: MotorData, following: List[MotorData]) -> None:
        pass

    @abstractmethod
    def update_inputs(self, inputs: SubsystemInputs) -> None:
        """Refresh inputs in place. Must not block past a control period."""
        pass

    @abstractmethod
    def set_goal_position(self, goal_position: float) -> None:
        """Profiled move to goal_position (mechanism rotations)."""
        pass

    @abstractmethod
    def set_voltage(self, applied_volts: float) -> None:
        """Open-loop voltage output, bypassing the motion profile."""
        pass

    @abstractmethod
    def get_position(self) -> float:
        """Leading motor position (mechanism rotations)."""
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass


def create_io(robot_state: RobotState, **kwargs) -> SubsystemIO:
    """
    Construct the backend for a robot state.

    Keyword arguments are passed to the backend constructor:
        REAL:   driver, bus_config
        SIM:    motor_config, period_s
        REPLAY: records, log_path, name
    """
    if robot_state == RobotState.REAL:
        from .io_real import SubsystemIOReal
        return SubsystemIOReal(**kwargs)
    elif robot_state == RobotState.SIM:
        from .io_sim import SubsystemIOSim
        return SubsystemIOSim(**kwargs)
    elif robot_state == RobotState.REPLAY:
        from .io_replay import SubsystemIOReplay
        return SubsystemIOReplay(**kwargs)
    raise ValueError(f"Unsupported robot state: {robot_state}")

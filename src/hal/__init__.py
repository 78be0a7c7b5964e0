"""
Hardware Abstraction Layer
==========================

Motor configuration and the IO backends a subsystem runs against.

Components:
    - MotorData / MotorGroup: driver-independent motor configuration
    - SubsystemIO: backend interface, selected by RobotState
    - SubsystemIOReal / SubsystemIOSim / SubsystemIOReplay: the three backends
    - SerialMotorBus: serial driver for the motor controllers
"""

from .errors import (
    ActuatorError,
    InvalidConfiguration,
    HardwareUnavailable,
    BackendMisuse,
)

from .inputs import SubsystemInputs

from .motor_data import (
    MotorData,
    MotorGroup,
    MotorConfiguration,
    InvertedValue,
    NeutralModeValue,
    load_motor_file,
)

from .io import SubsystemIO, RobotState, create_io

__all__ = [
    'ActuatorError',
    'InvalidConfiguration',
    'HardwareUnavailable',
    'BackendMisuse',
    'SubsystemInputs',
    'MotorData',
    'MotorGroup',
    'MotorConfiguration',
    'InvertedValue',
    'NeutralModeValue',
    'load_motor_file',
    'SubsystemIO',
    'RobotState',
    'create_io',
]

"""
Control Modules
===============

Subsystem orchestration and mechanism characterization.

    - Subsystem: owns a motor group and its bound IO backend
    - SysIdRoutine: quasistatic/dynamic characterization state machine
    - fit_feedforward: kS/kV/kA estimation from recorded SysId data
"""

from .subsystem import Subsystem, SubsystemConfig
from .sysid import (
    SysIdRoutine,
    SysIdConfig,
    SysIdState,
    Direction,
    fit_feedforward,
)

__all__ = [
    'Subsystem',
    'SubsystemConfig',
    'SysIdRoutine',
    'SysIdConfig',
    'SysIdState',
    'Direction',
    'fit_feedforward',
]

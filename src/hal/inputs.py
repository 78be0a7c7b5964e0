"""
Subsystem Inputs
================

Per-period state snapshot filled in by the IO backend and published to
telemetry.
"""

from dataclasses import dataclass, asdict, fields
from typing import Dict, Any

SYSID_IDLE_LABEL = "None"


@dataclass
class SubsystemInputs:
    """State of the leading motor for one control period."""
    timestamp: float = 0.0
    position: float = 0.0          # mechanism rotations
    velocity: float = 0.0          # mechanism rot/s
    applied_volts: float = 0.0
    stator_current: float = 0.0    # Amps
    goal_position: float = 0.0
    connected: bool = False
    sys_id_state: str = SYSID_IDLE_LABEL

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubsystemInputs":
        """Build from a log record, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def copy_from(self, other: "SubsystemInputs") -> None:
        """Overwrite every field in place from another snapshot."""
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

"""
Replay Subsystem IO
===================

Feeds previously recorded inputs back through a subsystem. Commands are
recorded for inspection and otherwise ignored; nothing is driven.
"""

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from ..telemetry.log_reader import read_log
from .inputs import SubsystemInputs
from .io import SubsystemIO
from .motor_data import MotorData

logger = logging.getLogger(__name__)


class SubsystemIOReplay(SubsystemIO):
    """
    IO backend over recorded inputs.

    Each update_inputs call copies the next record. After the last record
    the final state is held and ``finished`` becomes True.
    """

    def __init__(
        self,
        records: Optional[Sequence[SubsystemInputs]] = None,
        log_path: Optional[Union[str, Path]] = None,
        name: Optional[str] = None,
    ):
        super().__init__()
        if records is None and log_path is not None:
            records = list(read_log(log_path, name))
            logger.info(f"Loaded {len(records)} record(s) for replay from {log_path}")

        self._records: List[SubsystemInputs] = [
            SubsystemInputs.from_dict(r.to_dict()) for r in (records or [])
        ]
        self._index = 0
        self._current: Optional[SubsystemInputs] = None
        self.commands: List[Tuple[str, float]] = []

    def _bind(self, leading: MotorData, following: List[MotorData]) -> None:
        if not self._records:
            logger.warning("Replay backend bound with no records")

    @property
    def finished(self) -> bool:
        return self._index >= len(self._records)

    def update_inputs(self, inputs: SubsystemInputs) -> None:
        self._require_bound()
        if not self.finished:
            self._current = self._records[self._index]
            self._index += 1
        if self._current is not None:
            inputs.copy_from(self._current)

    def set_goal_position(self, goal_position: float) -> None:
        self._require_bound()
        self.commands.append(("goal_position", goal_position))
        logger.debug(f"Replay ignoring goal position {goal_position:.3f}")

    def set_voltage(self, applied_volts: float) -> None:
        self._require_bound()
        self.commands.append(("voltage", applied_volts))
        logger.debug(f"Replay ignoring voltage {applied_volts:.2f}")

    def get_position(self) -> float:
        """Position of the most recently replayed record (0.0 before the first)."""
        self._require_bound()
        return self._current.position if self._current is not None else 0.0

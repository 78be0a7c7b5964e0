"""
Telemetry Sinks
===============

Destinations for per-period subsystem inputs. A sink is fire-and-forget
from the caller's side: publish must return quickly and must not raise
into the control loop.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Tuple, Dict, Any

from ..hal.inputs import SubsystemInputs

logger = logging.getLogger(__name__)


class TelemetrySink(ABC):
    """Receives inputs keyed by subsystem name."""

    @abstractmethod
    def publish(self, name: str, inputs: SubsystemInputs) -> None:
        pass

    def close(self) -> None:
        pass


class NullTelemetry(TelemetrySink):
    """Discards everything."""

    def publish(self, name: str, inputs: SubsystemInputs) -> None:
        pass


class MemoryTelemetry(TelemetrySink):
    """Keeps published records in memory, in publish order."""

    def __init__(self):
        self.records: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, name: str, inputs: SubsystemInputs) -> None:
        self.records.append((name, inputs.to_dict()))

    def for_name(self, name: str) -> List[SubsystemInputs]:
        """Recorded inputs for one subsystem."""
        return [SubsystemInputs.from_dict(r) for n, r in self.records if n == name]

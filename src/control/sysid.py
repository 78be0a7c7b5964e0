"""
System Identification Routine
=============================

Scripted open-loop excitation used to measure a mechanism's feedforward
response.

Tests:
    quasistatic   voltage ramps up at ramp_rate until it reaches step_voltage;
                  characterizes static friction and velocity response
    dynamic       constant step_voltage for step_duration_s;
                  characterizes acceleration response

A full run is quasistatic followed by dynamic. Spending longer than
timeout_s in one test commands 0 V, reports "timeout" for one period and
returns to idle. The routine can be started again afterwards.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from ..hal.inputs import SubsystemInputs, SYSID_IDLE_LABEL

logger = logging.getLogger(__name__)

DEFAULT_RAMP_RATE = 1.0       # V/s
DEFAULT_STEP_VOLTAGE = 7.0    # V
DEFAULT_TIMEOUT = 10.0        # s


class Direction(Enum):
    FORWARD = 1
    REVERSE = -1


class SysIdState(Enum):
    IDLE = "idle"
    QUASISTATIC = "quasistatic"
    DYNAMIC = "dynamic"
    TIMEOUT = "timeout"


@dataclass
class SysIdConfig:
    """Routine parameters. Non-positive values select the defaults."""
    ramp_rate: float = 0.0          # V/s
    step_voltage: float = 0.0       # V
    timeout_s: float = 0.0
    step_duration_s: float = 3.0

    def resolved(self) -> "SysIdConfig":
        return SysIdConfig(
            ramp_rate=self.ramp_rate if self.ramp_rate > 0 else DEFAULT_RAMP_RATE,
            step_voltage=self.step_voltage if self.step_voltage > 0 else DEFAULT_STEP_VOLTAGE,
            timeout_s=self.timeout_s if self.timeout_s > 0 else DEFAULT_TIMEOUT,
            step_duration_s=self.step_duration_s,
        )


class SysIdRoutine:
    """
    Characterization state machine.

    Args:
        config: Routine parameters
        drive: Called with the voltage to apply each period
        record_state: Called with the state label each active period and on
            every transition
    """

    def __init__(
        self,
        config: SysIdConfig,
        drive: Callable[[float], None],
        record_state: Callable[[str], None],
    ):
        self.config = config.resolved()
        self._drive = drive
        self._record_state = record_state

        self.state = SysIdState.IDLE
        self.direction = Direction.FORWARD
        self.elapsed = 0.0
        self._run_dynamic_next = False

    @property
    def label(self) -> str:
        if self.state == SysIdState.IDLE:
            return SYSID_IDLE_LABEL
        if self.state == SysIdState.TIMEOUT:
            return "timeout"
        side = "forward" if self.direction == Direction.FORWARD else "reverse"
        return f"{self.state.value}-{side}"

    @property
    def is_active(self) -> bool:
        return self.state != SysIdState.IDLE

    def start(self, direction: Direction = Direction.FORWARD) -> None:
        """Run the quasistatic test followed by the dynamic test."""
        self._begin(SysIdState.QUASISTATIC, direction)
        self._run_dynamic_next = True

    def quasistatic(self, direction: Direction = Direction.FORWARD) -> None:
        self._begin(SysIdState.QUASISTATIC, direction)

    def dynamic(self, direction: Direction = Direction.FORWARD) -> None:
        self._begin(SysIdState.DYNAMIC, direction)

    def stop(self) -> None:
        """Cancel any running test."""
        if self.is_active:
            logger.info(f"SysId cancelled in {self.label}")
            self._finish()

    def _begin(self, state: SysIdState, direction: Direction):
        self.state = state
        self.direction = direction
        self.elapsed = 0.0
        self._run_dynamic_next = False
        logger.info(f"SysId {self.label} started")
        self._record_state(self.label)

    def _finish(self):
        self._drive(0.0)
        self.state = SysIdState.IDLE
        self.elapsed = 0.0
        self._run_dynamic_next = False
        self._record_state(self.label)

    def step(self, dt: float) -> None:
        """Advance the routine by one control period."""
        if self.state == SysIdState.IDLE:
            return

        if self.state == SysIdState.TIMEOUT:
            self._finish()
            return

        self.elapsed += dt
        if self.elapsed > self.config.timeout_s:
            logger.warning(
                f"SysId {self.label} timed out after {self.elapsed:.2f}s"
            )
            self._drive(0.0)
            self.state = SysIdState.TIMEOUT
            self._run_dynamic_next = False
            self._record_state(self.label)
            return

        sign = self.direction.value

        if self.state == SysIdState.QUASISTATIC:
            volts = self.config.ramp_rate * self.elapsed
            if volts >= self.config.step_voltage:
                if self._run_dynamic_next:
                    logger.info("SysId ramp complete, starting dynamic step")
                    self._begin(SysIdState.DYNAMIC, self.direction)
                    self._drive(sign * self.config.step_voltage)
                else:
                    logger.info("SysId quasistatic test complete")
                    self._finish()
                return
            self._drive(sign * volts)

        elif self.state == SysIdState.DYNAMIC:
            if self.elapsed >= self.config.step_duration_s:
                logger.info("SysId dynamic test complete")
                self._finish()
                return
            self._drive(sign * self.config.step_voltage)

        self._record_state(self.label)


def fit_feedforward(
    records: Sequence[SubsystemInputs],
    min_velocity: float = 0.01,
) -> Tuple[float, float, float]:
    """
    Fit kS, kV, kA to recorded characterization data.

    Solves V = kS·sign(v) + kV·v + kA·a by least squares over every record
    taken during a quasistatic or dynamic test. Acceleration is
    differentiated within each contiguous test segment.

    Returns:
        (ks, kv, ka)

    Raises:
        ValueError: if fewer than three usable samples exist
    """
    segments = []
    current_label: Optional[str] = None
    for record in records:
        label = record.sys_id_state
        if not (label.startswith("quasistatic") or label.startswith("dynamic")):
            current_label = None
            continue
        if label != current_label:
            segments.append([])
            current_label = label
        segments[-1].append(record)

    rows, volts = [], []
    for segment in segments:
        if len(segment) < 2:
            continue
        t = np.array([r.timestamp for r in segment])
        v = np.array([r.velocity for r in segment])
        if np.any(np.diff(t) <= 0):
            continue
        a = np.gradient(v, t)
        for record, vel, acc in zip(segment, v, a):
            if abs(vel) < min_velocity:
                continue
            rows.append([np.sign(vel), vel, acc])
            volts.append(record.applied_volts)

    if len(rows) < 3:
        raise ValueError(f"Need at least 3 moving samples to fit feedforward, got {len(rows)}")

    solution, _, _, _ = np.linalg.lstsq(np.array(rows), np.array(volts), rcond=None)
    ks, kv, ka = (float(x) for x in solution)
    logger.info(f"Feedforward fit from {len(rows)} samples: kS={ks:.4f} kV={kv:.4f} kA={ka:.4f}")
    return ks, kv, ka

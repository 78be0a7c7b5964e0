"""
Simulated Subsystem IO
======================

Physics-backed IO: the leading motor is a DC motor driving an inertia
through the configured gearing. Position requests run through a trapezoidal
profile and the slot 0 PID + feedforward, the way the controller firmware
would run them. Followers mirror the leader's mechanism state.

Time advances by one period per update_inputs call, so runs are repeatable.
"""

import math
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .errors import InvalidConfiguration
from .inputs import SubsystemInputs
from .io import SubsystemIO
from .motor_data import MotorData, MotorConfiguration

logger = logging.getLogger(__name__)


@dataclass
class DCMotorConfig:
    """Electrical and mechanical parameters of the simulated motor."""
    # Motor constants (Kraken X60 class brushless motor)
    nominal_voltage: float = 12.0      # V
    stall_torque: float = 7.09         # N⋅m
    stall_current: float = 366.0       # A
    free_current: float = 2.0          # A
    free_speed_rpm: float = 6000.0

    # Load
    mechanism_inertia: float = 0.01    # kg⋅m² at the mechanism
    viscous_damping: float = 0.0       # N⋅m per rad/s at the mechanism

    battery_voltage: float = 12.0
    substeps: int = 10                 # integration steps per period

    @property
    def resistance(self) -> float:
        return self.nominal_voltage / self.stall_current

    @property
    def kt(self) -> float:
        """Torque constant (N⋅m/A)."""
        return self.stall_torque / self.stall_current

    @property
    def kv(self) -> float:
        """Speed constant (rad/s per V)."""
        free_speed = self.free_speed_rpm * 2.0 * math.pi / 60.0
        return free_speed / (self.nominal_voltage - self.resistance * self.free_current)


class TrapezoidalPlanner:
    """Trapezoidal velocity profile toward a target position."""

    def __init__(self, v_max: float, acceleration: float):
        self.v_max = v_max
        self.acceleration = acceleration
        self.current_position: Optional[float] = None
        self.current_velocity = 0.0
        self.target_position = 0.0

    def initialize(self, actual_position: float, actual_velocity: float = 0.0):
        """Initialize planner with actual mechanism state."""
        self.current_position = float(actual_position)
        self.current_velocity = float(actual_velocity)

    def set_target(self, target_position: float):
        self.target_position = target_position

    def update(self, dt: float) -> Tuple[float, float, float]:
        """
        Advance the profile by dt.

        Returns:
            (position, velocity, acceleration) setpoint
        """
        position_error = self.target_position - self.current_position
        direction = float(np.sign(position_error))
        velocity = self.current_velocity

        if abs(position_error) < 1e-9 and abs(velocity) <= self.acceleration * dt:
            self.current_position = self.target_position
            self.current_velocity = 0.0
            return self.current_position, 0.0, 0.0

        # Distance needed to stop
        stopping_distance = velocity ** 2 / (2 * self.acceleration)

        if direction * velocity < 0 or abs(position_error) > stopping_distance:
            new_velocity = velocity + direction * self.acceleration * dt
            new_velocity = float(np.clip(new_velocity, -self.v_max, self.v_max))
        else:
            new_velocity = velocity - np.sign(velocity) * self.acceleration * dt
            if np.sign(new_velocity) != np.sign(velocity):
                new_velocity = 0.0

        self.current_position += 0.5 * (velocity + new_velocity) * dt
        self.current_velocity = float(new_velocity)

        # Clamp overshoot
        if direction != 0 and np.sign(self.target_position - self.current_position) == -direction:
            self.current_position = self.target_position
            self.current_velocity = 0.0

        return self.current_position, self.current_velocity, (new_velocity - velocity) / dt


class DCMotorSim:
    """One motor and its mechanism, in mechanism units (rotations)."""

    def __init__(self, motor: MotorData, params: DCMotorConfig):
        self.motor_id = motor.get_motor_id()
        self.config: MotorConfiguration = motor.get_motor_config()
        self.params = params

        self.position = 0.0          # rotations
        self.velocity = 0.0          # rot/s
        self.applied_volts = 0.0
        self.stator_current = 0.0

        self._mode = "neutral"
        self._requested_volts = 0.0
        self._goal = 0.0
        self._planner: Optional[TrapezoidalPlanner] = None
        self._integral = 0.0

    @property
    def gearing(self) -> float:
        return self.config.feedback.rotor_to_mechanism_ratio

    def set_voltage(self, volts: float):
        self._mode = "voltage"
        self._requested_volts = volts
        self._planner = None

    def set_goal_position(self, goal: float):
        motion = self.config.motion_magic
        if self._mode != "position" or self._planner is None:
            self._integral = 0.0
            if motion.cruise_velocity > 0 and motion.acceleration > 0:
                self._planner = TrapezoidalPlanner(motion.cruise_velocity, motion.acceleration)
                self._planner.initialize(self.position, self.velocity)
            else:
                self._planner = None
        self._mode = "position"
        self._goal = goal
        if self._planner is not None:
            self._planner.set_target(goal)

    def step(self, dt: float):
        """Run the control law once, then integrate the physics over dt."""
        volts = self._control_output(dt)
        volts = self._apply_soft_stops(volts)
        volts = float(np.clip(volts, -self.params.battery_voltage, self.params.battery_voltage))

        substeps = max(1, self.params.substeps)
        h = dt / substeps
        current, applied = 0.0, volts
        for _ in range(substeps):
            current, applied = self._integrate(volts, h)

        self.applied_volts = applied
        self.stator_current = abs(current)

    def _control_output(self, dt: float) -> float:
        if self._mode == "voltage":
            return self._requested_volts
        if self._mode != "position":
            return 0.0

        if self._planner is not None:
            setpoint, setpoint_vel, setpoint_acc = self._planner.update(dt)
        else:
            setpoint, setpoint_vel, setpoint_acc = self._goal, 0.0, 0.0

        gains = self.config.slot0
        error = setpoint - self.position
        self._integral += error * dt

        volts = (gains.kp * error
                 + gains.ki * self._integral
                 + gains.kd * (setpoint_vel - self.velocity))
        volts += gains.kg
        volts += gains.ks * np.sign(setpoint_vel)
        volts += gains.kv * setpoint_vel + gains.ka * setpoint_acc
        return float(volts)

    def _apply_soft_stops(self, volts: float) -> float:
        limits = self.config.software_limit_switch
        if limits.forward_enable and self.position >= limits.forward_threshold and volts > 0:
            return 0.0
        if limits.reverse_enable and self.position <= limits.reverse_threshold and volts < 0:
            return 0.0
        return volts

    def _integrate(self, volts: float, h: float) -> Tuple[float, float]:
        """
        Advance the mechanism by h with backward Euler.

        Back-EMF and damping are evaluated at the new speed, which keeps the
        step stable at high reductions where the electrical time constant
        is far below h. When the stator current limit is hit the voltage is
        reduced to hold the limit.

        Returns:
            (stator current, applied volts)
        """
        p = self.params
        n = self.gearing
        j = p.mechanism_inertia
        emf_per_omega = n / p.kv                 # V per mechanism rad/s
        omega = self.velocity * 2.0 * math.pi

        # J·dω/dt = kt·N·(V - ω·N/kv)/R - b·ω
        gain = p.kt * n / (j * p.resistance)
        omega_new = (omega + h * gain * volts) / (
            1.0 + h * (gain * emf_per_omega + p.viscous_damping / j)
        )
        current = (volts - omega_new * emf_per_omega) / p.resistance

        limits = self.config.current_limits
        if limits.stator_current_limit_enable and abs(current) > limits.stator_current_limit:
            current = math.copysign(limits.stator_current_limit, current)
            omega_new = (omega + h * p.kt * n * current / j) / (1.0 + h * p.viscous_damping / j)
            volts = current * p.resistance + omega_new * emf_per_omega

        self.velocity = omega_new / (2.0 * math.pi)
        self.position += self.velocity * h
        return current, volts


class SubsystemIOSim(SubsystemIO):
    """IO backend on a simulated DC motor."""

    def __init__(self, motor_config: Optional[DCMotorConfig] = None, period_s: float = 0.02):
        super().__init__()
        if period_s <= 0:
            raise InvalidConfiguration(f"Simulation period must be positive, got {period_s}")
        self.params = motor_config or DCMotorConfig()
        self.period_s = period_s
        self.sim_time = 0.0
        self.leader_sim: Optional[DCMotorSim] = None
        self.follower_sims: List[DCMotorSim] = []
        self._goal_position = 0.0

    def _bind(self, leading: MotorData, following: List[MotorData]) -> None:
        self.leader_sim = DCMotorSim(leading, self.params)
        self.follower_sims = [DCMotorSim(m, self.params) for m in following]

    def update_inputs(self, inputs: SubsystemInputs) -> None:
        self._require_bound()
        self.leader_sim.step(self.period_s)
        self.sim_time += self.period_s

        for follower in self.follower_sims:
            follower.position = self.leader_sim.position
            follower.velocity = self.leader_sim.velocity
            follower.applied_volts = self.leader_sim.applied_volts

        inputs.timestamp = self.sim_time
        inputs.position = self.leader_sim.position
        inputs.velocity = self.leader_sim.velocity
        inputs.applied_volts = self.leader_sim.applied_volts
        inputs.stator_current = self.leader_sim.stator_current
        inputs.goal_position = self._goal_position
        inputs.connected = True

    def set_goal_position(self, goal_position: float) -> None:
        self._require_bound()
        self._goal_position = goal_position
        self.leader_sim.set_goal_position(goal_position)

    def set_voltage(self, applied_volts: float) -> None:
        self._require_bound()
        self.leader_sim.set_voltage(applied_volts)

    def get_position(self) -> float:
        self._require_bound()
        return self.leader_sim.position

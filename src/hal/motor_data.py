"""
Motor Data
==========

Driver-independent configuration for one controlled motor.

A MotorData holds the motor id plus a MotorConfiguration tree mirroring the
parameter groups of the motor controller:

    current_limits         stator current clamp
    motor_output           inversion and neutral (coast/brake) behavior
    slot0                  PID and feedforward gains
    motion_magic           cruise velocity / acceleration for profiled moves
    software_limit_switch  forward/reverse soft stops
    feedback               sensor-to-mechanism and rotor-to-sensor ratios

Every parameter group has a plain setter and a chaining ``with_`` variant:

    leader = (MotorData(5)
              .with_current_limit(40.0)
              .with_inverted(True)
              .with_internal_encoder_ratios(12.0))
"""

import copy
import json
import logging
import math
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Optional, List, Dict, Any, Union

from .errors import InvalidConfiguration

logger = logging.getLogger(__name__)


class InvertedValue(Enum):
    """Positive rotation direction as seen from the motor face."""
    COUNTER_CLOCKWISE_POSITIVE = "counter_clockwise_positive"
    CLOCKWISE_POSITIVE = "clockwise_positive"


class NeutralModeValue(Enum):
    """Motor behavior when no output is applied."""
    COAST = "coast"
    BRAKE = "brake"


# Boolean to enum mappings used by set_inverted / set_brake_mode.
# The default direction of the controller is not confirmed on hardware yet;
# flip the entries here if it turns out to be counter-clockwise.
INVERSION_MAPPING: Dict[bool, InvertedValue] = {
    False: InvertedValue.CLOCKWISE_POSITIVE,
    True: InvertedValue.COUNTER_CLOCKWISE_POSITIVE,
}

NEUTRAL_MODE_MAPPING: Dict[bool, NeutralModeValue] = {
    False: NeutralModeValue.COAST,
    True: NeutralModeValue.BRAKE,
}


@dataclass
class CurrentLimitsConfig:
    stator_current_limit: float = 0.0          # Amps
    stator_current_limit_enable: bool = False


@dataclass
class MotorOutputConfig:
    inverted: InvertedValue = InvertedValue.COUNTER_CLOCKWISE_POSITIVE
    neutral_mode: NeutralModeValue = NeutralModeValue.COAST


@dataclass
class Slot0Config:
    """Closed-loop gains for slot 0."""
    kp: float = 0.0
    ki: float = 0.0
    kd: float = 0.0
    kg: float = 0.0     # gravity (V)
    ks: float = 0.0     # static friction (V)
    kv: float = 0.0     # V per rot/s
    ka: float = 0.0     # V per rot/s^2


@dataclass
class MotionMagicConfig:
    cruise_velocity: float = 0.0   # mechanism rot/s, 0 = unlimited
    acceleration: float = 0.0      # mechanism rot/s^2, 0 = unlimited


@dataclass
class SoftwareLimitSwitchConfig:
    forward_enable: bool = False
    forward_threshold: float = 0.0    # mechanism rotations
    reverse_enable: bool = False
    reverse_threshold: float = 0.0


@dataclass
class FeedbackConfig:
    sensor_to_mechanism_ratio: float = 1.0
    rotor_to_sensor_ratio: float = 1.0

    @property
    def rotor_to_mechanism_ratio(self) -> float:
        """Total reduction between rotor and mechanism."""
        return self.sensor_to_mechanism_ratio * self.rotor_to_sensor_ratio


@dataclass
class MotorConfiguration:
    """Full configuration applied to one motor controller."""
    current_limits: CurrentLimitsConfig = field(default_factory=CurrentLimitsConfig)
    motor_output: MotorOutputConfig = field(default_factory=MotorOutputConfig)
    slot0: Slot0Config = field(default_factory=Slot0Config)
    motion_magic: MotionMagicConfig = field(default_factory=MotionMagicConfig)
    software_limit_switch: SoftwareLimitSwitchConfig = field(
        default_factory=SoftwareLimitSwitchConfig
    )
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible form, enums stored by value."""
        data = asdict(self)
        data['motor_output']['inverted'] = self.motor_output.inverted.value
        data['motor_output']['neutral_mode'] = self.motor_output.neutral_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MotorConfiguration":
        """
        Inverse of to_dict.

        Raises:
            InvalidConfiguration: on unknown keys or enum values
        """
        try:
            output = dict(data.get('motor_output', {}))
            if 'inverted' in output:
                output['inverted'] = InvertedValue(output['inverted'])
            if 'neutral_mode' in output:
                output['neutral_mode'] = NeutralModeValue(output['neutral_mode'])

            return cls(
                current_limits=CurrentLimitsConfig(**data.get('current_limits', {})),
                motor_output=MotorOutputConfig(**output),
                slot0=Slot0Config(**data.get('slot0', {})),
                motion_magic=MotionMagicConfig(**data.get('motion_magic', {})),
                software_limit_switch=SoftwareLimitSwitchConfig(
                    **data.get('software_limit_switch', {})
                ),
                feedback=FeedbackConfig(**data.get('feedback', {})),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise InvalidConfiguration(f"Invalid motor configuration: {e}") from e


def _finite(name: str, value: float) -> float:
    """Coerce to float, rejecting NaN and infinities."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidConfiguration(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidConfiguration(f"{name} must be finite, got {value}")
    return value


class MotorData:
    """
    Configuration for one motor, addressed by its CAN id.

    Setters come in pairs: ``set_x`` returns None, ``with_x`` returns this
    object for chaining. Both write the same fields; setting twice keeps the
    last value.
    """

    def __init__(self, motor_id: int):
        self._id = int(motor_id)
        self._config = MotorConfiguration()

    def __repr__(self) -> str:
        return f"MotorData(id={self._id})"

    # -- current limit -------------------------------------------------

    def with_current_limit(self, current_limit: float) -> "MotorData":
        """
        Set the stator current limit and enable it.

        There is no way to disable the limit once set.

        Args:
            current_limit: Limit in amps (>= 0)
        """
        current_limit = _finite("current_limit", current_limit)
        if current_limit < 0:
            raise InvalidConfiguration(
                f"Current limit must be non-negative, got {current_limit}"
            )
        self._config.current_limits.stator_current_limit = current_limit
        self._config.current_limits.stator_current_limit_enable = True
        return self

    def set_current_limit(self, current_limit: float) -> None:
        self.with_current_limit(current_limit)

    # -- inversion -----------------------------------------------------

    def with_inverted(self, is_inverted: bool) -> "MotorData":
        """Set rotation direction via INVERSION_MAPPING."""
        self._config.motor_output.inverted = INVERSION_MAPPING[bool(is_inverted)]
        return self

    def set_inverted(self, is_inverted: bool) -> None:
        self.with_inverted(is_inverted)

    # -- gains ---------------------------------------------------------

    def with_pid(self, kp: float, ki: float, kd: float) -> "MotorData":
        """Set slot 0 proportional, integral and derivative gains."""
        slot = self._config.slot0
        slot.kp = _finite("kP", kp)
        slot.ki = _finite("kI", ki)
        slot.kd = _finite("kD", kd)
        return self

    def set_pid(self, kp: float, ki: float, kd: float) -> None:
        self.with_pid(kp, ki, kd)

    def with_ff(self, kg: float, ks: float, kv: float, ka: float) -> "MotorData":
        """
        Set slot 0 feedforward gains.

        Args:
            kg: Gravity constant (V)
            ks: Static friction constant (V)
            kv: Velocity constant (V per rot/s)
            ka: Acceleration constant (V per rot/s^2)
        """
        slot = self._config.slot0
        slot.kg = _finite("kG", kg)
        slot.ks = _finite("kS", ks)
        slot.kv = _finite("kV", kv)
        slot.ka = _finite("kA", ka)
        return self

    def set_ff(self, kg: float, ks: float, kv: float, ka: float) -> None:
        self.with_ff(kg, ks, kv, ka)

    # -- motion limits -------------------------------------------------

    def with_max_speeds(self, max_velocity: float, max_acceleration: float) -> "MotorData":
        """
        Set profiled-motion cruise velocity and acceleration.

        Args:
            max_velocity: Cruise velocity (mechanism rot/s)
            max_acceleration: Acceleration (mechanism rot/s^2)
        """
        max_velocity = _finite("max_velocity", max_velocity)
        max_acceleration = _finite("max_acceleration", max_acceleration)
        if max_velocity < 0 or max_acceleration < 0:
            raise InvalidConfiguration(
                f"Motion limits must be non-negative, got "
                f"velocity={max_velocity}, acceleration={max_acceleration}"
            )
        self._config.motion_magic.cruise_velocity = max_velocity
        self._config.motion_magic.acceleration = max_acceleration
        return self

    def set_max_speeds(self, max_velocity: float, max_acceleration: float) -> None:
        self.with_max_speeds(max_velocity, max_acceleration)

    # -- soft stops ----------------------------------------------------

    def with_soft_stops(self, max_position: float, min_position: float) -> "MotorData":
        """
        Enable forward and reverse software limits.

        Output is zeroed when the mechanism tries to move past either bound.

        Args:
            max_position: Forward limit (mechanism rotations)
            min_position: Reverse limit (mechanism rotations)
        """
        max_position = _finite("max_position", max_position)
        min_position = _finite("min_position", min_position)
        if min_position > max_position:
            raise InvalidConfiguration(
                f"Reverse soft stop {min_position} is above forward soft stop {max_position}"
            )
        limits = self._config.software_limit_switch
        limits.forward_enable = True
        limits.forward_threshold = max_position
        limits.reverse_enable = True
        limits.reverse_threshold = min_position
        return self

    def set_soft_stops(self, max_position: float, min_position: float) -> None:
        self.with_soft_stops(max_position, min_position)

    # -- encoder ratios ------------------------------------------------

    def with_external_encoder_ratios(self, gear_ratio: float) -> "MotorData":
        """
        Configure for an external sensor that is 1:1 with the mechanism.

        Args:
            gear_ratio: Rotor rotations per mechanism rotation
        """
        gear_ratio = self._check_ratio(gear_ratio)
        self._config.feedback.sensor_to_mechanism_ratio = 1.0
        self._config.feedback.rotor_to_sensor_ratio = gear_ratio
        return self

    def set_external_encoder_ratios(self, gear_ratio: float) -> None:
        self.with_external_encoder_ratios(gear_ratio)

    def with_internal_encoder_ratios(self, gear_ratio: float) -> "MotorData":
        """
        Configure for the motor's internal rotor sensor.

        Args:
            gear_ratio: Rotor rotations per mechanism rotation
        """
        gear_ratio = self._check_ratio(gear_ratio)
        self._config.feedback.sensor_to_mechanism_ratio = gear_ratio
        self._config.feedback.rotor_to_sensor_ratio = 1.0
        return self

    def set_internal_encoder_ratios(self, gear_ratio: float) -> None:
        self.with_internal_encoder_ratios(gear_ratio)

    @staticmethod
    def _check_ratio(gear_ratio: float) -> float:
        gear_ratio = _finite("gear_ratio", gear_ratio)
        if gear_ratio <= 0:
            raise InvalidConfiguration(f"Gear ratio must be positive, got {gear_ratio}")
        return gear_ratio

    # -- neutral mode --------------------------------------------------

    def with_brake_mode(self, is_brake_mode: bool) -> "MotorData":
        """Brake (True) or coast (False) when no output is applied."""
        self._config.motor_output.neutral_mode = NEUTRAL_MODE_MAPPING[bool(is_brake_mode)]
        return self

    def set_brake_mode(self, is_brake_mode: bool) -> None:
        self.with_brake_mode(is_brake_mode)

    # -- whole-config access -------------------------------------------

    def copy_motor_config(self, other_config: MotorConfiguration) -> None:
        """
        Replace this motor's configuration with a copy of another.

        The copy is independent: later changes to ``other_config`` are not
        seen here.
        """
        self._config = copy.deepcopy(other_config)

    def with_motor_config(self, other_config: MotorConfiguration) -> "MotorData":
        self.copy_motor_config(other_config)
        return self

    def get_motor_config(self) -> MotorConfiguration:
        """Live configuration of this motor (not a copy)."""
        return self._config

    def get_motor_id(self) -> int:
        return self._id

    def snapshot(self) -> "MotorData":
        """Independent copy of id and configuration, used when binding."""
        clone = MotorData(self._id)
        clone.copy_motor_config(self._config)
        return clone

    # -- motor files ---------------------------------------------------

    @classmethod
    def from_dict(cls, entry: Dict[str, Any]) -> "MotorData":
        """
        Build a MotorData from a motor-file entry.

        Example entry:
            {"id": 5, "current_limit": 40, "inverted": true,
             "pid": [0.5, 0, 0.01], "ff": [0.2, 0.1, 0.12, 0.0],
             "max_speeds": [4.0, 8.0], "soft_stops": [10.0, 0.0],
             "internal_encoder_ratio": 12.0, "brake_mode": true}

        Raises:
            InvalidConfiguration: on a missing id, conflicting encoder modes,
                a wrong number of values or a value a setter rejects
        """
        if not isinstance(entry, dict) or 'id' not in entry:
            raise InvalidConfiguration(f"Motor entry has no id: {entry}")
        if 'internal_encoder_ratio' in entry and 'external_encoder_ratio' in entry:
            raise InvalidConfiguration(
                f"Motor {entry['id']} sets both internal and external encoder ratios"
            )

        try:
            return cls._apply_entry(cls(entry['id']), entry)
        except InvalidConfiguration as e:
            raise InvalidConfiguration(f"Motor {entry['id']}: {e}") from e
        except (TypeError, ValueError) as e:
            raise InvalidConfiguration(f"Motor {entry['id']}: malformed entry: {e}") from e

    @staticmethod
    def _apply_entry(motor: "MotorData", entry: Dict[str, Any]) -> "MotorData":
        if 'current_limit' in entry:
            motor.set_current_limit(entry['current_limit'])
        if 'inverted' in entry:
            motor.set_inverted(entry['inverted'])
        if 'pid' in entry:
            motor.set_pid(*entry['pid'])
        if 'ff' in entry:
            motor.set_ff(*entry['ff'])
        if 'max_speeds' in entry:
            motor.set_max_speeds(*entry['max_speeds'])
        if 'soft_stops' in entry:
            motor.set_soft_stops(*entry['soft_stops'])
        if 'internal_encoder_ratio' in entry:
            motor.set_internal_encoder_ratios(entry['internal_encoder_ratio'])
        if 'external_encoder_ratio' in entry:
            motor.set_external_encoder_ratios(entry['external_encoder_ratio'])
        if 'brake_mode' in entry:
            motor.set_brake_mode(entry['brake_mode'])
        return motor


@dataclass
class MotorGroup:
    """A leading motor plus the motors that mechanically follow it."""
    leading: Optional[MotorData] = None
    following: List[MotorData] = field(default_factory=list)

    @property
    def motor_ids(self) -> List[int]:
        ids = [self.leading.get_motor_id()] if self.leading else []
        return ids + [m.get_motor_id() for m in self.following]


def load_motor_file(path: Union[str, Path]) -> MotorGroup:
    """
    Load a motor group from a JSON file.

    Format:
        {"leading": {<entry>}, "following": [{<entry>}, ...]}
    """
    with open(path, 'r') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfiguration(f"Motor file {path} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or 'leading' not in data:
        raise InvalidConfiguration(f"Motor file {path} has no leading motor")
    following = data.get('following', [])
    if not isinstance(following, list):
        raise InvalidConfiguration(f"Motor file {path}: 'following' must be a list")

    group = MotorGroup(
        leading=MotorData.from_dict(data['leading']),
        following=[MotorData.from_dict(e) for e in following],
    )
    logger.info(f"Loaded motor group {group.motor_ids} from {path}")
    return group

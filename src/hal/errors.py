"""
Actuator Errors
===============

Exceptions raised by the hardware-abstraction layer.

- InvalidConfiguration: a motor parameter outside its valid domain
- HardwareUnavailable: a configured motor id has no device behind it
- BackendMisuse: lifecycle violation (binding twice, mutating after bind)
"""


class ActuatorError(Exception):
    """Base class for actuator layer errors."""


class InvalidConfiguration(ActuatorError, ValueError):
    """A configuration value is outside its domain-valid range."""


class HardwareUnavailable(ActuatorError):
    """A configured motor id could not be bound to a physical device."""

    def __init__(self, motor_id: int, detail: str = ""):
        self.motor_id = motor_id
        message = f"No device answered for motor id {motor_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class BackendMisuse(ActuatorError, RuntimeError):
    """Programmer error in the bind-once lifecycle."""

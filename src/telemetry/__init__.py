"""Telemetry sinks and log reading."""

from .sink import TelemetrySink, NullTelemetry, MemoryTelemetry
from .logger import TelemetryLogger, TelemetryConfig
from .log_reader import read_log, read_log_directory

__all__ = [
    'TelemetrySink',
    'NullTelemetry',
    'MemoryTelemetry',
    'TelemetryLogger',
    'TelemetryConfig',
    'read_log',
    'read_log_directory',
]

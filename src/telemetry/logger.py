"""
Telemetry Logger
================

Writes published subsystem inputs to compressed JSONL files, one record
per line:

    {"name": "elevator", "timestamp": 0.02, "position": 0.0, ...}

Files rotate on size or age, like the bus data logger.
"""

import gzip
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, IO

from ..hal.inputs import SubsystemInputs
from .sink import TelemetrySink

logger = logging.getLogger(__name__)


@dataclass
class TelemetryConfig:
    """Configuration for the telemetry logger."""
    log_dir: str = "logs/telemetry"
    file_prefix: str = "telemetry"
    max_file_size_mb: float = 64.0
    max_file_age_minutes: float = 30.0
    compression: bool = True


class TelemetryLogger(TelemetrySink):
    """JSONL telemetry writer with rotation."""

    def __init__(self, config: Optional[TelemetryConfig] = None):
        self.config = config or TelemetryConfig()

        self._current_file: Optional[IO[bytes]] = None
        self._current_path: Optional[Path] = None
        self._file_start_time: float = 0.0
        self._record_count: int = 0

        # Statistics
        self._total_records: int = 0
        self._files_written: int = 0
        self._write_errors: int = 0

        Path(self.config.log_dir).mkdir(parents=True, exist_ok=True)

    def publish(self, name: str, inputs: SubsystemInputs) -> None:
        record = {"name": name}
        record.update(inputs.to_dict())
        self._write_record(record)

    def close(self) -> None:
        self._close_current_file()
        logger.info(
            f"Telemetry logger closed. Records: {self._total_records}, "
            f"Files: {self._files_written}"
        )

    @property
    def current_path(self) -> Optional[Path]:
        return self._current_path

    def _write_record(self, record: Dict[str, Any]):
        try:
            if self._should_rotate():
                self._rotate_file()
            line = json.dumps(record) + "\n"
            self._current_file.write(line.encode('utf-8'))
            self._record_count += 1
            self._total_records += 1
        except (OSError, TypeError, ValueError) as e:
            self._write_errors += 1
            logger.error(f"Failed to write telemetry record: {e}")

    def _should_rotate(self) -> bool:
        if self._current_file is None or self._current_path is None:
            return True

        file_age_min = (time.time() - self._file_start_time) / 60
        if file_age_min >= self.config.max_file_age_minutes:
            return True

        try:
            file_size_mb = os.path.getsize(self._current_path) / (1024 * 1024)
            if file_size_mb >= self.config.max_file_size_mb:
                return True
        except OSError:
            pass

        return False

    def _open_new_file(self):
        timestamp_str = datetime.now().strftime("%Y%m%d_%H%M%S_%f")

        if self.config.compression:
            filename = f"{self.config.file_prefix}_{timestamp_str}.jsonlog.gz"
            self._current_path = Path(self.config.log_dir) / filename
            self._current_file = gzip.open(self._current_path, 'wb')
        else:
            filename = f"{self.config.file_prefix}_{timestamp_str}.jsonlog"
            self._current_path = Path(self.config.log_dir) / filename
            self._current_file = open(self._current_path, 'wb')

        self._file_start_time = time.time()
        self._record_count = 0
        self._files_written += 1

        logger.info(f"Opened new telemetry file: {filename}")

    def _close_current_file(self):
        if self._current_file is not None:
            try:
                self._current_file.close()
                logger.info(
                    f"Closed telemetry file: {self._current_path.name}, "
                    f"records: {self._record_count}"
                )
            except OSError as e:
                logger.error(f"Error closing telemetry file: {e}")
            finally:
                self._current_file = None

    def _rotate_file(self):
        self._close_current_file()
        self._open_new_file()

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "total_records": self._total_records,
            "files_written": self._files_written,
            "write_errors": self._write_errors,
            "current_file": str(self._current_path) if self._current_path else None,
        }

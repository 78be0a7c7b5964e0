"""
Telemetry Log Reader
====================

Reads records written by TelemetryLogger back as SubsystemInputs.
"""

import gzip
import json
import logging
from pathlib import Path
from typing import Iterator, List, Optional, Union

from ..hal.inputs import SubsystemInputs

logger = logging.getLogger(__name__)


def _open_log(path: Path):
    if path.suffix == '.gz':
        return gzip.open(path, 'rt', encoding='utf-8')
    return open(path, 'r', encoding='utf-8')


def read_log(path: Union[str, Path], name: Optional[str] = None) -> Iterator[SubsystemInputs]:
    """
    Yield inputs from a .jsonlog or .jsonlog.gz file.

    Args:
        path: Log file
        name: Only yield records published under this subsystem name
    """
    path = Path(path)
    skipped = 0

    with _open_log(path) as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                skipped += 1
                continue
            if not isinstance(record, dict):
                skipped += 1
                continue
            if name is not None and record.get('name') != name:
                continue
            yield SubsystemInputs.from_dict(record)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed line(s) in {path.name}")


def read_log_directory(directory: Union[str, Path], name: Optional[str] = None) -> List[SubsystemInputs]:
    """Read every log in a directory, oldest file first."""
    files = sorted(
        p for p in Path(directory).iterdir()
        if p.name.endswith('.jsonlog') or p.name.endswith('.jsonlog.gz')
    )
    records: List[SubsystemInputs] = []
    for path in files:
        records.extend(read_log(path, name))
    return records

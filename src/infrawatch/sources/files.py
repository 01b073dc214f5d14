"""File-backed sources: log replay, live log tail, metrics snapshot files."""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Iterator

from ..alerts.logs import LogLine
from ..alerts.metrics import MetricsSnapshot
from ..rules.model import LogSource
from .parsing import parse_log_line

logger = logging.getLogger(__name__)


def read_lines(
    path: str | Path,
    source: LogSource = LogSource.APP,
    source_id: str | None = None,
) -> Iterator[LogLine]:
    """Yield every parsed line of a log file, in file order."""
    path = Path(path)
    sid = source_id or path.name
    with path.open(encoding="utf-8", errors="replace") as fh:
        for raw in fh:
            line = parse_log_line(raw, source=source, source_id=sid)
            if line is not None:
                yield line


def follow_lines(
    path: str | Path,
    interval: float = 0.25,
    stop_event: threading.Event | None = None,
    from_start: bool = False,
) -> Iterator[str]:
    """Poll-tail ``path`` and yield raw lines as they are appended.

    Tailing starts at the end of the file as it is when this function is
    called, unless ``from_start``. A file that does not exist yet is waited
    for and then read from the top. A file that shrinks or is replaced (new
    inode) is treated as rotated and read from the top. Stops when
    ``stop_event`` is set.
    """
    path = Path(path)
    offset = 0
    if not from_start and path.exists():
        offset = path.stat().st_size
    return _follow(path, interval, stop_event or threading.Event(), offset)


def _follow(path: Path, interval: float, stop: threading.Event, offset: int) -> Iterator[str]:
    while not path.exists():
        if stop.wait(interval):
            return

    inode = path.stat().st_ino
    partial = ""

    while not stop.is_set():
        try:
            st = path.stat()
        except FileNotFoundError:
            # mid-rotation; the new file has not been created yet
            stop.wait(interval)
            continue

        if st.st_ino != inode or st.st_size < offset:
            logger.info("Log file %s rotated, reading from the top", path)
            inode = st.st_ino
            offset = 0
            partial = ""

        if st.st_size > offset:
            with path.open(encoding="utf-8", errors="replace") as fh:
                fh.seek(offset)
                data = fh.read()
                offset = fh.tell()
            chunks = (partial + data).split("\n")
            # last chunk has no newline yet; keep it for the next poll
            partial = chunks.pop()
            for chunk in chunks:
                if chunk.strip():
                    yield chunk
            continue

        stop.wait(interval)


class SnapshotFileSource:
    """Metrics snapshots stored one JSON object per line.

    ``read()`` returns the newest snapshot in the file (the last valid
    line), so an external collector can keep appending to it. Iterating
    yields every snapshot in order, for replay.

    Example line::

        {"cpu": {"usage": 93.5}, "memory": {"usage": 71.0}, "disk": {"usage": 40}}
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _snapshots(self) -> Iterator[MetricsSnapshot]:
        with self.path.open(encoding="utf-8") as fh:
            for lineno, raw in enumerate(fh, start=1):
                raw = raw.strip()
                if not raw:
                    continue
                try:
                    data = json.loads(raw)
                except json.JSONDecodeError as exc:
                    logger.warning("Skipping %s:%d: invalid JSON (%s)", self.path, lineno, exc)
                    continue
                if not isinstance(data, dict):
                    logger.warning("Skipping %s:%d: expected a JSON object", self.path, lineno)
                    continue
                yield MetricsSnapshot.from_dict(data)

    def __iter__(self) -> Iterator[MetricsSnapshot]:
        return self._snapshots()

    def read(self) -> MetricsSnapshot:
        latest = MetricsSnapshot()
        try:
            for snapshot in self._snapshots():
                latest = snapshot
        except FileNotFoundError:
            logger.warning("Metrics file %s not found", self.path)
        return latest

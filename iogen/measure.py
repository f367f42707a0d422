import contextlib
import ctypes
import dataclasses
import os
import shutil
import stat
import sys
import time
from typing import IO, List, Optional, Tuple, Union

import psutil
from loguru import logger

from iogen.errors import LogFileError

CREATION_TIME = "CreationTime"
SYNC_TIME = "SyncTime"
COUNT_TIME = "CountTime"
COUNT_RESULT = "CountResult"
COUNT_FILES = "CountFiles"
SUMATION_TIME = "SumationTime"
SUMATION_KB = "SumationKB"
PURGE_TIME = "PurgeTime"


def format_elapsed(seconds: float) -> str:
    """Render wall time the way GNU time's ``%E`` does."""
    hundredths = int(round(seconds * 100))
    minutes, hundredths = divmod(hundredths, 6000)
    hours, minutes = divmod(minutes, 60)
    secs, hundredths = divmod(hundredths, 100)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}.{hundredths:02d}"


@dataclasses.dataclass(frozen=True)
class Timing:
    elapsed: float
    user: float
    system: float

    def __str__(self):
        return f"{format_elapsed(self.elapsed)},{self.user:.2f},{self.system:.2f}"


@dataclasses.dataclass(frozen=True)
class TimingRecord:
    label: str
    value: Union[Timing, int]

    def __str__(self):
        return f"{self.label}: {self.value}"


class LogSink:
    """Append-only destination for records: a file path, or stdout when ``path`` is None."""

    def __init__(self, path: Optional[str] = None, stream: Optional[IO[str]] = None) -> None:
        self.path = path
        self._stream = stream
        self._owned = False

    def open(self) -> "LogSink":
        """Open the destination now so an unusable log path fails before any work."""
        if self._stream is not None:
            return self
        if self.path is None:
            self._stream = sys.stdout
            return self
        try:
            self._stream = open(self.path, "a", encoding="utf-8")
        except OSError as ex:
            raise LogFileError(f"Unable to open log file '{self.path}': {ex.strerror or ex}")
        self._owned = True
        return self

    def write(self, record: TimingRecord) -> None:
        if self._stream is None:
            self.open()
        self._stream.write(f"{record}\n")
        self._stream.flush()

    def close(self) -> None:
        if self._owned and self._stream is not None:
            self._stream.close()
        self._stream = None
        self._owned = False

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()


def _cpu_sample() -> Tuple[float, float]:
    times = psutil.Process().cpu_times()
    return (
        times.user + getattr(times, "children_user", 0.0),
        times.system + getattr(times, "children_system", 0.0),
    )


class Harness:
    def __init__(self, sink: LogSink) -> None:
        self.sink = sink
        self.records: List[TimingRecord] = []

    def emit(self, label: str, value: Union[Timing, int]) -> TimingRecord:
        record = TimingRecord(label, value)
        self.records.append(record)
        self.sink.write(record)
        return record

    @contextlib.contextmanager
    def measure(self, label: str):
        """Time the block and emit ``label: elapsed,user,system`` if it completes."""
        user, system = _cpu_sample()
        start = time.perf_counter()
        yield
        elapsed = time.perf_counter() - start
        end_user, end_system = _cpu_sample()
        self.emit(label, Timing(elapsed, max(0.0, end_user - user), max(0.0, end_system - system)))


@dataclasses.dataclass(frozen=True)
class CountResult:
    files: int
    bytes: int


def count_tree(root: str) -> CountResult:
    """Count regular files under ``root`` and sum their sizes, staying on one device."""
    root_dev = os.lstat(root).st_dev
    files = 0
    total = 0
    stack = [root]
    while stack:
        with os.scandir(stack.pop()) as it:
            for entry in it:
                st = entry.stat(follow_symlinks=False)
                if stat.S_ISREG(st.st_mode):
                    files += 1
                    total += st.st_size
                elif stat.S_ISDIR(st.st_mode) and st.st_dev == root_dev:
                    stack.append(entry.path)
    return CountResult(files, total)


def size_tree(root: str) -> int:
    """Allocated size of ``root`` in KiB, as ``du -s`` reports it."""
    seen = set()
    blocks = 0
    for dirpath, _, filenames in os.walk(root):
        # subdirectories are counted when the walk reaches them
        for path in [dirpath] + [os.path.join(dirpath, name) for name in filenames]:
            st = os.lstat(path)
            if (st.st_dev, st.st_ino) in seen:
                continue
            seen.add((st.st_dev, st.st_ino))
            blocks += st.st_blocks
    return (blocks * 512 + 1023) // 1024


def sync_tree(path: str) -> None:
    """Flush the filesystem holding ``path`` (``sync -f``)."""
    fd = os.open(path, os.O_RDONLY | getattr(os, "O_DIRECTORY", 0))
    try:
        try:
            syncfs = ctypes.CDLL(None, use_errno=True).syncfs
        except (AttributeError, OSError):
            logger.debug("syncfs unavailable, syncing all filesystems")
            os.sync()
            return
        if syncfs(fd) != 0:
            err = ctypes.get_errno()
            raise OSError(err, os.strerror(err), path)
    finally:
        os.close(fd)


def purge_tree(root: str) -> None:
    shutil.rmtree(root)

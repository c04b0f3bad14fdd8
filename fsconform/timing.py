"""
Operation latency instrumentation.

When moving the cursor in a remote input stream, an HTTP connection may be
closed and re-opened. That can be expensive; lazy seek and forward
skipping try to address it. Logging operation times tracks how well a
binding does, and the close-cost check catches one regression in
particular: a close() implemented by reading through the rest of the
stream, visible as close() time growing with the bytes left unread.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from fsconform.errors import CloseCostRegression

logger = logging.getLogger(__name__)

# Smallest object the seek profile can run against: it seeks to 256 and
# reads from there
MIN_PROFILE_LENGTH = 258

Clock = Callable[[], float]


@dataclass(frozen=True)
class OperationTiming:
    label: str
    started: float
    elapsed_ms: float

    def __str__(self):
        return f"{self.label}: {self.elapsed_ms:.3f} ms"


class Measurement:
    """Filled in when the timed block exits; `elapsed_ms` is None until then"""

    def __init__(self, label: str, started: float):
        self.label = label
        self.started = started
        self.elapsed_ms: Optional[float] = None


class TimingLog:
    """Ordered collection of timings from one profile or scenario"""

    def __init__(self):
        self.timings: List[OperationTiming] = []

    def record(self, timing: OperationTiming) -> None:
        self.timings.append(timing)

    def labels(self) -> List[str]:
        return [t.label for t in self.timings]

    def get(self, label: str) -> OperationTiming:
        for timing in reversed(self.timings):
            if timing.label == label:
                return timing
        raise KeyError(label)

    def as_dict(self) -> Dict[str, float]:
        return {t.label: t.elapsed_ms for t in self.timings}

    def __iter__(self) -> Iterator[OperationTiming]:
        return iter(self.timings)

    def __len__(self):
        return len(self.timings)


def report(timing: OperationTiming, log: Optional[TimingLog] = None) -> None:
    logger.info("Duration of %s = %d millis", timing.label, timing.elapsed_ms)
    if log is not None:
        try:
            log.record(timing)
        except Exception:
            # Never let the side channel replace the operation's own outcome
            logger.exception("Could not record timing for %s", timing.label)


@contextmanager
def duration(
    label: str, log: Optional[TimingLog] = None, clock: Clock = time.monotonic
) -> Iterator[Measurement]:
    """
    Time the enclosed block and report it, whether or not it raises.

    Exceptions from the block propagate unchanged.
    """
    measurement = Measurement(label, time.time())
    start = clock()
    try:
        yield measurement
    finally:
        elapsed = max((clock() - start) * 1000.0, 0.0)
        measurement.elapsed_ms = elapsed
        report(OperationTiming(label, measurement.started, elapsed), log)


def timed(label: str, operation: Callable, *args, log: Optional[TimingLog] = None,
          clock: Clock = time.monotonic, **kwargs):
    """Run `operation(*args, **kwargs)` under `duration()` and return its result"""
    with duration(label, log=log, clock=clock):
        return operation(*args, **kwargs)


def _require_data(data: bytes, what: str):
    if not data:
        raise EOFError(f"Unexpected end of stream on {what}")


def profile_seek_and_close(fs, path: str, log: Optional[TimingLog] = None,
                           clock: Clock = time.monotonic) -> TimingLog:
    """
    Time the fixed stat/open/read/seek/close sequence against one object.

    The order matters: each step starts only after the previous one has
    finished so elapsed times can be attributed to a single operation.
    """
    log = log if log is not None else TimingLog()
    st = timed("stat", fs.stat, path, log=log, clock=clock)
    logger.info("Profiling %s (%d bytes)", st.path, st.length)
    if st.length < MIN_PROFILE_LENGTH:
        raise ValueError(
            f"{st.path} is {st.length} bytes, seek profile needs {MIN_PROFILE_LENGTH}"
        )
    stream = timed("open", fs.open, path, log=log, clock=clock)
    try:
        with duration("read[0]", log, clock):
            _require_data(stream.read(), "read[0]")
        with duration("seek[EOF-2]", log, clock):
            stream.seek(st.length - 2)
        with duration("read[EOF-2]", log, clock):
            _require_data(stream.read(), "read[EOF-2]")
        with duration("read_fully[1]", log, clock):
            stream.read_fully(1, 64)
        with duration("seek[256]", log, clock):
            stream.seek(256)
        with duration("read[256]", log, clock):
            _require_data(stream.read(), "read[256]")
    finally:
        with duration("close()", log, clock):
            stream.close()
    return log


def default_offsets(length: int) -> List[int]:
    return sorted({0, length // 4, length // 2, max(length - 2, 0)})


def close_cost_by_offset(fs, path: str, offsets: Optional[Iterable[int]] = None,
                         log: Optional[TimingLog] = None,
                         clock: Clock = time.monotonic) -> Dict[int, float]:
    """
    Open the object once per offset, read one byte there, and time close().

    Returns offset -> close() millis.
    """
    st = fs.stat(path)
    if offsets is None:
        offsets = default_offsets(st.length)
    costs = {}
    for offset in offsets:
        stream = fs.open(path)
        try:
            stream.seek(offset)
            stream.read()
        finally:
            with duration(f"close()@{offset}", log, clock) as m:
                stream.close()
        costs[offset] = m.elapsed_ms
    return costs


def check_close_cost(costs: Dict[int, float], tolerance_ms: float = 50.0,
                     max_ratio: float = 4.0) -> None:
    """
    Raise CloseCostRegression if close() time depends on the offset.

    Both thresholds must be exceeded: the slowest close must be more than
    `max_ratio` times the fastest AND slower by more than `tolerance_ms`,
    so jitter on sub-millisecond closes does not trip the check.
    """
    if len(costs) < 2:
        return
    fastest = min(costs.values())
    slowest = max(costs.values())
    if slowest - fastest > tolerance_ms and slowest > fastest * max_ratio:
        listing = ", ".join(f"@{o}={c:.1f}ms" for o, c in sorted(costs.items()))
        raise CloseCostRegression(f"close() cost varies with stream position: {listing}")

# Terminal session replay
from .timing import (
    TimingEntry,
    OutputBlob,
    Recording,
    parse_timing,
    total_duration,
    total_bytes,
    detect_header_offset,
    format_duration,
)
from .replay_engine import (
    ReplaySession,
    ReplayController,
    ReplayState,
    Batch,
    BATCH_THRESHOLD_MS,
)

__all__ = [
    "TimingEntry",
    "OutputBlob",
    "Recording",
    "parse_timing",
    "total_duration",
    "total_bytes",
    "detect_header_offset",
    "format_duration",
    "ReplaySession",
    "ReplayController",
    "ReplayState",
    "Batch",
    "BATCH_THRESHOLD_MS",
]

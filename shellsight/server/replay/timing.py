"""
Timing and typescript inputs for session replay.

A `script` recording is two files: ``timing`` holds one ``<delay> <bytes>``
line per output chunk, ``typescript`` holds the raw captured output,
usually preceded by a ``Script started on ...`` header line.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union
import logging
import math
import re

logger = logging.getLogger(__name__)

HEADER_MARKER = b"Script started"
HEADER_PROBE_BYTES = 20

_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?\d+$")


@dataclass(frozen=True)
class TimingEntry:
    """How long to wait, then how many bytes of output to write."""
    delay: float
    byte_count: int


def _parse_line(line: str):
    parts = line.split()
    if len(parts) < 2:
        return None

    delay_text, bytes_text = parts[0], parts[1]
    if not _FLOAT_RE.match(delay_text) or not _INT_RE.match(bytes_text):
        return None

    delay = float(delay_text)
    byte_count = int(bytes_text, 10)
    if not math.isfinite(delay) or delay < 0 or byte_count < 0:
        return None

    return TimingEntry(delay=delay, byte_count=byte_count)


def parse_timing(content: str) -> List[TimingEntry]:
    """
    Parse timing file content into an ordered list of entries.

    Lines that do not start with a float delay and an integer byte count
    are skipped. Trailing tokens on a line are ignored.
    """
    entries = []
    skipped = 0

    for line in content.splitlines():
        line = line.strip()
        if not line:
            continue
        entry = _parse_line(line)
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)

    if skipped:
        logger.debug(f"Skipped {skipped} malformed timing lines")

    return entries


def total_duration(timing: Union[str, Iterable[TimingEntry]]) -> float:
    """Sum of all delays in seconds. Returns 0 if the timing can't be parsed."""
    try:
        entries = parse_timing(timing) if isinstance(timing, str) else timing
        return sum(entry.delay for entry in entries)
    except Exception as e:
        logger.debug(f"Could not compute recording duration: {e}")
        return 0.0


def total_bytes(entries: Iterable[TimingEntry]) -> int:
    return sum(entry.byte_count for entry in entries)


def detect_header_offset(blob: bytes) -> int:
    """
    Find where real terminal output starts in a typescript blob.

    Only the first few bytes are checked for the ``Script started`` marker;
    when present, playback starts right after the first line feed.
    """
    if not blob[:HEADER_PROBE_BYTES].startswith(HEADER_MARKER):
        return 0

    newline_index = blob.find(b"\n")
    if newline_index == -1:
        return 0
    return newline_index + 1


@dataclass(frozen=True)
class OutputBlob:
    """Captured terminal output plus the index where playback reads begin."""
    data: bytes
    header_offset: int = 0

    def __post_init__(self):
        clamped = max(0, min(len(self.data), self.header_offset))
        if clamped != self.header_offset:
            object.__setattr__(self, "header_offset", clamped)

    @classmethod
    def from_typescript(cls, data: bytes) -> "OutputBlob":
        return cls(data=data, header_offset=detect_header_offset(data))

    def __len__(self) -> int:
        return len(self.data)

    def read(self, offset: int, count: int) -> bytes:
        """Read up to ``count`` bytes at ``offset``, clipped to the blob end."""
        if count <= 0 or offset >= len(self.data):
            return b""
        return self.data[offset:offset + count]


def format_duration(seconds: float) -> str:
    """Format seconds as ``"2m 5s"`` or ``"42s"``."""
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    if mins > 0:
        return f"{mins}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class Recording:
    """A playable recording: parsed timing plus offset-aware output."""
    folder: str
    timing: Tuple[TimingEntry, ...]
    blob: OutputBlob
    namespace: Optional[str] = None

    @classmethod
    def from_files(
        cls,
        folder: str,
        timing_content: str,
        typescript: bytes,
        namespace: Optional[str] = None,
    ) -> "Recording":
        return cls(
            folder=folder,
            timing=tuple(parse_timing(timing_content)),
            blob=OutputBlob.from_typescript(typescript),
            namespace=namespace,
        )

    @property
    def duration(self) -> float:
        return total_duration(self.timing)

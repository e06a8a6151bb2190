"""
Replay engine for terminal session playback.

Re-creates the original pacing of a recording (optionally speed-scaled),
merging runs of imperceptibly short delays into single emissions.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Protocol, Sequence
from enum import Enum
import asyncio
import codecs
import itertools
import logging

from shellsight.shared import ServerMessage, coerce_speed
from .timing import OutputBlob, Recording, TimingEntry, total_bytes, total_duration

logger = logging.getLogger(__name__)

# Scaled delays below this are merged into one emission
BATCH_THRESHOLD_MS = 10.0


class ReplayState(Enum):
    """Replay session state."""
    IDLE = "idle"
    SCHEDULED = "scheduled"
    EMITTING = "emitting"
    FINISHED = "finished"
    STOPPED = "stopped"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later`` signature."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> TimerHandle: ...


# Sink for messages produced by a session
EmitCallback = Callable[[ServerMessage], None]


@dataclass(frozen=True)
class Batch:
    """Consecutive timing entries replayed as one emission."""
    start_index: int
    end_index: int
    delay: float
    byte_count: int

    def wait_ms(self, speed: float) -> float:
        return self.delay * 1000 / speed


_session_ids = itertools.count(1)


class ReplaySession:
    """
    Timer-driven playback of one recording.

    The session never touches the transport: every message goes through
    ``emit``. Each scheduled timer fires ``tick()``, which writes the
    pending batch and schedules the next one, so exactly one timer is
    pending while the session runs.
    """

    def __init__(
        self,
        timing: Sequence[TimingEntry],
        blob: OutputBlob,
        emit: EmitCallback,
        speed: float = 1.0,
        scheduler: Optional[Scheduler] = None,
        name: Optional[str] = None,
        batch_threshold_ms: float = BATCH_THRESHOLD_MS,
    ):
        self.session_id = f"replay-{next(_session_ids)}"
        self.name = name or self.session_id
        self.timing = timing
        self.blob = blob
        self.speed = coerce_speed(speed)
        self.batch_threshold_ms = batch_threshold_ms
        self.state = ReplayState.IDLE

        self._emit = emit
        self._scheduler = scheduler
        self._running = False
        self._cursor = 0
        self._read_offset = blob.header_offset
        self._pending: Optional[Batch] = None
        self._handle: Optional[TimerHandle] = None
        self._elapsed = 0.0
        self._bytes_sent = 0
        # Keeps multibyte characters intact across batch boundaries
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @classmethod
    def for_recording(
        cls,
        recording: Recording,
        emit: EmitCallback,
        speed: float = 1.0,
        scheduler: Optional[Scheduler] = None,
    ) -> "ReplaySession":
        return cls(
            recording.timing,
            recording.blob,
            emit,
            speed=speed,
            scheduler=scheduler,
            name=recording.folder,
        )

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def read_offset(self) -> int:
        return self._read_offset

    @property
    def bytes_sent(self) -> int:
        return self._bytes_sent

    @property
    def remaining_bytes(self) -> int:
        return len(self.blob) - self._read_offset

    def duration(self) -> float:
        """Total playback time in seconds at the session speed."""
        return total_duration(self.timing) / self.speed

    def progress(self) -> float:
        """Current progress as 0-1 fraction."""
        total = total_duration(self.timing)
        if total <= 0:
            return 1.0 if self.state == ReplayState.FINISHED else 0.0
        return min(1.0, self._elapsed / total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "name": self.name,
            "state": self.state.value,
            "speed": self.speed,
            "entries": len(self.timing),
            "cursor": self._cursor,
            "bytes_total": total_bytes(self.timing),
            "bytes_sent": self._bytes_sent,
            "duration": self.duration(),
            "progress": self.progress(),
        }

    def start(self):
        """Begin playback. Does nothing if already running or already ended."""
        if self._running:
            return
        if self.state in (ReplayState.FINISHED, ReplayState.STOPPED):
            logger.debug(f"Session {self.session_id} already {self.state.value}, not restarting")
            return

        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()

        self._running = True
        self.state = ReplayState.SCHEDULED
        logger.info(
            f"Started replay {self.session_id} ({self.name}): "
            f"{len(self.timing)} entries at {self.speed:g}x"
        )
        self._schedule_next()

    def stop(self) -> bool:
        """
        Cancel playback.

        Safe to call any number of times and from outside the timer
        callback. Returns True if the session was running.
        """
        was_running = self._running
        self._running = False
        self._pending = None

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

        if was_running:
            self.state = ReplayState.STOPPED
            logger.info(f"Stopped replay {self.session_id} at entry {self._cursor}/{len(self.timing)}")

        return was_running

    def next_batch(self) -> Optional[Batch]:
        """
        Collect the next batch starting at the cursor without consuming it.

        The first entry always joins. Later entries join only while their
        own scaled delay is under the threshold, and collection ends once
        the batch's scaled delay reaches it.
        """
        start = self._cursor
        count = len(self.timing)
        if start >= count:
            return None

        delay = 0.0
        byte_count = 0
        index = start

        while index < count:
            entry = self.timing[index]
            if index != start and self._scaled_ms(entry.delay) >= self.batch_threshold_ms:
                break

            delay += entry.delay
            byte_count += entry.byte_count
            index += 1

            if self._scaled_ms(delay) >= self.batch_threshold_ms:
                break

        return Batch(start_index=start, end_index=index, delay=delay, byte_count=byte_count)

    def tick(self):
        """Timer callback: write the pending batch, then schedule the next."""
        self._handle = None
        batch = self._pending
        self._pending = None

        if not self._running or batch is None:
            return

        self.state = ReplayState.EMITTING
        self._elapsed += batch.delay

        try:
            chunk = self.blob.read(self._read_offset, batch.byte_count)
            self._read_offset += len(chunk)
            if chunk:
                self._bytes_sent += len(chunk)
                text = self._decoder.decode(chunk)
                if text:
                    self._emit(ServerMessage.output(text))
        except Exception:
            logger.exception(
                f"Replay {self.session_id}: failed to send entries "
                f"{batch.start_index}-{batch.end_index - 1}"
            )

        # The sink may have stopped us
        if self._running:
            self.state = ReplayState.SCHEDULED
            self._schedule_next()

    def _scaled_ms(self, seconds: float) -> float:
        return seconds * 1000 / self.speed

    def _schedule_next(self):
        if not self._running:
            return

        batch = self.next_batch()
        if batch is None:
            self._finish()
            return

        self._cursor = batch.end_index
        self._pending = batch
        self._handle = self._scheduler.call_later(batch.wait_ms(self.speed) / 1000, self.tick)

    def _finish(self):
        self._running = False
        self.state = ReplayState.FINISHED
        logger.info(f"Replay {self.session_id} finished: {self._bytes_sent} bytes sent")

        try:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._emit(ServerMessage.output(tail))
            self._emit(ServerMessage.end())
        except Exception:
            logger.exception(f"Replay {self.session_id}: failed to send end message")


class ReplayController:
    """
    Owns the replay session of one client connection.

    Starting a replay cancels whatever was playing before.
    """

    def __init__(self, emit: EmitCallback, scheduler: Optional[Scheduler] = None):
        self._emit = emit
        self._scheduler = scheduler
        self.session: Optional[ReplaySession] = None

    def play(self, recording: Recording, speed: float = 1.0) -> ReplaySession:
        """Start playing ``recording``, replacing any current session."""
        self.close()

        session = ReplaySession.for_recording(
            recording,
            self._emit,
            speed=speed,
            scheduler=self._scheduler,
        )
        self.session = session

        self._emit(ServerMessage.start(duration=recording.duration, speed=session.speed))
        session.start()
        return session

    def stop(self) -> bool:
        """Stop on client request. Sends ``stopped`` if something was playing."""
        if self.session is None or not self.session.stop():
            return False

        self._emit(ServerMessage.stopped())
        return True

    def close(self):
        """Stop silently, e.g. when the connection goes away."""
        if self.session is not None:
            self.session.stop()
            self.session = None

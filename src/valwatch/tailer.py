"""Live tail of the VALORANT ShooterGame.log.

The tailer opens the log, jumps to its current end and then reads lines as
the game appends them. Each complete line goes through the event classifier
and any resulting event is published on the EventBus.

Reads are driven by a short polling interval. A watchdog observer on the
log directory wakes the reader early when the file is modified, so events
arrive promptly without relying on filesystem notifications being delivered.
"""

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from valwatch.bus import EventBus
from valwatch.events import LogEvent, classify

logger = logging.getLogger(__name__)

LOG_PATH_ENV = "VALORANT_LOG_PATH"
DEFAULT_POLL_INTERVAL = 0.1


def default_log_path() -> Path:
    """Standard ShooterGame.log location, honouring VALORANT_LOG_PATH."""
    env_path = os.environ.get(LOG_PATH_ENV)
    if env_path:
        return Path(env_path)

    local_appdata = os.environ.get("LOCALAPPDATA")
    base = Path(local_appdata) if local_appdata else Path.home() / "AppData" / "Local"
    return base / "VALORANT" / "Saved" / "Logs" / "ShooterGame.log"


class TailerState(Enum):
    """Lifecycle of a LogTailer. STOPPED is terminal."""
    OPENING = "opening"
    TAILING = "tailing"
    STOPPED = "stopped"


class _WakeHandler(FileSystemEventHandler):
    """Sets the reader's wake event whenever the log file changes."""

    def __init__(self, log_path: Path, wake: threading.Event) -> None:
        super().__init__()
        self.log_path = log_path
        self.wake = wake

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        try:
            if Path(event.src_path).resolve() == self.log_path:
                self.wake.set()
        except OSError:
            # Path resolution can race with the file being replaced
            self.wake.set()


class LogTailer:
    """Tails ShooterGame.log and publishes classified events.

    Only lines appended after start() are observed. A file that shrinks
    below the read position is treated as truncated and read again from the
    beginning. A file that is replaced outright is not followed.

    Example:
        bus = EventBus()
        with LogTailer(bus) as tailer:
            with bus.subscribe() as sub:
                print(sub.get(timeout=30))
    """

    def __init__(
        self,
        bus: EventBus,
        log_path: Optional[str] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        classifier: Callable[[str], Optional[LogEvent]] = classify,
        use_watchdog: bool = True,
    ) -> None:
        """Initialize the tailer.

        Args:
            bus: Bus to publish classified events on.
            log_path: Path to ShooterGame.log. Defaults to VALORANT_LOG_PATH
                     env var or the standard location.
            poll_interval: Seconds to wait when no new data is available.
            classifier: Line -> event function.
            use_watchdog: Wake the reader on filesystem notifications.
        """
        self.bus = bus
        self.log_path = Path(log_path).resolve() if log_path else default_log_path().resolve()
        self.poll_interval = poll_interval
        self.classifier = classifier
        self._use_watchdog = use_watchdog

        self._state = TailerState.OPENING
        self._state_lock = threading.Lock()
        self._file: Optional[BinaryIO] = None
        self._pending = b""
        self._stop_event = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._observer: Optional[Observer] = None

        self.lines_read: int = 0
        self.events_published: int = 0

        logger.info(f"LogTailer initialized for: {self.log_path}")

    @property
    def state(self) -> TailerState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: TailerState) -> None:
        with self._state_lock:
            self._state = state
        logger.debug(f"Tailer state -> {state.value}")

    @property
    def file_position(self) -> int:
        """Current byte offset of the reader, 0 when not tailing."""
        f = self._file
        if f is None or f.closed:
            return 0
        try:
            return f.tell() - len(self._pending)
        except (OSError, ValueError):
            return 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Open the log at its current end and start the reader thread.

        Returns:
            True if tailing started, False if the log could not be opened
            (the tailer is then STOPPED).
        """
        if self.state != TailerState.OPENING:
            logger.warning(f"Tailer cannot start from state {self.state.value}")
            return False

        try:
            self._file = open(self.log_path, "rb")
            self._file.seek(0, os.SEEK_END)
        except OSError as e:
            logger.warning(f"Could not open log file {self.log_path}: {e}")
            self._set_state(TailerState.STOPPED)
            return False

        logger.debug(f"Starting at byte offset {self._file.tell()}")
        self._set_state(TailerState.TAILING)

        if self._use_watchdog:
            self._start_observer()

        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="ValwatchLogTailer",
        )
        self._thread.start()
        logger.info(f"Tailing {self.log_path}")
        return True

    def _start_observer(self) -> None:
        handler = _WakeHandler(self.log_path, self._wake)
        observer = Observer()
        try:
            observer.schedule(handler, str(self.log_path.parent), recursive=False)
            observer.start()
        except OSError as e:
            # Polling alone still delivers every line
            logger.warning(f"File notifications unavailable, polling only: {e}")
            return
        self._observer = observer

    def _stop_observer(self, timeout: float = 5.0) -> None:
        with self._state_lock:
            observer, self._observer = self._observer, None
        if observer is not None:
            observer.stop()
            observer.join(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the reader at its next poll boundary and release the file."""
        self._stop_event.set()
        self._wake.set()
        self._stop_observer(timeout)

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

        if self.state == TailerState.OPENING:
            self._set_state(TailerState.STOPPED)
        logger.info("Tailer stopped")

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the reader thread to finish."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _run(self) -> None:
        """Reader loop. Runs until stop() or a read error."""
        f = self._file
        try:
            while not self._stop_event.is_set():
                chunk = f.readline()
                if chunk:
                    self._consume(chunk)
                    continue

                self._check_truncated(f)
                self._wake.wait(self.poll_interval)
                self._wake.clear()
        except (OSError, ValueError) as e:
            logger.warning(f"Error reading log file, tailer stopping: {e}")
        finally:
            self._set_state(TailerState.STOPPED)
            self._stop_observer()
            f.close()

    def _consume(self, chunk: bytes) -> None:
        """Buffer partial lines; hand complete ones to the classifier."""
        if not chunk.endswith(b"\n"):
            self._pending += chunk
            return

        raw = self._pending + chunk
        self._pending = b""
        self.lines_read += 1
        self._handle_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    def _check_truncated(self, f: BinaryIO) -> None:
        size = os.fstat(f.fileno()).st_size
        if size < f.tell():
            logger.info(f"Log truncated (size {size} < position {f.tell()}), rewinding")
            f.seek(0)
            self._pending = b""

    def _handle_line(self, line: str) -> None:
        try:
            event = self.classifier(line)
        except Exception as e:
            logger.debug(f"Classifier error, line ignored: {e}")
            return

        if event is None:
            return

        logger.debug(f"Log event: {event.to_dict()}")
        self.bus.publish(event)
        self.events_published += 1

    def __enter__(self) -> "LogTailer":
        """Context manager entry."""
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.stop()

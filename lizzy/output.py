"""Publish the status line to a file and poke the status bar with a signal."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import json
import os
import signal
import tempfile
from functools import wraps
from pathlib import Path
from typing import List, Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
import psutil

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from lizzy.exceptions import OutputError
from lizzy.formatter import RenderedOutput
from lizzy.logging import get_logger

logger = get_logger(__name__)


def default_output_path() -> Path:
    """$XDG_RUNTIME_DIR/lizzy/status, or a per-user directory in the temp dir."""
    runtime_dir = os.getenv('XDG_RUNTIME_DIR')
    if runtime_dir:
        return Path(runtime_dir) / 'lizzy' / 'status'
    return Path(tempfile.gettempdir()) / f'lizzy-{os.getuid()}' / 'status'


def retry_on_oserror(max_retries: int = 3):
    """
    Decorator for file operations with retry logic.

    Attempts follow each other immediately; the caller runs inside the
    main loop, which must never sleep.

    Args:
        max_retries: Maximum number of attempts

    Raises:
        OutputError: When every attempt failed
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except OSError as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.debug("Write failed (attempt %d/%d): %s, retrying",
                                     attempt + 1, max_retries, e)
                    else:
                        logger.error("Write failed after %d attempts: %s", max_retries, e)

            raise OutputError(str(last_exception)) from last_exception
        return wrapper
    return decorator


class OutputSink:
    """Writes RenderedOutput atomically and signals the consumer."""

    def __init__(self, path: Optional[Path] = None, signal_number: int = 8,
                 consumer: str = 'waybar', consumer_pid: Optional[int] = None,
                 as_json: bool = False):
        """
        Initialize the sink.

        Args:
            path: Status file, defaults to default_output_path()
            signal_number: Offset from SIGRTMIN delivered after each write
            consumer: Process name of the status bar
            consumer_pid: PID (negative for a process group) overriding consumer
            as_json: Write Waybar-style JSON instead of bare text
        """
        self.path = Path(path) if path else default_output_path()
        self.signal_number = signal_number
        self.consumer = consumer
        self.consumer_pid = consumer_pid
        self.as_json = as_json
        self._pids: List[int] = []

    @property
    def realtime_signal(self) -> int:
        return signal.SIGRTMIN + self.signal_number

    def publish(self, output: RenderedOutput) -> None:
        """
        Replace the status file and notify the consumer.

        The consumer is notified on every call, even if the text did not
        change, so a restarted bar picks up the current line.

        Raises:
            OutputError: If the file could not be written
        """
        self._write(self._serialize(output))
        self.notify()

    def clear(self) -> None:
        """Publish the empty (cleared) state."""
        self.publish(RenderedOutput())

    def _serialize(self, output: RenderedOutput) -> str:
        if not self.as_json:
            return output.text
        return json.dumps(
            {'text': output.text, 'alt': output.status, 'class': output.status},
            ensure_ascii=False,
        )

    @retry_on_oserror()
    def _write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix='.status-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(content)
            os.replace(tmp_name, self.path)
        except OSError:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def _consumer_pids(self) -> List[int]:
        if self.consumer_pid is not None:
            return [self.consumer_pid]
        if not self.consumer:
            return []
        # Rescan only when nothing is cached; notify() drops the cache when a PID is gone
        if not self._pids:
            self._pids = [proc.pid for proc in psutil.process_iter(['name'])
                          if proc.info.get('name') == self.consumer]
        return list(self._pids)

    def notify(self) -> None:
        """Send the real-time signal to the consumer; a missing consumer is not an error."""
        pids = self._consumer_pids()
        if not pids:
            logger.debug("No %s process to notify", self.consumer or 'consumer')
        for pid in pids:
            try:
                if pid < 0:
                    os.killpg(-pid, self.realtime_signal)
                else:
                    os.kill(pid, self.realtime_signal)
            except ProcessLookupError:
                logger.debug("Consumer %d is gone", pid)
                self._pids = []
            except PermissionError as e:
                logger.warning("Cannot signal consumer %d: %s", pid, e)

"""Linux-native logging for the status bridge.

Logs go to a rotating file in the XDG data directory and, for warnings and
errors, to stderr so they show up in the journal when lizzy is started from
a status bar or a systemd user unit.
"""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
# None

ROOT_LOGGER_NAME = "lizzy"


class LinuxLogger:
    """
    Linux-native logger with file and console output.

    Supports:
    - File logging to XDG data directory
    - Console output for warnings and errors (everything when verbose)
    - Environment variable control (LIZZY_DEBUG)
    """

    _instance: Optional["LinuxLogger"] = None

    def __init__(self, log_dir: Optional[Path] = None, verbose: bool = False):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files (defaults to XDG data dir)
            verbose: Mirror debug output to stderr
        """
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        debug = verbose or bool(os.getenv("LIZZY_DEBUG"))
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        # Prevent duplicate handlers
        if self.logger.handlers:
            return

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        if log_dir is None:
            xdg_data = os.getenv("XDG_DATA_HOME", Path.home() / ".local" / "share")
            log_dir = Path(xdg_data) / "lizzy" / "logs"

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_dir / "lizzy.log", maxBytes=1024 * 1024, backupCount=3  # 1MB
            )
        except OSError as e:
            # A read-only home must not keep the bar from updating
            self.logger.warning("File logging disabled (%s): %s", log_dir, e)
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(formatter)
            self.logger.addHandler(file_handler)

    @classmethod
    def setup(cls, log_dir: Optional[Path] = None, verbose: bool = False) -> "LinuxLogger":
        """
        Configure logging once at startup.

        Args:
            log_dir: Directory for log files
            verbose: Mirror debug output to stderr

        Returns:
            The logger singleton
        """
        if cls._instance is None:
            cls._instance = cls(log_dir=log_dir, verbose=verbose)
        elif verbose:
            cls.set_level(logging.DEBUG)
        return cls._instance

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger instance.

        Handlers are attached lazily by setup(); until then records simply
        propagate to the root logger, which keeps imports side-effect free.

        Args:
            name: Logger name (creates child logger)

        Returns:
            Logger instance
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        if name == ROOT_LOGGER_NAME:
            return root
        if name.startswith(ROOT_LOGGER_NAME + "."):
            name = name[len(ROOT_LOGGER_NAME) + 1:]
        return root.getChild(name)

    @classmethod
    def set_level(cls, level: int) -> None:
        """
        Set logging level for the lizzy logger and its console handler.

        Args:
            level: Logging level (logging.DEBUG, logging.INFO, etc.)
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        root.setLevel(level)
        for handler in root.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(
                handler, logging.FileHandler
            ):
                handler.setLevel(level)


# Convenience function
def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return LinuxLogger.get_logger(name)

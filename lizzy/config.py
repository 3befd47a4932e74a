"""Configuration management using XDG Base Directory Specification.

Settings live in ~/.config/lizzy/config.ini (or XDG_CONFIG_HOME). Command
line flags override them; the result is frozen into an Options value that
the core treats as immutable for the lifetime of the process.
"""

import configparser
import os
import signal
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

from lizzy.exceptions import ConfigurationError
from lizzy.formatter import DEFAULT_TEMPLATE, PLACEHOLDERS


DEFAULTS: Dict[str, Dict[str, str]] = {
    'output': {
        'path': '',
        'length': '45',
        'signal': '8',
        'consumer': 'waybar',
        'consumer_pid': '',
        'format': DEFAULT_TEMPLATE,
        'playing': 'Playing:',
        'paused': 'Paused:',
        'stopped': 'Stopped:',
        'escape_markup': 'true',
        'json': 'false',
    },
    'player': {
        'pattern': '',
        'autotoggle': 'false',
        'autoresume': 'false',
        'call_timeout': '2.0',
    },
}


class Config:
    """
    Configuration manager using XDG Base Directory Specification.

    Follows Linux standards:
    - Config: ~/.config/lizzy/ (or XDG_CONFIG_HOME)
    - Data: ~/.local/share/lizzy/ (or XDG_DATA_HOME), used for logs
    """

    _instance: Optional['Config'] = None

    def __init__(self, config_file: Optional[Path] = None) -> None:
        """
        Initialize configuration manager.

        Args:
            config_file: Explicit config file instead of the XDG location
        """
        self.config_home = Path(os.getenv('XDG_CONFIG_HOME', Path.home() / '.config'))
        self.data_home = Path(os.getenv('XDG_DATA_HOME', Path.home() / '.local' / 'share'))

        self.app_name = 'lizzy'
        self.config_dir = self.config_home / self.app_name
        self.data_dir = self.data_home / self.app_name

        self.config_file = Path(config_file) if config_file else self.config_dir / 'config.ini'
        # Placeholders contain braces, not %, but keep values literal anyway
        self.config = configparser.ConfigParser(interpolation=None)
        self.config.read_dict(DEFAULTS)

        self._load_config()

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _load_config(self) -> None:
        """Load configuration from file or create defaults."""
        if self.config_file.exists():
            try:
                self.config.read(self.config_file, encoding='utf-8')
            except configparser.Error as e:
                raise ConfigurationError(f"Cannot parse {self.config_file}: {e}") from e
        else:
            self.save()

    def save(self) -> None:
        """Write the current configuration to the config file."""
        try:
            self.config_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file, 'w', encoding='utf-8') as f:
                self.config.write(f)
        except OSError as e:
            from lizzy.logging import get_logger
            logger = get_logger(__name__)
            logger.warning("Failed to save config: %s", e)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        """Get a configuration value."""
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """Set a configuration value (in memory)."""
        if section not in self.config:
            self.config.add_section(section)
        self.config.set(section, key, value)

    def get_bool(self, section: str, key: str, fallback: bool = False) -> bool:
        """Get a boolean configuration value."""
        try:
            return self.config.getboolean(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        """Get an integer configuration value."""
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        """Get a float configuration value."""
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key}: {e}") from e

    def get_path(self, section: str, key: str, fallback: Optional[Path] = None) -> Optional[Path]:
        """Get a path configuration value."""
        value = self.get(section, key)
        if value:
            return Path(value).expanduser()
        return fallback

    @property
    def log_dir(self) -> Path:
        """Get log directory."""
        return self.data_dir / 'logs'


@dataclass(frozen=True)
class Options:
    """Validated runtime settings."""

    length: int = 45
    signal: int = 8
    format: str = DEFAULT_TEMPLATE
    playing: str = 'Playing:'
    paused: str = 'Paused:'
    stopped: str = 'Stopped:'
    escape_markup: bool = True
    json: bool = False
    output_path: Optional[Path] = None
    consumer: str = 'waybar'
    consumer_pid: Optional[int] = None
    mediaplayer: str = ''
    autotoggle: bool = False
    autoresume: bool = False
    call_timeout: float = 2.0

    @classmethod
    def from_config(cls, config: Config, **overrides: Any) -> 'Options':
        """
        Build options from the config file, then apply overrides.

        Overrides that are None are ignored, so argparse namespaces can be
        passed through as-is.

        Raises:
            ConfigurationError: If a value is malformed or out of range
        """
        consumer_pid = config.get('output', 'consumer_pid')
        try:
            consumer_pid = int(consumer_pid) if consumer_pid else None
        except ValueError as e:
            raise ConfigurationError(f"[output] consumer_pid: {e}") from e

        options = cls(
            length=config.get_int('output', 'length', 45),
            signal=config.get_int('output', 'signal', 8),
            format=config.get('output', 'format', DEFAULT_TEMPLATE),
            playing=config.get('output', 'playing', 'Playing:'),
            paused=config.get('output', 'paused', 'Paused:'),
            stopped=config.get('output', 'stopped', 'Stopped:'),
            escape_markup=config.get_bool('output', 'escape_markup', True),
            json=config.get_bool('output', 'json', False),
            output_path=config.get_path('output', 'path'),
            consumer=config.get('output', 'consumer', 'waybar'),
            consumer_pid=consumer_pid,
            mediaplayer=config.get('player', 'pattern', ''),
            autotoggle=config.get_bool('player', 'autotoggle', False),
            autoresume=config.get_bool('player', 'autoresume', False),
            call_timeout=config.get_float('player', 'call_timeout', 2.0),
        )
        options = replace(options, **{k: v for k, v in overrides.items() if v is not None})
        options.validate()
        return options

    def validate(self) -> None:
        """
        Check value ranges.

        Raises:
            ConfigurationError: On the first invalid value
        """
        if self.length < 1:
            raise ConfigurationError(f"length must be at least 1, got {self.length}")
        max_signal = signal.SIGRTMAX - signal.SIGRTMIN
        if not 0 <= self.signal <= max_signal:
            raise ConfigurationError(f"signal must be between 0 and {max_signal}, got {self.signal}")
        if not any('{{%s}}' % name in self.format for name in PLACEHOLDERS):
            raise ConfigurationError(
                f"format {self.format!r} uses none of the placeholders "
                + ", ".join('{{%s}}' % name for name in PLACEHOLDERS))
        if self.call_timeout <= 0:
            raise ConfigurationError(f"call_timeout must be positive, got {self.call_timeout}")
        if self.autoresume and not self.autotoggle:
            raise ConfigurationError("autoresume requires autotoggle")


# Convenience function
def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()

#!/usr/bin/env python3
"""lizzy - MPRIS now-playing bridge for Waybar and similar status bars."""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import gi
gi.require_version('GLib', '2.0')
from gi.repository import GLib

from lizzy.autotoggle import AutotoggleCoordinator
from lizzy.bridge import StatusBridge
from lizzy.config import Config, Options
from lizzy.dbus_utils import BusConnection
from lizzy.exceptions import BusConnectionError, ConfigurationError, LizzyError
from lizzy.formatter import Formatter
from lizzy.logging import LinuxLogger, get_logger
from lizzy.matcher import PlayerMatcher
from lizzy.output import OutputSink
from lizzy.registry import PlayerRegistry
from lizzy.subscriber import SignalSubscriber

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Command line flags; anything left unset falls back to config.ini."""
    parser = argparse.ArgumentParser(
        prog='lizzy',
        description='Show the playing MPRIS track in a status bar',
    )
    parser.add_argument('--config', type=Path, help='Config file (default: ~/.config/lizzy/config.ini)')
    parser.add_argument('--length', type=int,
                        help='Max length of the output before truncating (an escaped & counts as 5)')
    parser.add_argument('--signal', type=int, help='Real-time signal offset used to update the bar')
    parser.add_argument('--format', help='Output template using {{status}}, {{artist}} and {{title}}')
    parser.add_argument('--playing', help='Indicator used when a song is playing')
    parser.add_argument('--paused', help='Indicator used when a song is paused')
    parser.add_argument('--stopped', help='Indicator used when playback is stopped')
    parser.add_argument('--mediaplayer', help="Player name pattern, e.g. 'spotify' or 'firefox*'")
    parser.add_argument('--autotoggle', action='store_true', default=None,
                        help='Pause other players when one starts playing')
    parser.add_argument('--autoresume', action='store_true', default=None,
                        help='Resume paused players when the interrupting one stops (needs --autotoggle)')
    parser.add_argument('--output', dest='output_path', type=Path, help='Status file to write')
    parser.add_argument('--consumer', help='Process name of the status bar to signal')
    parser.add_argument('--consumer-pid', dest='consumer_pid', type=int,
                        help='PID to signal instead (negative for a process group)')
    parser.add_argument('--json', action='store_true', default=None,
                        help='Write Waybar JSON instead of plain text')
    parser.add_argument('--no-escape', dest='escape_markup', action='store_false', default=None,
                        help='Do not escape & for Pango markup')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug output to stderr')
    return parser


def load_options(args: argparse.Namespace) -> Tuple[Config, Options]:
    """Merge config file and command line into Options."""
    config = Config(config_file=args.config) if args.config else Config.get_instance()
    overrides = {k: v for k, v in vars(args).items() if k not in ('config', 'verbose')}
    return config, Options.from_config(config, **overrides)


class Application:
    """Builds the pipeline and runs the GLib main loop until told to stop."""

    def __init__(self, options: Options, connection: Optional[BusConnection] = None):
        self.options = options
        self.connection = connection or BusConnection()
        self.loop = GLib.MainLoop()
        self.error: Optional[LizzyError] = None

        matcher = PlayerMatcher(options.mediaplayer)
        registry = PlayerRegistry()
        coordinator = None
        if options.autotoggle:
            coordinator = AutotoggleCoordinator(
                self.connection, registry,
                resume=options.autoresume, timeout=options.call_timeout,
            )
        formatter = Formatter(
            options.format, options.length,
            playing=options.playing, paused=options.paused, stopped=options.stopped,
            escape=options.escape_markup,
        )
        sink = OutputSink(
            options.output_path, options.signal,
            consumer=options.consumer, consumer_pid=options.consumer_pid,
            as_json=options.json,
        )
        self.bridge = StatusBridge(registry, formatter, sink, coordinator,
                                   drop_stopped=matcher.matches_all)
        self.subscriber = SignalSubscriber(self.connection, matcher, timeout=options.call_timeout)

        self.subscriber.on_player_updated = self.bridge.handle_update
        self.subscriber.on_player_vanished = self.bridge.handle_vanished
        self.bridge.on_fatal = self._fail
        self.connection.on_disconnected = lambda: self._fail(
            BusConnectionError("Session bus connection lost"))

    def _fail(self, error: LizzyError) -> None:
        if self.error is None:
            self.error = error
        self.loop.quit()

    def _on_unix_signal(self, signum: int) -> bool:
        logger.info("Received signal %d, shutting down", signum)
        self.loop.quit()
        return GLib.SOURCE_REMOVE

    def run(self) -> int:
        for signum in (signal.SIGTERM, signal.SIGINT, signal.SIGHUP):
            GLib.unix_signal_add(GLib.PRIORITY_HIGH, signum, self._on_unix_signal, signum)

        # Start from a cleared line, then let discovery fill it in
        self.bridge.publish()
        self.subscriber.start()
        logger.info("Listening for MPRIS players (pattern %r)", self.options.mediaplayer)
        try:
            if self.error is None:
                self.loop.run()
        finally:
            self.bridge.shutdown()
            self.connection.close()

        if self.error is not None:
            logger.critical("Fatal: %s", self.error)
            return 1
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    try:
        config, options = load_options(args)
    except ConfigurationError as e:
        print(f"lizzy: {e}", file=sys.stderr)
        return 1

    LinuxLogger.setup(log_dir=config.log_dir, verbose=args.verbose)

    try:
        return Application(options).run()
    except LizzyError as e:
        logger.critical("Fatal: %s", e)
        return 1


if __name__ == '__main__':
    sys.exit(main())

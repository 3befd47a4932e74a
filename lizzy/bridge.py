"""Wires registry, selection, autotoggle, formatting and output together.

Every bus message is handled to completion (registry update, selection,
render, publish) before the next one is dispatched, so each published line
matches a fully applied state.
"""

from typing import Callable, Optional

from lizzy.autotoggle import AutotoggleCoordinator
from lizzy.exceptions import LizzyError, OutputError
from lizzy.formatter import Formatter, RenderedOutput
from lizzy.logging import get_logger
from lizzy.metadata import PlaybackStatus
from lizzy.output import OutputSink
from lizzy.registry import PlayerId, PlayerPatch, PlayerRegistry
from lizzy.selector import select_active

logger = get_logger(__name__)


class StatusBridge:
    """Applies player updates and republishes the status line after each one."""

    def __init__(self, registry: PlayerRegistry, formatter: Formatter, sink: OutputSink,
                 coordinator: Optional[AutotoggleCoordinator] = None,
                 drop_stopped: bool = False):
        """
        Initialize the bridge.

        Args:
            registry: Player registry
            formatter: Status line formatter
            sink: Output sink
            coordinator: Autotoggle coordinator, None when autotoggle is off
            drop_stopped: Forget players that stop without usable metadata
                (used when every player on the bus is tracked)
        """
        self.registry = registry
        self.formatter = formatter
        self.sink = sink
        self.coordinator = coordinator
        self.drop_stopped = drop_stopped

        # Called with the error when publishing can no longer continue
        self.on_fatal: Optional[Callable[[LizzyError], None]] = None

    def handle_update(self, player_id: PlayerId, patch: PlayerPatch) -> None:
        """Merge an update from the subscriber and republish."""
        if self.drop_stopped and self._is_dead_update(player_id, patch):
            self.handle_vanished(player_id)
            return

        update = self.registry.upsert(player_id, patch)
        logger.debug("%s: %s %r", player_id, update.current.status.value, update.current.metadata)
        if self.coordinator:
            self.coordinator.on_update(update)
        self.publish()

    def handle_vanished(self, player_id: PlayerId) -> None:
        """Forget a player that left the bus and republish."""
        if self.registry.remove(player_id) is None:
            return
        if self.coordinator:
            self.coordinator.on_removed(player_id)
        self.publish()

    def _is_dead_update(self, player_id: PlayerId, patch: PlayerPatch) -> bool:
        previous = self.registry.get(player_id)
        status = patch.status or (previous.status if previous else PlaybackStatus.STOPPED)
        has_metadata = patch.metadata is not None and not patch.metadata.is_empty
        return status is PlaybackStatus.STOPPED and not has_metadata

    def render(self) -> RenderedOutput:
        """Render the line for the currently selected player."""
        return self.formatter.render(select_active(self.registry.snapshot()))

    def publish(self) -> None:
        """Render from the registry and publish; write failures are fatal."""
        output = self.render()
        try:
            self.sink.publish(output)
        except OutputError as e:
            logger.error("Cannot publish status: %s", e)
            if self.on_fatal:
                self.on_fatal(e)
            else:
                raise

    def shutdown(self) -> None:
        """Clear the display on the way out, best effort."""
        try:
            self.sink.clear()
        except OutputError as e:
            logger.warning("Could not clear status on exit: %s", e)

"""Pause competing players when another one starts playing.

Requests are fire-and-forget: the coordinator never touches the registry.
Whatever the paused player does in response comes back as its own
PropertiesChanged signal and goes through the normal update path.
"""

from typing import Dict

from lizzy.dbus_utils import BusConnection, player_identity
from lizzy.logging import get_logger
from lizzy.registry import PlayerId, PlayerRegistry, Update

logger = get_logger(__name__)


class AutotoggleCoordinator:
    """Issues Pause (and optionally Play) requests to keep one player playing."""

    def __init__(self, connection: BusConnection, registry: PlayerRegistry,
                 resume: bool = False, timeout: float = 2.0):
        """
        Initialize the coordinator.

        Args:
            connection: Bus connection used for outbound calls
            registry: Registry to read (never written here)
            resume: Send Play to paused players when the player that
                displaced them stops playing or goes away
            timeout: Reply timeout for outbound calls, in seconds
        """
        self._connection = connection
        self._registry = registry
        self._resume = resume
        self._timeout = timeout
        # paused player -> player whose start caused the pause
        self._paused_by: Dict[PlayerId, PlayerId] = {}

    def on_update(self, update: Update) -> None:
        """React to a registry update."""
        player_id = update.current.id

        # A player that starts on its own is no longer waiting to be resumed
        if update.started_playing:
            self._paused_by.pop(player_id, None)
            for other in self._registry.playing(exclude=player_id):
                logger.info("%s started playing, pausing %s",
                            player_identity(player_id), player_identity(other.id))
                self._paused_by[other.id] = player_id
                self._request(other.id, 'Pause')
        elif update.stopped_playing:
            self._resume_displaced_by(player_id)

    def on_removed(self, player_id: PlayerId) -> None:
        """React to a player vanishing from the bus."""
        self._paused_by.pop(player_id, None)
        self._resume_displaced_by(player_id)

    def _resume_displaced_by(self, player_id: PlayerId) -> None:
        victims = [victim for victim, cause in self._paused_by.items() if cause == player_id]
        for victim in victims:
            del self._paused_by[victim]
        if not self._resume:
            return
        # Only one player is resumed; resuming several would just make them fight
        for victim in reversed(victims):
            state = self._registry.get(victim)
            if state is None or state.is_playing:
                continue
            if self._registry.playing():
                logger.debug("Not resuming %s, another player is playing", victim)
                return
            logger.info("Resuming %s", player_identity(victim))
            self._request(victim, 'Play')
            return

    def _request(self, player_id: PlayerId, method: str) -> None:
        self._connection.call_async(
            player_id, method,
            on_error=lambda error: self._on_error(player_id, method, error),
            timeout=self._timeout,
        )

    def _on_error(self, player_id: PlayerId, method: str, error: Exception) -> None:
        # Not retried; the player's own signals remain the source of truth
        logger.warning("%s request to %s failed: %s", method, player_identity(player_id), error)

    @property
    def pending_resumes(self) -> Dict[PlayerId, PlayerId]:
        """Players paused by the coordinator, keyed to the player that displaced them."""
        return dict(self._paused_by)

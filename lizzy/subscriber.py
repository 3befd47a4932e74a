"""Subscribe to MPRIS property changes and player lifecycle on the session bus.

PropertiesChanged signals arrive from unique connection names (':1.42'), so
the subscriber keeps a map from unique name to the well-known MPRIS names that
connection owns, seeded at startup and maintained from NameOwnerChanged. One
connection may own several player names (vlc and vlc.instance42). The
well-known name is the PlayerId handed to the rest of the pipeline.
"""

from typing import Any, Callable, Dict, Optional, Set

from lizzy.dbus_utils import (
    BusConnection,
    DBUS_BUS_NAME,
    DBUS_INTERFACE,
    MPRIS2_OBJECT_PATH,
    MPRIS2_PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    is_mpris_name,
    player_identity,
    to_python,
)
from lizzy.exceptions import SignalPayloadError
from lizzy.logging import get_logger
from lizzy.matcher import PlayerMatcher
from lizzy.metadata import PlaybackStatus, TrackMetadata
from lizzy.registry import PlayerId, PlayerPatch

logger = get_logger(__name__)

TRACKED_PROPERTIES = ('PlaybackStatus', 'Metadata')


def decode_properties(changed: Any) -> PlayerPatch:
    """
    Decode a changed-properties dictionary into a patch.

    Only PlaybackStatus and Metadata are looked at; anything else (Volume,
    Position, ...) is ignored, and missing keys stay None in the patch.

    Args:
        changed: a{sv} dictionary from PropertiesChanged or GetAll

    Returns:
        PlayerPatch

    Raises:
        SignalPayloadError: If the payload has the wrong shape
    """
    try:
        changed = to_python(changed)
    except (TypeError, ValueError) as e:
        raise SignalPayloadError(f"Cannot convert properties: {e}") from e
    if not isinstance(changed, dict):
        raise SignalPayloadError(f"Properties are not a dictionary: {type(changed).__name__}")

    status = None
    if 'PlaybackStatus' in changed:
        status = PlaybackStatus.parse(changed['PlaybackStatus'])
    metadata = None
    if 'Metadata' in changed:
        metadata = TrackMetadata.from_mpris(changed['Metadata'])
    return PlayerPatch(status=status, metadata=metadata)


class SignalSubscriber:
    """Turns bus signals for matched players into registry updates and removals."""

    def __init__(self, connection: BusConnection, matcher: PlayerMatcher, timeout: float = 2.0):
        """
        Initialize the subscriber.

        Args:
            connection: Shared bus connection
            matcher: Decides which players are tracked
            timeout: Reply timeout for property fetches, in seconds
        """
        self._connection = connection
        self._matcher = matcher
        self._timeout = timeout
        # unique name -> well-known MPRIS names, matched players only
        self._owners: Dict[str, Set[PlayerId]] = {}

        # Callbacks
        self.on_player_updated: Optional[Callable[[PlayerId, PlayerPatch], None]] = None
        self.on_player_vanished: Optional[Callable[[PlayerId], None]] = None

    def start(self) -> None:
        """Install signal receivers and pick up players that are already running."""
        self._connection.add_signal_receiver(
            self._on_properties_changed,
            signal_name='PropertiesChanged',
            dbus_interface=PROPERTIES_INTERFACE,
            path=MPRIS2_OBJECT_PATH,
            sender_keyword='sender',
        )
        self._connection.add_signal_receiver(
            self._on_name_owner_changed,
            signal_name='NameOwnerChanged',
            dbus_interface=DBUS_INTERFACE,
            bus_name=DBUS_BUS_NAME,
        )
        self._discover()

    def _discover(self) -> None:
        for name in self._connection.list_names():
            if not self._matcher.matches_bus_name(name):
                continue
            owner = self._connection.get_name_owner(name)
            if owner:
                logger.info("Found player %s", player_identity(name))
                self._owners.setdefault(owner, set()).add(name)
                self.fetch_properties(name)

    def tracked_owner(self, player_id: PlayerId) -> Optional[str]:
        """Unique name currently owning a tracked player's bus name."""
        for owner, names in self._owners.items():
            if player_id in names:
                return owner
        return None

    def _release(self, owner: str, name: PlayerId) -> None:
        names = self._owners.get(owner)
        if names is None:
            return
        names.discard(name)
        if not names:
            del self._owners[owner]

    def fetch_properties(self, player_id: PlayerId) -> None:
        """Asynchronously read a player's current status and metadata."""
        self._connection.call_async(
            player_id, 'GetAll',
            interface=PROPERTIES_INTERFACE,
            signature='s',
            args=(MPRIS2_PLAYER_INTERFACE,),
            on_reply=lambda properties: self._on_properties_fetched(player_id, properties),
            on_error=lambda error: logger.warning(
                "Could not read properties of %s: %s", player_identity(player_id), error),
            timeout=self._timeout,
        )

    def _on_properties_fetched(self, player_id: PlayerId, properties: Any) -> None:
        if self.tracked_owner(player_id) is None:
            logger.debug("Dropping properties of %s, it is gone", player_id)
            return
        self._forward(player_id, properties)

    def _on_properties_changed(self, interface, changed, invalidated, sender=None):
        """Handle PropertiesChanged from any object at /org/mpris/MediaPlayer2."""
        if interface != MPRIS2_PLAYER_INTERFACE:
            return
        player_ids = sorted(self._owners.get(str(sender), ())) if sender else []
        if not player_ids:
            logger.debug("Ignoring properties from untracked sender %s", sender)
            return

        # Players may announce a change without its value
        try:
            refetch = any(str(name) in TRACKED_PROPERTIES for name in invalidated or ())
        except TypeError:
            refetch = False

        for player_id in player_ids:
            self._forward(player_id, changed)
            if refetch:
                self.fetch_properties(player_id)

    def _forward(self, player_id: PlayerId, properties: Any) -> None:
        try:
            patch = decode_properties(properties)
        except SignalPayloadError as e:
            logger.warning("Dropping malformed update from %s: %s", player_identity(player_id), e)
            return
        if patch.is_empty:
            return
        if self.on_player_updated:
            self.on_player_updated(player_id, patch)

    def _on_name_owner_changed(self, name, old_owner, new_owner):
        """Track players appearing, changing owner and vanishing."""
        name, old_owner, new_owner = str(name), str(old_owner or ''), str(new_owner or '')
        if not is_mpris_name(name) or not self._matcher.matches(name):
            return

        if old_owner:
            self._release(old_owner, name)

        if new_owner:
            self._owners.setdefault(new_owner, set()).add(name)
            logger.info("Player %s appeared", player_identity(name))
            # A player may start out playing without sending PropertiesChanged
            self.fetch_properties(name)
        elif old_owner:
            logger.info("Player %s vanished", player_identity(name))
            if self.on_player_vanished:
                self.on_player_vanished(name)

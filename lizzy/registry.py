"""In-memory registry of tracked players and their last known state."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
import time
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

# ============================================================================
# Third-Party Imports (alphabetical, with version requirements)
# ============================================================================
# None

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from lizzy.logging import get_logger
from lizzy.metadata import PlaybackStatus, TrackMetadata

logger = get_logger(__name__)

# Well-known MPRIS bus name of the player, e.g. 'org.mpris.MediaPlayer2.spotify'
PlayerId = str


@dataclass(frozen=True)
class PlayerPatch:
    """Fields carried by one bus message; None means 'not in this message'."""

    status: Optional[PlaybackStatus] = None
    metadata: Optional[TrackMetadata] = None

    @property
    def is_empty(self) -> bool:
        return self.status is None and self.metadata is None


@dataclass(frozen=True)
class PlayerState:
    """Registry entry for one player."""

    id: PlayerId
    status: PlaybackStatus
    metadata: TrackMetadata
    last_updated: float
    # Insertion order, used to break last_updated ties
    sequence: int

    @property
    def is_playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING


@dataclass(frozen=True)
class Update:
    """Result of an upsert: the entry before and after the merge."""

    previous: Optional[PlayerState]
    current: PlayerState

    @property
    def previous_status(self) -> Optional[PlaybackStatus]:
        return self.previous.status if self.previous else None

    @property
    def started_playing(self) -> bool:
        """True when this update moved the player into Playing."""
        return self.current.is_playing and self.previous_status is not PlaybackStatus.PLAYING

    @property
    def stopped_playing(self) -> bool:
        """True when this update moved the player out of Playing."""
        return self.previous_status is PlaybackStatus.PLAYING and not self.current.is_playing


class PlayerRegistry:
    """
    Mapping of PlayerId to PlayerState.

    Owned by the main loop. Entries are immutable and replaced wholesale on
    every upsert, so a snapshot can never observe a half-applied merge.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Initialize an empty registry.

        Args:
            clock: Monotonic time source
        """
        self._clock = clock
        self._players: Dict[PlayerId, PlayerState] = {}
        self._next_sequence = 0

    def upsert(self, player_id: PlayerId, patch: PlayerPatch) -> Update:
        """
        Merge the fields present in patch into the player's entry.

        Fields absent from the patch keep their previous values; a new entry
        starts out Stopped with empty metadata.

        Args:
            player_id: Player to update
            patch: Changed fields

        Returns:
            The entry before and after the merge
        """
        previous = self._players.get(player_id)
        now = self._clock()
        if previous is None:
            current = PlayerState(
                id=player_id,
                status=patch.status or PlaybackStatus.STOPPED,
                metadata=patch.metadata or TrackMetadata(),
                last_updated=now,
                sequence=self._next_sequence,
            )
            self._next_sequence += 1
            logger.debug("Tracking new player %s", player_id)
        else:
            current = replace(
                previous,
                status=patch.status if patch.status is not None else previous.status,
                metadata=patch.metadata if patch.metadata is not None else previous.metadata,
                last_updated=now,
            )
        self._players[player_id] = current
        return Update(previous=previous, current=current)

    def remove(self, player_id: PlayerId) -> Optional[PlayerState]:
        """
        Forget a player.

        Args:
            player_id: Player to remove

        Returns:
            The removed entry, or None if it was not tracked
        """
        removed = self._players.pop(player_id, None)
        if removed is not None:
            logger.debug("Stopped tracking %s", player_id)
        return removed

    def get(self, player_id: PlayerId) -> Optional[PlayerState]:
        return self._players.get(player_id)

    def snapshot(self) -> Mapping[PlayerId, PlayerState]:
        """Read-only copy of all current entries."""
        return MappingProxyType(dict(self._players))

    def playing(self, exclude: Optional[PlayerId] = None) -> Tuple[PlayerState, ...]:
        """Entries currently Playing, optionally excluding one player."""
        return tuple(
            state for state in self._players.values()
            if state.is_playing and state.id != exclude
        )

    def __contains__(self, player_id: PlayerId) -> bool:
        return player_id in self._players

    def __len__(self) -> int:
        return len(self._players)

"""Playback status and track metadata as reported by MPRIS players."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from lizzy.exceptions import SignalPayloadError


class PlaybackStatus(Enum):
    """MPRIS PlaybackStatus values."""

    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def parse(cls, value: Any) -> "PlaybackStatus":
        """
        Map a reported status string onto the enum.

        Unknown or missing values count as stopped.

        Args:
            value: Raw PlaybackStatus property value

        Returns:
            PlaybackStatus member
        """
        if value is None:
            return cls.STOPPED
        if not isinstance(value, str):
            raise SignalPayloadError(f"PlaybackStatus is not a string: {value!r}")
        try:
            return cls(value)
        except ValueError:
            return cls.STOPPED


@dataclass(frozen=True)
class TrackMetadata:
    """Artist, title and art of the track a player reports.

    Missing fields are empty rather than placeholder text.
    """

    artist: Tuple[str, ...] = ()
    title: str = ""
    art_url: Optional[str] = None

    @property
    def artist_display(self) -> str:
        """Artists joined for display."""
        return ", ".join(a for a in self.artist if a)

    @property
    def is_empty(self) -> bool:
        """True when there is nothing worth showing."""
        return not self.title and not self.artist_display

    @classmethod
    def from_mpris(cls, metadata: Mapping[str, Any]) -> "TrackMetadata":
        """
        Build metadata from an MPRIS Metadata dictionary.

        Args:
            metadata: xesam/mpris keyed dictionary (already converted to
                native Python types)

        Returns:
            TrackMetadata

        Raises:
            SignalPayloadError: If the dictionary or its fields have the wrong shape
        """
        if not isinstance(metadata, Mapping):
            raise SignalPayloadError(f"Metadata is not a dictionary: {type(metadata).__name__}")

        title = metadata.get("xesam:title", "")
        if title is None:
            title = ""
        if not isinstance(title, str):
            raise SignalPayloadError(f"xesam:title is not a string: {title!r}")

        artist = metadata.get("xesam:artist", ())
        # Some players send a bare string instead of a list
        if isinstance(artist, str):
            artist = (artist,)
        elif isinstance(artist, (list, tuple)):
            if not all(isinstance(a, str) for a in artist):
                raise SignalPayloadError(f"xesam:artist has non-string entries: {artist!r}")
            artist = tuple(artist)
        elif artist is None:
            artist = ()
        else:
            raise SignalPayloadError(f"xesam:artist is not a list: {artist!r}")

        art_url = metadata.get("mpris:artUrl")
        if art_url is not None and not isinstance(art_url, str):
            art_url = None

        return cls(artist=artist, title=title, art_url=art_url or None)

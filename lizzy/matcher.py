"""Decide which MPRIS players are tracked, from a glob-style pattern."""

import re

from lizzy.dbus_utils import is_mpris_name, player_identity


class PlayerMatcher:
    """
    Match player identities against a pattern.

    The identity is the bus name without the 'org.mpris.MediaPlayer2.'
    prefix, so 'firefox*' matches 'org.mpris.MediaPlayer2.firefox.instance3'.
    Matching is case-sensitive and anchored; '*' matches any run of
    characters, including none. An empty pattern matches every player.
    """

    def __init__(self, pattern: str = ""):
        self.pattern = pattern
        parts = (re.escape(part) for part in pattern.split("*"))
        self._regex = re.compile(".*".join(parts), re.DOTALL)

    @property
    def matches_all(self) -> bool:
        return not self.pattern

    def matches(self, identity: str) -> bool:
        """
        Check a player identity (or full MPRIS bus name) against the pattern.

        Args:
            identity: e.g. 'spotify' or 'org.mpris.MediaPlayer2.spotify'

        Returns:
            True if the player should be tracked
        """
        if self.matches_all:
            return True
        return self._regex.fullmatch(player_identity(identity)) is not None

    def matches_bus_name(self, bus_name: str) -> bool:
        """Like matches(), but only for well-known MPRIS names."""
        return is_mpris_name(bus_name) and self.matches(bus_name)

    def __repr__(self):
        return f"PlayerMatcher(pattern={self.pattern!r})"

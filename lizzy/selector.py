"""Pick the one player whose track is shown on the bar."""

from typing import Mapping, Optional

from lizzy.registry import PlayerId, PlayerState


def _recency(state: PlayerState):
    return (state.last_updated, state.sequence)


def select_active(snapshot: Mapping[PlayerId, PlayerState]) -> Optional[PlayerState]:
    """
    Choose the authoritative player from a registry snapshot.

    The most recently updated Playing player wins; without one, the most
    recently updated player of any status. Equal timestamps go to the entry
    inserted last. Returns None for an empty snapshot.

    Args:
        snapshot: Registry contents

    Returns:
        The selected entry, or None
    """
    if not snapshot:
        return None
    states = list(snapshot.values())
    playing = [state for state in states if state.is_playing]
    return max(playing or states, key=_recency)

"""Render the status line from the active player's state."""

import re
import unicodedata
from dataclasses import dataclass
from typing import List, Optional

from lizzy.metadata import PlaybackStatus
from lizzy.registry import PlayerState

DEFAULT_TEMPLATE = "{{status}} {{artist}} - {{title}}"
ELLIPSIS = "\u2026"
PLACEHOLDERS = ("artist", "title", "status")

_PLACEHOLDER_RE = re.compile(r"\{\{(" + "|".join(PLACEHOLDERS) + r")\}\}")
_ZWJ = "\u200d"
_ESCAPED_AMPERSAND = "&amp;"


@dataclass(frozen=True)
class RenderedOutput:
    """One formatted status line. Empty text means 'clear the display'."""

    text: str = ""
    truncated: bool = False
    status: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.text


def _extends_cluster(ch: str) -> bool:
    if ch == _ZWJ or unicodedata.combining(ch):
        return True
    if unicodedata.category(ch) in ("Mn", "Me"):
        return True
    code = ord(ch)
    # variation selectors and emoji skin tone modifiers
    return 0xFE00 <= code <= 0xFE0F or 0x1F3FB <= code <= 0x1F3FF


def split_characters(text: str) -> List[str]:
    """Split text into user-perceived characters (base plus combining marks)."""
    clusters: List[str] = []
    joined = False
    for ch in text:
        if clusters and (joined or _extends_cluster(ch)):
            clusters[-1] += ch
        else:
            clusters.append(ch)
        joined = ch == _ZWJ
    return clusters


def escape_markup(text: str) -> str:
    """Escape ampersands, which Pango-based bars refuse to render."""
    return text.replace("&", _ESCAPED_AMPERSAND)


def _width(cluster: str, escape: bool) -> int:
    if escape:
        return 1 + cluster.count("&") * (len(_ESCAPED_AMPERSAND) - 1)
    return 1


def truncate(text: str, max_length: int, escape: bool = False):
    """
    Shorten text to at most max_length perceived characters.

    Over-long text keeps as many leading characters as fit in
    max_length - 1, followed by an ellipsis. Without escaping, applying it
    twice gives the same result as applying it once.

    With escape set the result is markup-escaped, and each & counts as the
    five characters of &amp; so the written text stays within max_length.

    Args:
        text: Text to shorten
        max_length: Maximum number of characters
        escape: Escape ampersands in the result

    Returns:
        (text, truncated) tuple
    """
    chars = split_characters(text)
    widths = [_width(ch, escape) for ch in chars]
    truncated = sum(widths) > max_length
    if truncated:
        kept = []
        used = 0
        for ch, width in zip(chars, widths):
            if used + width > max_length - 1:
                break
            kept.append(ch)
            used += width
        text = "".join(kept) + ELLIPSIS
    if escape:
        text = escape_markup(text)
    return text, truncated


class Formatter:
    """Fills the template with artist, title and a status indicator."""

    def __init__(self, template: str = DEFAULT_TEMPLATE, max_length: int = 45,
                 playing: str = "Playing:", paused: str = "Paused:",
                 stopped: str = "Stopped:", escape: bool = True):
        self.template = template
        self.max_length = max_length
        self.escape = escape
        self._indicators = {
            PlaybackStatus.PLAYING: playing,
            PlaybackStatus.PAUSED: paused,
            PlaybackStatus.STOPPED: stopped,
        }

    def render(self, state: Optional[PlayerState]) -> RenderedOutput:
        """
        Render the status line for a player.

        Args:
            state: Selected player, or None when nothing is tracked

        Returns:
            RenderedOutput, empty when state is None
        """
        if state is None:
            return RenderedOutput()

        values = {
            "artist": state.metadata.artist_display,
            "title": state.metadata.title,
            "status": self._indicators[state.status],
        }
        # Single pass, so placeholders inside titles are left alone
        text = _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], self.template)
        text, truncated = truncate(text, self.max_length, escape=self.escape)
        return RenderedOutput(text=text, truncated=truncated, status=state.status.value)

"""Playback synchronization: current time to the active caption.

WHY: The preview player shows exactly one caption at a time, and that
caption must match the playback position after every tick, seek, or
restart. Seeking breaks any assumption that time only moves forward, so
lookup has to be correct for arbitrary times.

HOW: find_active_caption() is a linear scan over the (short) caption
list. PlaybackSynchronizer owns the playback state machine
(PAUSED ⇄ PLAYING, with a transient SEEKING state), drives an abstract
MediaBackend, and notifies listeners when the active caption changes.
Each lookup carries a generation number; a result superseded by a newer
time before it is applied is dropped.

RULES:
- A caption is active when start_s <= t < end_s; at a shared boundary
  the later caption wins
- Times before the first caption or at/after the last end give None
- seek() updates the active caption immediately, without waiting for a tick
- restart() seeks to 0 and keeps the current play/pause state
- play() blocked by autoplay policy retries muted; a second failure
  leaves the player paused (logged, not raised)
- After close(), time updates are ignored and listeners are dropped
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence

from captiflow.core.ir import CaptionUnit

logger = logging.getLogger(__name__)

CaptionListener = Callable[[Optional[CaptionUnit]], None]


def find_active_caption(
    captions: Sequence[CaptionUnit],
    t: float,
) -> Optional[CaptionUnit]:
    """Return the caption visible at playback time ``t``, or None."""
    for caption in captions:
        if caption.contains(t):
            return caption
    return None


def format_clock(seconds: float) -> str:
    """Format seconds as ``m:ss`` for player and timeline display."""
    seconds = max(seconds, 0.0)
    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return "{}:{:02d}".format(minutes, secs)


class PlaybackState(str, enum.Enum):
    PAUSED = "paused"
    PLAYING = "playing"
    SEEKING = "seeking"


class PlaybackBlockedError(Exception):
    """Raised by a MediaBackend when the platform refuses to start playback.

    WHY: Browsers block unmuted autoplay. The synchronizer treats this as
    recoverable and retries with the media muted.
    """


class MediaBackend(ABC):
    """The media element the synchronizer controls.

    To plug in a real player:
    1. Subclass MediaBackend
    2. Implement play(), pause(), seek() and set_muted()
    3. Raise PlaybackBlockedError from play() when playback is refused
    """

    @abstractmethod
    def play(self) -> None:
        """Start playback."""

    @abstractmethod
    def pause(self) -> None:
        """Pause playback."""

    @abstractmethod
    def seek(self, t: float) -> None:
        """Move the playhead to ``t`` seconds."""

    @abstractmethod
    def set_muted(self, muted: bool) -> None:
        """Mute or unmute the media."""

    def release(self) -> None:
        """Free decoded media resources. Optional."""


class HeadlessBackend(MediaBackend):
    """A backend with no real media, used for previews and tests."""

    def __init__(self) -> None:
        self.muted = False
        self.position = 0.0
        self.playing = False
        self.released = False

    def play(self) -> None:
        self.playing = True

    def pause(self) -> None:
        self.playing = False

    def seek(self, t: float) -> None:
        self.position = t

    def set_muted(self, muted: bool) -> None:
        self.muted = muted

    def release(self) -> None:
        self.released = True


class PlaybackSynchronizer:
    """Keeps the active caption consistent with playback time and controls.

    WHY: The overlay must update on every playback tick and immediately on
    user seeks. Keeping the state machine, the lookup, and the backend
    calls in one object means there is a single writer for the active
    caption.

    HOW: Every time change (tick, seek, restart) funnels through
    _apply_time(), which bumps the generation counter, looks up the
    caption, and notifies listeners only if no newer time arrived during
    the lookup or an earlier notification.

    RULES:
    - captions are treated as immutable for the session
    - duration_s, when known, bounds seeks to [0, duration_s]
    - listeners receive the new active caption (or None) on change only
    """

    def __init__(
        self,
        captions: Sequence[CaptionUnit],
        backend: Optional[MediaBackend] = None,
        duration_s: Optional[float] = None,
    ) -> None:
        self._captions = tuple(captions)
        self._backend = backend or HeadlessBackend()
        self._duration_s = duration_s
        self._state = PlaybackState.PAUSED
        self._current_time = 0.0
        self._active: Optional[CaptionUnit] = None
        self._listeners: List[CaptionListener] = []
        self._generation = 0
        self._closed = False
        self._apply_time(0.0)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_time(self) -> float:
        return self._current_time

    @property
    def active_caption(self) -> Optional[CaptionUnit]:
        return self._active

    @property
    def captions(self) -> Sequence[CaptionUnit]:
        return self._captions

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: CaptionListener) -> Callable[[], None]:
        """Register a caption-change listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def play(self) -> bool:
        """Start playback, retrying muted if the platform blocks it.

        Returns:
            True if playback started, False if it stayed paused.
        """
        if self._closed or self._state == PlaybackState.PLAYING:
            return self._state == PlaybackState.PLAYING
        try:
            self._backend.play()
        except PlaybackBlockedError:
            logger.info("Playback blocked by autoplay policy; retrying muted")
            self._backend.set_muted(True)
            try:
                self._backend.play()
            except PlaybackBlockedError:
                logger.warning("Playback failed even when muted")
                return False
        self._state = PlaybackState.PLAYING
        return True

    def pause(self) -> None:
        if self._closed:
            return
        self._backend.pause()
        self._state = PlaybackState.PAUSED

    def toggle(self) -> bool:
        """Play if paused, pause if playing. Returns True when now playing."""
        if self._state == PlaybackState.PLAYING:
            self.pause()
            return False
        return self.play()

    def on_ended(self) -> None:
        """Media reached its end."""
        if self._closed:
            return
        self._state = PlaybackState.PAUSED

    def seek(self, t: float) -> Optional[CaptionUnit]:
        """Jump to ``t`` seconds and refresh the caption immediately."""
        if self._closed:
            return self._active
        previous = self._state
        self._state = PlaybackState.SEEKING
        try:
            t = self._clamp(t)
            self._backend.seek(t)
            self._apply_time(t)
        finally:
            self._state = previous
        return self._active

    def seek_fraction(self, fraction: float) -> Optional[CaptionUnit]:
        """Seek to a fraction of the duration, as a click on the timeline does."""
        if not self._duration_s:
            return self._active
        fraction = min(max(fraction, 0.0), 1.0)
        return self.seek(fraction * self._duration_s)

    def restart(self) -> Optional[CaptionUnit]:
        return self.seek(0.0)

    def on_time_update(self, t: float) -> Optional[CaptionUnit]:
        """Playback clock tick."""
        if self._closed:
            return self._active
        self._apply_time(max(t, 0.0))
        return self._active

    def close(self) -> None:
        """Stop listening for time updates and release the media."""
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        self._state = PlaybackState.PAUSED
        self._backend.release()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _clamp(self, t: float) -> float:
        t = max(t, 0.0)
        if self._duration_s is not None and self._duration_s > 0:
            t = min(t, self._duration_s)
        return t

    def _apply_time(self, t: float) -> None:
        self._generation += 1
        generation = self._generation
        self._current_time = t
        found = find_active_caption(self._captions, t)
        if generation != self._generation or found is self._active:
            return
        self._active = found
        for listener in list(self._listeners):
            if generation != self._generation:
                # A listener moved the playhead; the newer lookup already ran.
                return
            listener(found)

"""Playback transport state for one loaded clip.

Holds what a player UI needs (offset, running flag, progress) as an explicit
object owned by the caller. It does not produce sound.
"""
import time
from typing import Callable, Optional, Tuple

from cardio_engine import AnalysisResult, SampleBuffer


def format_clock(seconds: float) -> str:
    s = max(0.0, float(seconds))
    return f'{int(s // 60)}:{int(s % 60):02d}'


class PlaybackSession:

    def __init__(self, buffer: SampleBuffer, result: Optional[AnalysisResult] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.buffer = buffer
        self.result = result
        self._clock = clock
        self._playing = False
        self._start = 0.0
        self._offset = 0.0

    @property
    def duration(self) -> float:
        return self.buffer.duration

    @property
    def is_playing(self) -> bool:
        self._check_ended()
        return self._playing

    def play(self) -> None:
        if self.is_playing:
            return
        self._start = self._clock() - self._offset
        self._playing = True

    def pause(self) -> None:
        if not self.is_playing:
            return
        self._offset = self._clock() - self._start
        self._playing = False

    def stop(self) -> None:
        self._playing = False
        self._offset = 0.0

    def seek(self, fraction: float) -> None:
        was_playing = self.is_playing
        pct = min(1.0, max(0.0, float(fraction)))
        self._playing = False
        self._offset = pct * self.duration
        if was_playing:
            self.play()

    def position(self) -> float:
        self._check_ended()
        if self._playing:
            return self._clock() - self._start
        return self._offset

    def progress(self) -> float:
        if self.duration <= 0:
            return 0.0
        return min(self.position() / self.duration, 1.0)

    @property
    def peak_times(self) -> Tuple[float, ...]:
        if self.result is None:
            return ()
        return self.result.peak_times

    def next_peak(self) -> Optional[float]:
        """First detected event at or after the current position, if any."""
        pos = self.position()
        for t in self.peak_times:
            if t >= pos:
                return t
        return None

    def _check_ended(self) -> None:
        # reaching the end rewinds to 0, like the browser source node's onended
        if self._playing and self._clock() - self._start >= self.duration:
            self._playing = False
            self._offset = 0.0

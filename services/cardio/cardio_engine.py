"""Heuristic heart-sound analysis over a decoded PCM buffer.

Stages, all reading the same immutable channel-0 samples:
  envelope   25 ms RMS frames
  peaks      refractory-gated local maxima above 1.5x the mean envelope
  rhythm     inter-peak intervals -> BPM, CV, regularity class
  bands      frame-length band-energy heuristic over four fixed bands
  dom freq   zero-crossing rate over the first <= 10 s

No FFT and no filtering: every stage is a direct pass over the samples.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

FRAME_SEC = 0.025
REFRACTORY_SEC = 0.25
THRESHOLD_FACTOR = 1.5
BPM_MIN = 30
BPM_MAX = 220
CV_REGULAR = 0.08
CV_MILD = 0.20
ZC_WINDOW_SEC = 10.0
BANDS: Tuple[Tuple[float, float], ...] = (
    (5.0, 50.0),
    (50.0, 150.0),
    (150.0, 300.0),
    (300.0, 1000.0),
)
# lowest rate at which a 25 ms frame still holds one sample
MIN_SAMPLE_RATE = 40


class InvalidInput(ValueError):
    pass


class RhythmClass(str, Enum):
    REGULAR_SINUS = 'Regular Sinus'
    MILDLY_IRREGULAR = 'Mildly Irregular'
    IRREGULAR = 'Irregular'
    INSUFFICIENT_DATA = 'Insufficient data'

    @property
    def assessment(self) -> str:
        return _ASSESSMENTS[self]


_ASSESSMENTS = {
    RhythmClass.REGULAR_SINUS: 'Normal cardiac rhythm',
    RhythmClass.MILDLY_IRREGULAR: 'Slight irregularity detected',
    RhythmClass.IRREGULAR: 'Significant irregularity — consult clinician',
    RhythmClass.INSUFFICIENT_DATA: 'Requires more data',
}


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass(frozen=True, eq=False)
class SampleBuffer:
    """Channel 0 of a decoded clip. The sample array is copied and made read-only."""

    samples: np.ndarray
    sample_rate: int
    channel_count: int = 1

    def __post_init__(self):
        sr = int(self.sample_rate)
        if sr < MIN_SAMPLE_RATE:
            raise InvalidInput(f'sample rate must be >= {MIN_SAMPLE_RATE} Hz, got {self.sample_rate}')
        if int(self.channel_count) < 1:
            raise InvalidInput('channel count must be >= 1')
        y = np.array(self.samples, dtype=np.float64, copy=True)
        if y.ndim != 1:
            raise InvalidInput('samples must be a single channel')
        if y.size == 0:
            raise InvalidInput('empty')
        if not np.all(np.isfinite(y)):
            raise InvalidInput('samples contain NaN or infinity')
        y.setflags(write=False)
        object.__setattr__(self, 'samples', y)
        object.__setattr__(self, 'sample_rate', sr)
        object.__setattr__(self, 'channel_count', int(self.channel_count))

    @classmethod
    def from_pcm(cls, pcm, sample_rate: int, channel_count: Optional[int] = None) -> 'SampleBuffer':
        x = np.asarray(pcm, dtype=np.float64)
        if x.ndim == 2:
            # (frames, channels), the layout scipy.io.wavfile returns
            channels = x.shape[1]
            if channels == 0:
                raise InvalidInput('empty')
            x = x[:, 0]
        elif x.ndim == 1:
            channels = 1
        else:
            raise InvalidInput(f'unsupported pcm shape {x.shape}')
        return cls(x, sample_rate, channel_count if channel_count is not None else channels)

    @property
    def duration(self) -> float:
        return self.samples.size / float(self.sample_rate)


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class EnvelopeFrame(NamedTuple):
    index: int
    rms: float


def frame_size(sample_rate: int) -> int:
    return int(math.floor(sample_rate * FRAME_SEC))


def iter_envelope(samples: np.ndarray, sample_rate: int) -> Iterator[EnvelopeFrame]:
    fs = frame_size(sample_rate)
    if fs < 1:
        return
    for index in range(len(samples) // fs):
        frame = samples[index * fs:(index + 1) * fs]
        yield EnvelopeFrame(index, float(np.sqrt(np.mean(frame * frame))))


def extract_envelope(samples: np.ndarray, sample_rate: int) -> np.ndarray:
    # peak picking looks one frame back and ahead, so materialize
    return np.fromiter((f.rms for f in iter_envelope(samples, sample_rate)), dtype=np.float64)


# ---------------------------------------------------------------------------
# Peaks
# ---------------------------------------------------------------------------

def min_gap_frames(sample_rate: int) -> int:
    fs = frame_size(sample_rate)
    if fs < 1:
        return 0
    return int(math.floor(sample_rate * REFRACTORY_SEC / fs))


def detect_peaks(envelope: Sequence[float], min_gap: int) -> List[int]:
    """Greedy left-to-right picker over strict interior maxima above 1.5x the mean.

    A candidate is kept only when it sits more than ``min_gap`` frames after
    the last accepted peak. Accepted peaks are never revisited.
    """
    env = np.asarray(envelope, dtype=np.float64)
    peaks: List[int] = []
    if env.size == 0:
        return peaks
    threshold = float(np.mean(env)) * THRESHOLD_FACTOR
    for i in range(1, env.size - 1):
        v = env[i]
        if v > threshold and v > env[i - 1] and v > env[i + 1]:
            if not peaks or i - peaks[-1] > min_gap:
                peaks.append(i)
    return peaks


# ---------------------------------------------------------------------------
# Rhythm
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IntervalStats:
    intervals: Tuple[float, ...]
    avg_interval: float
    bpm: int
    cv: float


def interval_stats(peaks: Sequence[int], frame_len: int, sample_rate: int) -> Optional[IntervalStats]:
    if len(peaks) < 2:
        return None
    p = np.asarray(peaks, dtype=np.int64)
    steps = np.diff(p)
    if np.any(steps <= 0):
        raise InvalidInput('peak indices must be strictly increasing')
    intervals = steps * frame_len / float(sample_rate)
    avg = float(np.mean(intervals))
    bpm = _round_half_up(60.0 / avg)
    bpm = max(BPM_MIN, min(BPM_MAX, bpm))
    # population variance (divide by N)
    cv = float(np.sqrt(np.mean((intervals - avg) ** 2)) / avg)
    return IntervalStats(tuple(float(v) for v in intervals), avg, bpm, cv)


def classify_rhythm(cv: Optional[float]) -> RhythmClass:
    if cv is None:
        return RhythmClass.INSUFFICIENT_DATA
    if cv < CV_REGULAR:
        return RhythmClass.REGULAR_SINUS
    if cv < CV_MILD:
        return RhythmClass.MILDLY_IRREGULAR
    return RhythmClass.IRREGULAR


# ---------------------------------------------------------------------------
# Band energy
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BandEnergy:
    lo: float
    hi: float
    power: float
    fraction: float


@dataclass(frozen=True)
class BandProfile:
    bands: Tuple[BandEnergy, ...]

    @property
    def fractions(self) -> Tuple[float, ...]:
        return tuple(b.fraction for b in self.bands)

    @property
    def total_power(self) -> float:
        return float(sum(b.power for b in self.bands))


def band_power(samples: np.ndarray, sample_rate: int, lo: float, hi: float) -> float:
    # frame length tied to the band centre period; a coarse stand-in for a bandpass
    spf = int(math.floor(sample_rate / ((lo + hi) / 2.0)))
    if spf < 1:
        return 0.0
    count = len(samples) // spf
    if count == 0:
        return 0.0
    frames = np.asarray(samples[:count * spf], dtype=np.float64).reshape(count, spf)
    return float(np.mean(np.sum(frames * frames, axis=1) / spf))


def band_profile(samples: np.ndarray, sample_rate: int,
                 bands: Sequence[Tuple[float, float]] = BANDS) -> BandProfile:
    powers = [band_power(samples, sample_rate, lo, hi) for lo, hi in bands]
    total = sum(powers) or 1.0
    return BandProfile(tuple(
        BandEnergy(float(lo), float(hi), p, p / total) for (lo, hi), p in zip(bands, powers)
    ))


# ---------------------------------------------------------------------------
# Dominant frequency
# ---------------------------------------------------------------------------

def dominant_frequency(samples: np.ndarray, sample_rate: int) -> Tuple[int, int]:
    """Zero-crossing estimate over at most the first 10 s. Returns (hz, crossings).

    Only meaningful for signals with one dominant tone; harmonics and noise
    push the estimate up.
    """
    n = len(samples)
    window = min(n / float(sample_rate), ZC_WINDOW_SEC)
    if window <= 0:
        return 0, 0
    cap = min(n, int(math.ceil(sample_rate * window)))
    positive = np.asarray(samples[:cap]) >= 0
    zc = int(np.count_nonzero(positive[1:] != positive[:-1]))
    return _round_half_up(zc / (2.0 * window)), zc


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AnalysisResult:
    bpm: Optional[int]
    duration: float
    sample_rate: int
    channel_count: int
    peak_count: int
    avg_interval: Optional[float]
    interval_cv: Optional[float]
    rhythm: RhythmClass
    dominant_frequency: int
    zero_crossings: int
    bands: BandProfile
    envelope_max: float
    peak_times: Tuple[float, ...] = ()

    @property
    def rhythm_assessment(self) -> str:
        return self.rhythm.assessment

    def to_dict(self) -> Dict[str, object]:
        return {
            'bpm': self.bpm,
            'durationSec': self.duration,
            'sampleRate': self.sample_rate,
            'channelCount': self.channel_count,
            'peaks': self.peak_count,
            'peakTimesSec': list(self.peak_times),
            'avgInterval': self.avg_interval,
            'intervalCV': self.interval_cv,
            'rhythm': self.rhythm.value,
            'rhythmAssess': self.rhythm_assessment,
            'domFreq': self.dominant_frequency,
            'zeroCrossings': self.zero_crossings,
            'bands': list(self.bands.fractions),
            'bandRanges': [[b.lo, b.hi] for b in self.bands.bands],
            'envMax': self.envelope_max,
        }


def analyze(buffer: SampleBuffer) -> AnalysisResult:
    y = buffer.samples
    sr = buffer.sample_rate
    fs = frame_size(sr)

    env = extract_envelope(y, sr)
    peaks = detect_peaks(env, min_gap_frames(sr))
    stats = interval_stats(peaks, fs, sr)
    rhythm = classify_rhythm(stats.cv if stats else None)
    bands = band_profile(y, sr)
    dom_freq, zc = dominant_frequency(y, sr)
    logger.debug('analyze: %d frames, %d peaks, rhythm=%s, domFreq=%d',
                 env.size, len(peaks), rhythm.value, dom_freq)

    return AnalysisResult(
        bpm=stats.bpm if stats else None,
        duration=buffer.duration,
        sample_rate=sr,
        channel_count=buffer.channel_count,
        peak_count=len(peaks),
        avg_interval=stats.avg_interval if stats else None,
        interval_cv=stats.cv if stats else None,
        rhythm=rhythm,
        dominant_frequency=dom_freq,
        zero_crossings=zc,
        bands=bands,
        envelope_max=float(env.max()) if env.size else 0.0,
        peak_times=tuple(p * fs / float(sr) for p in peaks),
    )


def analyze_pcm(sample_rate: int, pcm, channel_count: Optional[int] = None) -> AnalysisResult:
    return analyze(SampleBuffer.from_pcm(pcm, sample_rate, channel_count))

"""Clinical-style summary and plain-text export built from an AnalysisResult.

Threshold rules only; nothing here touches the samples.
"""
import datetime as dt
from dataclasses import dataclass
from typing import List, Optional

from cardio_engine import AnalysisResult, RhythmClass

DEFAULT_BRAND = 'CardioSpectra'

NORMAL_LO = 60
NORMAL_HI = 100
GAUGE_LO = 30
GAUGE_HI = 200
NOISY_DOM_FREQ = 200
SHORT_RECORDING_SEC = 10
FEW_EVENTS = 3


@dataclass(frozen=True)
class Note:
    level: str  # 'ok' | 'warn' | 'info'
    text: str


def heart_rate_class(bpm: Optional[int]) -> Optional[str]:
    if bpm is None:
        return None
    if bpm < NORMAL_LO:
        return 'Bradycardia'
    if bpm > NORMAL_HI:
        return 'Tachycardia'
    return 'Normal Sinus'


def gauge_percent(bpm: Optional[int]) -> Optional[float]:
    if bpm is None:
        return None
    pct = (bpm - GAUGE_LO) / float(GAUGE_HI - GAUGE_LO) * 100.0
    return min(max(pct, 2.0), 98.0)


def clinical_notes(result: AnalysisResult) -> List[Note]:
    notes: List[Note] = []
    bpm = result.bpm
    if bpm is not None and NORMAL_LO <= bpm <= NORMAL_HI:
        notes.append(Note('ok', 'Heart rate is within the normal sinus range of 60-100 BPM.'))
    if bpm is not None and bpm < NORMAL_LO:
        notes.append(Note('warn', 'Detected heart rate suggests bradycardia (<60 BPM). This can be normal '
                                  'in trained athletes but warrants clinical review.'))
    if bpm is not None and bpm > NORMAL_HI:
        notes.append(Note('warn', 'Detected heart rate suggests tachycardia (>100 BPM). May indicate stress, '
                                  'fever, or cardiac arrhythmia. Clinical evaluation recommended.'))

    if result.rhythm is RhythmClass.REGULAR_SINUS:
        notes.append(Note('ok', 'Rhythm appears regular with low interval variability, consistent with '
                                'normal sinus rhythm.'))
    elif result.rhythm is RhythmClass.MILDLY_IRREGULAR:
        notes.append(Note('warn', 'Mild rhythm irregularity detected. May be respiratory sinus arrhythmia '
                                  '(physiologically normal) or an early arrhythmia. Correlate with clinical '
                                  'findings.'))
    elif result.rhythm is RhythmClass.IRREGULAR:
        notes.append(Note('warn', 'Significant rhythm irregularity detected. Differential includes atrial '
                                  'fibrillation, ectopic beats, or other arrhythmias. Clinical evaluation '
                                  'advised.'))

    if result.dominant_frequency > NOISY_DOM_FREQ:
        notes.append(Note('info', 'High dominant frequency detected. This may indicate background noise or '
                                  'electronic interference in the recording.'))
    if result.duration < SHORT_RECORDING_SEC:
        notes.append(Note('info', 'Recording duration is short. Longer recordings (>30s) improve BPM '
                                  'detection accuracy significantly.'))
    if result.peak_count < FEW_EVENTS:
        notes.append(Note('info', 'Few cardiac events detected. Ensure the recording microphone was placed '
                                  'close to the chest wall, and the environment was quiet.'))
    return notes


def summarize(result: AnalysisResult) -> dict:
    """JSON payload for presentation layers: engine fields plus derived labels."""
    body = result.to_dict()
    body['heartRateClass'] = heart_rate_class(result.bpm)
    body['gaugePercent'] = gauge_percent(result.bpm)
    body['notes'] = [{'level': n.level, 'text': n.text} for n in clinical_notes(result)]
    return body


def _fmt_interval(v: Optional[float]) -> str:
    return '—' if v is None else f'{v * 1000:.0f} ms'


def _fmt_cv(v: Optional[float]) -> str:
    return '—' if v is None else f'{v * 100:.1f}%'


def build_report(result: AnalysisResult, filename: str,
                 generated_at: Optional[dt.datetime] = None,
                 brand: str = DEFAULT_BRAND) -> str:
    now = generated_at or dt.datetime.now()
    bpm = 'N/A' if result.bpm is None else f'{result.bpm} BPM'
    notes = clinical_notes(result)
    observations = '\n'.join(f'• {n.text}' for n in notes) if notes else '• None'
    rule = '=' * 41
    lines = [
        f'{brand.upper()} - CARDIAC ANALYSIS REPORT',
        rule,
        f'Generated: {now.strftime("%Y-%m-%d %H:%M:%S")}',
        f'File: {filename}',
        '',
        'VITALS SUMMARY',
        '--------------',
        f'Heart Rate:         {bpm}',
        f'Rhythm:             {result.rhythm.value}',
        f'Dominant Frequency: {result.dominant_frequency} Hz',
        f'Events Detected:    {result.peak_count} peaks',
        f'Duration:           {result.duration:.1f}s',
        '',
        'RHYTHM DETAIL',
        '-------------',
        f'Avg Beat Interval:  {_fmt_interval(result.avg_interval)}',
        f'Interval CV:        {_fmt_cv(result.interval_cv)}',
        f'Assessment:         {result.rhythm_assessment}',
        '',
        'CLINICAL OBSERVATIONS',
        '---------------------',
        observations,
        '',
        rule,
        'DISCLAIMER: This report is generated by signal processing algorithms for educational',
        'and screening purposes only. It does not constitute medical advice. Consult a qualified',
        'cardiologist for clinical interpretation.',
        '',
    ]
    return '\n'.join(lines)


def report_filename(now: Optional[dt.datetime] = None, brand: str = DEFAULT_BRAND) -> str:
    now = now or dt.datetime.now(dt.timezone.utc)
    return f'{brand}_Report_{int(now.timestamp() * 1000)}.txt'

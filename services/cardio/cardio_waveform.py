import io
from typing import Optional, Tuple

import numpy as np
import matplotlib
matplotlib.use('Agg')  # non-GUI backend
import matplotlib.pyplot as plt

from cardio_engine import AnalysisResult, SampleBuffer

LINE_COLOR = '#c0392b'
BG_COLOR = '#fafaf9'
GRID_COLOR = '#d7d2c8'
AMP_SCALE = 0.88


def column_extrema(samples: np.ndarray, columns: int) -> Tuple[np.ndarray, np.ndarray]:
    """Per-pixel-column (min, max) over consecutive runs of ``n // columns`` samples."""
    cols = max(1, int(columns))
    y = np.asarray(samples, dtype=np.float32)
    n = len(y)
    step = max(1, n // cols)
    mins = np.zeros(cols, dtype=np.float32)
    maxs = np.zeros(cols, dtype=np.float32)
    for x in range(cols):
        seg = y[x * step:min(x * step + step, n)]
        if seg.size:
            mins[x] = seg.min()
            maxs[x] = seg.max()
    return mins, maxs


def render_waveform_png(buffer: SampleBuffer, result: Optional[AnalysisResult] = None,
                        width: int = 1400, height: int = 220) -> bytes:
    cols = max(1, int(width))
    mins, maxs = column_extrema(buffer.samples, cols)
    x = np.arange(cols)
    dur = buffer.duration

    fig, ax = plt.subplots(figsize=(width / 100, height / 100), dpi=100)
    fig.patch.set_facecolor(BG_COLOR)
    ax.set_facecolor(BG_COLOR)
    ax.fill_between(x, mins * AMP_SCALE, maxs * AMP_SCALE, color=LINE_COLOR, alpha=0.15, linewidth=0)
    ax.plot(x, maxs * AMP_SCALE, color=LINE_COLOR, linewidth=1.8)
    ax.plot(x, mins * AMP_SCALE, color=LINE_COLOR, alpha=0.45, linewidth=1.2)
    ax.axhline(0.0, color=LINE_COLOR, alpha=0.2, linewidth=1, linestyle=(0, (5, 6)))

    if result is not None and result.peak_times and dur > 0:
        for t in result.peak_times:
            ax.axvline(t / dur * cols, color=LINE_COLOR, alpha=0.3, linewidth=0.8)

    ticks = np.linspace(0, cols, 11)
    ax.set_xticks(ticks)
    ax.set_xticklabels([f'{dur * i / 10:.1f}s' for i in range(11)], fontsize=7, color='#8a857e')
    ax.set_yticks([-AMP_SCALE, 0.0, AMP_SCALE])
    ax.set_yticklabels(['-1.0', '0', '+1.0'], fontsize=7, color='#8a857e')
    ax.grid(color=GRID_COLOR, alpha=0.6, linewidth=0.8)
    ax.set_xlim(0, cols)
    ax.set_ylim(-1.0, 1.0)
    for spine in ax.spines.values():
        spine.set_visible(False)

    buf = io.BytesIO()
    plt.tight_layout(pad=0.2)
    fig.savefig(buf, format='png', dpi=100, facecolor=fig.get_facecolor())
    plt.close(fig)
    buf.seek(0)
    return buf.read()

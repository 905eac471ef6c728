import json
import os
import runpy

import numpy as np
from scipy.io import wavfile

from signal_generators import make_beat_train, periodic_beats

SCRIPT = os.path.join(os.path.dirname(__file__), '..', '..', '..', 'scripts', 'analyze_recordings.py')


def test_batch_analysis_writes_summary_and_reports(tmp_path, capsys):
    sr = 4000
    rec = tmp_path / 'rec'
    rec.mkdir()
    y = make_beat_train(periodic_beats(66, 12.0), 12.0, sr)
    wavfile.write(str(rec / 'a.wav'), sr, (y * 32767).astype(np.int16))
    wavfile.write(str(rec / 'b.wav'), sr, np.zeros(sr, dtype=np.int16))
    (rec / 'notes.txt').write_text('ignored')

    out = tmp_path / 'summary.json'
    reports = tmp_path / 'reports'
    main = runpy.run_path(SCRIPT)['main']
    rc = main([str(rec), '--out', str(out), '--report-dir', str(reports)])

    assert rc == 0
    printed = capsys.readouterr().out
    assert 'a.wav: bpm=66' in printed
    assert 'b.wav: bpm=N/A' in printed
    summary = json.loads(out.read_text())
    assert summary['counts'] == {'total': 2, 'failed': 0}
    assert [r['file'] for r in summary['rows']] == ['a.wav', 'b.wav']
    assert (reports / 'a.txt').read_text().startswith('CARDIOSPECTRA')


def test_batch_analysis_reports_bad_files(tmp_path):
    bad = tmp_path / 'bad.wav'
    bad.write_bytes(b'junk')
    main = runpy.run_path(SCRIPT)['main']
    assert main([str(bad)]) == 1


def test_batch_analysis_counts_truncated_header_as_failed(tmp_path):
    good = tmp_path / 'good.wav'
    wavfile.write(str(good), 4000, np.zeros(4000, dtype=np.int16))
    bad = tmp_path / 'truncated.wav'
    bad.write_bytes(b'RIFF\x00')
    out = tmp_path / 'summary.json'
    main = runpy.run_path(SCRIPT)['main']
    assert main([str(good), str(bad), '--out', str(out)]) == 1
    summary = json.loads(out.read_text())
    assert summary['counts'] == {'total': 2, 'failed': 1}
    assert summary['rows'][1]['file'] == 'truncated.wav'
    assert 'wav decode failed' in summary['rows'][1]['error']

#!/usr/bin/env python3
"""
Batch heart-sound analysis over WAV files.

Usage:
  python scripts/analyze_recordings.py recordings/ extra.wav --out summary.json --report-dir reports/

Directories are scanned (non-recursively) for *.wav. One line per file is
printed; --out writes the full results as JSON, --report-dir writes one
plain-text report per file.
"""
import os
import sys
import json
import argparse
import datetime as dt
import logging

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'services', 'cardio'))
from cardio_engine import analyze
from cardio_io import read_wav
from cardio_report import build_report, summarize

logger = logging.getLogger('analyze_recordings')


def collect_paths(inputs):
    paths = []
    for p in inputs:
        if os.path.isdir(p):
            paths.extend(os.path.join(p, f) for f in sorted(os.listdir(p)) if f.lower().endswith('.wav'))
        else:
            paths.append(p)
    return paths


def main(argv=None):
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument('inputs', nargs='+', help='WAV files or directories')
    ap.add_argument('--out', help='write JSON summary here')
    ap.add_argument('--report-dir', help='write one text report per file here')
    ap.add_argument('--log-level', default=os.getenv('LOG_LEVEL', 'WARNING'))
    args = ap.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format='%(levelname)s %(name)s: %(message)s')

    rows = []
    failed = 0
    for path in collect_paths(args.inputs):
        name = os.path.basename(path)
        try:
            res = analyze(read_wav(path))
        except (OSError, ValueError) as e:
            logger.error('%s: %s', path, e)
            rows.append({'file': name, 'error': str(e)})
            failed += 1
            continue
        bpm = res.bpm if res.bpm is not None else 'N/A'
        print(f'{name}: bpm={bpm} rhythm={res.rhythm.value} peaks={res.peak_count} domFreq={res.dominant_frequency}Hz')
        row = summarize(res)
        row['file'] = name
        rows.append(row)
        if args.report_dir:
            os.makedirs(args.report_dir, exist_ok=True)
            stem = os.path.splitext(name)[0]
            with open(os.path.join(args.report_dir, stem + '.txt'), 'w', encoding='utf-8') as f:
                f.write(build_report(res, name))

    if args.out:
        out = {
            'timestamp': dt.datetime.now(dt.timezone.utc).isoformat(),
            'counts': {'total': len(rows), 'failed': failed},
            'rows': rows,
        }
        with open(args.out, 'w', encoding='utf-8') as f:
            json.dump(out, f, ensure_ascii=False, indent=2)
        print('Saved:', args.out)
    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())

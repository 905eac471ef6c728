import io

import numpy as np
import pytest
from scipy.io import wavfile

from cardio_engine import InvalidInput
from cardio_io import decode_wav_bytes, read_wav


def _wav_bytes(sr, data):
    bio = io.BytesIO()
    wavfile.write(bio, sr, data)
    return bio.getvalue()


def test_int16_scaled_to_unit_range():
    data = np.array([0, 16384, -32768, 32767], dtype=np.int16)
    buf = decode_wav_bytes(_wav_bytes(8000, data))
    assert buf.sample_rate == 8000
    assert buf.channel_count == 1
    assert buf.samples[1] == pytest.approx(16384 / 32767)
    assert buf.samples[3] == pytest.approx(1.0)


def test_uint8_recentred():
    data = np.array([128, 255, 0], dtype=np.uint8)
    buf = decode_wav_bytes(_wav_bytes(8000, data))
    assert buf.samples[0] == 0.0
    assert buf.samples[2] == -1.0


def test_float_stereo_keeps_channel_zero(tmp_path):
    left = np.linspace(-0.5, 0.5, 800, dtype=np.float32)
    right = np.full(800, 0.9, dtype=np.float32)
    path = tmp_path / 'stereo.wav'
    wavfile.write(str(path), 4000, np.stack([left, right], axis=1))
    buf = read_wav(path)
    assert buf.channel_count == 2
    assert buf.duration == pytest.approx(0.2)
    assert np.allclose(buf.samples, left)


def test_garbage_bytes_raise_value_error():
    with pytest.raises(ValueError):
        decode_wav_bytes(b'not a wav file at all')


def test_empty_wav_is_invalid():
    with pytest.raises(InvalidInput):
        decode_wav_bytes(_wav_bytes(8000, np.zeros(0, dtype=np.int16)))


def test_truncated_header_is_invalid():
    with pytest.raises(InvalidInput, match='wav decode failed'):
        decode_wav_bytes(b'RIFF\x00')

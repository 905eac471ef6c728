import io
import os
import struct
from typing import Union

import numpy as np
from scipy.io import wavfile

from cardio_engine import InvalidInput, SampleBuffer


def _to_float(x: np.ndarray) -> np.ndarray:
    if x.dtype == np.uint8:
        return (x.astype(np.float32) - 128.0) / 128.0
    if x.dtype.kind in ('i', 'u'):
        maxv = np.iinfo(x.dtype).max
        return x.astype(np.float32) / float(maxv)
    if x.dtype.kind == 'f':
        return x.astype(np.float32)
    raise InvalidInput('unsupported wav dtype')


def decode_wav(source) -> SampleBuffer:
    try:
        sr, x = wavfile.read(source)
    except (ValueError, struct.error, EOFError) as e:
        raise InvalidInput(f'wav decode failed: {e}') from e
    y = _to_float(np.asarray(x))
    return SampleBuffer.from_pcm(y, int(sr))


def decode_wav_bytes(data: bytes) -> SampleBuffer:
    return decode_wav(io.BytesIO(data))


def read_wav(path: Union[str, os.PathLike]) -> SampleBuffer:
    return decode_wav(os.fspath(path))

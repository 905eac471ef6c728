import os
import time
import logging
from typing import Optional, List

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi import Body, Header
from fastapi.responses import Response, JSONResponse, PlainTextResponse

from cardio_engine import InvalidInput, SampleBuffer, analyze
from cardio_io import decode_wav_bytes
from cardio_report import DEFAULT_BRAND, build_report, report_filename, summarize
from cardio_waveform import render_waveform_png

PORT = int(os.getenv('PORT', '4008'))
MEDIA_BASE = os.getenv('MEDIA_BASE', 'http://media-service:4003')
MAX_DURATION_SEC = float(os.getenv('MAX_DURATION_SEC', '600'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
REPORT_BRAND = os.getenv('REPORT_BRAND', DEFAULT_BRAND)
MAX_IMAGE_PX = 8000

logger = logging.getLogger(__name__)

app = FastAPI()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Compute-Time", "Content-Disposition"],
)


def _error(msg: str):
    return JSONResponse({"error": msg}, status_code=400)


def _buffer_from_pcm(sample_rate: int, pcm: List[float], channel_count: Optional[int]):
    """Returns (buffer, err)."""
    if not pcm:
        return None, 'empty'
    try:
        buf = SampleBuffer.from_pcm(pcm, sample_rate, channel_count)
    except InvalidInput as e:
        logger.warning('rejected pcm payload: %s', e)
        return None, str(e)
    return _check_duration(buf)


def _check_duration(buf: SampleBuffer):
    if buf.duration > MAX_DURATION_SEC:
        logger.warning('rejected %.1fs clip (limit %.1fs)', buf.duration, MAX_DURATION_SEC)
        return None, f'clip too long: {buf.duration:.1f}s > {MAX_DURATION_SEC:.0f}s'
    return buf, None


async def _fetch_wav_and_decode(media_id: str, auth_header: Optional[str]):
    """Returns (buffer, err)."""
    if not media_id:
        return None, 'missing mediaId'
    url = f"{MEDIA_BASE}/file/{media_id}"
    headers = {}
    if auth_header:
        headers['Authorization'] = auth_header
    try:
        async with httpx.AsyncClient(timeout=30.0) as client:
            r = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        logger.warning('media fetch %s failed: %s', media_id, e)
        return None, f"media fetch failed: {e}"
    if r.status_code != 200:
        logger.warning('media fetch %s -> %s', media_id, r.status_code)
        return None, f"media fetch failed: {r.status_code}"
    data = r.content
    try:
        buf = decode_wav_bytes(data)
    except ValueError as e:
        return None, f'unsupported format or decode failed: {e}'
    return _check_duration(buf)


def _analysis_response(buf: SampleBuffer):
    t0 = time.perf_counter()
    res = analyze(buf)
    ms = (time.perf_counter() - t0) * 1000.0
    logger.info('analyzed %.1fs @ %d Hz: bpm=%s rhythm=%s peaks=%d (%.1f ms)',
                res.duration, res.sample_rate, res.bpm, res.rhythm.value, res.peak_count, ms)
    return JSONResponse(content=summarize(res), headers={'X-Compute-Time': f"{ms:.2f}"})


def _check_image_size(width: int, height: int):
    if not (1 <= width <= MAX_IMAGE_PX and 1 <= height <= MAX_IMAGE_PX):
        return f'invalid image size: {width}x{height}'
    return None


def _waveform_response(buf: SampleBuffer, width: int, height: int, mark_peaks: bool):
    res = analyze(buf) if mark_peaks else None
    png = render_waveform_png(buf, res, width=width, height=height)
    return Response(content=png, media_type='image/png')


def _report_response(buf: SampleBuffer, filename: str):
    res = analyze(buf)
    text = build_report(res, filename, brand=REPORT_BRAND)
    headers = {'Content-Disposition': f'attachment; filename="{report_filename(brand=REPORT_BRAND)}"'}
    return PlainTextResponse(text, headers=headers)


def configure_logging(level: Optional[str] = None):
    logging.basicConfig(level=(level or LOG_LEVEL).upper(),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')


@app.get('/health')
async def health():
    return {"ok": True}


@app.post('/analyze_pcm')
async def analyze_pcm(
    sampleRate: int = Body(...),
    pcm: List[float] = Body(...),
    channelCount: Optional[int] = Body(None),
):
    buf, err = _buffer_from_pcm(sampleRate, pcm, channelCount)
    if err:
        return _error(err)
    return _analysis_response(buf)


@app.post('/analyze_media')
async def analyze_media(
    mediaId: str = Body(..., embed=True),
    authorization: Optional[str] = Header(default=None, convert_underscores=False)
):
    buf, err = await _fetch_wav_and_decode(mediaId, authorization)
    if err:
        return _error(err)
    return _analysis_response(buf)


@app.post('/waveform_pcm')
async def waveform_pcm(
    sampleRate: int = Body(...),
    pcm: List[float] = Body(...),
    width: int = Body(1400),
    height: int = Body(220),
    markPeaks: bool = Body(True),
):
    err = _check_image_size(width, height)
    if err:
        return _error(err)
    buf, err = _buffer_from_pcm(sampleRate, pcm, None)
    if err:
        return _error(err)
    return _waveform_response(buf, width, height, markPeaks)


@app.post('/waveform_media')
async def waveform_media(
    mediaId: str = Body(...),
    width: int = Body(1400),
    height: int = Body(220),
    markPeaks: bool = Body(True),
    authorization: Optional[str] = Header(default=None, convert_underscores=False)
):
    err = _check_image_size(width, height)
    if err:
        return _error(err)
    buf, err = await _fetch_wav_and_decode(mediaId, authorization)
    if err:
        return _error(err)
    return _waveform_response(buf, width, height, markPeaks)


@app.post('/report_pcm')
async def report_pcm(
    sampleRate: int = Body(...),
    pcm: List[float] = Body(...),
    channelCount: Optional[int] = Body(None),
    filename: str = Body('audio file'),
):
    buf, err = _buffer_from_pcm(sampleRate, pcm, channelCount)
    if err:
        return _error(err)
    return _report_response(buf, filename)


@app.post('/report_media')
async def report_media(
    mediaId: str = Body(...),
    filename: Optional[str] = Body(None),
    authorization: Optional[str] = Header(default=None, convert_underscores=False)
):
    buf, err = await _fetch_wav_and_decode(mediaId, authorization)
    if err:
        return _error(err)
    return _report_response(buf, filename or mediaId)


if __name__ == '__main__':
    import uvicorn

    configure_logging()
    uvicorn.run(app, host='0.0.0.0', port=PORT)

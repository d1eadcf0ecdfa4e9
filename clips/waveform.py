"""
Waveform peaks for client-side visualization.

The audio is decoded to mono signed 16-bit PCM at an oversampled rate and
reduced to one normalized peak per bucket, ``SAMPLES_PER_SECOND`` buckets per
second of audio.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np

from .media import CommandRunner

logger = logging.getLogger(__name__)

WAVEFORM_VERSION = 1
SAMPLES_PER_SECOND = 100
EXTRACTION_RATE = max(SAMPLES_PER_SECOND * 10, 1000)

# Largest magnitude of a signed 16-bit sample.
INT16_FULL_SCALE = 32768.0


def peak_count(duration: float) -> int:
    return max(0, math.ceil(duration * SAMPLES_PER_SECOND))


def extract_peaks(pcm: bytes, target: int) -> list[float]:
    """
    Reduce raw s16le mono PCM to at most ``target`` peaks in [0, 1].

    Bucket ``i`` covers samples ``[floor(i*size), floor((i+1)*size))`` with
    ``size = total / target``. With fewer samples than buckets every sample
    becomes its own bucket and the trailing buckets are omitted.
    """
    usable = len(pcm) - (len(pcm) % 2)
    samples = np.frombuffer(pcm[:usable], dtype="<i2")
    total = samples.size
    if total == 0 or target <= 0:
        return []

    # int16 -> int32 before abs so -32768 does not wrap.
    magnitudes = np.abs(samples.astype(np.int32))

    if total <= target:
        peaks = magnitudes
    else:
        size = total / target
        starts = np.floor(np.arange(target) * size).astype(np.int64)
        peaks = np.maximum.reduceat(magnitudes, starts)

    normalized = np.minimum(peaks / INT16_FULL_SCALE, 1.0)
    return [round(float(p), 4) for p in normalized]


@dataclass
class WaveformResult:
    path: Path
    duration: float
    peaks: list[float] = field(default_factory=list)

    def as_document(self) -> dict:
        return {
            "version": WAVEFORM_VERSION,
            "sampleRate": EXTRACTION_RATE,
            "samplesPerSecond": SAMPLES_PER_SECOND,
            "duration": self.duration,
            "peaks": self.peaks,
        }


class WaveformExtractor:
    def __init__(self, runner: CommandRunner, *, ffmpeg_bin: str = "ffmpeg", timeout: float = 120.0):
        self.runner = runner
        self.ffmpeg_bin = ffmpeg_bin
        self.timeout = timeout

    def decode_pcm(self, audio_path: Path, pcm_path: Path) -> bytes:
        self.runner.run([
            self.ffmpeg_bin,
            "-y",
            "-i", str(audio_path),
            "-ac", "1",
            "-ar", str(EXTRACTION_RATE),
            "-f", "s16le",
            "-acodec", "pcm_s16le",
            str(pcm_path),
        ], timeout=self.timeout)
        return pcm_path.read_bytes()

    def generate(self, audio_path: Path, duration: float, out_dir: Path) -> WaveformResult:
        pcm_path = out_dir / "waveform.pcm"
        out_path = out_dir / "waveform.json"
        try:
            pcm = self.decode_pcm(audio_path, pcm_path)
        finally:
            pcm_path.unlink(missing_ok=True)

        result = WaveformResult(path=out_path, duration=duration, peaks=extract_peaks(pcm, peak_count(duration)))
        out_path.write_text(json.dumps(result.as_document(), separators=(",", ":")))
        logger.info("generated %d peaks for %.2fs of audio", len(result.peaks), duration)
        return result

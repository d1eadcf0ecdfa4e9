import json
import math

import numpy as np
import pytest

from clips.waveform import (
    EXTRACTION_RATE,
    SAMPLES_PER_SECOND,
    WaveformExtractor,
    extract_peaks,
    peak_count,
)

from .conftest import FakeRunner


def pcm(values) -> bytes:
    return np.asarray(values, dtype="<i2").tobytes()


@pytest.mark.parametrize("duration,expected", [(0, 0), (0.005, 1), (1.0, 100), (2.5, 250), (3.333, 334)])
def test_peak_count(duration, expected):
    assert peak_count(duration) == expected


def test_one_peak_per_bucket_in_unit_range():
    duration = 2.5
    samples = np.random.default_rng(7).integers(-32768, 32767, int(duration * EXTRACTION_RATE), endpoint=True)
    peaks = extract_peaks(pcm(samples), peak_count(duration))

    assert len(peaks) == math.ceil(duration * SAMPLES_PER_SECOND)
    assert all(0.0 <= p <= 1.0 for p in peaks)


def test_bucket_takes_max_absolute_value():
    # 8 samples, 2 buckets of 4
    peaks = extract_peaks(pcm([100, -16384, 5, 0, 3, 2, -1, 8192]), 2)
    assert peaks == [0.5, 0.25]


def test_uneven_buckets_cover_every_sample():
    # 5 samples into 2 buckets: [0, 2) and [2, 5)
    peaks = extract_peaks(pcm([0, 0, 0, 0, 32767]), 2)
    assert peaks == [0.0, 1.0]


def test_fewer_samples_than_buckets_omits_trailing_buckets():
    peaks = extract_peaks(pcm([16384, -8192, 0]), 10)
    assert peaks == [0.5, 0.25, 0.0]


def test_most_negative_sample_clamps_to_one():
    assert extract_peaks(pcm([-32768, 0]), 2) == [1.0, 0.0]


def test_values_rounded_to_four_decimals():
    (peak,) = extract_peaks(pcm([12345]), 1)
    assert peak == round(12345 / 32768, 4)


def test_empty_and_odd_length_input():
    assert extract_peaks(b"", 10) == []
    assert extract_peaks(pcm([16384]) + b"\x01", 1) == [0.5]


def test_generate_writes_document_and_removes_pcm(tmp_path):
    runner = FakeRunner(duration=1.5)
    result = WaveformExtractor(runner).generate(tmp_path / "original.mp3", 1.5, tmp_path)

    doc = json.loads((tmp_path / "waveform.json").read_text())
    assert doc["version"] == 1
    assert doc["sampleRate"] == EXTRACTION_RATE
    assert doc["samplesPerSecond"] == SAMPLES_PER_SECOND
    assert doc["duration"] == 1.5
    assert doc["peaks"] == result.peaks
    assert len(doc["peaks"]) == 150
    assert not (tmp_path / "waveform.pcm").exists()

    (args, _), = runner.calls
    assert args[args.index("-ar") + 1] == str(EXTRACTION_RATE)
    assert args[args.index("-ac") + 1] == "1"

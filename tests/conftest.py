"""Shared fakes for the external collaborators: object store, media tools, locks."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path

import numpy as np
import pytest
from botocore.exceptions import ClientError
from PIL import Image

from clips.config import PipelineConfig, StorageConfig
from clips.errors import CommandError
from clips.models import Item
from clips.processing import ClipProcessor
from clips.storage import ObjectStore

CDN = "https://cdn.example.com"


class FakeS3Client:
    """The two boto3 transfer calls the object store uses, backed by a dict."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_uploads = False

    def download_file(self, bucket, key, filename):
        try:
            data = self.objects[(bucket, key)]
        except KeyError:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(filename).write_bytes(data)

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.fail_uploads:
            raise ClientError({"Error": {"Code": "503", "Message": "Slow Down"}}, "PutObject")
        self.objects[(bucket, key)] = Path(filename).read_bytes()
        self.content_types[key] = (ExtraArgs or {}).get("ContentType")


def sine_pcm(seconds: float, rate: int = 1000, amplitude: int = 16384) -> bytes:
    t = np.arange(int(seconds * rate)) / rate
    return (amplitude * np.sin(2 * np.pi * 5 * t)).astype("<i2").tobytes()


class FakeRunner:
    """
    Stands in for ffprobe / ffmpeg / yt-dlp. Output files the real tools would
    write are written as well so the pipeline can carry on.
    """

    def __init__(self, *, duration: float = 2.5, has_audio: bool = True, fail: set[str] | None = None,
                 thumbnail_bytes: bytes | None = None):
        self.duration = duration
        self.has_audio = has_audio
        self.fail = set(fail or ())
        self.thumbnail_bytes = thumbnail_bytes
        self.calls: list[tuple[list[str], float]] = []

    def kind(self, args: list[str]) -> str:
        tool = Path(args[0]).name
        if tool == "ffprobe":
            return "probe_stream" if "stream=codec_type" in args else "probe_duration"
        if tool == "ffmpeg":
            return "pcm" if "s16le" in args else "teaser"
        return "ytdlp"

    def run(self, args, timeout):
        args = [str(a) for a in args]
        self.calls.append((args, timeout))
        kind = self.kind(args)
        if kind in self.fail:
            raise CommandError(args, f"{args[0]} exited with 1: simulated {kind} failure", returncode=1)

        if kind == "probe_stream":
            if not self.has_audio:
                raise CommandError(args, "ffprobe exited with 1: Invalid data found", returncode=1)
            return "audio\n"
        if kind == "probe_duration":
            return f"{self.duration}\n"
        if kind == "pcm":
            Path(args[-1]).write_bytes(sine_pcm(self.duration))
            return ""
        if kind == "teaser":
            Path(args[-1]).write_bytes(b"\x00\x00\x00\x18ftypmp42")
            return ""
        # yt-dlp
        if self.thumbnail_bytes is None:
            raise CommandError(args, "yt-dlp exited with 1: Unsupported URL", returncode=1)
        stem = Path(args[args.index("-o") + 1])
        stem.with_suffix(".jpg").write_bytes(self.thumbnail_bytes)
        return ""

    def kinds(self) -> list[str]:
        return [self.kind(args) for args, _ in self.calls]


class FakeLocks:
    def __init__(self):
        self.held: set[str] = set()
        self.released: list[str] = []

    def claim(self, job_id, ttl):
        if job_id in self.held:
            return False
        self.held.add(job_id)
        return True

    def release(self, job_id):
        self.held.discard(job_id)
        self.released.append(job_id)

    @contextmanager
    def single_flight(self, name, ttl):
        if name in self.held:
            yield False
            return
        self.held.add(name)
        try:
            yield True
        finally:
            self.held.discard(name)


def jpeg_bytes(size=(640, 360), color=(200, 30, 30)) -> bytes:
    from io import BytesIO

    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG")
    return buf.getvalue()


@pytest.fixture
def brand_background(tmp_path) -> Path:
    path = tmp_path / "brand.jpg"
    Image.new("RGB", (1600, 900), (20, 40, 120)).save(path, format="JPEG")
    return path


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(bucket="clips-test", endpoint_url=None, region="us-east-1",
                         access_key=None, secret_key=None, cdn_base_url=CDN)


@pytest.fixture
def pipeline_config(tmp_path, brand_background, storage_config) -> PipelineConfig:
    return PipelineConfig(work_root=tmp_path / "work", brand_background=brand_background, storage=storage_config)


@pytest.fixture
def s3_client() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def object_store(storage_config, s3_client) -> ObjectStore:
    return ObjectStore(storage_config, client=s3_client)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def processor(pipeline_config, object_store, runner) -> ClipProcessor:
    return ClipProcessor(pipeline_config, object_store, runner=runner)


@pytest.fixture
def locks() -> FakeLocks:
    return FakeLocks()


@pytest.fixture
def item(db) -> Item:
    return Item.objects.create(title="Door creak", original_filename="creak.mp3")


@pytest.fixture
def uploaded(item, s3_client, storage_config):
    """The item's original audio sitting in the bucket."""
    key = f"uploads/{item.pk}/original.mp3"
    s3_client.objects[(storage_config.bucket, key)] = b"ID3fake-mp3-bytes"
    return key

from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings


@dataclass(frozen=True)
class StorageConfig:
    bucket: str
    endpoint_url: str | None
    region: str
    access_key: str | None
    secret_key: str | None
    cdn_base_url: str

    @classmethod
    def from_settings(cls) -> "StorageConfig":
        return cls(
            bucket=settings.S3_BUCKET,
            endpoint_url=settings.S3_ENDPOINT_URL,
            region=settings.S3_REGION,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
            cdn_base_url=settings.CDN_BASE_URL,
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Everything the orchestrator needs, resolved once at worker startup."""

    work_root: Path
    asset_namespace: str = "uploads"
    brand_background: Path = Path("assets/brand-background.jpg")
    teaser_max_seconds: float = 5.0
    thumbnail_size: int = 400
    probe_timeout: float = 30.0
    transcode_timeout: float = 120.0
    video_timeout: float = 180.0
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    ytdlp_bin: str = "yt-dlp"
    storage: StorageConfig | None = field(default=None, compare=False)

    @classmethod
    def from_settings(cls) -> "PipelineConfig":
        return cls(
            work_root=Path(settings.PIPELINE_WORK_ROOT),
            asset_namespace=settings.PIPELINE_ASSET_NAMESPACE,
            brand_background=Path(settings.BRAND_BACKGROUND_PATH),
            teaser_max_seconds=float(settings.TEASER_MAX_SECONDS),
            thumbnail_size=int(settings.THUMBNAIL_SIZE),
            probe_timeout=float(settings.PROBE_TIMEOUT),
            transcode_timeout=float(settings.TRANSCODE_TIMEOUT),
            video_timeout=float(settings.VIDEO_TIMEOUT),
            ffmpeg_bin=settings.FFMPEG_BIN,
            ffprobe_bin=settings.FFPROBE_BIN,
            ytdlp_bin=settings.YTDLP_BIN,
            storage=StorageConfig.from_settings(),
        )

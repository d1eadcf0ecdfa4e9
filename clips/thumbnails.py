"""
Square thumbnail resolution.

Sources are tried in order and the first one that yields an image wins:

1. a direct thumbnail URL handed over with the job,
2. the thumbnail of the source video, pulled with yt-dlp,
3. the already rendered preview image.

Photographic sources (1, 2) are center-cropped; the branded preview image is
padded instead so none of the branding is cut off.
"""
import logging
from dataclasses import dataclass
from pathlib import Path

import requests
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import CommandError
from .media import CommandRunner

logger = logging.getLogger(__name__)

PAD_COLOR = "#1a1a1a"
DOWNLOAD_TIMEOUT = 15
MAX_DOWNLOAD_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ThumbnailSource:
    path: Path
    photographic: bool = True


class DirectUrlSource:
    name = "thumbnail_url"

    def __init__(self, url: str | None, session: requests.Session | None = None):
        self.url = url
        self.session = session or requests.Session()

    def resolve(self, work_dir: Path) -> ThumbnailSource | None:
        if not self.url:
            return None
        out = work_dir / "source_thumb"
        written = 0
        with self.session.get(self.url, stream=True, timeout=DOWNLOAD_TIMEOUT) as resp:
            resp.raise_for_status()
            with open(out, "wb") as f:
                for chunk in resp.iter_content(chunk_size=8192):
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > MAX_DOWNLOAD_BYTES:
                        raise ValueError(f"thumbnail larger than {MAX_DOWNLOAD_BYTES} bytes")
                    f.write(chunk)
        if written == 0:
            return None
        return ThumbnailSource(out, photographic=True)


class SourceUrlExtractor:
    """Ask yt-dlp for the source video's thumbnail without downloading the media."""

    name = "source_url"
    extensions = (".jpg", ".jpeg", ".webp", ".png")

    def __init__(self, url: str | None, runner: CommandRunner, *, ytdlp_bin: str = "yt-dlp",
                 timeout: float = 30.0):
        self.url = url
        self.runner = runner
        self.ytdlp_bin = ytdlp_bin
        self.timeout = timeout

    def resolve(self, work_dir: Path) -> ThumbnailSource | None:
        if not self.url:
            return None
        stem = work_dir / "extracted_thumb"
        self.runner.run([
            self.ytdlp_bin,
            "--write-thumbnail",
            "--skip-download",
            "--no-playlist",
            "-o", str(stem),
            self.url,
        ], timeout=self.timeout)
        for ext in self.extensions:
            candidate = stem.with_suffix(ext)
            if candidate.exists() and candidate.stat().st_size > 0:
                return ThumbnailSource(candidate, photographic=True)
        return None


class PreviewImageFallback:
    name = "preview_image"

    def __init__(self, preview_path: Path):
        self.preview_path = preview_path

    def resolve(self, work_dir: Path) -> ThumbnailSource | None:
        if not self.preview_path.exists():
            return None
        return ThumbnailSource(self.preview_path, photographic=False)


def make_square(source: ThumbnailSource, out_path: Path, size: int = 400) -> Path:
    with Image.open(source.path) as src:
        img = src.convert("RGB")
    if source.photographic:
        square = ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
    else:
        square = ImageOps.pad(img, (size, size), method=Image.Resampling.LANCZOS, color=PAD_COLOR)
    square.save(out_path, format="JPEG", quality=90)
    return out_path


class ThumbnailResolver:
    def __init__(self, strategies, *, size: int = 400):
        self.strategies = list(strategies)
        self.size = size

    def resolve_source(self, work_dir: Path) -> ThumbnailSource | None:
        for strategy in self.strategies:
            try:
                found = strategy.resolve(work_dir)
            except (requests.RequestException, CommandError, OSError, ValueError) as e:
                logger.warning("thumbnail source %s failed: %s", strategy.name, e)
                continue
            if found is None:
                continue
            if not _is_image(found.path):
                logger.warning("thumbnail source %s did not produce a readable image", strategy.name)
                continue
            logger.info("using %s as thumbnail source", strategy.name)
            return found
        return None

    def generate(self, work_dir: Path) -> Path | None:
        """Square JPEG in ``work_dir``, or None when no source could be used."""
        source = self.resolve_source(work_dir)
        if source is None:
            return None
        return make_square(source, work_dir / "thumb_square.jpg", self.size)


def _is_image(path: Path) -> bool:
    try:
        with Image.open(path) as img:
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
        return False
    return True

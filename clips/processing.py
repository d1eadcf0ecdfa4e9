"""
Turns one uploaded clip into a live item.

    fetch -> validate -> waveform -> preview image -> teaser -> thumbnail
          -> completeness check -> live

Each generated artifact is published and recorded as soon as it exists. Any
failure except the thumbnail aborts the job: the item is marked failed and the
original error goes back to the broker for its retry policy. The job's working
directory is removed on every exit path.
"""
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from django.db import DatabaseError, transaction
from django.utils import timezone
from PIL import Image, UnidentifiedImageError

from .config import PipelineConfig
from .errors import CommandError, ProcessingError, ProcessingErrorType
from .jobs import ProcessingJob
from .media import CommandRunner, MediaProbe
from .models import REQUIRED_ASSET_TYPES, Asset, Item
from .renderers import TeaserRenderer, render_preview_image
from .storage import ObjectStore, UploadResult, asset_storage_key
from .thumbnails import DirectUrlSource, PreviewImageFallback, SourceUrlExtractor, ThumbnailResolver
from .waveform import WaveformExtractor

logger = logging.getLogger(__name__)

MIME_TYPES = {
    Asset.Type.ORIGINAL: "audio/mpeg",
    Asset.Type.WAVEFORM_JSON: "application/json",
    Asset.Type.OG_IMAGE: "image/png",
    Asset.Type.TEASER_MP4: "video/mp4",
    Asset.Type.THUMBNAIL: "image/jpeg",
}

ASSET_FILE_NAMES = {
    Asset.Type.WAVEFORM_JSON: "waveform.json",
    Asset.Type.OG_IMAGE: "og.png",
    Asset.Type.TEASER_MP4: "teaser.mp4",
    Asset.Type.THUMBNAIL: "thumbnail.jpg",
}

# Failures of the external tools / renderers that count as "could not generate".
_GENERATION_ERRORS = (CommandError, OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError)


@dataclass
class ProcessingResult:
    item_id: str
    duration: float
    waveform_url: str
    og_image_url: str
    teaser_url: str
    thumbnail_url: str | None = None
    published: bool = True


def record_asset(item_id: str, asset_type: str, upload: UploadResult, mime_type: str) -> Asset:
    """One row per (item, asset_type); reprocessing replaces the previous row."""
    try:
        asset, _ = Asset.objects.update_or_create(
            item_id=item_id,
            asset_type=asset_type,
            defaults={
                "storage_key": upload.storage_key,
                "cdn_url": upload.cdn_url,
                "mime_type": mime_type,
                "size_bytes": upload.size_bytes,
            },
        )
    except DatabaseError as e:
        raise ProcessingError(ProcessingErrorType.DATABASE_ERROR, f"Failed to record {asset_type} asset: {e}",
                              item_id=str(item_id), step="record_asset") from e
    return asset


def missing_required_assets(item_id: str) -> set[str]:
    present = set(Asset.objects.filter(item_id=item_id).values_list("asset_type", flat=True))
    return {str(t) for t in REQUIRED_ASSET_TYPES} - present


def promote_to_live(item_id: str) -> Item:
    """
    Re-check the required assets and flip the item to LIVE in one transaction.
    published_at is only stamped the first time.
    """
    try:
        with transaction.atomic():
            item = Item.objects.select_for_update().get(pk=item_id)
            missing = missing_required_assets(item_id)
            if missing:
                raise ProcessingError(ProcessingErrorType.DATABASE_ERROR,
                                      f"Missing required assets: {', '.join(sorted(missing))}",
                                      item_id=str(item_id), step="completeness_check")
            if item.status == Item.Status.REMOVED:
                logger.info("item %s was removed while processing; leaving it removed", item_id)
                return item
            item.status = Item.Status.LIVE
            fields = ["status", "updated_at"]
            if item.published_at is None:
                item.published_at = timezone.now()
                fields.append("published_at")
            item.save(update_fields=fields)
    except (DatabaseError, Item.DoesNotExist) as e:
        raise ProcessingError(ProcessingErrorType.DATABASE_ERROR, f"Failed to update item status: {e}",
                              item_id=str(item_id), step="update_status") from e
    return item


def mark_failed(item_id: str) -> None:
    """Best effort; a failure here must never hide the error that got us here."""
    try:
        Item.objects.filter(pk=item_id).exclude(status=Item.Status.REMOVED).update(
            status=Item.Status.FAILED, updated_at=timezone.now(),
        )
    except DatabaseError:
        logger.exception("failed to mark item %s as failed", item_id)


class ClipProcessor:
    def __init__(self, config: PipelineConfig, store: ObjectStore, runner: CommandRunner | None = None):
        self.config = config
        self.store = store
        self.runner = runner or CommandRunner()
        self.probe = MediaProbe(self.runner, ffprobe_bin=config.ffprobe_bin, timeout=config.probe_timeout)
        self.waveform = WaveformExtractor(self.runner, ffmpeg_bin=config.ffmpeg_bin,
                                          timeout=config.transcode_timeout)
        self.teaser = TeaserRenderer(self.runner, ffmpeg_bin=config.ffmpeg_bin, timeout=config.video_timeout,
                                     max_seconds=config.teaser_max_seconds)

    @classmethod
    def from_settings(cls) -> "ClipProcessor":
        config = PipelineConfig.from_settings()
        return cls(config, ObjectStore(config.storage))

    def work_dir_for(self, item_id: str) -> Path:
        return self.config.work_root / f"item-{item_id}"

    # -- steps -------------------------------------------------------------

    def _load_item(self, item_id: str) -> Item:
        try:
            return Item.objects.get(pk=item_id)
        except (Item.DoesNotExist, DatabaseError, ValueError) as e:
            raise ProcessingError(ProcessingErrorType.DATABASE_ERROR, f"Cannot load item: {e}",
                                  item_id=item_id, step="load_item") from e

    def _validate(self, item_id: str, audio_path: Path) -> float:
        if not self.probe.has_audio_stream(audio_path):
            raise ProcessingError(ProcessingErrorType.INVALID_AUDIO, "File is not a valid audio format",
                                  item_id=item_id, step="validate")
        try:
            duration = self.probe.duration(audio_path)
        except (CommandError, ValueError) as e:
            raise ProcessingError(ProcessingErrorType.INVALID_AUDIO, f"Could not read duration: {e}",
                                  item_id=item_id, step="validate") from e
        try:
            Item.objects.filter(pk=item_id).update(duration_ms=int(round(duration * 1000)))
        except DatabaseError as e:
            raise ProcessingError(ProcessingErrorType.DATABASE_ERROR, f"Failed to store duration: {e}",
                                  item_id=item_id, step="validate") from e
        return duration

    def _generate(self, item_id: str, asset_type: str, render):
        try:
            return render()
        except _GENERATION_ERRORS as e:
            raise ProcessingError(ProcessingErrorType.GENERATION_FAILED, f"Failed to generate {asset_type}: {e}",
                                  item_id=item_id, step=f"generate_{asset_type}", asset_type=asset_type) from e

    def _publish(self, item_id: str, asset_type: str, path: Path) -> UploadResult:
        key = asset_storage_key(self.config.asset_namespace, item_id, ASSET_FILE_NAMES[asset_type])
        upload = self.store.publish(path, key, MIME_TYPES[asset_type])
        record_asset(item_id, asset_type, upload, MIME_TYPES[asset_type])
        return upload

    def _thumbnail(self, job: ProcessingJob, item: Item, preview_path: Path, work_dir: Path) -> str | None:
        resolver = ThumbnailResolver([
            DirectUrlSource(job.thumbnail_url),
            SourceUrlExtractor(job.source_url or item.source_url, self.runner,
                               ytdlp_bin=self.config.ytdlp_bin, timeout=self.config.probe_timeout),
            PreviewImageFallback(preview_path),
        ], size=self.config.thumbnail_size)
        try:
            path = resolver.generate(work_dir)
            if path is None:
                logger.warning("no thumbnail source for item %s", job.item_id)
                return None
            return self._publish(job.item_id, Asset.Type.THUMBNAIL, path).cdn_url
        except (ProcessingError, *_GENERATION_ERRORS) as e:
            logger.warning("thumbnail for item %s skipped: %s", job.item_id, e)
            return None

    # -- entry point -------------------------------------------------------

    def process(self, job: ProcessingJob) -> ProcessingResult:
        item_id = job.item_id
        work_dir = self.work_dir_for(item_id)
        try:
            if work_dir.exists():
                shutil.rmtree(work_dir)
            work_dir.mkdir(parents=True)

            item = self._load_item(item_id)

            logger.info("fetching %s for item %s", job.storage_key, item_id)
            audio_path = self.store.fetch(job.storage_key, work_dir)

            logger.info("validating audio for item %s", item_id)
            duration = self._validate(item_id, audio_path)

            logger.info("generating waveform for item %s", item_id)
            waveform = self._generate(item_id, Asset.Type.WAVEFORM_JSON,
                                      lambda: self.waveform.generate(audio_path, duration, work_dir))
            waveform_upload = self._publish(item_id, Asset.Type.WAVEFORM_JSON, waveform.path)

            logger.info("rendering preview image for item %s", item_id)
            og_path = self._generate(item_id, Asset.Type.OG_IMAGE,
                                     lambda: render_preview_image(waveform.peaks, self.config.brand_background,
                                                                  work_dir / "og.png"))
            og_upload = self._publish(item_id, Asset.Type.OG_IMAGE, og_path)

            logger.info("rendering teaser for item %s", item_id)
            teaser_path = self._generate(item_id, Asset.Type.TEASER_MP4,
                                         lambda: self.teaser.render(audio_path, duration, self.config.brand_background,
                                                                    work_dir / "teaser.mp4"))
            teaser_upload = self._publish(item_id, Asset.Type.TEASER_MP4, teaser_path)

            thumbnail_url = self._thumbnail(job, item, og_path, work_dir)

            logger.info("promoting item %s", item_id)
            promoted = promote_to_live(item_id)

            logger.info("processed item %s", item_id)
            return ProcessingResult(
                item_id=item_id,
                duration=duration,
                waveform_url=waveform_upload.cdn_url,
                og_image_url=og_upload.cdn_url,
                teaser_url=teaser_upload.cdn_url,
                thumbnail_url=thumbnail_url,
                published=promoted.status == Item.Status.LIVE,
            )
        except Exception as e:
            if isinstance(e, ProcessingError) and e.item_id is None:
                e.item_id = item_id
            logger.error("failed to process item %s: %s", item_id, e)
            mark_failed(item_id)
            raise
        finally:
            self._cleanup(work_dir)

    def _cleanup(self, work_dir: Path) -> None:
        try:
            shutil.rmtree(work_dir)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("failed to clean up %s", work_dir, exc_info=True)

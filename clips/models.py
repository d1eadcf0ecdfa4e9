import uuid
from django.db import models


class Item(models.Model):
    """An uploaded clip. Owned by the product; the worker only moves status/published_at."""

    class Status(models.TextChoices):
        PROCESSING = "processing"
        LIVE = "live"
        FAILED = "failed"
        REMOVED = "removed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    title = models.CharField(max_length=200, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PROCESSING)
    play_count = models.PositiveIntegerField(default=0)
    share_count = models.PositiveIntegerField(default=0)
    original_filename = models.CharField(max_length=255, blank=True, default="")
    source_url = models.URLField(max_length=1024, blank=True, null=True)  # attribution for URL extractions
    duration_ms = models.PositiveIntegerField(null=True, blank=True)      # filled from the probe

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    # Set once, on the first transition into LIVE.
    published_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"], name="clips_item_status_idx"),
            models.Index(fields=["-published_at"], name="clips_item_published_idx"),
        ]

    def __str__(self):
        return f"{self.title or self.original_filename or self.pk} ({self.status})"


class Asset(models.Model):
    class Type(models.TextChoices):
        ORIGINAL = "original"
        WAVEFORM_JSON = "waveform_json"
        OG_IMAGE = "og_image"
        TEASER_MP4 = "teaser_mp4"
        THUMBNAIL = "thumbnail"

    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name="assets")
    asset_type = models.CharField(max_length=32, choices=Type.choices)
    storage_key = models.CharField(max_length=512)
    cdn_url = models.URLField(max_length=1024)
    mime_type = models.CharField(max_length=100)
    size_bytes = models.PositiveBigIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["item", "asset_type"], name="clips_asset_item_type_uniq"),
        ]

    def __str__(self):
        return f"{self.item_id}:{self.asset_type}"


# An item may only go LIVE once all of these exist.
REQUIRED_ASSET_TYPES = frozenset({
    Asset.Type.WAVEFORM_JSON,
    Asset.Type.OG_IMAGE,
    Asset.Type.TEASER_MP4,
})


class TrendingScore(models.Model):
    """Rewritten wholesale by each trending run; rows only exist for LIVE items."""

    item = models.OneToOneField(Item, on_delete=models.CASCADE, primary_key=True, related_name="trending")
    score = models.FloatField(default=0.0)
    rank = models.PositiveIntegerField(default=0)  # 1 = best
    computed_at = models.DateTimeField()

    class Meta:
        indexes = [
            models.Index(fields=["rank"], name="clips_trending_rank_idx"),
            models.Index(fields=["-score"], name="clips_trending_score_idx"),
        ]

    def __str__(self):
        return f"#{self.rank} {self.item_id} ({self.score})"

import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Item",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("title", models.CharField(blank=True, default="", max_length=200)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("processing", "Processing"),
                            ("live", "Live"),
                            ("failed", "Failed"),
                            ("removed", "Removed"),
                        ],
                        default="processing",
                        max_length=16,
                    ),
                ),
                ("play_count", models.PositiveIntegerField(default=0)),
                ("share_count", models.PositiveIntegerField(default=0)),
                ("original_filename", models.CharField(blank=True, default="", max_length=255)),
                ("source_url", models.URLField(blank=True, max_length=1024, null=True)),
                ("duration_ms", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("published_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "indexes": [
                    models.Index(fields=["status"], name="clips_item_status_idx"),
                    models.Index(fields=["-published_at"], name="clips_item_published_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Asset",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "asset_type",
                    models.CharField(
                        choices=[
                            ("original", "Original"),
                            ("waveform_json", "Waveform Json"),
                            ("og_image", "Og Image"),
                            ("teaser_mp4", "Teaser Mp4"),
                            ("thumbnail", "Thumbnail"),
                        ],
                        max_length=32,
                    ),
                ),
                ("storage_key", models.CharField(max_length=512)),
                ("cdn_url", models.URLField(max_length=1024)),
                ("mime_type", models.CharField(max_length=100)),
                ("size_bytes", models.PositiveBigIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "item",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="assets",
                        to="clips.item",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("item", "asset_type"), name="clips_asset_item_type_uniq"),
                ],
            },
        ),
        migrations.CreateModel(
            name="TrendingScore",
            fields=[
                (
                    "item",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        primary_key=True,
                        related_name="trending",
                        serialize=False,
                        to="clips.item",
                    ),
                ),
                ("score", models.FloatField(default=0.0)),
                ("rank", models.PositiveIntegerField(default=0)),
                ("computed_at", models.DateTimeField()),
            ],
            options={
                "indexes": [
                    models.Index(fields=["rank"], name="clips_trending_rank_idx"),
                    models.Index(fields=["-score"], name="clips_trending_score_idx"),
                ],
            },
        ),
    ]

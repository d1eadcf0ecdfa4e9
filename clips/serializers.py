from rest_framework import serializers
from .models import Asset, Item, TrendingScore


class AssetSerializer(serializers.ModelSerializer):
    class Meta:
        model = Asset
        fields = [
            "asset_type",
            "storage_key",
            "cdn_url",
            "mime_type",
            "size_bytes",
            "created_at",
        ]


class ItemSerializer(serializers.ModelSerializer):
    assets = AssetSerializer(many=True, read_only=True)

    class Meta:
        model = Item
        fields = [
            "id",
            "title",
            "status",
            "duration_ms",
            "play_count",
            "share_count",
            "source_url",
            "created_at",
            "updated_at",
            "published_at",
            "assets",     # derived files, once processing has produced them
        ]


class CompleteUploadSerializer(serializers.Serializer):
    storageKey = serializers.CharField()
    sizeBytes = serializers.IntegerField(min_value=1)
    thumbnailUrl = serializers.URLField(required=False, allow_blank=True)


class TrendingEntrySerializer(serializers.ModelSerializer):
    item = ItemSerializer(read_only=True)

    class Meta:
        model = TrendingScore
        fields = ["rank", "score", "computed_at", "item"]


class TrendingQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(required=False, min_value=1, max_value=50, default=20)

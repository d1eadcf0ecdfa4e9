import logging

from django.conf import settings
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .jobs import ProcessingJob, enqueue_item_processing, trigger_trending_calculation
from .models import Asset, Item, TrendingScore
from .serializers import CompleteUploadSerializer, ItemSerializer, TrendingEntrySerializer, TrendingQuerySerializer
from .storage import cdn_url
from .utils import guess_audio_mime

logger = logging.getLogger(__name__)


class CompleteUploadView(views.APIView):
    """
    Called once the client has finished uploading the original audio.
    Records the original asset and enqueues processing for the item.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, item_id):
        ser = CompleteUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        storage_key = ser.validated_data["storageKey"]

        try:
            item = Item.objects.get(pk=item_id)
        except Item.DoesNotExist:
            return Response({"success": False, "error": "Item not found", "code": "NOT_FOUND"}, status=404)

        if item.status != Item.Status.PROCESSING:
            return Response(
                {"success": False, "error": f"Item is already {item.status}", "code": "ALREADY_COMPLETED"},
                status=status.HTTP_409_CONFLICT,
            )

        filename = item.original_filename or storage_key.rsplit("/", 1)[-1]
        Asset.objects.update_or_create(
            item=item,
            asset_type=Asset.Type.ORIGINAL,
            defaults={
                "storage_key": storage_key,
                "cdn_url": cdn_url(settings.CDN_BASE_URL, storage_key),
                "mime_type": guess_audio_mime(filename),
                "size_bytes": ser.validated_data["sizeBytes"],
            },
        )

        job = ProcessingJob(
            item_id=str(item.pk),
            storage_key=storage_key,
            original_filename=filename,
            thumbnail_url=ser.validated_data.get("thumbnailUrl") or None,
            source_url=item.source_url,
        )
        try:
            job_id = enqueue_item_processing(job)
        except Exception:
            logger.exception("failed to enqueue processing for item %s", item.pk)
            return Response({"success": False, "error": "Failed to enqueue processing job", "code": "QUEUE_ERROR"},
                            status=500)

        return Response({"success": True, "itemId": str(item.pk), "jobId": job_id}, status=status.HTTP_202_ACCEPTED)


class ItemDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, item_id):
        try:
            item = Item.objects.prefetch_related("assets").get(pk=item_id)
        except Item.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response(ItemSerializer(item).data)


class TrendingListView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        query = TrendingQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        limit = query.validated_data["limit"]

        entries = (
            TrendingScore.objects.select_related("item")
            .prefetch_related("item__assets")
            .filter(item__status=Item.Status.LIVE)
            .order_by("rank")[:limit]
        )
        return Response({"results": TrendingEntrySerializer(entries, many=True).data})


class TrendingRecalculateView(views.APIView):
    """On-demand trigger; overlapping runs are refused by the task itself."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        task_id = trigger_trending_calculation()
        return Response({"taskId": task_id}, status=status.HTTP_202_ACCEPTED)

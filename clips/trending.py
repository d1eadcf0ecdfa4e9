"""
Trending scores for live items.

    score = (plays * 1.0 + shares * 2.0) * decay
    decay = 1 / (1 + days_since_published * 0.1)     (1.0 when never published)

Items are ranked 1..N by score, highest first, ties kept in input order.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime

from django.db import transaction
from django.utils import timezone

from .models import Item, TrendingScore

logger = logging.getLogger(__name__)

PLAY_WEIGHT = 1.0
SHARE_WEIGHT = 2.0
DECAY_PER_DAY = 0.1
SCORE_DECIMALS = 4
SECONDS_PER_DAY = 24 * 60 * 60


def decay_factor(published_at: datetime | None, now: datetime) -> float:
    if published_at is None:
        return 1.0
    days = max(0.0, (now - published_at).total_seconds() / SECONDS_PER_DAY)
    return 1.0 / (1.0 + days * DECAY_PER_DAY)


def calculate_trending_score(play_count: int, share_count: int, published_at: datetime | None,
                             now: datetime | None = None) -> float:
    engagement = play_count * PLAY_WEIGHT + share_count * SHARE_WEIGHT
    return engagement * decay_factor(published_at, now or timezone.now())


@dataclass(frozen=True)
class RankedItem:
    item_id: object
    score: float
    rank: int


def rank_items(rows, now: datetime) -> list[RankedItem]:
    """
    ``rows`` are ``(item_id, play_count, share_count, published_at)`` tuples.
    """
    scored = [
        (item_id, round(calculate_trending_score(plays, shares, published_at, now), SCORE_DECIMALS))
        for item_id, plays, shares, published_at in rows
    ]
    # sorted() is stable, so equal scores keep their input order.
    scored = sorted(scored, key=lambda pair: pair[1], reverse=True)
    return [RankedItem(item_id, score, rank) for rank, (item_id, score) in enumerate(scored, start=1)]


@dataclass
class TrendingRunResult:
    success: bool
    item_count: int
    duration_ms: int
    error: str | None = None
    skipped: bool = False

    def as_dict(self) -> dict:
        data = {"success": self.success, "itemCount": self.item_count, "durationMs": self.duration_ms}
        if self.error:
            data["error"] = self.error
        if self.skipped:
            data["skipped"] = True
        return data


class TrendingCalculator:
    def fetch_live_rows(self):
        return list(
            Item.objects.filter(status=Item.Status.LIVE)
            .order_by("created_at", "id")
            .values_list("id", "play_count", "share_count", "published_at")
        )

    def write(self, ranked: list[RankedItem]) -> datetime:
        """
        Replace the score table with ``ranked``. Every row written carries the
        same computed_at; anything left with another timestamp belongs to an
        item that is no longer live and is removed.
        """
        computed_at = timezone.now()
        rows = [
            TrendingScore(
                item_id=r.item_id,
                score=r.score,
                rank=r.rank,
                computed_at=computed_at,
            )
            for r in ranked
        ]
        with transaction.atomic():
            if rows:
                TrendingScore.objects.bulk_create(
                    rows,
                    update_conflicts=True,
                    unique_fields=["item"],
                    update_fields=["score", "rank", "computed_at"],
                    batch_size=1000,
                )
            # rows not written above belong to items that left the live set
            stale, _ = TrendingScore.objects.exclude(computed_at=computed_at).delete()
        if stale:
            logger.info("removed %d stale trending rows", stale)
        return computed_at

    def run(self) -> TrendingRunResult:
        started = time.monotonic()
        try:
            now = timezone.now()
            ranked = rank_items(self.fetch_live_rows(), now)
            self.write(ranked)
        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.exception("trending calculation failed")
            return TrendingRunResult(success=False, item_count=0, duration_ms=duration_ms, error=str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("trending calculation complete: %d items in %dms", len(ranked), duration_ms)
        return TrendingRunResult(success=True, item_count=len(ranked), duration_ms=duration_ms)

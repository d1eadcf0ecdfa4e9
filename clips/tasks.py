import logging
from dataclasses import asdict

import redis
from celery import shared_task
from django.conf import settings

from .jobs import (
    CALCULATE_TRENDING_TASK,
    PROCESS_ITEM_TASK,
    TRENDING_JOB_ID,
    InvalidJobPayload,
    JobLocks,
    ProcessingJob,
    processing_job_id,
)
from .processing import ClipProcessor
from .trending import TrendingCalculator, TrendingRunResult

logger = logging.getLogger(__name__)


def _backoff(retries: int) -> float:
    """Exponential: base, 2*base, 4*base, ..."""
    return settings.PROCESSING_BACKOFF_SECONDS * (2 ** retries)


@shared_task(bind=True, name=PROCESS_ITEM_TASK, acks_late=True)
def process_item(self, payload: dict):
    """
    Broker entry point for one clip. Retries with exponential backoff up to
    PROCESSING_MAX_ATTEMPTS; the item's dedup key is dropped once the job is
    finished for good so the item can be enqueued again.
    """
    locks = JobLocks.from_settings()
    try:
        job = ProcessingJob.from_payload(payload)
    except InvalidJobPayload:
        logger.error("dropping malformed job %s: %r", self.request.id, payload)
        raise

    job_id = processing_job_id(job.item_id)
    attempt = self.request.retries + 1
    logger.info("processing %s (attempt %d/%d)", job_id, attempt, settings.PROCESSING_MAX_ATTEMPTS)

    try:
        result = ClipProcessor.from_settings().process(job)
    except Exception as exc:
        if attempt < settings.PROCESSING_MAX_ATTEMPTS:
            countdown = _backoff(self.request.retries)
            logger.warning("%s failed (%s); retrying in %.1fs", job_id, exc, countdown)
            raise self.retry(exc=exc, countdown=countdown, max_retries=settings.PROCESSING_MAX_ATTEMPTS - 1)
        logger.error("%s failed permanently after %d attempts", job_id, attempt)
        locks.release(job_id)
        raise

    locks.release(job_id)
    return asdict(result)


@shared_task(name=CALCULATE_TRENDING_TASK)
def calculate_trending():
    """Scheduled every TRENDING_INTERVAL_SECONDS by beat and callable on demand; never overlaps itself."""
    try:
        locks = JobLocks.from_settings()
        with locks.single_flight(TRENDING_JOB_ID, settings.TRENDING_LOCK_TTL_SECONDS) as acquired:
            if not acquired:
                logger.info("trending calculation already running; skipping")
                return TrendingRunResult(success=True, item_count=0, duration_ms=0, skipped=True).as_dict()
            return TrendingCalculator().run().as_dict()
    except redis.exceptions.RedisError as e:
        logger.error("trending lock unavailable: %s", e)
        return TrendingRunResult(success=False, item_count=0, duration_ms=0, error=str(e)).as_dict()

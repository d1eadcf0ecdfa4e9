"""
Broker-side plumbing: job payloads, deterministic job ids and the Redis locks
that keep one in-flight processing job per item and one trending run at a time.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass

import redis
from django.conf import settings

from clip_pipeline.celery import celery_app

logger = logging.getLogger(__name__)

PROCESS_ITEM_TASK = "clips.tasks.process_item"
CALCULATE_TRENDING_TASK = "clips.tasks.calculate_trending"

# Fixed identifier shared by the scheduled and on-demand trending paths.
TRENDING_JOB_ID = "trending-calculation"


class InvalidJobPayload(ValueError):
    pass


@dataclass(frozen=True)
class ProcessingJob:
    item_id: str
    storage_key: str
    original_filename: str
    thumbnail_url: str | None = None
    source_url: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "ProcessingJob":
        if not isinstance(payload, dict):
            raise InvalidJobPayload("job payload must be an object")
        required = {}
        for key in ("itemId", "storageKey", "originalFilename"):
            value = payload.get(key)
            if not isinstance(value, str) or not value.strip():
                raise InvalidJobPayload(f"{key} is required")
            required[key] = value
        return cls(
            item_id=required["itemId"],
            storage_key=required["storageKey"],
            original_filename=required["originalFilename"],
            thumbnail_url=payload.get("thumbnailUrl") or None,
            source_url=payload.get("sourceUrl") or None,
        )

    def to_payload(self) -> dict:
        payload = {
            "itemId": self.item_id,
            "storageKey": self.storage_key,
            "originalFilename": self.original_filename,
        }
        if self.thumbnail_url:
            payload["thumbnailUrl"] = self.thumbnail_url
        if self.source_url:
            payload["sourceUrl"] = self.source_url
        return payload


def processing_job_id(item_id: str) -> str:
    return f"item-{item_id}"


class JobLocks:
    """Redis-backed dedup keys and single-flight locks."""

    prefix = "clips:lock:"

    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_settings(cls) -> "JobLocks":
        return cls(redis.Redis.from_url(settings.JOB_LOCK_REDIS_URL))

    def claim(self, job_id: str, ttl: int) -> bool:
        """True if nobody else holds ``job_id``."""
        return bool(self.client.set(self.prefix + job_id, "1", nx=True, ex=ttl))

    def release(self, job_id: str) -> None:
        self.client.delete(self.prefix + job_id)

    @contextmanager
    def single_flight(self, name: str, ttl: int):
        """Yields True when this caller holds ``name``; False when another run does."""
        lock = self.client.lock(self.prefix + name, timeout=ttl, blocking=False)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                try:
                    lock.release()
                except redis.exceptions.LockError:
                    logger.warning("lock %s expired before release", name)


def enqueue_item_processing(job: ProcessingJob, *, locks: JobLocks | None = None) -> str:
    """
    Put ``job`` on the broker under its deterministic id. While a job for the
    same item is still in flight, nothing new is enqueued and the existing id
    is returned.
    """
    locks = locks or JobLocks.from_settings()
    job_id = processing_job_id(job.item_id)
    if not locks.claim(job_id, settings.JOB_LOCK_TTL_SECONDS):
        logger.info("job %s already in flight; not enqueuing again", job_id)
        return job_id
    try:
        celery_app.send_task(PROCESS_ITEM_TASK, args=(job.to_payload(),), task_id=job_id)
    except Exception:
        locks.release(job_id)
        raise
    logger.info("enqueued %s for %s", job_id, job.storage_key)
    return job_id


def trigger_trending_calculation() -> str:
    """On-demand trending run; the task itself refuses to overlap a running one."""
    result = celery_app.send_task(CALCULATE_TRENDING_TASK)
    return result.id

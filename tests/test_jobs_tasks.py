from unittest import mock

import pytest
import redis

from clip_pipeline.celery import celery_app
from clips.errors import ProcessingError, ProcessingErrorType
from clips.jobs import (
    PROCESS_ITEM_TASK,
    TRENDING_JOB_ID,
    InvalidJobPayload,
    JobLocks,
    ProcessingJob,
    enqueue_item_processing,
    processing_job_id,
)
from clips.models import Item, TrendingScore
from clips.processing import ClipProcessor, ProcessingResult
from clips.tasks import _backoff, calculate_trending, process_item

PAYLOAD = {"itemId": "abc", "storageKey": "uploads/abc/original.mp3", "originalFilename": "creak.mp3"}


def test_payload_round_trip_keeps_optional_fields():
    job = ProcessingJob.from_payload({**PAYLOAD, "thumbnailUrl": "https://img/t.jpg", "sourceUrl": ""})
    assert job.thumbnail_url == "https://img/t.jpg"
    assert job.source_url is None
    assert job.to_payload() == {**PAYLOAD, "thumbnailUrl": "https://img/t.jpg"}


@pytest.mark.parametrize("missing", ["itemId", "storageKey", "originalFilename"])
def test_payload_requires_core_fields(missing):
    payload = {k: v for k, v in PAYLOAD.items() if k != missing}
    with pytest.raises(InvalidJobPayload, match=missing):
        ProcessingJob.from_payload(payload)


def test_payload_rejects_blank_and_non_objects():
    with pytest.raises(InvalidJobPayload):
        ProcessingJob.from_payload({**PAYLOAD, "storageKey": "  "})
    with pytest.raises(InvalidJobPayload):
        ProcessingJob.from_payload(["abc"])


def test_job_id_is_deterministic():
    assert processing_job_id("abc") == "item-abc"


# -- enqueue -----------------------------------------------------------------

def test_enqueue_sends_under_deterministic_id(locks):
    job = ProcessingJob.from_payload(PAYLOAD)
    with mock.patch.object(celery_app, "send_task") as send_task:
        job_id = enqueue_item_processing(job, locks=locks)

    assert job_id == "item-abc"
    send_task.assert_called_once_with(PROCESS_ITEM_TASK, args=(PAYLOAD,), task_id="item-abc")
    assert "item-abc" in locks.held


def test_enqueue_is_deduplicated_while_in_flight(locks):
    job = ProcessingJob.from_payload(PAYLOAD)
    with mock.patch.object(celery_app, "send_task") as send_task:
        first = enqueue_item_processing(job, locks=locks)
        second = enqueue_item_processing(job, locks=locks)

    assert first == second == "item-abc"
    assert send_task.call_count == 1


def test_enqueue_failure_releases_claim(locks):
    job = ProcessingJob.from_payload(PAYLOAD)
    with mock.patch.object(celery_app, "send_task", side_effect=ConnectionError("broker down")):
        with pytest.raises(ConnectionError):
            enqueue_item_processing(job, locks=locks)
    assert "item-abc" not in locks.held


def test_job_locks_claim_uses_set_nx():
    client = mock.Mock()
    client.set.return_value = True
    assert JobLocks(client).claim("item-abc", 60)
    client.set.assert_called_once_with("clips:lock:item-abc", "1", nx=True, ex=60)

    client.set.return_value = None
    assert not JobLocks(client).claim("item-abc", 60)


def test_single_flight_releases_only_when_acquired():
    client = mock.Mock()
    lock = client.lock.return_value

    lock.acquire.return_value = True
    with JobLocks(client).single_flight(TRENDING_JOB_ID, 600) as acquired:
        assert acquired
    lock.release.assert_called_once()
    client.lock.assert_called_with("clips:lock:trending-calculation", timeout=600, blocking=False)

    lock.reset_mock()
    lock.acquire.return_value = False
    with JobLocks(client).single_flight(TRENDING_JOB_ID, 600) as acquired:
        assert not acquired
    lock.release.assert_not_called()


def test_single_flight_tolerates_expired_lock():
    client = mock.Mock()
    lock = client.lock.return_value
    lock.acquire.return_value = True
    lock.release.side_effect = redis.exceptions.LockNotOwnedError("expired")

    with JobLocks(client).single_flight(TRENDING_JOB_ID, 1) as acquired:
        assert acquired


# -- process_item task -------------------------------------------------------

@pytest.fixture
def task_env(monkeypatch, settings, locks):
    settings.PROCESSING_MAX_ATTEMPTS = 3
    settings.PROCESSING_BACKOFF_SECONDS = 1.0
    processor = mock.Mock(spec=ClipProcessor)
    monkeypatch.setattr(JobLocks, "from_settings", staticmethod(lambda: locks))
    monkeypatch.setattr(ClipProcessor, "from_settings", staticmethod(lambda: processor))
    locks.held.add("item-abc")
    return processor


def test_backoff_is_exponential(settings):
    settings.PROCESSING_BACKOFF_SECONDS = 1.0
    assert [_backoff(n) for n in range(3)] == [1.0, 2.0, 4.0]


def test_process_item_success_releases_claim(task_env, locks):
    task_env.process.return_value = ProcessingResult(
        item_id="abc", duration=2.5, waveform_url="w", og_image_url="o", teaser_url="t",
    )

    result = process_item.apply(args=(PAYLOAD,))

    assert result.successful()
    assert result.result["item_id"] == "abc"
    assert result.result["published"] is True
    task_env.process.assert_called_once_with(ProcessingJob.from_payload(PAYLOAD))
    assert "item-abc" not in locks.held


def test_process_item_retries_then_gives_up(task_env, locks):
    task_env.process.side_effect = ProcessingError(ProcessingErrorType.GENERATION_FAILED, "ffmpeg died")

    result = process_item.apply(args=(PAYLOAD,))

    assert result.failed()
    assert task_env.process.call_count == 3
    assert locks.released == ["item-abc"]
    assert "item-abc" not in locks.held


def test_process_item_recovers_on_retry(task_env, locks):
    task_env.process.side_effect = [
        ProcessingError(ProcessingErrorType.UPLOAD_FAILED, "503"),
        ProcessingResult(item_id="abc", duration=1.0, waveform_url="w", og_image_url="o", teaser_url="t"),
    ]

    result = process_item.apply(args=(PAYLOAD,))

    assert result.successful()
    assert task_env.process.call_count == 2
    assert locks.released == ["item-abc"]


def test_process_item_drops_malformed_payload(task_env):
    result = process_item.apply(args=({"itemId": "abc"},))

    assert result.failed()
    assert isinstance(result.result, InvalidJobPayload)
    task_env.process.assert_not_called()


# -- calculate_trending task -------------------------------------------------

@pytest.mark.django_db
def test_calculate_trending_runs(monkeypatch, locks):
    monkeypatch.setattr(JobLocks, "from_settings", staticmethod(lambda: locks))
    item = Item.objects.create(title="a", status=Item.Status.LIVE, play_count=3)

    result = calculate_trending.apply().result

    assert result["success"] is True
    assert result["itemCount"] == 1
    assert TrendingScore.objects.get(item=item).rank == 1
    assert TRENDING_JOB_ID not in locks.held


def test_calculate_trending_skips_while_another_run_holds_the_lock(monkeypatch, locks):
    monkeypatch.setattr(JobLocks, "from_settings", staticmethod(lambda: locks))
    locks.held.add(TRENDING_JOB_ID)

    with mock.patch("clips.tasks.TrendingCalculator") as calculator:
        result = calculate_trending.apply().result

    assert result == {"success": True, "itemCount": 0, "durationMs": 0, "skipped": True}
    calculator.assert_not_called()


def test_calculate_trending_reports_lock_backend_failure(monkeypatch):
    def unavailable():
        raise redis.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(JobLocks, "from_settings", staticmethod(unavailable))

    result = calculate_trending.apply().result

    assert result["success"] is False
    assert "connection refused" in result["error"]

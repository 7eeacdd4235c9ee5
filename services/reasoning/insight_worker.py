"""
INSIGHT WORKER - Celery tasks draining the insight outbox
=========================================================

Tasks:
- process_insight_entry: run the insight processor for one outbox row,
  retrying with backoff until max_retries
- relay_pending_insights: re-dispatch rows never picked up or abandoned
  mid-attempt (periodic, see celery_config.beat_schedule)
"""
import asyncio
from datetime import datetime, timedelta, timezone

from celery_config import celery_app
from conclusion_finalizer import insight_payload, load_conclusion
from database import AsyncSessionLocal, close_db_connections
from infrastructure.uow import UnitOfWork
from insight_processor import can_process, extract_insights
from logging_config import get_logger
from models import _utcnow
from reasoning_config import INSIGHT_QUEUE

logger = get_logger(__name__)

RETRY_BASE_SECONDS = 30


# =============================================================================
# ASYNC CORE
# =============================================================================

async def process_entry(entry_id: int, session_factory=None, abandon_seconds: int = None) -> dict:
    """
    Claim, process and settle one outbox row.

    A row another worker is processing is left alone unless its attempt
    started more than abandon_seconds ago. started_at is stamped on every
    claim, so it is the time of the latest attempt.

    Returns a status dict; "pending" means the caller should retry.
    """
    factory = session_factory or AsyncSessionLocal
    abandoned_before = _abandon_cutoff(abandon_seconds)

    async with UnitOfWork(factory, operation="claim_insight_entry") as uow:
        entry = await uow.insight_queue.get_for_update(uow.session, entry_id)
        if entry is None:
            logger.warning("insight_entry_missing", entry_id=entry_id)
            return {"entry_id": entry_id, "status": "missing"}

        if entry.status in ("completed", "failed"):
            logger.info("insight_entry_already_settled", entry_id=entry_id, status=entry.status)
            return {"entry_id": entry_id, "status": entry.status, "skipped": True}

        if entry.status == "processing" and not _started_before(entry.started_at, abandoned_before):
            logger.info("insight_entry_in_progress", entry_id=entry_id)
            return {"entry_id": entry_id, "status": "processing", "skipped": True}

        entry.status = "processing"
        entry.started_at = _utcnow()
        task_type = entry.task_type
        payload = entry.task_payload

    try:
        if "sequence" not in payload and payload.get("sequence_id") is not None:
            payload = await _load_payload(factory, payload["sequence_id"])
        if not can_process(task_type, payload):
            raise ValueError(f"No insight processor for task type '{task_type}'")
        insights = extract_insights(payload)
    except Exception as e:
        return await _record_failure(factory, entry_id, e)

    async with UnitOfWork(factory, operation="complete_insight_entry") as uow:
        entry = await uow.insight_queue.get_for_update(uow.session, entry_id)
        entry.status = "completed"
        entry.task_payload = payload
        entry.result_summary = {
            "processing_type": payload.get("processing_type"),
            "insights": insights,
        }
        entry.insights_generated = len(insights)
        entry.error_message = None
        entry.completed_at = _utcnow()

    logger.info(
        "insight_entry_completed",
        entry_id=entry_id,
        insights_generated=len(insights),
    )
    return {"entry_id": entry_id, "status": "completed", "insights_generated": len(insights)}


async def _load_payload(factory, sequence_id: int) -> dict:
    conclusion = await load_conclusion(factory, sequence_id)
    if conclusion is None:
        raise ValueError(f"Reasoning sequence {sequence_id} no longer exists")
    return insight_payload(sequence_id, conclusion)


def _abandon_cutoff(abandon_seconds: int = None) -> datetime:
    window = INSIGHT_QUEUE["relay_abandon_seconds"] if abandon_seconds is None else abandon_seconds
    return _utcnow() - timedelta(seconds=window)


def _started_before(started_at, cutoff: datetime) -> bool:
    if started_at is None:
        return True
    # SQLite hands back naive datetimes
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return started_at <= cutoff


async def _record_failure(factory, entry_id: int, error: Exception) -> dict:
    async with UnitOfWork(factory, operation="fail_insight_entry") as uow:
        entry = await uow.insight_queue.get_for_update(uow.session, entry_id)
        entry.retry_count = (entry.retry_count or 0) + 1
        entry.error_message = str(error)
        if entry.retry_count >= entry.max_retries:
            entry.status = "failed"
            entry.completed_at = _utcnow()
        else:
            entry.status = "pending"
        status = entry.status
        retry_count = entry.retry_count

    logger.warning(
        "insight_entry_failed",
        entry_id=entry_id,
        status=status,
        retry_count=retry_count,
        error_type=type(error).__name__,
        error_message=str(error),
    )
    return {"entry_id": entry_id, "status": status, "retry_count": retry_count, "error": str(error)}


async def relay_pending(
    session_factory=None,
    dispatch=None,
    grace_seconds: int = None,
    abandon_seconds: int = None,
    limit: int = None
) -> list:
    """
    Re-dispatch rows the worker never picked up or gave up on; return their ids.

    - never attempted: pending with no started_at, older than the grace period
    - abandoned: pending retry or processing, last attempt older than the
      abandon window (longer than any retry countdown)
    """
    factory = session_factory or AsyncSessionLocal
    grace = INSIGHT_QUEUE["relay_grace_seconds"] if grace_seconds is None else grace_seconds
    created_before = _utcnow() - timedelta(seconds=grace)

    async with UnitOfWork(factory, operation="relay_pending_insights") as uow:
        entry_ids = await uow.insight_queue.relayable(
            uow.session, created_before, _abandon_cutoff(abandon_seconds),
            limit or INSIGHT_QUEUE["relay_batch_size"]
        )

    send = dispatch or (lambda entry_id: process_insight_entry.delay(entry_id))
    for entry_id in entry_ids:
        send(entry_id)

    logger.info("insight_relay_completed", dispatched=len(entry_ids))
    return entry_ids


# =============================================================================
# CELERY TASKS
# =============================================================================

def _run_async(coro):
    """
    Run async coroutine in existing event loop.
    Replaces asyncio.run() which creates new loop each time.
    """
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor() as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        else:
            return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


async def _with_pool_release(coro):
    # pooled connections are bound to the loop that opened them
    try:
        return await coro
    finally:
        await close_db_connections()


@celery_app.task(bind=True, name="insight_worker.process_insight_entry", max_retries=INSIGHT_QUEUE["max_retries"])
def process_insight_entry(self, entry_id: int):
    """Celery task: process one outbox row, retry with exponential backoff"""
    logger.info("insight_task_started", entry_id=entry_id, attempt=self.request.retries + 1)

    result = _run_async(_with_pool_release(process_entry(entry_id)))

    if result["status"] == "pending":
        countdown = RETRY_BASE_SECONDS * (2 ** self.request.retries)
        logger.info("insight_task_retry_scheduled", entry_id=entry_id, countdown=countdown)
        raise self.retry(countdown=countdown)

    return result


@celery_app.task(name="insight_worker.relay_pending_insights")
def relay_pending_insights():
    """Celery task: outbox relay"""
    logger.info("insight_relay_started")
    return _run_async(_with_pool_release(relay_pending()))

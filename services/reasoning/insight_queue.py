"""
Insight Queue - transactional outbox for downstream insight analysis.

enqueue() writes a pending row in its own transaction, then hands the row
id to the Celery worker without waiting. If the hand-off fails the row
stays pending and relay_pending_insights picks it up later.
"""
from typing import Callable, List, Optional

from database import AsyncSessionLocal
from error_handler import handle_errors
from infrastructure.uow import UnitOfWork
from logging_config import get_logger
from models import InsightQueueEntry
from reasoning_config import INSIGHT_QUEUE

logger = get_logger(__name__)


def celery_dispatch(entry_id: int) -> None:
    """Default dispatcher: queue process_insight_entry on the broker."""
    from insight_worker import process_insight_entry

    process_insight_entry.delay(entry_id)


class InsightQueue:

    def __init__(self, session_factory=None, dispatch: Optional[Callable[[int], None]] = None):
        self._session_factory = session_factory or AsyncSessionLocal
        self._dispatch = dispatch or celery_dispatch

    async def enqueue(
        self,
        task_type: str,
        source_ids: List[int],
        payload: dict,
        priority: int = INSIGHT_QUEUE["priority"],
        project_id: Optional[int] = None
    ) -> int:
        """Persist the outbox row, dispatch, return the row id."""
        async with UnitOfWork(self._session_factory, operation="enqueue_insight") as uow:
            entry = InsightQueueEntry(
                task_type=task_type,
                task_priority=priority,
                source_type=INSIGHT_QUEUE["source_type"],
                source_ids=list(source_ids),
                task_payload=payload,
                status="pending",
                retry_count=0,
                max_retries=INSIGHT_QUEUE["max_retries"],
                project_id=project_id,
            )
            await uow.insight_queue.save(uow.session, entry)
            entry_id = entry.id

        logger.info(
            "insight_enqueued",
            entry_id=entry_id,
            task_type=task_type,
            source_ids=list(source_ids),
            priority=priority,
        )

        dispatched = self.dispatch(entry_id)
        if not dispatched:
            logger.warning("insight_dispatch_deferred", entry_id=entry_id)
        return entry_id

    @handle_errors(default=False, context={"operation": "insight_dispatch"}, log_level="WARNING")
    def dispatch(self, entry_id: int) -> bool:
        self._dispatch(entry_id)
        return True

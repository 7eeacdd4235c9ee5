"""
Memory Store - durable decision records written when a sequence concludes.
"""
from typing import Optional

from database import AsyncSessionLocal
from infrastructure.uow import UnitOfWork
from logging_config import get_logger
from models import Memory
from project_resolver import get_or_create_project, get_or_create_session

logger = get_logger(__name__)


class MemoryStore:

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    async def create_memory(
        self,
        content: str,
        project_name: str,
        memory_type: str,
        importance_score: float = 0.5,
        session_name: Optional[str] = None,
        session_type: str = "memory",
        thinking_sequence_id: Optional[int] = None,
        metadata: Optional[dict] = None
    ) -> int:
        """Store one memory in its own transaction and return its id."""
        async with UnitOfWork(self._session_factory, operation="create_memory") as uow:
            project = await get_or_create_project(uow, project_name)

            session_id = None
            if session_name:
                reasoning_session = await get_or_create_session(
                    uow, project.id, session_name, session_type=session_type
                )
                session_id = reasoning_session.id

            memory = Memory(
                project_id=project.id,
                session_id=session_id,
                content=content,
                memory_type=memory_type,
                importance_score=importance_score,
                thinking_sequence_id=thinking_sequence_id,
                metadata_=metadata or {},
            )
            await uow.memories.save(uow.session, memory)
            memory_id = memory.id

        logger.info(
            "memory_created",
            memory_id=memory_id,
            memory_type=memory_type,
            project_name=project_name,
            thinking_sequence_id=thinking_sequence_id,
        )
        return memory_id

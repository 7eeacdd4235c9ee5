"""
Project / Session Resolver

Get-or-create helpers that run inside the caller's UnitOfWork, so the
project and session rows commit (or roll back) with whatever needed them.
"""
from datetime import date
from typing import Optional

from logging_config import get_logger
from models import Project, ReasoningSession
from reasoning_config import SESSION_PREFIX, SESSION_TYPE

logger = get_logger(__name__)


def dated_session_name(today: Optional[date] = None) -> str:
    """reasoning-YYYY-MM-DD"""
    return f"{SESSION_PREFIX}{(today or date.today()).isoformat()}"


async def get_or_create_project(uow, name: str) -> Project:
    project = await uow.projects.get_by_name(uow.session, name)
    if project:
        return project

    project = Project(
        name=name,
        description=f"Auto-created project: {name}",
        settings={},
    )
    await uow.projects.save(uow.session, project)
    logger.info("project_created", project_id=project.id, project_name=name)
    return project


async def get_or_create_session(
    uow,
    project_id: int,
    session_name: str,
    session_type: str = SESSION_TYPE
) -> ReasoningSession:
    reasoning_session = await uow.reasoning_sessions.get_by_name(uow.session, project_id, session_name)
    if reasoning_session:
        return reasoning_session

    reasoning_session = ReasoningSession(
        project_id=project_id,
        session_name=session_name,
        session_type=session_type,
        metadata_={},
    )
    await uow.reasoning_sessions.save(uow.session, reasoning_session)
    logger.info(
        "session_created",
        session_id=reasoning_session.id,
        project_id=project_id,
        session_name=session_name,
        session_type=session_type,
    )
    return reasoning_session

"""
Best-effort error isolation for secondary bookkeeping.

Side effects such as the decision record and the insight job must never
unwind a sequence completion that already committed. They run through
these helpers, which log the failure and hand back a default.
"""

import asyncio
from functools import wraps
from typing import Any, Callable, Coroutine, TypeVar

from logging_config import get_logger, log_error

logger = get_logger(__name__)
T = TypeVar('T')


class ErrorHandler:
    """Centralized best-effort execution with proper logging"""

    @staticmethod
    async def safe_execute_async(
        coro: Coroutine[Any, Any, T],
        default: T = None,
        context: dict | None = None,
        log_level: str = "ERROR"
    ) -> T:
        """
        Await a coroutine, logging and swallowing any exception.

        Usage:
            memory_id = await ErrorHandler.safe_execute_async(
                memory_store.create_memory(...),
                default=None,
                context={"sequence_id": sequence_id, "side_effect": "decision_memory"}
            )
        """
        try:
            return await coro
        except Exception as e:
            ctx = {"best_effort": True}
            ctx.update(context or {})
            log_error(e, ctx, log_level, event="best_effort_failed")
            return default


def handle_errors(
    default: Any = None,
    context: dict | None = None,
    log_level: str = "ERROR",
    reraise: bool = False
):
    """
    Decorator for automatic error handling.

    Usage:
        @handle_errors(default=False, context={"operation": "insight_dispatch"})
        def dispatch(entry_id):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        def _context() -> dict:
            ctx = dict(context or {})
            ctx["function"] = func.__name__
            return ctx

        @wraps(func)
        def sync_wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log_error(e, _context(), log_level)
                if reraise:
                    raise
                return default

        @wraps(func)
        async def async_wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                log_error(e, _context(), log_level)
                if reraise:
                    raise
                return default

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator

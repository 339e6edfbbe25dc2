import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

from redis.exceptions import BusyLoadingError, RedisError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..config import settings
from ..errors import RepositoryFailure
from .repo import RedisTaskRepository, TaskRepository
from .schema import NewTask, TaskRecord, TaskUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError, BusyLoadingError)


def is_transient(exc: BaseException) -> bool:
    return isinstance(exc, TRANSIENT_ERRORS)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_transient,
) -> T:
    """Run ``operation``, retrying retryable errors with exponential backoff.

    The wait before attempt ``n + 1`` is ``delay * 2 ** (n - 1)``. Errors the
    predicate rejects, and the last retryable one, are re-raised unchanged.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= attempts or not is_retryable(exc):
                raise
            wait = delay * 2 ** (attempt - 1)
            logger.warning("Retrying storage call %d/%d in %.1fs: %s", attempt, attempts, wait, exc)
            await asyncio.sleep(wait)
            attempt += 1


class RetryingTaskRepository:
    """Wraps any TaskRepository with retries and maps driver errors to RepositoryFailure."""

    def __init__(self, inner: TaskRepository, attempts: Optional[int] = None, delay: Optional[float] = None):
        self.inner = inner
        self.attempts = attempts if attempts is not None else settings.db_retry_attempts
        self.delay = delay if delay is not None else settings.db_retry_delay_seconds

    async def _call(self, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await with_retry(operation, attempts=self.attempts, delay=self.delay)
        except RedisError as exc:
            raise RepositoryFailure(str(exc)) from exc

    async def create(self, task: NewTask) -> TaskRecord:
        return await self._call(lambda: self.inner.create(task))

    async def update(self, task_id: int, patch: TaskUpdate) -> None:
        await self._call(lambda: self.inner.update(task_id, patch))

    async def find_by_external_id(self, model: str, external_task_id: str) -> Optional[TaskRecord]:
        return await self._call(lambda: self.inner.find_by_external_id(model, external_task_id))

    async def get(self, task_id: int) -> Optional[TaskRecord]:
        return await self._call(lambda: self.inner.get(task_id))

    async def delete(self, task_id: int) -> None:
        await self._call(lambda: self.inner.delete(task_id))

    async def list_processing(self, since_ms: int, limit: int) -> List[TaskRecord]:
        return await self._call(lambda: self.inner.list_processing(since_ms, limit))


def default_repository() -> RetryingTaskRepository:
    return RetryingTaskRepository(RedisTaskRepository())

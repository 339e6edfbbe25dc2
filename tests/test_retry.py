import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from conftest import InMemoryTaskRepository, make_task
from tasksync.errors import RepositoryFailure
from tasksync.storage.retry import RetryingTaskRepository, with_retry
from tasksync.storage.schema import TaskUpdate


def flaky(errors, value="ok"):
    calls = []

    async def op():
        calls.append(1)
        if len(calls) <= len(errors):
            raise errors[len(calls) - 1]
        return value

    op.calls = calls
    return op


def test_transient_errors_are_retried():
    op = flaky([RedisConnectionError("reset"), RedisConnectionError("reset")])

    assert asyncio.run(with_retry(op, attempts=3, delay=0)) == "ok"
    assert len(op.calls) == 3


def test_retries_are_bounded():
    op = flaky([RedisConnectionError("reset")] * 5)

    with pytest.raises(RedisConnectionError):
        asyncio.run(with_retry(op, attempts=3, delay=0))
    assert len(op.calls) == 3


def test_terminal_errors_are_not_retried():
    op = flaky([ResponseError("WRONGTYPE")])

    with pytest.raises(ResponseError):
        asyncio.run(with_retry(op, attempts=3, delay=0))
    assert len(op.calls) == 1


def test_custom_predicate():
    op = flaky([KeyError("x")])

    assert asyncio.run(with_retry(op, attempts=2, delay=0, is_retryable=lambda e: isinstance(e, KeyError))) == "ok"


class BrokenRepository(InMemoryTaskRepository):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.update_calls = 0

    async def update(self, task_id, patch):
        self.update_calls += 1
        raise RedisConnectionError("connection refused")


def test_repository_errors_become_repository_failure():
    inner = BrokenRepository([make_task()])
    repo = RetryingTaskRepository(inner, attempts=2, delay=0)

    with pytest.raises(RepositoryFailure):
        asyncio.run(repo.update(1, TaskUpdate(status="failed", error_msg="x")))
    assert inner.update_calls == 2


def test_successful_calls_pass_through():
    repo = RetryingTaskRepository(InMemoryTaskRepository([make_task()]), attempts=2, delay=0)

    assert asyncio.run(repo.get(1)).id == 1

from pathlib import Path
import sys
import time
from typing import Dict, List, Optional

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from tasksync.errors import TaskNotFound
from tasksync.providers.base import ResultState, StatusReport
from tasksync.storage.schema import NewTask, TaskRecord, TaskStatus, TaskUpdate, normalize_status


class InMemoryTaskRepository:
    def __init__(self, records: Optional[List[TaskRecord]] = None):
        self.records: Dict[int, TaskRecord] = {r.id: r for r in records or []}
        self.updates: List[tuple] = []
        self.deleted: List[int] = []
        self.fail_updates_for: set = set()

    async def create(self, task: NewTask) -> TaskRecord:
        rec = TaskRecord(
            id=max(self.records, default=0) + 1,
            user_id=task.user_id,
            model=task.model,
            status=normalize_status(task.status),
            input_url=task.input_url,
            external_task_id=task.external_task_id,
            created_at=int(time.time() * 1000),
        )
        self.records[rec.id] = rec
        return rec

    async def update(self, task_id: int, patch: TaskUpdate) -> None:
        if task_id in self.fail_updates_for:
            raise RuntimeError("database unavailable")
        if task_id not in self.records:
            raise TaskNotFound(str(task_id))
        fields = patch.fields()
        self.updates.append((task_id, dict(fields)))
        if "status" in fields:
            fields["status"] = normalize_status(fields["status"])
        self.records[task_id] = self.records[task_id].model_copy(update=fields)

    async def find_by_external_id(self, model: str, external_task_id: str) -> Optional[TaskRecord]:
        for rec in self.records.values():
            if rec.model == model and rec.external_task_id == external_task_id:
                return rec
        return None

    async def get(self, task_id: int) -> Optional[TaskRecord]:
        return self.records.get(task_id)

    async def delete(self, task_id: int) -> None:
        self.deleted.append(task_id)
        self.records.pop(task_id, None)

    async def list_processing(self, since_ms: int, limit: int) -> List[TaskRecord]:
        out = [r for r in self.records.values()
               if r.status is TaskStatus.PROCESSING and r.external_task_id and (r.created_at or 0) >= since_ms]
        return out[:limit]


class ScriptedProvider:
    """Adapter double: per external id, a StatusReport (or exception) and a result."""

    name = "scripted"

    def __init__(self, statuses=None, results=None):
        self.statuses = statuses or {}
        self.results = results or {}
        self.status_calls: List[str] = []
        self.result_calls: List[str] = []

    async def get_status(self, external_task_id: str) -> StatusReport:
        self.status_calls.append(external_task_id)
        value = self.statuses[external_task_id]
        if isinstance(value, Exception):
            raise value
        return value

    async def get_result(self, external_task_id: str):
        self.result_calls.append(external_task_id)
        value = self.results.get(external_task_id, ResultState.NOT_AVAILABLE)
        if isinstance(value, Exception):
            raise value
        return value


class FakeAsyncRedis:
    """Just enough of redis.asyncio.Redis for the repository."""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}

    async def incr(self, key):
        value = int(self.strings.get(key, 0)) + 1
        self.strings[key] = str(value)
        return value

    async def set(self, key, value):
        self.strings[key] = str(value)
        return True

    async def get(self, key):
        return self.strings.get(key)

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            for store in (self.strings, self.hashes, self.zsets):
                if store.pop(key, None) is not None:
                    removed += 1
        return removed

    async def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrem(self, key, *members):
        zset = self.zsets.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    async def zremrangebyscore(self, key, min, max):
        low = float("-inf") if min == "-inf" else float(min)
        zset = self.zsets.get(key, {})
        stale = [member for member, score in zset.items() if low <= score <= float(max)]
        for member in stale:
            del zset[member]
        return len(stale)

    async def zrangebyscore(self, key, min, max):
        low = float(min)
        high = float("inf") if max == "+inf" else float(max)
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: kv[1])
        return [member for member, score in items if low <= score <= high]


def make_task(task_id=1, status=TaskStatus.PROCESSING, external_task_id="ext-1", model="flux-dev", **kwargs):
    return TaskRecord(id=task_id, status=status, external_task_id=external_task_id, model=model,
                      created_at=int(time.time() * 1000), **kwargs)


@pytest.fixture
def fake_redis():
    return FakeAsyncRedis()

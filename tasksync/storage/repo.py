import logging
import time
from typing import List, Optional, Protocol

import redis.asyncio as redis

from ..errors import TaskNotFound
from .connection import get_redis
from .schema import NewTask, TaskRecord, TaskStatus, TaskUpdate, normalize_status

logger = logging.getLogger(__name__)

SEQUENCE_KEY = "task:seq"
PROCESSING_KEY = "task:processing"


def _now_ms() -> int:
    return int(time.time() * 1000)


class TaskRepository(Protocol):
    """Persistence boundary consumed by the sync engine and the entry points."""

    async def create(self, task: NewTask) -> TaskRecord:
        ...

    async def update(self, task_id: int, patch: TaskUpdate) -> None:
        ...

    async def find_by_external_id(self, model: str, external_task_id: str) -> Optional[TaskRecord]:
        ...

    async def get(self, task_id: int) -> Optional[TaskRecord]:
        ...

    async def delete(self, task_id: int) -> None:
        ...

    async def list_processing(self, since_ms: int, limit: int) -> List[TaskRecord]:
        ...


class RedisTaskRepository:
    def __init__(self, client: Optional[redis.Redis] = None):
        self.r = client if client is not None else get_redis()

    def _key(self, task_id: int) -> str:
        return f"task:{task_id}"

    def _ext_key(self, model: str, external_task_id: str) -> str:
        # provider ids are only unique per provider, so the model tag is part of the key
        return f"task:ext:{model}:{external_task_id}"

    async def create(self, task: NewTask) -> TaskRecord:
        task_id = int(await self.r.incr(SEQUENCE_KEY))
        status = normalize_status(task.status)
        created_at = _now_ms()
        await self.r.hset(self._key(task_id), mapping={
            "user_id": task.user_id or "",
            "model": task.model,
            "status": status.value,
            "input_url": task.input_url or "",
            "output_url": "",
            "external_task_id": task.external_task_id or "",
            "error_msg": "",
            "created_at": str(created_at),
            "completed_at": "",
        })
        if status is TaskStatus.PROCESSING:
            await self.r.zadd(PROCESSING_KEY, {str(task_id): created_at})
        if task.external_task_id:
            await self.r.set(self._ext_key(task.model, task.external_task_id), task_id)
        return TaskRecord(
            id=task_id,
            user_id=task.user_id,
            model=task.model,
            status=status,
            input_url=task.input_url,
            external_task_id=task.external_task_id or "",
            created_at=created_at,
        )

    async def get(self, task_id: int) -> Optional[TaskRecord]:
        data = await self.r.hgetall(self._key(task_id))
        if not data:
            return None
        return self._to_record(task_id, data)

    async def update(self, task_id: int, patch: TaskUpdate) -> None:
        key = self._key(task_id)
        current = await self.r.hgetall(key)
        if not current:
            raise TaskNotFound(f"Task {task_id} does not exist")

        fields = patch.fields()
        status = None
        if "status" in fields:
            status = normalize_status(fields.pop("status"))
            fields["status"] = status.value
            if status.is_terminal:
                fields["completed_at"] = str(_now_ms())
        if not fields:
            return

        await self.r.hset(key, mapping=fields)

        new_external_id = fields.get("external_task_id")
        old_external_id = current.get("external_task_id") or ""
        if new_external_id and new_external_id != old_external_id:
            if old_external_id:
                logger.warning("Task %s external id replaced: %s -> %s", task_id, old_external_id, new_external_id)
                await self.r.delete(self._ext_key(current["model"], old_external_id))
            await self.r.set(self._ext_key(current["model"], new_external_id), task_id)

        if status is not None and status.is_terminal:
            await self.r.zrem(PROCESSING_KEY, str(task_id))

    async def find_by_external_id(self, model: str, external_task_id: str) -> Optional[TaskRecord]:
        if not external_task_id:
            return None
        task_id = await self.r.get(self._ext_key(model, external_task_id))
        if not task_id:
            return None
        rec = await self.get(int(task_id))
        if rec is None or rec.model != model or rec.external_task_id != external_task_id:
            return None
        return rec

    async def delete(self, task_id: int) -> None:
        rec = await self.get(task_id)
        if rec is None:
            return
        await self.r.delete(self._key(task_id))
        await self.r.zrem(PROCESSING_KEY, str(task_id))
        if rec.external_task_id:
            await self.r.delete(self._ext_key(rec.model, rec.external_task_id))

    async def list_processing(self, since_ms: int, limit: int) -> List[TaskRecord]:
        """Processing tasks created at or after ``since_ms`` that already have a provider id.

        Index entries older than ``since_ms`` are dropped; the records themselves are kept.
        """
        pruned = await self.r.zremrangebyscore(PROCESSING_KEY, "-inf", since_ms - 1)
        if pruned:
            logger.info("Dropped %d stale entries from the processing index", pruned)
        ids = await self.r.zrangebyscore(PROCESSING_KEY, since_ms, "+inf")
        out: List[TaskRecord] = []
        for raw_id in ids:
            if len(out) >= limit:
                break
            rec = await self.get(int(raw_id))
            if rec is None or rec.status is not TaskStatus.PROCESSING or not rec.is_dispatched:
                continue
            out.append(rec)
        return out

    @staticmethod
    def _to_record(task_id: int, data: dict) -> TaskRecord:
        return TaskRecord(
            id=task_id,
            user_id=data.get("user_id") or None,
            model=data.get("model", ""),
            status=normalize_status(data.get("status") or TaskStatus.PROCESSING),
            input_url=data.get("input_url") or None,
            output_url=data.get("output_url") or None,
            external_task_id=data.get("external_task_id") or "",
            error_msg=data.get("error_msg") or None,
            created_at=int(data["created_at"]) if data.get("created_at") else None,
            completed_at=int(data["completed_at"]) if data.get("completed_at") else None,
        )

import asyncio
from celery import Celery

from tasksync.config import settings
from tasksync.logs import configure_logging

configure_logging()

celery_app = Celery(
    "tasksync",
    broker=settings.redis_url,
    backend=settings.redis_url,
)
celery_app.conf.beat_schedule = {
    "sync-processing-tasks": {
        "task": "sync_processing_tasks",
        "schedule": float(settings.sweep_interval_seconds),
    },
}


async def _run_sweep() -> dict:
    # each task run gets its own event loop, so it also gets its own redis pool
    import redis.asyncio as redis
    from tasksync.services.routing import get_router
    from tasksync.services.sweep import sweep
    from tasksync.storage.repo import RedisTaskRepository
    from tasksync.storage.retry import RetryingTaskRepository

    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        repo = RetryingTaskRepository(RedisTaskRepository(client))
        summary = await sweep(repo, get_router())
    finally:
        await client.aclose()
    return summary.model_dump(by_alias=True)


@celery_app.task(name="sync_processing_tasks")
def sync_processing_tasks() -> dict:
    return asyncio.run(_run_sweep())

import logging
import time
from typing import Optional

from ..config import settings
from ..storage.repo import TaskRepository
from .routing import ProviderRouter
from .sync import BatchSummary, sync_batch

logger = logging.getLogger(__name__)


async def sweep(repo: TaskRepository, router: ProviderRouter, now_ms: Optional[int] = None) -> BatchSummary:
    """Sync every recent processing task, one batch per provider."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    since_ms = now_ms - settings.sweep_window_minutes * 60 * 1000
    tasks = await repo.list_processing(since_ms, settings.sweep_batch_limit)
    logger.info("Sweep found %d processing tasks", len(tasks))

    summary = BatchSummary()
    for name, group in router.partition_by_provider(tasks):
        provider = router.provider_for(group[0].model)
        result = await sync_batch(group, provider, repo, router.sync_options_for(group[0].model))
        logger.info("Sweep %s: %d updated, %d still processing, %d errors",
                    name, result.updated, result.still_processing, len(result.errors))
        summary = summary.merge(result)
    return summary

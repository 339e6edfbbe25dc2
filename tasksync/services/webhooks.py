import logging
from typing import Any, Optional

from ..config import settings
from ..providers.base import StatusReport, status_report
from ..providers.workflow import WorkflowStatusProvider
from ..storage.repo import TaskRepository
from .routing import ProviderRouter
from .sync import sync_one

logger = logging.getLogger(__name__)


class NotificationStatusProvider(WorkflowStatusProvider):
    """Workflow provider whose status comes from a pushed notification instead of a status call."""

    name = "workflow-webhook"

    def __init__(self, raw_status: Optional[str], error: Any, get_task_result):
        super().__init__(get_task_status=None, get_task_result=get_task_result)
        self.raw_status = raw_status
        self.error = error

    async def get_status(self, external_task_id: str) -> StatusReport:
        return status_report(self.raw_status, self.error)


async def handle_workflow_notification(external_id: Optional[str], raw_status: Optional[str], error: Any,
                                       repo: TaskRepository, router: ProviderRouter) -> dict:
    """Apply a provider notification. Never raises: the provider must always get an acknowledgment."""
    if not external_id:
        logger.warning("Webhook without task id")
        return {"message": "Missing taskId"}

    try:
        task = await repo.find_by_external_id(settings.workflow_model, external_id)
    except Exception:
        logger.exception("Webhook lookup failed for %s", external_id)
        return {"message": "Database query failed, but webhook received"}

    if task is None:
        logger.warning("Webhook for unknown task %s (status %s)", external_id, raw_status)
        return {"message": "Task not found, but webhook received"}

    try:
        provider = NotificationStatusProvider(raw_status, error, router.runninghub.get_task_result)
        outcome = await sync_one(task, provider, repo, router.sync_options_for(task.model))
    except Exception:
        logger.exception("Webhook update failed for task %s (%s)", task.id, external_id)
        return {"message": "Webhook received, update failed", "task_id": task.id}

    logger.info("Webhook for %s applied to task %s: %s", external_id, task.id, outcome.status.display)
    return {"message": "Webhook processed successfully", "task_id": task.id, "status": outcome.status.display}

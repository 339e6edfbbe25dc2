"""Reconciles local task records with their provider's view of the job.

A record is only ever moved forward from ``Processing``: terminal records and
records the provider has not accepted yet are returned untouched without any
provider call. That is what keeps concurrent pollers, webhooks and sweeps
from charging or relocating twice.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..providers.base import ResultPayload, ResultState, StatusProviderAdapter
from ..storage.repo import TaskRepository
from ..storage.schema import TaskRecord, TaskStatus, TaskUpdate
from .relocation import ResultHook

logger = logging.getLogger(__name__)

NO_RESULT_MSG = "Provider reported success without a result"
EMPTY_HOOK_MSG = "Result processing returned no output"


class Transition(str, Enum):
    SKIPPED = "skipped"
    STILL_PROCESSING = "still_processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class SyncOptions:
    fetch_result_on_success: bool = False
    on_result_fetched: Optional[ResultHook] = None


@dataclass
class SyncOutcome:
    status: TaskStatus
    transition: Transition
    output_url: Optional[str] = None
    error_msg: Optional[str] = None

    def to_dict(self) -> dict:
        out = {"status": self.status.display}
        if self.output_url:
            out["outputUrl"] = self.output_url
        if self.error_msg:
            out["errorMsg"] = self.error_msg
        return out


class BatchSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total: int = 0
    updated: int = 0
    succeeded: int = 0
    failed: int = 0
    still_processing: int = Field(default=0, alias="stillProcessing")
    errors: List[str] = Field(default_factory=list)

    def merge(self, other: "BatchSummary") -> "BatchSummary":
        return BatchSummary(
            total=self.total + other.total,
            updated=self.updated + other.updated,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            still_processing=self.still_processing + other.still_processing,
            errors=self.errors + other.errors,
        )


@dataclass
class _Relocation:
    output_url: Optional[str] = None
    error: Optional[str] = None


async def _run_hook(hook: Optional[ResultHook], result: ResultPayload, task: TaskRecord) -> _Relocation:
    if hook is None:
        return _Relocation(output_url=result.output_url) if result.output_url else _Relocation(error=NO_RESULT_MSG)
    try:
        url = await hook(result, task)
    except Exception as e:
        logger.warning("Result processing failed for task %s: %s", task.id, e)
        return _Relocation(error=f"Result processing failed: {e}")
    if not url:
        return _Relocation(error=EMPTY_HOOK_MSG)
    return _Relocation(output_url=url)


def _unchanged(task: TaskRecord, transition: Transition) -> SyncOutcome:
    return SyncOutcome(status=task.status, transition=transition,
                       output_url=task.output_url, error_msg=task.error_msg)


async def sync_one(task: TaskRecord, provider: StatusProviderAdapter, repo: TaskRepository,
                   options: Optional[SyncOptions] = None) -> SyncOutcome:
    """Advance one task by at most one provider round-trip.

    ProviderUnavailable and repository errors propagate; the record is left
    as it was in both cases.
    """
    options = options or SyncOptions()
    if task.status.is_terminal or not task.is_dispatched:
        return _unchanged(task, Transition.SKIPPED)

    report = await provider.get_status(task.external_task_id)

    if report.status is TaskStatus.PROCESSING:
        return _unchanged(task, Transition.STILL_PROCESSING)

    if report.status in (TaskStatus.FAILED, TaskStatus.CANCELED):
        error = report.error or f"Task {report.status.display}"
        await repo.update(task.id, TaskUpdate(status=report.status, error_msg=error))
        logger.info("Task %s %s: %s", task.id, report.status.display, error)
        return SyncOutcome(status=report.status, transition=Transition.FAILED, error_msg=error)

    if not options.fetch_result_on_success:
        await repo.update(task.id, TaskUpdate(status=TaskStatus.SUCCEEDED))
        logger.info("Task %s succeeded", task.id)
        return SyncOutcome(status=TaskStatus.SUCCEEDED, transition=Transition.SUCCEEDED)

    result = await provider.get_result(task.external_task_id)
    if result is ResultState.PENDING:
        logger.debug("Task %s succeeded upstream but its result is not ready", task.id)
        return _unchanged(task, Transition.STILL_PROCESSING)

    if result is ResultState.NOT_AVAILABLE:
        relocation = _Relocation(error=NO_RESULT_MSG)
    else:
        relocation = await _run_hook(options.on_result_fetched, result, task)

    if relocation.output_url:
        await repo.update(task.id, TaskUpdate(status=TaskStatus.SUCCEEDED, output_url=relocation.output_url))
        logger.info("Task %s succeeded: %s", task.id, relocation.output_url)
        return SyncOutcome(status=TaskStatus.SUCCEEDED, transition=Transition.SUCCEEDED,
                           output_url=relocation.output_url)

    # the provider's completion signal wins even when post-processing failed
    await repo.update(task.id, TaskUpdate(status=TaskStatus.SUCCEEDED, error_msg=relocation.error))
    logger.warning("Task %s succeeded without a stored result: %s", task.id, relocation.error)
    return SyncOutcome(status=TaskStatus.SUCCEEDED, transition=Transition.SUCCEEDED,
                       error_msg=relocation.error)


async def sync_batch(tasks: Iterable[TaskRecord], provider: StatusProviderAdapter, repo: TaskRepository,
                     options: Optional[SyncOptions] = None) -> BatchSummary:
    """Run ``sync_one`` over ``tasks`` in order, recording per-task errors instead of raising."""
    tasks = list(tasks)
    summary = BatchSummary(total=len(tasks))
    for task in tasks:
        try:
            outcome = await sync_one(task, provider, repo, options)
        except Exception as e:
            logger.warning("Sync of task %s (%s) via %s failed: %s",
                           task.id, task.external_task_id, provider.name, e)
            summary.errors.append(f"Task {task.id} ({task.external_task_id}): {e}")
            continue

        if outcome.transition is Transition.SUCCEEDED:
            summary.succeeded += 1
        elif outcome.transition is Transition.FAILED:
            summary.failed += 1
        elif outcome.transition is Transition.STILL_PROCESSING:
            summary.still_processing += 1
    summary.updated = summary.succeeded + summary.failed
    return summary

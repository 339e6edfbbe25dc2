from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel


class TaskStatus(str, Enum):
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELED = "Canceled"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskStatus.PROCESSING

    @property
    def display(self) -> str:
        return self.value.lower()


# lower-case names and provider-side aliases accepted by the repository
_STATUS_ALIASES = {
    "processing": TaskStatus.PROCESSING,
    "queued": TaskStatus.PROCESSING,
    "pending": TaskStatus.PROCESSING,
    "running": TaskStatus.PROCESSING,
    "starting": TaskStatus.PROCESSING,
    "succeeded": TaskStatus.SUCCEEDED,
    "success": TaskStatus.SUCCEEDED,
    "failed": TaskStatus.FAILED,
    "failure": TaskStatus.FAILED,
    "canceled": TaskStatus.CANCELED,
    "cancelled": TaskStatus.CANCELED,
}


def normalize_status(value: Union[str, TaskStatus]) -> TaskStatus:
    """Return the canonical capitalized status for an enum member or alias string."""
    if isinstance(value, TaskStatus):
        return value
    status = _STATUS_ALIASES.get(str(value).strip().lower())
    if status is None:
        raise ValueError(f"Unknown task status: {value!r}")
    return status


class TaskRecord(BaseModel):
    id: int
    user_id: Optional[str] = None
    model: str
    status: TaskStatus = TaskStatus.PROCESSING
    input_url: Optional[str] = None
    output_url: Optional[str] = None
    external_task_id: str = ""  # empty until the provider accepts the job
    error_msg: Optional[str] = None
    created_at: Optional[int] = None  # epoch ms
    completed_at: Optional[int] = None  # epoch ms

    @property
    def is_dispatched(self) -> bool:
        return bool(self.external_task_id)


class NewTask(BaseModel):
    model: str
    user_id: Optional[str] = None
    input_url: Optional[str] = None
    status: Union[TaskStatus, str] = TaskStatus.PROCESSING
    external_task_id: str = ""


class TaskUpdate(BaseModel):
    """Partial update: only fields that are set (and not None) are written."""
    status: Optional[Union[TaskStatus, str]] = None
    output_url: Optional[str] = None
    error_msg: Optional[str] = None
    external_task_id: Optional[str] = None

    def fields(self) -> dict:
        return self.model_dump(exclude_none=True)

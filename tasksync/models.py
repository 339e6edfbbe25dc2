from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .services.sync import BatchSummary


class NewRequest(BaseModel):
    model: str
    prompt: Optional[str] = None
    aspect_ratio: str = "1:1"
    input_image_url: Optional[str] = None
    # clothing try-on inputs
    user_photo_url: Optional[str] = None
    top_clothes_url: Optional[str] = None
    bottom_clothes_url: Optional[str] = None


class TaskResponse(BaseModel):
    taskid: int


class StatusResponse(BaseModel):
    id: int
    status: str  # processing | succeeded | failed | canceled
    model: str
    output_url: Optional[str] = Field(default=None, serialization_alias="outputUrl")
    error: Optional[str] = None


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    # RunningHub task ids are numeric strings but some deliveries send them as numbers
    taskId: Optional[Union[str, int]] = None
    id: Optional[Union[str, int]] = None
    status: Optional[str] = None
    taskStatus: Optional[str] = None
    error: Any = None
    errorMessage: Any = None

    @property
    def external_id(self) -> Optional[str]:
        value = self.taskId or self.id
        return str(value) if value is not None and value != "" else None

    @property
    def raw_status(self) -> Optional[str]:
        return self.status or self.taskStatus

    @property
    def error_detail(self) -> Any:
        return self.error or self.errorMessage


class WebhookAck(BaseModel):
    message: str
    task_id: Optional[int] = None
    status: Optional[str] = None


class SweepResponse(BaseModel):
    success: bool = True
    message: str = "Task sync completed"
    results: BatchSummary

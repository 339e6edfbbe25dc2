from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Protocol, Union

from ..storage.schema import TaskStatus

logger = logging.getLogger(__name__)

# Checked in order against the upper-cased raw status. Providers disagree on
# casing and synonyms, so matching is by substring.
_STATUS_KEYWORDS = (
    (("FAIL",), TaskStatus.FAILED),
    (("CANCEL",), TaskStatus.CANCELED),
    (("SUCCE",), TaskStatus.SUCCEEDED),
    (("RUNNING", "QUEUED", "PENDING", "PROCESSING", "STARTING"), TaskStatus.PROCESSING),
)


def map_raw_status(raw: Optional[str]) -> TaskStatus:
    """Map a provider status string onto the local vocabulary.

    Unrecognized values are reported as Processing so that they never mutate
    local state.
    """
    upper = (raw or "").upper()
    for keywords, status in _STATUS_KEYWORDS:
        if any(k in upper for k in keywords):
            return status
    if upper:
        logger.info("Unrecognized provider status %r treated as processing", raw)
    return TaskStatus.PROCESSING


@dataclass(frozen=True)
class StatusReport:
    status: TaskStatus
    error: Optional[str] = None
    raw_status: Optional[str] = None


@dataclass(frozen=True)
class ResultPayload:
    output_urls: List[str] = field(default_factory=list)
    raw: Any = None

    @property
    def output_url(self) -> Optional[str]:
        return self.output_urls[0] if self.output_urls else None


class ResultState(str, Enum):
    PENDING = "pending"  # provider reported success but the artifact is not ready yet
    NOT_AVAILABLE = "not_available"  # provider finished without any artifact


FetchResult = Union[ResultPayload, ResultState]


class StatusProviderAdapter(Protocol):
    """Uniform view of one provider's status and result calls.

    Both methods raise ProviderUnavailable on transport or payload errors.
    """

    name: str

    async def get_status(self, external_task_id: str) -> StatusReport:
        ...

    async def get_result(self, external_task_id: str) -> FetchResult:
        ...


def output_urls(output: Any) -> List[str]:
    """Flatten the shapes providers use for outputs into a list of URLs."""
    if not output:
        return []
    if isinstance(output, str):
        return [output]
    if isinstance(output, dict):
        url = output.get("fileUrl") or output.get("url")
        return [url] if url else []
    if isinstance(output, (list, tuple)):
        urls: List[str] = []
        for item in output:
            urls.extend(output_urls(item))
        return urls
    return []


def error_text(error: Any, default: str) -> str:
    if not error:
        return default
    if isinstance(error, str):
        return error
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, (dict, list)):
        return json.dumps(error, default=str)
    return str(error)


def status_report(raw: Optional[str], error: Any = None) -> StatusReport:
    """Build a report from a raw status, making sure failures always carry error text."""
    status = map_raw_status(raw)
    message = None
    if status is TaskStatus.FAILED:
        message = error_text(error, "Task failed")
    elif status is TaskStatus.CANCELED:
        message = error_text(error, "Task canceled")
    return StatusReport(status=status, error=message, raw_status=raw)

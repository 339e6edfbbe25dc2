from typing import Any, Awaitable, Callable, Dict

from ..errors import ProviderUnavailable
from ..storage.schema import TaskStatus
from .base import FetchResult, ResultPayload, ResultState, StatusReport, map_raw_status, output_urls, status_report

StatusFetcher = Callable[[str], Awaitable[Dict[str, Any]]]


class PredictionStatusProvider:
    """Prediction-style API: one status call whose body already carries the output.

    ``get_result`` reuses the body seen by the preceding ``get_status`` call for
    the same id and only goes back to the provider when there is none.
    """

    name = "prediction"

    def __init__(self, get_task_status: StatusFetcher):
        self._get_task_status = get_task_status
        self._last: Dict[str, Dict[str, Any]] = {}

    async def _fetch(self, external_task_id: str) -> Dict[str, Any]:
        body = await self._get_task_status(external_task_id)
        if not isinstance(body, dict) or "status" not in body:
            raise ProviderUnavailable(f"Malformed prediction status for {external_task_id}: {body!r}")
        return body

    async def get_status(self, external_task_id: str) -> StatusReport:
        body = await self._fetch(external_task_id)
        report = status_report(body.get("status"), body.get("error"))
        if report.status is TaskStatus.SUCCEEDED:
            self._last[external_task_id] = body
        return report

    async def get_result(self, external_task_id: str) -> FetchResult:
        body = self._last.pop(external_task_id, None)
        if body is None:
            body = await self._fetch(external_task_id)
        if map_raw_status(body.get("status")) is not TaskStatus.SUCCEEDED:
            return ResultState.PENDING
        urls = output_urls(body.get("output"))
        if not urls:
            return ResultState.NOT_AVAILABLE
        return ResultPayload(output_urls=urls, raw=body)

from typing import Any, Awaitable, Callable, Dict

from ..errors import ProviderUnavailable
from .base import FetchResult, ResultPayload, ResultState, StatusReport, output_urls, status_report

StatusFetcher = Callable[[str], Awaitable[Dict[str, Any]]]
ResultFetcher = Callable[[str], Awaitable[Any]]


class WorkflowStatusProvider:
    """Workflow-graph API: success is reported before the outputs can be fetched.

    ``get_task_result`` is expected to return ``ResultState.PENDING`` when the
    provider says the outputs are still being produced.
    """

    name = "workflow"

    def __init__(self, get_task_status: StatusFetcher, get_task_result: ResultFetcher):
        self._get_task_status = get_task_status
        self._get_task_result = get_task_result

    async def get_status(self, external_task_id: str) -> StatusReport:
        body = await self._get_task_status(external_task_id)
        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, str):
            data = {"taskId": external_task_id, "taskStatus": data}
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Malformed workflow status for {external_task_id}: {body!r}")

        raw = data.get("taskStatus") or data.get("status")
        error = data.get("error") or data.get("errorMessage")
        # the envelope msg is transport text ("success") unless the call itself failed
        if not error and body.get("code") not in (0, None):
            error = body.get("msg")
        return status_report(raw, error)

    async def get_result(self, external_task_id: str) -> FetchResult:
        body = await self._get_task_result(external_task_id)
        if body is ResultState.PENDING:
            return ResultState.PENDING
        data = body.get("data") if isinstance(body, dict) else body
        urls = output_urls(data)
        if not urls:
            return ResultState.NOT_AVAILABLE
        return ResultPayload(output_urls=urls, raw=body)

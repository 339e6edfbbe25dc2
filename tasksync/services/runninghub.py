import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..errors import ProviderUnavailable
from ..providers.base import ResultState
from .downloads import download_file

logger = logging.getLogger(__name__)

TASK_IS_RUNNING_CODE = 804
TASK_IS_RUNNING_MSG = "APIKEY_TASK_IS_RUNNING"
UPLOAD_MAX_RETRIES = 3
NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


class RunningHubClient:
    """Workflow-graph provider used for the clothing try-on model."""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.runninghub_api_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.runninghub_api_key
        self.single_item_workflow_id = settings.runninghub_single_item_workflow_id
        self.top_bottom_workflow_id = settings.runninghub_top_bottom_workflow_id
        self._transport = transport
        self._sleep = asyncio.sleep

    async def _post(self, path: str, timeout: float, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                r = await client.post(url, **kwargs)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"RunningHub {path} failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"RunningHub {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"RunningHub {path} returned {type(data).__name__}")
        return data

    async def get_task_status(self, task_id: str) -> Dict[str, Any]:
        body = await self._post(
            f"/task/openapi/status?t={int(time.time() * 1000)}",
            settings.status_timeout_seconds,
            json={"apiKey": self.api_key, "taskId": task_id},
            headers=NO_CACHE_HEADERS,
        )
        if not isinstance(body.get("code"), int):
            return body
        if body["code"] != 0:
            raise ProviderUnavailable(body.get("msg") or "Task status query failed")
        if isinstance(body.get("data"), str):
            return {"code": 0, "msg": "success", "data": {"taskId": task_id, "taskStatus": body["data"]}}
        return body

    async def get_task_result(self, task_id: str):
        """Return the outputs body, or ``ResultState.PENDING`` while the workflow is still writing them."""
        body = await self._post(
            f"/task/openapi/outputs?t={int(time.time() * 1000)}",
            settings.status_timeout_seconds,
            json={"apiKey": self.api_key, "taskId": task_id},
            headers=NO_CACHE_HEADERS,
        )
        code = body.get("code")
        if code == TASK_IS_RUNNING_CODE and body.get("msg") == TASK_IS_RUNNING_MSG:
            return ResultState.PENDING
        if code != 0:
            raise ProviderUnavailable(body.get("msg") or "Task result query failed")
        return body

    async def upload_file(self, content: bytes, filename: str, content_type: str,
                          file_type: str = "image") -> str:
        """Upload bytes and return the provider-side file name, retrying timeouts and network errors."""
        for attempt in range(1, UPLOAD_MAX_RETRIES + 1):
            if attempt > 1:
                await self._sleep(2 * attempt)
            try:
                body = await self._post(
                    "/task/openapi/upload",
                    settings.download_timeout_seconds,
                    data={"apiKey": self.api_key, "fileType": file_type},
                    files={"file": (filename, content, content_type)},
                )
            except ProviderUnavailable as e:
                if attempt < UPLOAD_MAX_RETRIES and _is_retryable_upload_error(e.__cause__):
                    logger.warning("Upload of %s failed (%s), retrying", filename, e)
                    continue
                raise
            file_name = (body.get("data") or {}).get("fileName")
            if body.get("code") == 0 and file_name:
                logger.info("Uploaded %s as %s", filename, file_name)
                return file_name
            raise ProviderUnavailable(body.get("msg") or "Upload failed")
        raise ProviderUnavailable("Upload failed")  # pragma: no cover

    async def upload_file_from_url(self, url: str, file_type: str = "image") -> str:
        try:
            downloaded = await download_file(url, transport=self._transport)
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Could not download {url}: {e}") from e
        filename = downloaded.filename or f"upload_{int(time.time() * 1000)}.jpg"
        return await self.upload_file(downloaded.content, filename, downloaded.content_type, file_type)

    async def create_tryon_task(self, user_photo_url: str, top_clothes_url: Optional[str] = None,
                                bottom_clothes_url: Optional[str] = None,
                                webhook_url: Optional[str] = None) -> str:
        if not top_clothes_url and not bottom_clothes_url:
            raise ValueError("At least one of top or bottom clothes is required")

        user_photo = await self.upload_file_from_url(user_photo_url)
        top = await self.upload_file_from_url(top_clothes_url) if top_clothes_url else None
        bottom = await self.upload_file_from_url(bottom_clothes_url) if bottom_clothes_url else None

        nodes: List[Dict[str, str]] = [_node(settings.runninghub_node_user_photo, user_photo)]
        if top and bottom:
            workflow_id = self.top_bottom_workflow_id
            nodes.append(_node(settings.runninghub_node_top_clothes, top))
            nodes.append(_node(settings.runninghub_node_bottom_clothes, bottom))
        else:
            # a single garment always goes into the top-clothes node
            workflow_id = self.single_item_workflow_id
            nodes.append(_node(settings.runninghub_node_top_clothes, top or bottom))

        payload: Dict[str, Any] = {"apiKey": self.api_key, "workflowId": workflow_id, "nodeInfoList": nodes}
        if webhook_url:
            payload["webhookUrl"] = webhook_url

        body = await self._post("/task/openapi/create", settings.status_timeout_seconds, json=payload)
        task_id = (body.get("data") or {}).get("taskId")
        if body.get("code") != 0 or not task_id:
            raise ProviderUnavailable(body.get("msg") or "Task creation failed")
        logger.info("Workflow task created: %s (workflow %s)", task_id, workflow_id)
        return task_id


def _node(node_id: str, file_name: str) -> Dict[str, str]:
    return {"nodeId": node_id, "fieldName": "image", "fieldValue": file_name}


def _is_retryable_upload_error(exc: Optional[BaseException]) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 504

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from ..errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class AIGatewayClient:
    """Prediction provider reached through the AI gateway."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = (base_url or settings.ai_gateway_url).rstrip("/")
        self.timeout = timeout or settings.status_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def create_prediction(self, model: str, prompt: str, aspect_ratio: str = "1:1",
                                input_image_url: Optional[str] = None,
                                user_id: Optional[str] = None) -> str:
        payload: Dict[str, Any] = {
            "model": model,
            "input_prompt": prompt,
            "aspect_ratio": aspect_ratio,
        }
        if input_image_url:
            payload["input_image_url"] = input_image_url
        if user_id:
            payload["user_id"] = user_id

        data = await self._request("POST", "/replicate", json=payload)
        prediction_id = data.get("replicate_id") or data.get("id")
        if not prediction_id:
            raise ProviderUnavailable(data.get("error") or "Prediction was not accepted")
        logger.info("Prediction accepted: %s (%s)", prediction_id, model)
        return prediction_id

    async def get_task_status(self, prediction_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/task/{prediction_id}")

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                r = await client.request(method, url, **kwargs)
                r.raise_for_status()
                data = r.json()
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Gateway {method} {path} failed: {e}") from e
        except ValueError as e:
            raise ProviderUnavailable(f"Gateway {method} {path} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Gateway {method} {path} returned {type(data).__name__}")
        return data

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from ..config import settings
from ..errors import ResultRelocationFailure
from ..providers.base import ResultPayload
from ..storage.schema import TaskRecord
from .downloads import download_file

logger = logging.getLogger(__name__)

ResultHook = Callable[[ResultPayload, TaskRecord], Awaitable[Optional[str]]]


class ObjectStorage(Protocol):
    async def put(self, key: str, content: bytes, content_type: str) -> str:
        """Store ``content`` under ``key`` and return its public URL."""
        ...


class LocalObjectStorage:
    """Stores objects on the local filesystem and serves them from ``url_base``."""

    def __init__(self, root: Optional[str] = None, url_base: Optional[str] = None):
        self.root = Path(root or settings.storage_dir)
        self.url_base = (url_base or settings.storage_url_base).rstrip("/")

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        path = self.root / key
        await asyncio.to_thread(_write_file, path, content)
        return f"{self.url_base}/{key}"


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


class ResultRelocator:
    """Copies a provider-hosted artifact into our own storage."""

    def __init__(self, storage: ObjectStorage, prefix: str = "results",
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.storage = storage
        self.prefix = prefix.strip("/")
        self._transport = transport

    async def relocate(self, source_url: str, task: TaskRecord) -> str:
        try:
            downloaded = await download_file(source_url, transport=self._transport)
        except httpx.HTTPError as e:
            raise ResultRelocationFailure(f"Download of {source_url} failed: {e}") from e

        key = f"{self.prefix}/{task.model}/{task.id}/result{downloaded.extension or '.jpg'}"
        try:
            url = await self.storage.put(key, downloaded.content, downloaded.content_type)
        except OSError as e:
            raise ResultRelocationFailure(f"Storing {key} failed: {e}") from e
        logger.info("Relocated result of task %s to %s", task.id, url)
        return url

    def hook(self) -> ResultHook:
        async def on_result_fetched(result: ResultPayload, task: TaskRecord) -> Optional[str]:
            if not result.output_url:
                return None
            return await self.relocate(result.output_url, task)
        return on_result_fetched

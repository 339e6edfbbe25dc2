from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse
import posixpath

import httpx

from ..config import settings


@dataclass
class DownloadedFile:
    content: bytes
    content_type: str
    filename: Optional[str]

    @property
    def extension(self) -> Optional[str]:
        if not self.filename:
            return None
        ext = posixpath.splitext(self.filename)[1]
        return ext or None


def filename_from_url(url: str) -> Optional[str]:
    name = posixpath.basename(urlparse(url).path)
    return name or None


async def download_file(url: str, timeout: Optional[float] = None,
                        transport: Optional[httpx.AsyncBaseTransport] = None) -> DownloadedFile:
    """Fetch ``url`` into memory. httpx errors propagate to the caller."""
    async with httpx.AsyncClient(timeout=timeout or settings.download_timeout_seconds,
                                 transport=transport, follow_redirects=True) as client:
        r = await client.get(url)
        r.raise_for_status()
        return DownloadedFile(
            content=r.content,
            content_type=r.headers.get("content-type", "image/jpeg"),
            filename=filename_from_url(url),
        )

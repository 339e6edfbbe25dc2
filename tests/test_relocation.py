import asyncio

import httpx
import pytest

from conftest import make_task
from tasksync.errors import ResultRelocationFailure
from tasksync.providers.base import ResultPayload
from tasksync.services.relocation import LocalObjectStorage, ResultRelocator


class MemoryStorage:
    def __init__(self):
        self.objects = {}

    async def put(self, key, content, content_type):
        self.objects[key] = (content, content_type)
        return f"https://cdn.test/{key}"


def test_relocate_copies_artifact():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(200, content=b"PNG", headers={"content-type": "image/png"})
    )
    storage = MemoryStorage()
    relocator = ResultRelocator(storage, prefix="results", transport=transport)

    url = asyncio.run(relocator.relocate("https://provider.test/out/abc.png", make_task(7, model="clothing-tryon")))

    assert url == "https://cdn.test/results/clothing-tryon/7/result.png"
    assert storage.objects["results/clothing-tryon/7/result.png"] == (b"PNG", "image/png")


def test_download_error_is_relocation_failure():
    relocator = ResultRelocator(MemoryStorage(), transport=httpx.MockTransport(lambda request: httpx.Response(404)))

    with pytest.raises(ResultRelocationFailure):
        asyncio.run(relocator.relocate("https://provider.test/gone.png", make_task()))


def test_hook_skips_empty_results():
    hook = ResultRelocator(MemoryStorage()).hook()

    assert asyncio.run(hook(ResultPayload([]), make_task())) is None


def test_local_storage_writes_files(tmp_path):
    storage = LocalObjectStorage(root=str(tmp_path), url_base="http://files.test/")

    url = asyncio.run(storage.put("results/a/1/result.jpg", b"JPEG", "image/jpeg"))

    assert url == "http://files.test/results/a/1/result.jpg"
    assert (tmp_path / "results/a/1/result.jpg").read_bytes() == b"JPEG"

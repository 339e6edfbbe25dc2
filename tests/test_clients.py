import asyncio
import json

import httpx
import pytest

from tasksync.config import settings
from tasksync.errors import ProviderUnavailable
from tasksync.providers.base import ResultState
from tasksync.services.gateway import AIGatewayClient
from tasksync.services.runninghub import RunningHubClient


def rh_client(handler):
    client = RunningHubClient(base_url="https://rh.test", api_key="k", transport=httpx.MockTransport(handler))

    async def no_sleep(seconds):
        client.slept.append(seconds)

    client.slept = []
    client._sleep = no_sleep
    return client


def test_runninghub_string_status_is_normalized():
    def handler(request):
        assert request.url.path == "/task/openapi/status"
        assert json.loads(request.content) == {"apiKey": "k", "taskId": "t1"}
        return httpx.Response(200, json={"code": 0, "msg": "success", "data": "RUNNING"})

    body = asyncio.run(rh_client(handler).get_task_status("t1"))

    assert body["data"] == {"taskId": "t1", "taskStatus": "RUNNING"}


def test_runninghub_error_code_is_unavailable():
    handler = lambda request: httpx.Response(200, json={"code": 1, "msg": "APIKEY_INVALID"})

    with pytest.raises(ProviderUnavailable, match="APIKEY_INVALID"):
        asyncio.run(rh_client(handler).get_task_status("t1"))


def test_runninghub_running_result_is_pending():
    handler = lambda request: httpx.Response(200, json={"code": 804, "msg": "APIKEY_TASK_IS_RUNNING", "data": None})

    assert asyncio.run(rh_client(handler).get_task_result("t1")) is ResultState.PENDING


def test_runninghub_other_result_error_is_unavailable():
    handler = lambda request: httpx.Response(200, json={"code": 805, "msg": "APIKEY_TASK_STATUS_ERROR"})

    with pytest.raises(ProviderUnavailable):
        asyncio.run(rh_client(handler).get_task_result("t1"))


def test_runninghub_timeout_is_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(ProviderUnavailable):
        asyncio.run(rh_client(handler).get_task_status("t1"))


def test_runninghub_upload_retries_network_errors():
    attempts = []

    def handler(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ConnectError("reset", request=request)
        return httpx.Response(200, json={"code": 0, "data": {"fileName": "api/abc.png", "fileType": "image"}})

    client = rh_client(handler)
    name = asyncio.run(client.upload_file(b"png", "a.png", "image/png"))

    assert name == "api/abc.png"
    assert len(attempts) == 3
    assert client.slept == [4, 6]


def test_runninghub_upload_does_not_retry_rejections():
    attempts = []

    def handler(request):
        attempts.append(request)
        return httpx.Response(200, json={"code": 3, "msg": "file too large"})

    with pytest.raises(ProviderUnavailable, match="file too large"):
        asyncio.run(rh_client(handler).upload_file(b"png", "a.png", "image/png"))
    assert len(attempts) == 1


def test_runninghub_tryon_uses_single_item_workflow(monkeypatch):
    monkeypatch.setattr(settings, "runninghub_node_user_photo", "10")
    monkeypatch.setattr(settings, "runninghub_node_top_clothes", "20")
    created = {}

    def handler(request):
        if request.url.host == "cdn.test":
            return httpx.Response(200, content=b"img", headers={"content-type": "image/png"})
        if request.url.path == "/task/openapi/upload":
            return httpx.Response(200, json={"code": 0, "data": {"fileName": "up.png"}})
        created.update(json.loads(request.content))
        return httpx.Response(200, json={"code": 0, "data": {"taskId": "rh-1", "taskStatus": "QUEUED"}})

    client = rh_client(handler)
    client.single_item_workflow_id = "wf-single"
    client.top_bottom_workflow_id = "wf-pair"

    task_id = asyncio.run(client.create_tryon_task(
        "https://cdn.test/me.png", bottom_clothes_url="https://cdn.test/pants.png", webhook_url="https://app/hook"
    ))

    assert task_id == "rh-1"
    assert created["workflowId"] == "wf-single"
    assert created["webhookUrl"] == "https://app/hook"
    assert [n["nodeId"] for n in created["nodeInfoList"]] == ["10", "20"]


def test_runninghub_tryon_requires_a_garment():
    with pytest.raises(ValueError):
        asyncio.run(rh_client(lambda r: httpx.Response(500)).create_tryon_task("https://cdn.test/me.png"))


def test_gateway_create_prediction_and_status():
    def handler(request):
        if request.method == "POST":
            assert request.url.path == "/replicate"
            assert json.loads(request.content)["model"] == "black-forest-labs/flux-dev"
            return httpx.Response(200, json={"replicate_id": "p-1"})
        assert request.url.path == "/task/p-1"
        return httpx.Response(200, json={"id": "p-1", "status": "processing"})

    client = AIGatewayClient(base_url="https://gw.test/", transport=httpx.MockTransport(handler))

    assert asyncio.run(client.create_prediction("black-forest-labs/flux-dev", "a cat")) == "p-1"
    assert asyncio.run(client.get_task_status("p-1"))["status"] == "processing"


def test_gateway_rejection_and_http_errors_are_unavailable():
    client = AIGatewayClient(base_url="https://gw.test", transport=httpx.MockTransport(
        lambda request: httpx.Response(200, json={"error": "Insufficient quota"})
    ))
    with pytest.raises(ProviderUnavailable, match="Insufficient quota"):
        asyncio.run(client.create_prediction("m", "a cat"))

    client = AIGatewayClient(base_url="https://gw.test", transport=httpx.MockTransport(
        lambda request: httpx.Response(502, text="bad gateway")
    ))
    with pytest.raises(ProviderUnavailable):
        asyncio.run(client.get_task_status("p-1"))

"""
Unit tests for the HTTP remote gateway.

Requests are served by an httpx.MockTransport, so no network is used.
"""

import json

import httpx
import pytest

from scenesync.config import RemoteConfig
from scenesync.errors import FailureHint
from scenesync.remote import Batch, BatchChange, HttpRemoteGateway, PullStatus, create_gateway
from scenesync.serialize.records import ChangeAction, SerializedRecord, Snapshot

BASE_URL = "https://demo-default-rtdb.firebaseio.com"


class Recorder:
    """Mock transport handler that records requests and replays a response."""

    def __init__(self, status=200, body="null", exc=None):
        self.status = status
        self.body = body
        self.exc = exc
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status, text=self.body)


def make_gateway(handler, base_url=BASE_URL):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRemoteGateway(
        RemoteConfig(base_url=base_url, project_id="demo"),
        client=client,
        clock=lambda: 1_700_000_000.0,
    )


def make_batch():
    return Batch(
        changes=[
            BatchChange(
                action=ChangeAction.DELETE,
                path="Workspace.Old",
                timestamp=1.0,
                instances=[{"Path": "Workspace.Old"}],
            )
        ],
        batch_id=1000,
        plugin_version="3.3",
        project_id="demo",
        session_id="s1",
    )


class TestPush:
    """Tests for batch and snapshot writes."""

    @pytest.mark.asyncio
    async def test_push_batch_url_and_body(self):
        handler = Recorder()
        gateway = make_gateway(handler)

        result = await gateway.push_batch(make_batch())

        assert result.ok
        assert result.key == "1700000000000"
        [request] = handler.requests
        assert request.method == "PUT"
        assert str(request.url) == f"{BASE_URL}/projects/demo/changes/1700000000000.json"
        body = json.loads(request.content)
        assert body["Action"] == "BatchInstanceChanged"
        assert body["Changes"][0]["Action"] == "delete"

    @pytest.mark.asyncio
    async def test_keys_strictly_increase(self):
        gateway = make_gateway(Recorder())

        first = await gateway.push_batch(make_batch())
        second = await gateway.push_batch(make_batch())

        assert int(second.key) > int(first.key)

    @pytest.mark.asyncio
    async def test_push_snapshot(self):
        handler = Recorder()
        gateway = make_gateway(handler)
        snapshot = Snapshot(
            timestamp=5.0,
            plugin_version="3.3",
            project_id="demo",
            services={"Workspace": SerializedRecord(name="Workspace", class_name="Workspace", path="Workspace")},
        )

        result = await gateway.push_snapshot(snapshot)

        assert result.ok
        [request] = handler.requests
        assert str(request.url) == f"{BASE_URL}/projects/demo/datamodel.json"
        assert json.loads(request.content)["Services"]["Workspace"]["ClassName"] == "Workspace"

    @pytest.mark.parametrize(
        "status,hint",
        [
            (401, FailureHint.UNAUTHORIZED),
            (403, FailureHint.FORBIDDEN),
            (404, FailureHint.NOT_FOUND),
            (500, FailureHint.UNKNOWN),
        ],
    )
    @pytest.mark.asyncio
    async def test_status_hints(self, status, hint):
        gateway = make_gateway(Recorder(status=status, body='{"error": "nope"}'))

        result = await gateway.push_batch(make_batch())

        assert not result.ok
        assert result.status == status
        assert result.hint is hint
        assert gateway.stats["failures"] == 1

    @pytest.mark.asyncio
    async def test_timeout_hint(self):
        gateway = make_gateway(Recorder(exc=httpx.ReadTimeout("slow")))

        result = await gateway.push_batch(make_batch())

        assert result.hint is FailureHint.TIMEOUT

    @pytest.mark.asyncio
    async def test_connect_error_hint(self):
        gateway = make_gateway(Recorder(exc=httpx.ConnectError("refused")))

        result = await gateway.push_batch(make_batch())

        assert result.hint is FailureHint.HTTP_DISABLED

    @pytest.mark.asyncio
    async def test_unconfigured_sends_nothing(self):
        handler = Recorder()
        gateway = make_gateway(handler, base_url="http://example.com/data.json")

        result = await gateway.push_batch(make_batch())

        assert not result.ok
        assert result.hint is None
        assert handler.requests == []


class TestPull:
    """Tests for pull_recent."""

    @pytest.mark.asyncio
    async def test_query_parameters(self):
        handler = Recorder()
        gateway = make_gateway(handler)

        result = await gateway.pull_recent(10)

        assert result.status is PullStatus.EMPTY
        [request] = handler.requests
        assert request.url.path == "/projects/demo/changes.json"
        assert request.url.params["orderBy"] == '"$key"'
        assert request.url.params["limitToLast"] == "10"

    @pytest.mark.asyncio
    async def test_batches(self):
        body = json.dumps(
            {
                "1700000000002": {"Action": "BatchInstanceChanged", "Changes": []},
                "1700000000001": {"Action": "BatchInstanceChanged", "Changes": []},
                "1700000000003": {"Action": "Unknown"},
            }
        )
        gateway = make_gateway(Recorder(body=body))

        result = await gateway.pull_recent(10)

        assert result.status is PullStatus.OK
        assert [b.key for b in result.batches] == ["1700000000001", "1700000000002"]
        assert result.skipped == 1

    @pytest.mark.asyncio
    async def test_empty_body(self):
        gateway = make_gateway(Recorder(body=""))

        assert (await gateway.pull_recent(5)).status is PullStatus.EMPTY

    @pytest.mark.asyncio
    async def test_decode_error(self):
        gateway = make_gateway(Recorder(body="<html>"))

        result = await gateway.pull_recent(5)

        assert result.status is PullStatus.DECODE_ERROR
        assert not result.ok

    @pytest.mark.asyncio
    async def test_failure(self):
        gateway = make_gateway(Recorder(status=403, body="denied"))

        result = await gateway.pull_recent(5)

        assert result.status is PullStatus.FAILED
        assert result.hint is FailureHint.FORBIDDEN

    @pytest.mark.asyncio
    async def test_unconfigured_is_disabled(self):
        handler = Recorder()
        gateway = make_gateway(handler, base_url="")

        result = await gateway.pull_recent(5)

        assert result.status is PullStatus.DISABLED
        assert handler.requests == []


class TestConnection:
    """Tests for test_connection, close and the factory."""

    @pytest.mark.asyncio
    async def test_probe_url(self):
        handler = Recorder(body="{}")
        gateway = make_gateway(handler)

        result = await gateway.test_connection()

        assert result.ok
        assert str(handler.requests[0].url) == f"{BASE_URL}/projects/.json"
        assert handler.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(Recorder()))
        gateway = HttpRemoteGateway(RemoteConfig(base_url=BASE_URL), client=client)

        await gateway.close()

        assert not client.is_closed
        await client.aclose()

    def test_create_gateway(self):
        assert create_gateway(RemoteConfig(base_url="")) is None
        assert isinstance(create_gateway(RemoteConfig(base_url=BASE_URL)), HttpRemoteGateway)

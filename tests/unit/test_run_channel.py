"""Unit tests for the run-channel client."""

import json

import httpx
import pytest

from swarm_factory.core.errors import NotificationError
from swarm_factory.core.models import JobRecord
from swarm_factory.notifications.run_channel import RunChannelClient


def _job():
    return JobRecord(
        job_id="j1",
        created_at="2026-10-19T07:37:01.123Z",
        code="mobile-car-3f9a",
        title="Mobile car-wash booking app",
        idea="Mobile car-wash booking app",
    )


def _client(handler):
    http = httpx.Client(transport=httpx.MockTransport(handler))
    return RunChannelClient("https://dash.test/", client=http)


@pytest.mark.unit
def test_posts_run_identity_and_returns_answer():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True, "channel": {"channelId": "C1", "name": "run-mobile"}})

    answer = _client(handler).create_run_channel(_job())

    assert seen["url"] == "https://dash.test/api/slack/run-channel"
    assert seen["body"] == {
        "jobId": "j1",
        "code": "mobile-car-3f9a",
        "title": "Mobile car-wash booking app",
        "idea": "Mobile car-wash booking app",
    }
    assert answer["channel"]["channelId"] == "C1"


@pytest.mark.unit
def test_ok_false_is_an_error():
    client = _client(lambda request: httpx.Response(200, json={"ok": False, "error": "name_taken"}))

    with pytest.raises(NotificationError, match="name_taken"):
        client.create_run_channel(_job())


@pytest.mark.unit
def test_http_error_is_an_error():
    client = _client(lambda request: httpx.Response(500, text="boom"))

    with pytest.raises(NotificationError, match="HTTP 500"):
        client.create_run_channel(_job())


@pytest.mark.unit
def test_transport_error_is_an_error():
    def handler(request):
        raise httpx.ConnectTimeout("slow", request=request)

    with pytest.raises(NotificationError):
        _client(handler).create_run_channel(_job())

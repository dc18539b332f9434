"""
Tests for the HTTP collaborators: the email provider and the activation service
"""
import json

import httpx
import pytest

from partner_portal.services.activation import ActivationStatusClient
from partner_portal.services.email import EmailMessage, RequestThrottle, ResendEmailSender


def _message(to="a@x.com"):
    return EmailMessage(to=to, subject="Welcome", html="<p>hi</p>", text="hi")


def _sender(handler, **kwargs):
    kwargs.setdefault("requests_per_second", 0)
    return ResendEmailSender(
        api_key="re_test",
        from_email="Moil Partners <partners@moilapp.com>",
        transport=httpx.MockTransport(handler),
        **kwargs
    )


@pytest.mark.asyncio
async def test_send_single_message():
    seen = {}

    def handler(request: httpx.Request):
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "msg_1"})

    result = await _sender(handler).send(_message())

    assert result.success
    assert result.message_id == "msg_1"
    assert seen["path"] == "/emails"
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["a@x.com"]
    assert seen["body"]["from"] == "Moil Partners <partners@moilapp.com>"
    assert seen["body"]["text"] == "hi"


@pytest.mark.asyncio
async def test_send_reports_provider_error():
    def handler(request):
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    result = await _sender(handler).send(_message())

    assert not result.success
    assert result.error == "Invalid `to` field"


@pytest.mark.asyncio
async def test_send_reports_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused")

    result = await _sender(handler).send(_message())

    assert not result.success
    assert "connection refused" in result.error


@pytest.mark.asyncio
async def test_unconfigured_sender_fails_every_message():
    sender = ResendEmailSender(api_key="")
    results = await sender.send_batch([_message("a@x.com"), _message("b@x.com")])

    assert [r.success for r in results] == [False, False]
    assert not (await sender.send(_message())).success


@pytest.mark.asyncio
async def test_batch_is_chunked_and_matched_by_position():
    calls = []

    def handler(request):
        batch = json.loads(request.content)
        calls.append([item["to"][0] for item in batch])
        return httpx.Response(200, json={"data": [{"id": f"id-{item['to'][0]}"} for item in batch]})

    messages = [_message(f"u{i}@x.com") for i in range(5)]
    results = await _sender(handler, batch_size=2).send_batch(messages)

    assert calls == [["u0@x.com", "u1@x.com"], ["u2@x.com", "u3@x.com"], ["u4@x.com"]]
    assert [r.message_id for r in results] == [f"id-u{i}@x.com" for i in range(5)]
    assert all(r.success for r in results)


@pytest.mark.asyncio
async def test_batch_entries_without_id_fail():
    def handler(request):
        return httpx.Response(200, json={"data": [{"id": "one"}]})

    results = await _sender(handler).send_batch([_message("a@x.com"), _message("b@x.com")])

    assert results[0].success and results[0].message_id == "one"
    assert not results[1].success


@pytest.mark.asyncio
async def test_rejected_chunk_fails_only_its_messages():
    def handler(request):
        batch = json.loads(request.content)
        if batch[0]["to"] == ["a@x.com"]:
            return httpx.Response(500, text="boom")
        return httpx.Response(200, json={"data": [{"id": "ok"}]})

    results = await _sender(handler, batch_size=1).send_batch([_message("a@x.com"), _message("b@x.com")])

    assert [r.success for r in results] == [False, True]
    assert results[0].error == "HTTP 500"


@pytest.mark.asyncio
async def test_delivery_status():
    def handler(request):
        assert request.url.path == "/emails/msg_9"
        return httpx.Response(200, json={"id": "msg_9", "last_event": "delivered"})

    assert await _sender(handler).get_delivery_status("msg_9") == "delivered"


@pytest.mark.asyncio
async def test_throttle_disabled_with_zero_rate():
    throttle = RequestThrottle(0)
    assert throttle.interval == 0.0
    await throttle.wait()


def test_throttle_interval():
    assert RequestThrottle(2).interval == 0.5


def _activation_client(handler, api_key="key-1"):
    return ActivationStatusClient(
        base_url="https://activation.example.com/",
        api_key=api_key,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_activated_parses_results():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"results": [
            {"email": "A@x.com", "license_status": "activated"},
            {"email": "b@x.com", "license_status": "pending"},
            {"email": "stranger@x.com", "license_status": "activated"},
        ]}})

    activated = await _activation_client(handler).fetch_activated(["a@x.com", "b@x.com"])

    assert activated == {"a@x.com"}
    assert seen["url"] == "https://activation.example.com/api/employer/activate_license"
    assert seen["key"] == "key-1"
    assert seen["body"] == {"emails": ["a@x.com", "b@x.com"]}


@pytest.mark.asyncio
async def test_fetch_activated_raises_on_http_error():
    def handler(request):
        return httpx.Response(503)

    with pytest.raises(httpx.HTTPStatusError):
        await _activation_client(handler).fetch_activated(["a@x.com"])


@pytest.mark.asyncio
async def test_fetch_activated_tolerates_unexpected_payload():
    def handler(request):
        return httpx.Response(200, json={"data": None})

    assert await _activation_client(handler).fetch_activated(["a@x.com"]) == set()


@pytest.mark.asyncio
async def test_disabled_client_makes_no_call():
    def handler(request):
        raise AssertionError("no request expected")

    client = _activation_client(handler, api_key="")
    assert not client.enabled
    assert await client.fetch_activated(["a@x.com"]) == set()

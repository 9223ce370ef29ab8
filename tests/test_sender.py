"""Tests for SendGridNotificationSender and template rendering."""

from __future__ import annotations

import json

import httpx
import pytest

from src.modules.notifications.constants import PICKUP_CONFIRMATION_TEMPLATE
from src.modules.notifications.schemas import Recipient
from src.modules.notifications.sender import SendGridNotificationSender, render


def _sender(handler, **kwargs) -> SendGridNotificationSender:
    options = {
        "api_key": "SG.test",
        "base_url": "https://sendgrid.test",
        "from_email": "noreply@autohaul.example",
        "from_name": "AutoHaul",
        "override_email": "",
    }
    options.update(kwargs)
    return SendGridNotificationSender(transport=httpx.MockTransport(handler), **options)


RECIPIENTS = [
    Recipient(email="a@example.com", name="A"),
    Recipient(email="b@example.com", name="B"),
]


class TestRender:
    def test_subject_and_body(self):
        subject, body = render(PICKUP_CONFIRMATION_TEMPLATE, {"ref_id": 1001, "pickup_date": "3/9/2026"})

        assert subject == "Order #1001 has been picked up"
        assert "picked up on 3/9/2026" in body

    def test_missing_keys_render_empty(self):
        _, body = render(PICKUP_CONFIRMATION_TEMPLATE, {"ref_id": 1001, "origin": None})

        assert "From: \n" in body


class TestSendGridNotificationSender:
    @pytest.mark.asyncio
    async def test_sends_to_each_recipient(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            assert request.headers["Authorization"] == "Bearer SG.test"
            assert request.url.path == "/v3/mail/send"
            return httpx.Response(202, headers={"x-message-id": "msg-1"})

        sender = _sender(handler)
        result = await sender.send(RECIPIENTS, None, PICKUP_CONFIRMATION_TEMPLATE, {"ref_id": 7})
        await sender.close()

        assert result.success is True
        assert len(result.succeeded) == 2
        assert result.succeeded[0].message_id == "msg-1"
        assert sorted(p["personalizations"][0]["to"][0]["email"] for p in seen) == [
            "a@example.com",
            "b@example.com",
        ]
        assert seen[0]["subject"] == "Order #7 has been picked up"

    @pytest.mark.asyncio
    async def test_one_recipient_failing_does_not_fail_the_rest(self):
        def handler(request: httpx.Request) -> httpx.Response:
            to = json.loads(request.content)["personalizations"][0]["to"][0]["email"]
            return httpx.Response(202 if to == "a@example.com" else 400)

        sender = _sender(handler)
        result = await sender.send(RECIPIENTS, "Subject", PICKUP_CONFIRMATION_TEMPLATE, {})

        assert result.success is True
        assert [r.recipient for r in result.failed] == ["b@example.com"]
        assert result.failed[0].retryable is False

    @pytest.mark.asyncio
    async def test_rate_limit_is_retryable(self):
        sender = _sender(lambda request: httpx.Response(429))

        result = await sender.send(RECIPIENTS[:1], None, PICKUP_CONFIRMATION_TEMPLATE, {})

        assert result.success is False
        assert result.failed[0].retryable is True

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        sender = _sender(handler)
        result = await sender.send(RECIPIENTS[:1], None, PICKUP_CONFIRMATION_TEMPLATE, {})

        assert result.success is False
        assert result.failed[0].error

    @pytest.mark.asyncio
    async def test_not_configured(self):
        calls = []
        sender = _sender(lambda request: calls.append(request), api_key="")

        result = await sender.send(RECIPIENTS, None, PICKUP_CONFIRMATION_TEMPLATE, {})

        assert result.success is False
        assert all(not r.retryable for r in result.failed)
        assert calls == []

    @pytest.mark.asyncio
    async def test_override_redirects_delivery(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content)["personalizations"][0]["to"][0])
            return httpx.Response(202)

        sender = _sender(handler, override_email="qa@autohaul.example")
        result = await sender.send(RECIPIENTS[:1], None, PICKUP_CONFIRMATION_TEMPLATE, {})

        assert result.succeeded[0].recipient == "a@example.com"
        assert seen == [{"email": "qa@autohaul.example"}]

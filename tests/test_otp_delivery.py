"""Tests for the outbound OTP channel and the background dispatcher."""

import asyncio
import json
from unittest.mock import AsyncMock

import aiosmtplib
import httpx
import pytest

from auth_gateway.models.records import ContactKind
from auth_gateway.services.dispatcher import BackgroundDispatcher
from auth_gateway.services.email_service import EmailService
from auth_gateway.services.otp_delivery import RemoteOtpChannel
from conftest import make_settings


def channel_answering(handler, **settings_overrides) -> RemoteOtpChannel:
    settings = make_settings(
        otp_remote_base_url="http://otp.internal/external/v1/", **settings_overrides
    )
    return RemoteOtpChannel(settings, transport=httpx.MockTransport(handler))


# ── Remote OTP API ───────────────────────────────────────

@pytest.mark.asyncio
async def test_posts_code_to_remote_api():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True, "message": "queued"})

    channel = channel_answering(handler)
    assert await channel.send("+919876543210", ContactKind.MOBILE, "123456", 300)

    assert str(seen[0].url) == "http://otp.internal/external/v1/otp/send"
    assert json.loads(seen[0].content) == {
        "type": "MOBILE",
        "contact": "+919876543210",
        "otp": "123456",
    }


@pytest.mark.asyncio
async def test_empty_success_body_counts_as_delivered():
    channel = channel_answering(lambda request: httpx.Response(204))
    assert await channel.send("+919876543210", ContactKind.MOBILE, "123456", 300)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, json={"success": False}),
        httpx.Response(200, text="<html>"),
    ],
)
async def test_failed_delivery(response):
    channel = channel_answering(lambda request: response)
    assert not await channel.send("a@x.com", ContactKind.EMAIL, "123456", 300)


@pytest.mark.asyncio
async def test_connection_error_is_a_failed_delivery():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    channel = channel_answering(handler)
    assert not await channel.send("+919876543210", ContactKind.MOBILE, "123456", 300)


# ── SMTP ─────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_email_goes_through_smtp_when_configured(monkeypatch):
    send = AsyncMock()
    monkeypatch.setattr(aiosmtplib, "send", send)
    settings = make_settings(smtp_host="smtp.example.com")

    def handler(request):
        raise AssertionError("remote API must not be called for email")

    channel = RemoteOtpChannel(
        settings, EmailService(settings), transport=httpx.MockTransport(handler)
    )
    assert await channel.send("a@x.com", ContactKind.EMAIL, "654321", 300)

    message = send.await_args.args[0]
    assert message["To"] == "a@x.com"
    assert "654321" in message.get_content()
    assert "5 minutes" in message.get_content()


@pytest.mark.asyncio
async def test_smtp_failure_is_a_failed_delivery(monkeypatch):
    monkeypatch.setattr(
        aiosmtplib, "send", AsyncMock(side_effect=aiosmtplib.SMTPException("down"))
    )
    settings = make_settings(smtp_host="smtp.example.com")
    channel = RemoteOtpChannel(settings, EmailService(settings))
    assert not await channel.send("a@x.com", ContactKind.EMAIL, "654321", 300)


# ── Dispatcher ───────────────────────────────────────────

@pytest.mark.asyncio
async def test_dispatcher_runs_jobs_and_survives_failures():
    dispatcher = BackgroundDispatcher(workers=1)
    done = []

    async def ok(value):
        await asyncio.sleep(0)
        done.append(value)

    async def broken():
        raise RuntimeError("job failed")

    dispatcher.submit("broken", broken)
    dispatcher.submit("ok", ok, 42)
    assert dispatcher.running

    await dispatcher.drain()
    assert done == [42]

    await dispatcher.stop()
    assert not dispatcher.running

"""Tests for OTP generation, storage, delivery and verification."""

import pytest
from pydantic import ValidationError

from auth_gateway.config import Settings
from auth_gateway.errors import InvalidOtp, InvalidValidationId, OtpDeliveryFailed
from auth_gateway.models.records import ContactKind, FlowKind
from auth_gateway.services import otp_engine
from auth_gateway.services.otp_engine import (
    LOGIN_OTP_TTL_SECONDS,
    OtpCheck,
    OtpEngine,
    generate_otp,
    login_otp_key,
    reset_otp_key,
)
from conftest import make_settings

MOBILE = "+919876543210"


@pytest.fixture
def engine(store, channel, settings) -> OtpEngine:
    return OtpEngine(store, channel, settings)


def test_generate_otp_is_six_digits():
    for _ in range(200):
        code = generate_otp()
        assert len(code) == 6
        assert code.isdigit()


def test_generate_otp_keeps_leading_zeros(monkeypatch):
    monkeypatch.setattr(otp_engine.secrets, "randbelow", lambda n: 42)
    assert generate_otp() == "000042"


@pytest.mark.parametrize(
    "flow, has_mobile, email_policy, expected",
    [
        (FlowKind.SIGNUP, False, False, True),
        (FlowKind.SIGNUP, True, False, True),
        (FlowKind.LOGIN, True, False, True),
        (FlowKind.LOGIN, False, False, False),
        (FlowKind.LOGIN, False, True, True),
    ],
)
def test_should_require_otp(store, channel, flow, has_mobile, email_policy, expected):
    engine = OtpEngine(store, channel, make_settings(require_email_login_otp=email_policy))
    assert engine.should_require_otp(flow, has_mobile) is expected


@pytest.mark.asyncio
async def test_issue_stores_and_delivers(engine, store, channel):
    code = await engine.issue(MOBILE, ContactKind.MOBILE)

    assert channel.sent == [(MOBILE, ContactKind.MOBILE, code)]
    assert await store.get_string(login_otp_key(MOBILE)) == code
    assert store.ttl(login_otp_key(MOBILE)) == LOGIN_OTP_TTL_SECONDS


@pytest.mark.asyncio
async def test_issue_delivery_failure_raises(engine, channel):
    channel.succeed = False
    with pytest.raises(OtpDeliveryFailed):
        await engine.issue(MOBILE, ContactKind.MOBILE)


@pytest.mark.asyncio
async def test_code_is_single_use(engine):
    code = await engine.issue(MOBILE, ContactKind.MOBILE)
    assert await engine.verify(MOBILE, code) is OtpCheck.VALID
    assert await engine.verify(MOBILE, code) is OtpCheck.EXPIRED_OR_UNKNOWN


@pytest.mark.asyncio
async def test_mismatch_keeps_code(engine):
    code = await engine.issue(MOBILE, ContactKind.MOBILE)
    wrong = "000000" if code != "000000" else "111111"

    assert await engine.verify(MOBILE, wrong) is OtpCheck.MISMATCH
    assert await engine.verify(MOBILE, code) is OtpCheck.VALID


@pytest.mark.asyncio
async def test_expired_code_looks_unknown(engine, clock):
    code = await engine.issue(MOBILE, ContactKind.MOBILE)
    clock.advance(LOGIN_OTP_TTL_SECONDS)
    assert await engine.verify(MOBILE, code) is OtpCheck.EXPIRED_OR_UNKNOWN
    assert await engine.verify("+910000000000", code) is OtpCheck.EXPIRED_OR_UNKNOWN


@pytest.mark.asyncio
async def test_check_does_not_consume(engine):
    code = await engine.issue(MOBILE, ContactKind.MOBILE)
    assert await engine.check(MOBILE, code) is OtpCheck.VALID
    assert await engine.consume(MOBILE) is True
    assert await engine.consume(MOBILE) is False


@pytest.mark.asyncio
async def test_bypass_code_outside_production(store, channel):
    engine = OtpEngine(store, channel, make_settings(app_env="development", otp_bypass_code="999999"))
    assert await engine.verify(MOBILE, "999999") is OtpCheck.VALID


@pytest.mark.asyncio
async def test_redeem_succeeds_once(store, channel):
    engine = OtpEngine(store, channel, make_settings())
    await engine.issue(MOBILE, ContactKind.MOBILE)

    assert await engine.redeem(MOBILE, channel.last_code(MOBILE)) is True
    assert await engine.redeem(MOBILE, channel.last_code(MOBILE)) is False


@pytest.mark.asyncio
async def test_redeem_with_bypass_code(store, channel):
    engine = OtpEngine(store, channel, make_settings(app_env="development", otp_bypass_code="999999"))
    assert engine.is_bypass("999999")
    assert not engine.is_bypass("123456")
    assert await engine.redeem(MOBILE, "999999") is True


def test_bypass_code_refused_by_production_settings():
    with pytest.raises(ValidationError):
        Settings(_env_file=None, app_env="production", otp_bypass_code="999999")


@pytest.mark.asyncio
async def test_bypass_code_ignored_in_production(store, channel):
    # model_construct skips validation, as a misconfigured deployment might.
    prod = Settings.model_construct(
        app_env="production", otp_bypass_code="999999", require_email_login_otp=False
    )
    engine = OtpEngine(store, channel, prod)
    assert await engine.verify(MOBILE, "999999") is OtpCheck.EXPIRED_OR_UNKNOWN


# ── Password reset ───────────────────────────────────────


@pytest.mark.asyncio
async def test_reset_code_round_trip(engine, channel, store):
    code = await engine.issue_reset("tok", "acct-1", "a@x.com")
    assert channel.sent == [("a@x.com", ContactKind.EMAIL, code)]
    assert store.ttl(reset_otp_key("tok")) == 15 * 60

    wrong = "000000" if code != "000000" else "111111"
    with pytest.raises(InvalidOtp):
        await engine.verify_reset("tok", wrong)

    assert await engine.verify_reset("tok", code) == "acct-1"
    with pytest.raises(InvalidValidationId):
        await engine.verify_reset("tok", code)


@pytest.mark.asyncio
async def test_reset_delivery_failure_removes_record(engine, channel, store):
    channel.succeed = False
    with pytest.raises(OtpDeliveryFailed):
        await engine.issue_reset("tok", "acct-1", "a@x.com")
    assert await store.get_string(reset_otp_key("tok")) is None

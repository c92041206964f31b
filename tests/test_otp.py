"""Tests for the OTP checkout gate."""

import pytest

from notifications import LoggingChannel, NotificationChannel, NotificationError
from otp import (
    OtpGate,
    ChallengeStore,
    OtpError,
    InvalidOtpError,
    OtpDeliveryError,
    normalize_phone
)

PHONE = "+15551234"
OTHER_PHONE = "+15559876"

class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

class FailingChannel(NotificationChannel):
    async def send(self, recipient, message):
        raise NotificationError("gateway down", recipient)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def channel():
    return LoggingChannel()

@pytest.fixture
def gate(channel, clock):
    return OtpGate(
        channel=channel,
        ttl_seconds=300,
        max_attempts=3,
        store=ChallengeStore(300, clock=clock)
    )

def wrong_code(code: str) -> str:
    return f"{(int(code) + 1) % 1000000:06d}"

@pytest.mark.asyncio
async def test_issue_sends_six_digit_code(gate, channel):
    code = await gate.issue_challenge(PHONE)

    assert len(code) == 6 and code.isdigit()
    assert len(channel.sent) == 1
    recipient, message = channel.sent[0]
    assert recipient == PHONE
    assert code in message

@pytest.mark.asyncio
async def test_code_is_not_stored_in_plain_text(gate):
    code = await gate.issue_challenge(PHONE)
    challenge = gate.store.get(PHONE)

    assert challenge.code_hash != code
    assert code not in challenge.code_hash

@pytest.mark.asyncio
async def test_wrong_then_right_then_replay(gate):
    """Wrong code fails, right code passes once, the same code cannot be reused."""
    code = await gate.issue_challenge(PHONE)

    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(PHONE, wrong_code(code))

    assert gate.verify_challenge(PHONE, code) is True

    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(PHONE, code)

@pytest.mark.asyncio
async def test_code_expires(gate, clock):
    code = await gate.issue_challenge(PHONE)
    clock.now += 301

    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(PHONE, code)
    assert len(gate.store) == 0

@pytest.mark.asyncio
async def test_code_valid_before_expiry(gate, clock):
    code = await gate.issue_challenge(PHONE)
    clock.now += 299

    assert gate.verify_challenge(PHONE, code) is True

@pytest.mark.asyncio
async def test_challenge_discarded_after_max_attempts(gate):
    code = await gate.issue_challenge(PHONE)

    for _ in range(3):
        with pytest.raises(InvalidOtpError):
            gate.verify_challenge(PHONE, wrong_code(code))

    # The right code no longer works either
    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(PHONE, code)

@pytest.mark.asyncio
async def test_phones_do_not_clobber_each_other(gate):
    """Concurrent checkouts on different phones keep independent codes."""
    first = await gate.issue_challenge(PHONE)
    second = await gate.issue_challenge(OTHER_PHONE)

    assert gate.verify_challenge(PHONE, first) is True
    assert gate.verify_challenge(OTHER_PHONE, second) is True

@pytest.mark.asyncio
async def test_reissue_replaces_previous_code(gate):
    old = await gate.issue_challenge(PHONE)
    new = await gate.issue_challenge(PHONE)

    if old != new:
        with pytest.raises(InvalidOtpError):
            gate.verify_challenge(PHONE, old)
    assert gate.verify_challenge(PHONE, new) is True

@pytest.mark.asyncio
async def test_code_for_one_phone_rejected_for_another(gate):
    code = await gate.issue_challenge(PHONE)
    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(OTHER_PHONE, code)

@pytest.mark.asyncio
async def test_delivery_failure_discards_challenge(clock):
    gate = OtpGate(
        channel=FailingChannel(),
        ttl_seconds=300,
        max_attempts=3,
        store=ChallengeStore(300, clock=clock)
    )

    with pytest.raises(OtpDeliveryError):
        await gate.issue_challenge(PHONE)
    assert len(gate.store) == 0

def test_verify_without_challenge(gate):
    with pytest.raises(InvalidOtpError):
        gate.verify_challenge(PHONE, "123456")

@pytest.mark.asyncio
async def test_phone_formatting_is_ignored(gate):
    code = await gate.issue_challenge("+1 555-1234")
    assert gate.verify_challenge("+15551234", code) is True

@pytest.mark.parametrize('phone', ['', 'abc', '12', None])
def test_normalize_phone_rejects_garbage(phone):
    with pytest.raises(OtpError):
        normalize_phone(phone)

def test_purge_expired(clock):
    store = ChallengeStore(60, clock=clock)
    store.put(PHONE, "111111")
    clock.now += 30
    store.put(OTHER_PHONE, "222222")
    clock.now += 31

    assert store.purge_expired() == 1
    assert store.get(PHONE) is None
    assert store.get(OTHER_PHONE) is not None

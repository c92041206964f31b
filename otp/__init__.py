"""OTP checkout gate.

A checkout is confirmed with a six digit code sent to the buyer's phone. This
module keeps one live challenge per phone number. A challenge is:

- stored as a hash, never as the plain code
- valid for ``otp_ttl_seconds`` after it was issued
- consumed by the first successful verification
- discarded after ``otp_max_attempts`` wrong guesses

Issuing a new challenge for a phone replaces the previous one for that phone
only. Reads and writes of the store happen without an ``await`` in between, so
concurrent requests on the event loop cannot interleave inside them.
"""
import hashlib
import hmac
import logging
import secrets
import time
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from config import settings_conf
from notifications import NotificationChannel, NotificationError, dispatcher

logger = logging.getLogger(__name__)

CODE_DIGITS = 6
OTP_MESSAGE = "Your order verification code is {code}. It expires in {minutes} minutes."

class OtpError(Exception):
    """Base exception for OTP operations."""
    pass

class InvalidOtpError(OtpError):
    """Raised when a code is wrong, expired, already used or was never issued."""
    pass

class OtpDeliveryError(OtpError):
    """Raised when a code could not be sent to the phone."""
    pass

def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and brackets from a phone number."""
    if not isinstance(phone, str):
        raise OtpError("Phone number is required")
    normalized = ''.join(ch for ch in phone if ch not in ' -()')
    digits = normalized[1:] if normalized.startswith('+') else normalized
    if not digits.isdigit() or len(digits) < 4:
        raise OtpError(f"Invalid phone number: {phone}")
    return normalized

def _hash_code(phone: str, code: str) -> str:
    return hashlib.sha256(f"{phone}:{code}".encode()).hexdigest()

class Challenge(BaseModel):
    code_hash: str
    issued_at: float
    expires_at: float
    attempts: int = 0

class ChallengeStore:
    """In-process challenge store keyed by phone number."""

    def __init__(self, ttl_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._challenges: Dict[str, Challenge] = {}

    def __len__(self) -> int:
        return len(self._challenges)

    def put(self, phone: str, code: str) -> Challenge:
        """Store a new challenge for a phone, replacing any previous one."""
        now = self.clock()
        challenge = Challenge(
            code_hash=_hash_code(phone, code),
            issued_at=now,
            expires_at=now + self.ttl_seconds
        )
        self._challenges[phone] = challenge
        return challenge

    def get(self, phone: str) -> Optional[Challenge]:
        """Get the live challenge of a phone. Expired challenges are dropped."""
        challenge = self._challenges.get(phone)
        if challenge and self.clock() >= challenge.expires_at:
            del self._challenges[phone]
            return None
        return challenge

    def discard(self, phone: str, challenge: Optional[Challenge] = None) -> None:
        """Remove the challenge of a phone.

        If challenge is given, only remove it while it is still the live one.
        """
        current = self._challenges.get(phone)
        if current is None:
            return
        if challenge is None or current is challenge:
            del self._challenges[phone]

    def purge_expired(self) -> int:
        """Drop all expired challenges. Returns how many were dropped."""
        now = self.clock()
        expired = [phone for phone, c in self._challenges.items() if now >= c.expires_at]
        for phone in expired:
            del self._challenges[phone]
        return len(expired)

class OtpGate:
    """Issues and verifies checkout codes."""

    def __init__(
        self,
        channel: Optional[NotificationChannel] = None,
        ttl_seconds: Optional[int] = None,
        max_attempts: Optional[int] = None,
        store: Optional[ChallengeStore] = None
    ):
        """Initialize the gate.

        Args:
            channel: Channel the codes are sent through
            ttl_seconds: Challenge lifetime, defaults to otp_ttl_seconds
            max_attempts: Wrong guesses allowed, defaults to otp_max_attempts
            store: Optional challenge store, mainly for tests
        """
        self.channel = channel if channel is not None else dispatcher.channel
        self.ttl_seconds = ttl_seconds or settings_conf['otp_ttl_seconds']
        self.max_attempts = max_attempts or settings_conf['otp_max_attempts']
        self.store = store if store is not None else ChallengeStore(self.ttl_seconds)

    async def issue_challenge(self, phone: str) -> str:
        """Create a code for a phone and send it.

        Returns:
            The issued code

        Raises:
            OtpError: If the phone number is malformed
            OtpDeliveryError: If the code could not be sent
        """
        phone = normalize_phone(phone)
        self.store.purge_expired()

        code = f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"
        challenge = self.store.put(phone, code)

        message = OTP_MESSAGE.format(code=code, minutes=max(1, self.ttl_seconds // 60))
        try:
            await self.channel.send(phone, message)
        except NotificationError as e:
            self.store.discard(phone, challenge)
            logger.error(f"Failed to send OTP to {phone}: {e}")
            raise OtpDeliveryError(f"Could not send verification code: {e}") from e

        logger.info(f"Issued OTP challenge for {phone}")
        return code

    def verify_challenge(self, phone: str, code: str) -> bool:
        """Verify and consume the code of a phone.

        Returns:
            True when the code matches

        Raises:
            InvalidOtpError: If the code is wrong, expired, already used or unknown
        """
        try:
            phone = normalize_phone(phone)
        except OtpError:
            raise InvalidOtpError("Invalid OTP")

        challenge = self.store.get(phone)
        if challenge is None:
            logger.warning(f"OTP verification for {phone} without a live challenge")
            raise InvalidOtpError("Invalid OTP")

        candidate = _hash_code(phone, str(code).strip())
        if not hmac.compare_digest(candidate, challenge.code_hash):
            challenge.attempts += 1
            if challenge.attempts >= self.max_attempts:
                self.store.discard(phone, challenge)
                logger.warning(f"OTP challenge for {phone} discarded after {challenge.attempts} attempts")
            raise InvalidOtpError("Invalid OTP")

        # Single use
        self.store.discard(phone, challenge)
        logger.info(f"OTP verified for {phone}")
        return True

# Create global instance
gate = OtpGate()

__all__ = [
    'OtpGate',
    'ChallengeStore',
    'Challenge',
    'gate',
    'normalize_phone',
    'OtpError',
    'InvalidOtpError',
    'OtpDeliveryError'
]

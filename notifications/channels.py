"""Outbound message channels.

A channel delivers one text message to one recipient. The dispatcher and the
checkout gate only depend on the ``send(recipient, message)`` contract.
"""
import asyncio
import logging
from email.message import EmailMessage
from typing import Any, Dict, List, Optional, Tuple

import aiosmtplib
import requests

logger = logging.getLogger(__name__)

class NotificationError(Exception):
    """Raised when a message cannot be delivered."""
    def __init__(self, message: str, recipient: Optional[str] = None):
        self.recipient = recipient
        super().__init__(message)

class NotificationChannel:
    """Base class for message channels."""

    async def send(self, recipient: str, message: str) -> None:
        raise NotImplementedError

class LoggingChannel(NotificationChannel):
    """Channel that only logs messages. Used when no gateway is configured."""

    def __init__(self, keep: int = 1000):
        self.keep = keep
        self.sent: List[Tuple[str, str]] = []

    async def send(self, recipient: str, message: str) -> None:
        logger.info(f"Message to {recipient}: {message}")
        self.sent.append((recipient, message))
        del self.sent[:-self.keep]

class SmsGatewayChannel(NotificationChannel):
    """Channel posting messages to an HTTP SMS gateway."""

    def __init__(self, url: str, token: str = '', sender_id: str = 'Storefront', timeout: int = 10):
        self.url = url
        self.sender_id = sender_id
        self.timeout = timeout

        # Initialize session with auth
        self.session = requests.Session()
        self.session.headers['content-type'] = 'application/json'
        if token:
            self.session.headers['authorization'] = f'Bearer {token}'

    def _post(self, recipient: str, message: str) -> Dict[str, Any]:
        payload = {
            'to': recipient,
            'from': self.sender_id,
            'body': message
        }

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.exceptions.Timeout as e:
            raise NotificationError(
                f"SMS gateway timed out after {self.timeout} seconds", recipient
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise NotificationError(
                f"Failed to connect to SMS gateway at {self.url}", recipient
            ) from e
        except requests.exceptions.HTTPError as e:
            raise NotificationError(
                f"SMS gateway rejected message: {str(e)}", recipient
            ) from e
        except requests.exceptions.RequestException as e:
            raise NotificationError(f"SMS request failed: {str(e)}", recipient) from e
        except ValueError as e:
            raise NotificationError(f"Invalid gateway response: {str(e)}", recipient) from e

    async def send(self, recipient: str, message: str) -> None:
        # requests is blocking; keep it off the event loop
        result = await asyncio.to_thread(self._post, recipient, message)
        logger.debug(f"SMS gateway accepted message to {recipient}: {result}")

class EmailChannel(NotificationChannel):
    """Channel sending plain text mail over SMTP."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = '',
        password: str = '',
        sender: str = 'Storefront <no-reply@localhost>',
        start_tls: bool = True,
        subject: str = 'Storefront notification',
        timeout: int = 10
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.start_tls = start_tls
        self.subject = subject
        self.timeout = timeout

    def build_message(self, recipient: str, message: str) -> EmailMessage:
        # "Price drop alert: ..." becomes the subject "Price drop alert"
        head, sep, _ = message.partition(': ')
        mail = EmailMessage()
        mail['From'] = self.sender
        mail['To'] = recipient
        mail['Subject'] = head if sep and len(head) <= 40 else self.subject
        mail.set_content(message)
        return mail

    async def send(self, recipient: str, message: str) -> None:
        try:
            await aiosmtplib.send(
                self.build_message(recipient, message),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.start_tls,
                timeout=self.timeout
            )
        except aiosmtplib.SMTPException as e:
            raise NotificationError(f"SMTP delivery failed: {str(e)}", recipient) from e
        except OSError as e:
            raise NotificationError(
                f"Failed to connect to SMTP server {self.host}:{self.port}", recipient
            ) from e
        logger.debug(f"Mail to {recipient} accepted by {self.host}")

def is_email(recipient: str) -> bool:
    return '@' in recipient

class RecipientRouter(NotificationChannel):
    """Sends email addresses through one channel and phone numbers through another."""

    def __init__(self, sms: NotificationChannel, email: NotificationChannel):
        self.sms = sms
        self.email = email

    async def send(self, recipient: str, message: str) -> None:
        channel = self.email if is_email(recipient) else self.sms
        await channel.send(recipient, message)

def build_channel(settings: Dict[str, Any]) -> NotificationChannel:
    """Create the channel described by the settings.

    Phone numbers go to the SMS gateway and email addresses to the SMTP
    server. A recipient kind without a configured transport is only logged.
    """
    sms: Optional[NotificationChannel] = None
    email: Optional[NotificationChannel] = None

    if settings.get('sms_gateway_url'):
        logger.info(f"Sending SMS through gateway {settings['sms_gateway_url']}")
        sms = SmsGatewayChannel(
            settings['sms_gateway_url'],
            token=settings.get('sms_gateway_token', ''),
            sender_id=settings.get('sms_sender_id', 'Storefront')
        )

    if settings.get('smtp_host'):
        logger.info(f"Sending mail through {settings['smtp_host']}:{settings.get('smtp_port', 587)}")
        email = EmailChannel(
            settings['smtp_host'],
            port=settings.get('smtp_port', 587),
            username=settings.get('smtp_username', ''),
            password=settings.get('smtp_password', ''),
            sender=settings.get('smtp_sender', 'Storefront <no-reply@localhost>'),
            start_tls=settings.get('smtp_starttls', True)
        )

    if sms is None and email is None:
        logger.info("No SMS gateway or SMTP server configured, notifications will only be logged")
        return LoggingChannel()

    fallback = LoggingChannel()
    if sms is None:
        logger.warning("No SMS gateway configured, messages to phone numbers will only be logged")
    if email is None:
        logger.warning("No SMTP server configured, messages to email addresses will only be logged")
    return RecipientRouter(sms=sms or fallback, email=email or fallback)

# services/email_delivery.py
"""
Email delivery backends and dispatcher

Two interchangeable backends implement the same capability:
- ResendBackend: the Resend transactional email HTTP API
- SMTPBackend: a direct SMTP connection (Gmail or any SMTP server) via aiosmtplib

The backend is chosen once at startup from configuration. EmailDispatcher
verifies the backend, then sends both messages of a submission concurrently
and reports a single all-or-nothing outcome.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formatdate, make_msgid
from typing import Any, Dict, List, Optional, Tuple

import aiosmtplib
import requests

from config.settings import ContactConfig
from core.exceptions import DeliveryError, DeliveryErrorKind
from core.template_engine import EmailMessage

logger = logging.getLogger(__name__)


RESEND_API_URL = 'https://api.resend.com/emails'
GMAIL_SMTP_HOST = 'smtp.gmail.com'
GMAIL_SMTP_PORT = 465


class EmailBackend(ABC):
    """Capability shared by every delivery backend"""

    name = 'abstract'

    @abstractmethod
    async def verify(self) -> None:
        """Confirm the backend is usable; raises DeliveryError otherwise"""

    @abstractmethod
    async def send(self, message: EmailMessage) -> None:
        """Send one message; raises DeliveryError on failure"""


class ResendBackend(EmailBackend):
    """Transactional email over the Resend HTTP API"""

    name = 'resend'

    def __init__(self,
                 api_key: Optional[str],
                 api_url: str = RESEND_API_URL,
                 timeout: float = 15.0,
                 session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()

    async def verify(self) -> None:
        if not self.api_key:
            raise DeliveryError(
                DeliveryErrorKind.NOT_CONFIGURED,
                'Resend service not configured. Please set RESEND_API_KEY.'
            )

    async def send(self, message: EmailMessage) -> None:
        await self.verify()
        payload = {
            'from': message.sender,
            'to': [message.recipient],
            'subject': message.subject,
            'html': message.html,
        }
        if message.text:
            payload['text'] = message.text

        await asyncio.to_thread(self._post, payload, message.recipient)

    def _post(self, payload: Dict[str, Any], recipient: str) -> None:
        try:
            response = self.session.post(
                self.api_url,
                headers={
                    'Authorization': f"Bearer {self.api_key}",
                    'Content-Type': 'application/json',
                },
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DeliveryError(
                DeliveryErrorKind.TRANSPORT_UNAVAILABLE, f"Resend API unreachable: {e}", recipient
            ) from e

        if response.status_code in (401, 403):
            raise DeliveryError(
                DeliveryErrorKind.AUTHENTICATION_FAILED,
                f"Resend API rejected credentials ({response.status_code})",
                recipient,
            )
        if not 200 <= response.status_code < 300:
            raise DeliveryError(
                DeliveryErrorKind.SEND_FAILED,
                f"Resend API returned {response.status_code}: {response.text[:200]}",
                recipient,
            )

        logger.debug(f"Resend accepted message for {recipient}")


class SMTPBackend(EmailBackend):
    """SMTP transport built from one credential set"""

    name = 'smtp'

    def __init__(self,
                 host: Optional[str],
                 port: int,
                 use_tls: bool = False,
                 username: Optional[str] = None,
                 password: Optional[str] = None,
                 timeout: float = 30.0,
                 name: str = 'smtp'):
        """
        Args:
            host: SMTP server hostname
            port: SMTP server port
            use_tls: Implicit TLS (port 465 style); otherwise STARTTLS is
                negotiated when the server offers it
            username: Login user, skipped when empty
            password: Login password
            timeout: Socket timeout in seconds
            name: Label used in logs ('gmail' or 'smtp')
        """
        self.host = host
        self.port = port
        self.use_tls = use_tls
        self.username = username
        self.password = password
        self.timeout = timeout
        self.name = name

    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.host,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.use_tls,
            start_tls=False if self.use_tls else None,
        )

    async def _open(self, recipient: Optional[str] = None) -> aiosmtplib.SMTP:
        if not self.host:
            raise DeliveryError(
                DeliveryErrorKind.NOT_CONFIGURED, f"{self.name} transport has no host configured", recipient
            )

        smtp = self._client()
        try:
            await smtp.connect()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            raise DeliveryError(
                DeliveryErrorKind.TRANSPORT_UNAVAILABLE,
                f"Cannot connect to {self.host}:{self.port}: {e}",
                recipient,
            ) from e

        if self.username and self.password:
            try:
                await smtp.login(self.username, self.password)
            except aiosmtplib.SMTPAuthenticationError as e:
                smtp.close()
                raise DeliveryError(
                    DeliveryErrorKind.AUTHENTICATION_FAILED,
                    f"SMTP authentication failed: {e.code} {e.message}",
                    recipient,
                ) from e
            except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
                smtp.close()
                raise DeliveryError(
                    DeliveryErrorKind.TRANSPORT_UNAVAILABLE, f"SMTP login failed: {e}", recipient
                ) from e
        return smtp

    @staticmethod
    async def _close(smtp: aiosmtplib.SMTP) -> None:
        try:
            await smtp.quit()
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            logger.debug(f"SMTP QUIT failed, closing socket: {e}")
            smtp.close()

    async def verify(self) -> None:
        smtp = await self._open()
        await self._close(smtp)
        logger.debug(f"{self.name} transport verified ({self.host}:{self.port})")

    async def send(self, message: EmailMessage) -> None:
        mime = build_mime_message(message)
        smtp = await self._open(message.recipient)
        try:
            errors, response = await smtp.send_message(mime)
        except aiosmtplib.SMTPResponseException as e:
            raise DeliveryError(
                DeliveryErrorKind.SEND_FAILED, f"SMTP rejected message: {e.code} {e.message}", message.recipient
            ) from e
        except (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError) as e:
            raise DeliveryError(
                DeliveryErrorKind.TRANSPORT_UNAVAILABLE, f"SMTP send failed: {e}", message.recipient
            ) from e
        finally:
            if smtp.is_connected:
                await self._close(smtp)

        if errors:
            raise DeliveryError(
                DeliveryErrorKind.SEND_FAILED, f"SMTP refused recipients: {errors}", message.recipient
            )
        logger.debug(f"SMTP accepted message for {message.recipient}: {response}")


def build_mime_message(message: EmailMessage) -> MIMEMultipart:
    """Build a multipart/alternative MIME message with text and HTML parts"""
    msg = MIMEMultipart('alternative')
    msg['Subject'] = message.subject
    msg['From'] = message.sender
    msg['To'] = message.recipient
    msg['Date'] = formatdate(localtime=True)
    msg['Message-ID'] = make_msgid()

    if message.text:
        msg.attach(MIMEText(message.text, 'plain', 'utf-8'))
    msg.attach(MIMEText(message.html, 'html', 'utf-8'))
    return msg


def create_email_backend(config: ContactConfig) -> EmailBackend:
    """
    Select the delivery backend from configuration

    Called once at startup. A Resend selection without an API key is logged
    here and surfaces as DeliveryError(NOT_CONFIGURED) on every dispatch.
    """
    if config.email_service == 'resend':
        if not config.resend_api_key:
            logger.error("EMAIL_SERVICE=resend but RESEND_API_KEY is not set; submissions will fail")
        return ResendBackend(config.resend_api_key)

    if config.email_service == 'gmail':
        return SMTPBackend(
            host=GMAIL_SMTP_HOST,
            port=GMAIL_SMTP_PORT,
            use_tls=True,
            username=config.gmail_user,
            password=config.gmail_app_password,
            name='gmail',
        )

    return SMTPBackend(
        host=config.smtp_host,
        port=config.smtp_port,
        use_tls=config.smtp_secure,
        username=config.smtp_user,
        password=config.smtp_password,
        name='smtp',
    )


class EmailDispatcher:
    """Sends the two emails of one submission through the configured backend"""

    def __init__(self, backend: EmailBackend):
        self.backend = backend

    def dispatch(self, team: EmailMessage, user: EmailMessage) -> None:
        """
        Verify the backend and send both messages concurrently

        Args:
            team: Operator notification
            user: Submitter confirmation

        Raises:
            DeliveryError: if verification or either send fails. Partial
                delivery is not signalled to the caller; it is logged.
        """
        asyncio.run(self._dispatch(team, user))

    async def _dispatch(self, team: EmailMessage, user: EmailMessage) -> None:
        await self.backend.verify()

        messages = (('team', team), ('user', user))
        results = await asyncio.gather(
            *(self.backend.send(message) for _, message in messages),
            return_exceptions=True,
        )

        failures: List[Tuple[str, EmailMessage, BaseException]] = [
            (label, message, result)
            for (label, message), result in zip(messages, results)
            if isinstance(result, BaseException)
        ]
        if not failures:
            return

        for label, message, error in failures:
            logger.error(f"Failed to send {label} email to {message.recipient} via {self.backend.name}: {error}")
        if len(failures) < len(messages):
            delivered = [label for label, _ in messages if label not in {f[0] for f in failures}]
            logger.warning(f"Partial delivery: {', '.join(delivered)} email sent, reporting submission as failed")

        first = failures[0][2]
        if isinstance(first, DeliveryError):
            raise first
        raise DeliveryError(
            DeliveryErrorKind.SEND_FAILED, f"Unexpected delivery fault: {first}", failures[0][1].recipient
        ) from first

"""
Pytest configuration and fixtures for all tests.
"""

import os
from datetime import datetime
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set up test environment variables before importing any modules
os.environ.setdefault('FLASK_ENV', 'testing')
os.environ.setdefault('LOG_LEVEL', 'DEBUG')

from api.contact import limiter
from app import create_app
from config.settings import ContactConfig
from core.exceptions import DeliveryError, DeliveryErrorKind
from core.recaptcha import VerificationResult
from core.template_engine import EmailMessage
from services.email_delivery import EmailBackend


FIXED_NOW = datetime(2024, 3, 5, 14, 7, 9)
ALLOWED_ORIGIN = 'https://jaide.care'


class RecordingBackend(EmailBackend):
    """In-memory backend that records every message it is asked to send."""

    name = 'recording'

    def __init__(self,
                 fail_recipients: Sequence[str] = (),
                 verify_error: Optional[DeliveryError] = None):
        self.fail_recipients = set(fail_recipients)
        self.verify_error = verify_error
        self.verify_calls = 0
        self.sent: List[EmailMessage] = []

    async def verify(self) -> None:
        self.verify_calls += 1
        if self.verify_error:
            raise self.verify_error

    async def send(self, message: EmailMessage) -> None:
        if message.recipient in self.fail_recipients:
            raise DeliveryError(DeliveryErrorKind.SEND_FAILED, 'mailbox unavailable', message.recipient)
        self.sent.append(message)


class StubVerifier:
    """reCAPTCHA verifier returning a canned result and recording calls."""

    def __init__(self, result: Optional[VerificationResult] = None):
        self.result = result or VerificationResult.ok()
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return self.result


def make_smtp_client(send_result=({}, 'OK')):
    """aiosmtplib.SMTP stand-in with awaitable protocol methods."""
    client = MagicMock()
    client.connect = AsyncMock()
    client.login = AsyncMock()
    client.send_message = AsyncMock(return_value=send_result)
    client.quit = AsyncMock()
    client.is_connected = True
    return client


@pytest.fixture
def config():
    """Configuration snapshot used by the app fixture."""
    return ContactConfig(
        environment='testing',
        allowed_origins=('http://localhost:3000', ALLOWED_ORIGIN),
        email_service='smtp',
        recaptcha_secret_key='test-secret',
        recaptcha_site_key='test-site-key',
        email_from='Jaide <noreply@jaide.care>',
        email_to='contact@jaide.care',
        smtp_host='smtp.test.local',
        log_level='DEBUG',
        version='9.9.9',
    )


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def verifier():
    return StubVerifier()


@pytest.fixture
def app(config, verifier, backend):
    """Application wired with in-memory collaborators."""
    application = create_app(config, verifier=verifier, email_backend=backend, clock=lambda: FIXED_NOW)
    application.config['TESTING'] = True
    with application.app_context():
        limiter.reset()
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def valid_payload():
    """Submission from the worked example: Ana Silva, nurse at Hospital X."""
    return {
        'First-Name': 'Ana',
        'Last-Name': 'Silva',
        'email': 'ANA@Example.com ',
        'field': 'Nurse',
        'name-2': 'Hospital X',
        'field-2': '',
        'checkbox': 'on',
        'g-recaptcha-response': 'tok',
    }

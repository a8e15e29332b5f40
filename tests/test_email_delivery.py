"""
Tests for email delivery backends and the dispatcher.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, Mock, patch

import aiosmtplib
import pytest
import requests

from config.settings import ContactConfig
from core.exceptions import DeliveryError, DeliveryErrorKind
from core.template_engine import EmailMessage
from services.email_delivery import (
    EmailDispatcher,
    ResendBackend,
    SMTPBackend,
    build_mime_message,
    create_email_backend,
    RESEND_API_URL,
)

from conftest import RecordingBackend, make_smtp_client


TEAM = EmailMessage(
    sender='noreply@jaide.care',
    recipient='contact@jaide.care',
    subject='New Contact Form Submission from Ana Silva',
    html='<p>team</p>',
    text='team',
)
USER = EmailMessage(
    sender='noreply@jaide.care',
    recipient='ana@example.com',
    subject="Thank you for contacting Jaide - We'll be in touch soon",
    html='<p>user</p>',
    text='user',
)


def _http_response(status_code):
    response = Mock()
    response.status_code = status_code
    response.text = 'body'
    return response


class TestResendBackend:
    """Test delivery through the Resend HTTP API."""

    def test_send_posts_message(self):
        session = Mock(spec=requests.Session)
        session.post.return_value = _http_response(200)
        backend = ResendBackend('re_key', session=session)

        asyncio.run(backend.send(TEAM))

        args, kwargs = session.post.call_args
        assert args == (RESEND_API_URL,)
        assert kwargs['headers']['Authorization'] == 'Bearer re_key'
        assert kwargs['json'] == {
            'from': 'noreply@jaide.care',
            'to': ['contact@jaide.care'],
            'subject': 'New Contact Form Submission from Ana Silva',
            'html': '<p>team</p>',
            'text': 'team',
        }

    def test_missing_api_key(self):
        session = Mock(spec=requests.Session)
        backend = ResendBackend(None, session=session)

        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(backend.verify())

        assert exc_info.value.kind is DeliveryErrorKind.NOT_CONFIGURED
        session.post.assert_not_called()

    @pytest.mark.parametrize('status_code,kind', [
        (401, DeliveryErrorKind.AUTHENTICATION_FAILED),
        (403, DeliveryErrorKind.AUTHENTICATION_FAILED),
        (422, DeliveryErrorKind.SEND_FAILED),
        (500, DeliveryErrorKind.SEND_FAILED),
    ])
    def test_error_status(self, status_code, kind):
        session = Mock(spec=requests.Session)
        session.post.return_value = _http_response(status_code)

        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(ResendBackend('re_key', session=session).send(USER))

        assert exc_info.value.kind is kind
        assert exc_info.value.recipient == 'ana@example.com'

    def test_unreachable_api(self):
        session = Mock(spec=requests.Session)
        session.post.side_effect = requests.ConnectionError('no route to host')

        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(ResendBackend('re_key', session=session).send(USER))

        assert exc_info.value.kind is DeliveryErrorKind.TRANSPORT_UNAVAILABLE


class TestSMTPBackend:
    """Test delivery through an SMTP server."""

    def test_send_logs_in_and_sends(self):
        client = make_smtp_client()
        backend = SMTPBackend('smtp.example.org', 587, username='user', password='pass')

        with patch.object(SMTPBackend, '_client', return_value=client):
            asyncio.run(backend.send(USER))

        client.connect.assert_awaited_once()
        client.login.assert_awaited_once_with('user', 'pass')
        mime = client.send_message.await_args.args[0]
        assert mime['To'] == 'ana@example.com'
        assert mime['Subject'] == USER.subject
        client.quit.assert_awaited_once()

    def test_login_skipped_without_credentials(self):
        client = make_smtp_client()

        with patch.object(SMTPBackend, '_client', return_value=client):
            asyncio.run(SMTPBackend('smtp.example.org', 25).send(USER))

        client.login.assert_not_awaited()

    def test_missing_host(self):
        with pytest.raises(DeliveryError) as exc_info:
            asyncio.run(SMTPBackend(None, 587).verify())

        assert exc_info.value.kind is DeliveryErrorKind.NOT_CONFIGURED

    def test_connection_refused(self):
        client = make_smtp_client()
        client.connect.side_effect = aiosmtplib.SMTPConnectError('Connection refused')

        with patch.object(SMTPBackend, '_client', return_value=client):
            with pytest.raises(DeliveryError) as exc_info:
                asyncio.run(SMTPBackend('smtp.example.org', 587).verify())

        assert exc_info.value.kind is DeliveryErrorKind.TRANSPORT_UNAVAILABLE

    def test_bad_credentials(self):
        client = make_smtp_client()
        client.login.side_effect = aiosmtplib.SMTPAuthenticationError(535, 'Username and Password not accepted')

        with patch.object(SMTPBackend, '_client', return_value=client):
            with pytest.raises(DeliveryError) as exc_info:
                asyncio.run(SMTPBackend('smtp.gmail.com', 465, True, 'user', 'wrong').verify())

        assert exc_info.value.kind is DeliveryErrorKind.AUTHENTICATION_FAILED
        client.close.assert_called_once()

    def test_message_rejected(self):
        client = make_smtp_client()
        client.send_message.side_effect = aiosmtplib.SMTPResponseException(554, 'Message rejected')

        with patch.object(SMTPBackend, '_client', return_value=client):
            with pytest.raises(DeliveryError) as exc_info:
                asyncio.run(SMTPBackend('smtp.example.org', 587).send(USER))

        assert exc_info.value.kind is DeliveryErrorKind.SEND_FAILED
        client.quit.assert_awaited_once()

    def test_refused_recipient(self):
        client = make_smtp_client(send_result=({'ana@example.com': (550, 'No such user')}, 'OK'))

        with patch.object(SMTPBackend, '_client', return_value=client):
            with pytest.raises(DeliveryError) as exc_info:
                asyncio.run(SMTPBackend('smtp.example.org', 587).send(USER))

        assert exc_info.value.kind is DeliveryErrorKind.SEND_FAILED


class TestBuildMimeMessage:

    def test_multipart_alternative(self):
        mime = build_mime_message(TEAM)

        assert mime.get_content_subtype() == 'alternative'
        assert mime['From'] == 'noreply@jaide.care'
        assert mime['Message-ID']
        assert [part.get_content_type() for part in mime.get_payload()] == ['text/plain', 'text/html']


class TestCreateEmailBackend:
    """Test backend selection from configuration."""

    def test_resend(self):
        backend = create_email_backend(ContactConfig(email_service='resend', resend_api_key='re_key'))

        assert isinstance(backend, ResendBackend)
        assert backend.api_key == 're_key'

    def test_resend_without_key_is_logged(self, caplog):
        with caplog.at_level(logging.ERROR):
            backend = create_email_backend(ContactConfig(email_service='resend'))

        assert isinstance(backend, ResendBackend)
        assert 'RESEND_API_KEY' in caplog.text

    def test_gmail(self):
        backend = create_email_backend(ContactConfig(
            email_service='gmail', gmail_user='sender@gmail.com', gmail_app_password='app-pass'
        ))

        assert isinstance(backend, SMTPBackend)
        assert (backend.host, backend.port, backend.use_tls) == ('smtp.gmail.com', 465, True)
        assert (backend.username, backend.password) == ('sender@gmail.com', 'app-pass')
        assert backend.name == 'gmail'

    def test_generic_smtp(self):
        backend = create_email_backend(ContactConfig(
            email_service='smtp', smtp_host='mail.example.org', smtp_port=2525,
            smtp_secure=False, smtp_user='user', smtp_password='pass'
        ))

        assert isinstance(backend, SMTPBackend)
        assert (backend.host, backend.port, backend.use_tls) == ('mail.example.org', 2525, False)
        assert backend.name == 'smtp'


class TestEmailDispatcher:
    """Test verification and concurrent sending of both messages."""

    def test_both_messages_sent(self):
        backend = RecordingBackend()

        EmailDispatcher(backend).dispatch(TEAM, USER)

        assert backend.verify_calls == 1
        assert sorted(m.recipient for m in backend.sent) == ['ana@example.com', 'contact@jaide.care']

    def test_verification_failure_sends_nothing(self):
        backend = RecordingBackend(verify_error=DeliveryError(
            DeliveryErrorKind.AUTHENTICATION_FAILED, 'bad credentials'
        ))

        with pytest.raises(DeliveryError) as exc_info:
            EmailDispatcher(backend).dispatch(TEAM, USER)

        assert exc_info.value.kind is DeliveryErrorKind.AUTHENTICATION_FAILED
        assert backend.sent == []

    def test_partial_delivery_is_a_failure(self, caplog):
        backend = RecordingBackend(fail_recipients=['ana@example.com'])

        with caplog.at_level(logging.WARNING):
            with pytest.raises(DeliveryError) as exc_info:
                EmailDispatcher(backend).dispatch(TEAM, USER)

        assert exc_info.value.recipient == 'ana@example.com'
        assert [m.recipient for m in backend.sent] == ['contact@jaide.care']
        assert 'Failed to send user email to ana@example.com' in caplog.text
        assert 'Partial delivery: team email sent' in caplog.text

    def test_unexpected_fault_is_wrapped(self):
        backend = RecordingBackend()
        backend.send = AsyncMock(side_effect=RuntimeError('boom'))

        with pytest.raises(DeliveryError) as exc_info:
            EmailDispatcher(backend).dispatch(TEAM, USER)

        assert exc_info.value.kind is DeliveryErrorKind.SEND_FAILED
        assert isinstance(exc_info.value.__cause__, RuntimeError)

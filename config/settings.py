# config/settings.py
"""
Configuration resolver for the contact form backend

Reads the recognized options from the process environment exactly once and
produces an immutable ContactConfig. The app factory and every component
receive this object explicitly; nothing reads os.environ after startup.
"""

import os
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


EMAIL_SERVICES = ('resend', 'gmail', 'smtp')

DEFAULT_PORT = 3000
DEFAULT_ALLOWED_ORIGINS = ('http://localhost:3000', 'https://jaide.care')
DEFAULT_EMAIL_TO = 'contact@jaide.care'
RESEND_DEFAULT_FROM = 'onboarding@resend.dev'
DEFAULT_SMTP_PORT = 587
DEFAULT_RATE_LIMIT_WINDOW_MINUTES = 15
DEFAULT_RATE_LIMIT_MAX = 5


def _parse_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _parse_bool(raw: Optional[str]) -> bool:
    return (raw or '').strip().lower() == 'true'


def _parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    if raw is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(origin.strip() for origin in raw.split(',') if origin.strip())


def _optional(environ: Mapping[str, str], name: str) -> Optional[str]:
    value = environ.get(name)
    if value is None or value.strip() == '':
        return None
    return value.strip()


@dataclass(frozen=True)
class ContactConfig:
    """Read-only configuration snapshot, created once per process"""
    port: int = DEFAULT_PORT
    environment: str = 'production'
    allowed_origins: Tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    email_service: str = 'smtp'

    recaptcha_secret_key: Optional[str] = None
    recaptcha_site_key: str = ''

    email_from: Optional[str] = None
    email_to: str = DEFAULT_EMAIL_TO

    resend_api_key: Optional[str] = None
    gmail_user: Optional[str] = None
    gmail_app_password: Optional[str] = None

    smtp_host: Optional[str] = None
    smtp_port: int = DEFAULT_SMTP_PORT
    smtp_secure: bool = False
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None

    rate_limit_window_minutes: int = DEFAULT_RATE_LIMIT_WINDOW_MINUTES
    rate_limit_max: int = DEFAULT_RATE_LIMIT_MAX
    rate_limit_storage_uri: str = 'memory://'

    log_level: str = 'INFO'
    log_file: Optional[str] = None
    version: str = '1.0.0'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ContactConfig':
        """
        Build the configuration snapshot from environment variables

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            ContactConfig with documented defaults applied

        Raises:
            ConfigurationError: if a numeric option cannot be parsed
        """
        environ = os.environ if environ is None else environ

        email_service = (environ.get('EMAIL_SERVICE') or 'smtp').strip().lower()
        if email_service not in EMAIL_SERVICES:
            logger.warning(f"Unknown EMAIL_SERVICE {email_service!r}, using generic SMTP")
            email_service = 'smtp'

        environment = (
            environ.get('FLASK_ENV') or environ.get('NODE_ENV') or 'production'
        ).strip().lower()

        return cls(
            port=_parse_int(environ, 'PORT', DEFAULT_PORT),
            environment=environment,
            allowed_origins=_parse_origins(environ.get('ALLOWED_ORIGINS')),
            email_service=email_service,
            recaptcha_secret_key=_optional(environ, 'RECAPTCHA_SECRET_KEY'),
            recaptcha_site_key=(environ.get('RECAPTCHA_SITE_KEY') or '').strip(),
            email_from=_optional(environ, 'EMAIL_FROM'),
            email_to=_optional(environ, 'EMAIL_TO') or DEFAULT_EMAIL_TO,
            resend_api_key=_optional(environ, 'RESEND_API_KEY'),
            gmail_user=_optional(environ, 'EMAIL_USER'),
            gmail_app_password=_optional(environ, 'EMAIL_APP_PASSWORD'),
            smtp_host=_optional(environ, 'SMTP_HOST'),
            smtp_port=_parse_int(environ, 'SMTP_PORT', DEFAULT_SMTP_PORT),
            smtp_secure=_parse_bool(environ.get('SMTP_SECURE')),
            smtp_user=_optional(environ, 'SMTP_USER'),
            smtp_password=_optional(environ, 'SMTP_PASSWORD'),
            rate_limit_window_minutes=_parse_int(
                environ, 'RATE_LIMIT_WINDOW_MINUTES', DEFAULT_RATE_LIMIT_WINDOW_MINUTES
            ),
            rate_limit_max=_parse_int(environ, 'RATE_LIMIT_MAX', DEFAULT_RATE_LIMIT_MAX),
            rate_limit_storage_uri=_optional(environ, 'RATELIMIT_STORAGE_URI') or 'memory://',
            log_level=(environ.get('LOG_LEVEL') or 'INFO').strip().upper(),
            log_file=_optional(environ, 'LOG_FILE'),
            version=_optional(environ, 'APP_VERSION') or '1.0.0',
        )

    @property
    def is_production(self) -> bool:
        return self.environment == 'production'

    @property
    def sender_address(self) -> Optional[str]:
        """From address used on both outgoing messages"""
        if self.email_from:
            return self.email_from
        if self.email_service == 'resend':
            return RESEND_DEFAULT_FROM
        if self.email_service == 'gmail':
            return self.gmail_user
        return self.smtp_user

    @property
    def rate_limit(self) -> str:
        """Flask-Limiter limit string for the submission endpoint"""
        return f"{self.rate_limit_max} per {self.rate_limit_window_minutes} minutes"

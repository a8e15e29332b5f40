# core/validation.py
"""
Contact form input validation

Applies the per-field rules to a raw submission. Every rule is evaluated so
the caller can report all violations at once; a valid submission yields an
immutable NormalizedSubmission with trimming and email normalization applied.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from email_validator import validate_email, EmailNotValidError

logger = logging.getLogger(__name__)


# Raw field names posted by the contact form
FIRST_NAME = 'First-Name'
LAST_NAME = 'Last-Name'
EMAIL = 'email'
JOB_TITLE = 'field'
INSTITUTION = 'name-2'
MESSAGE = 'field-2'
CONSENT = 'checkbox'
RECAPTCHA_TOKEN = 'g-recaptcha-response'

CONSENT_MARKER = 'on'

NAME_PATTERN = re.compile(r"^[a-zA-ZÀ-ÖØ-öø-ÿ\s'-]+$")
NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
INSTITUTION_MIN_LENGTH = 2
INSTITUTION_MAX_LENGTH = 100
MESSAGE_MAX_LENGTH = 1000

# Providers whose mailboxes ignore sub-address tags
GMAIL_DOMAINS = ('gmail.com', 'googlemail.com')
ICLOUD_DOMAINS = ('icloud.com', 'me.com')
OUTLOOK_DOMAINS = (
    'hotmail.at', 'hotmail.be', 'hotmail.ca', 'hotmail.cl', 'hotmail.co.il', 'hotmail.co.nz',
    'hotmail.co.th', 'hotmail.co.uk', 'hotmail.com', 'hotmail.com.ar', 'hotmail.com.au',
    'hotmail.com.br', 'hotmail.com.gr', 'hotmail.com.mx', 'hotmail.com.pe', 'hotmail.com.tr',
    'hotmail.com.vn', 'hotmail.cz', 'hotmail.de', 'hotmail.dk', 'hotmail.es', 'hotmail.fr',
    'hotmail.hu', 'hotmail.id', 'hotmail.ie', 'hotmail.in', 'hotmail.it', 'hotmail.jp',
    'hotmail.kr', 'hotmail.lv', 'hotmail.my', 'hotmail.ph', 'hotmail.pt', 'hotmail.sa',
    'hotmail.sg', 'hotmail.sk', 'live.be', 'live.co.uk', 'live.com', 'live.com.ar',
    'live.com.mx', 'live.de', 'live.es', 'live.eu', 'live.fr', 'live.it', 'live.nl', 'msn.com',
    'outlook.at', 'outlook.be', 'outlook.cl', 'outlook.co.il', 'outlook.co.nz', 'outlook.co.th',
    'outlook.com', 'outlook.com.ar', 'outlook.com.au', 'outlook.com.br', 'outlook.com.gr',
    'outlook.com.pe', 'outlook.com.tr', 'outlook.com.vn', 'outlook.cz', 'outlook.de',
    'outlook.dk', 'outlook.es', 'outlook.fr', 'outlook.hu', 'outlook.id', 'outlook.ie',
    'outlook.in', 'outlook.it', 'outlook.jp', 'outlook.kr', 'outlook.lv', 'outlook.my',
    'outlook.ph', 'outlook.pt', 'outlook.sa', 'outlook.sg', 'outlook.sk', 'passport.com',
)
YAHOO_DOMAINS = (
    'rocketmail.com', 'yahoo.ca', 'yahoo.co.uk', 'yahoo.com', 'yahoo.de', 'yahoo.fr',
    'yahoo.in', 'yahoo.it', 'ymail.com',
)
YANDEX_DOMAINS = ('yandex.ru', 'yandex.ua', 'yandex.kz', 'yandex.com', 'yandex.by', 'ya.ru')


@dataclass(frozen=True)
class FieldError:
    """Single violated rule"""
    field: str
    msg: str

    def to_dict(self) -> Dict[str, str]:
        return {'field': self.field, 'msg': self.msg}


@dataclass(frozen=True)
class NormalizedSubmission:
    """Validated contact form submission"""
    first_name: str
    last_name: str
    email: str
    job_title: str
    institution: str
    message: str = ''
    consent: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class ValidationResult:
    """Result of validating one submission"""
    submission: Optional[NormalizedSubmission]
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _text(data: Mapping[str, Any], name: str) -> str:
    value = data.get(name)
    return value if isinstance(value, str) else ''


def normalize_email(address: str) -> Optional[str]:
    """
    Canonicalize an email address

    Lowercases the whole address, then applies the provider rules:
    - Gmail: drop dots and '+tag', fold googlemail.com into gmail.com
    - Outlook/Hotmail/Live and iCloud: drop '+tag'
    - Yahoo: drop the last '-tag'
    - Yandex: fold regional domains into yandex.ru

    Returns:
        The canonical address, or None when nothing is left of the local part
    """
    local, _, domain = address.strip().lower().rpartition('@')

    if domain in GMAIL_DOMAINS:
        local = local.split('+', 1)[0].replace('.', '')
        domain = 'gmail.com'
    elif domain in OUTLOOK_DOMAINS or domain in ICLOUD_DOMAINS:
        local = local.split('+', 1)[0]
    elif domain in YAHOO_DOMAINS:
        parts = local.split('-')
        local = '-'.join(parts[:-1]) if len(parts) > 1 else parts[0]
    elif domain in YANDEX_DOMAINS:
        domain = 'yandex.ru'

    if not local:
        return None
    return f"{local}@{domain}"


def _check_name(value: str, name: str, label: str, errors: List[FieldError]) -> None:
    if not NAME_MIN_LENGTH <= len(value) <= NAME_MAX_LENGTH:
        errors.append(FieldError(
            name, f"{label} must be between {NAME_MIN_LENGTH} and {NAME_MAX_LENGTH} characters"
        ))
    if not NAME_PATTERN.match(value):
        errors.append(FieldError(name, f"{label} contains invalid characters"))


def _check_email(value: str, errors: List[FieldError]) -> Optional[str]:
    try:
        validated = validate_email(value, check_deliverability=False)
    except EmailNotValidError as e:
        logger.debug(f"Rejected email address: {e}")
        errors.append(FieldError(EMAIL, 'Please provide a valid email address'))
        return None

    normalized = normalize_email(validated.normalized)
    if normalized is None:
        logger.debug(f"Rejected email address with an empty mailbox after normalization: {value!r}")
        errors.append(FieldError(EMAIL, 'Please provide a valid email address'))
    return normalized


def validate_submission(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a raw contact form submission

    Args:
        data: Mapping of posted field names to values (JSON or form body)

    Returns:
        ValidationResult holding either the normalized submission or the
        ordered list of field errors
    """
    errors: List[FieldError] = []

    first_name = _text(data, FIRST_NAME).strip()
    _check_name(first_name, FIRST_NAME, 'First name', errors)

    last_name = _text(data, LAST_NAME).strip()
    _check_name(last_name, LAST_NAME, 'Last name', errors)

    email = _check_email(_text(data, EMAIL).strip(), errors)

    job_title = _text(data, JOB_TITLE).strip()
    if not job_title:
        errors.append(FieldError(JOB_TITLE, 'Please select your job title'))

    institution = _text(data, INSTITUTION).strip()
    if not INSTITUTION_MIN_LENGTH <= len(institution) <= INSTITUTION_MAX_LENGTH:
        errors.append(FieldError(
            INSTITUTION,
            f"Healthcare institution name must be between "
            f"{INSTITUTION_MIN_LENGTH} and {INSTITUTION_MAX_LENGTH} characters"
        ))

    message = _text(data, MESSAGE).strip()
    if len(message) > MESSAGE_MAX_LENGTH:
        errors.append(FieldError(MESSAGE, f"Message must not exceed {MESSAGE_MAX_LENGTH} characters"))

    if _text(data, CONSENT) != CONSENT_MARKER:
        errors.append(FieldError(CONSENT, 'You must agree to be contacted by the Jaide team'))

    if not _text(data, RECAPTCHA_TOKEN).strip():
        errors.append(FieldError(RECAPTCHA_TOKEN, 'Please complete the reCAPTCHA verification'))

    if errors:
        return ValidationResult(submission=None, errors=errors)

    return ValidationResult(submission=NormalizedSubmission(
        first_name=first_name,
        last_name=last_name,
        email=email,
        job_title=job_title,
        institution=institution,
        message=message,
        consent=True,
    ))

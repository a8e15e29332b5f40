# core/recaptcha.py
"""
reCAPTCHA verification client

Verifies challenge-response tokens against Google's siteverify endpoint.
verify() never raises: every transport fault is folded into a failed
VerificationResult carrying the 'request-failed' code.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import requests

logger = logging.getLogger(__name__)


RECAPTCHA_VERIFY_URL = 'https://www.google.com/recaptcha/api/siteverify'
REQUEST_FAILED = 'request-failed'
MISSING_INPUT_RESPONSE = 'missing-input-response'


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of a single token verification"""
    success: bool
    error_codes: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def ok(cls) -> 'VerificationResult':
        return cls(success=True)

    @classmethod
    def failed(cls, codes: Sequence[str]) -> 'VerificationResult':
        return cls(success=False, error_codes=tuple(codes))


class RecaptchaVerifier:
    """
    Client for the reCAPTCHA siteverify API

    Usage:
        verifier = RecaptchaVerifier(secret_key)
        result = verifier.verify(token, remote_ip='203.0.113.7')
    """

    def __init__(self,
                 secret_key: Optional[str],
                 verify_url: str = RECAPTCHA_VERIFY_URL,
                 timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout = timeout
        self.session = session or requests.Session()

        if not self.secret_key:
            logger.warning("RECAPTCHA_SECRET_KEY is not set, every verification will fail")

    def verify(self, token: Optional[str], remote_ip: Optional[str] = None) -> VerificationResult:
        """
        Verify a challenge-response token

        Args:
            token: Raw token submitted by the client
            remote_ip: Optional client IP forwarded to the service

        Returns:
            VerificationResult with the service's verdict, or a failure with
            'request-failed' when the service could not be consulted
        """
        if not token or not token.strip():
            logger.warning("Empty reCAPTCHA token rejected without calling the service")
            return VerificationResult.failed([MISSING_INPUT_RESPONSE])

        if not self.secret_key:
            logger.error("reCAPTCHA verification error: secret key not configured")
            return VerificationResult.failed([REQUEST_FAILED])

        payload = {
            'secret': self.secret_key,
            'response': token,
        }
        if remote_ip:
            payload['remoteip'] = remote_ip

        try:
            response = self.session.post(self.verify_url, data=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"reCAPTCHA verification error: {e}")
            return VerificationResult.failed([REQUEST_FAILED])

        if not 200 <= response.status_code < 300:
            logger.error(f"reCAPTCHA API returned status {response.status_code}")
            return VerificationResult.failed([REQUEST_FAILED])

        try:
            body = response.json()
        except ValueError:
            logger.error("reCAPTCHA API returned a body that is not JSON")
            return VerificationResult.failed([REQUEST_FAILED])

        if not isinstance(body, dict):
            logger.error(f"reCAPTCHA API returned unexpected payload type {type(body).__name__}")
            return VerificationResult.failed([REQUEST_FAILED])

        if body.get('success') is True:
            return VerificationResult.ok()

        codes = body.get('error-codes') or []
        if not isinstance(codes, list):
            codes = [str(codes)]
        return VerificationResult.failed([str(code) for code in codes])

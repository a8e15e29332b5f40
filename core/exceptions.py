# core/exceptions.py
"""
Exception hierarchy for the contact form backend
"""

from enum import Enum


class ContactFormError(Exception):
    """Base exception for contact form processing"""
    pass


class ConfigurationError(ContactFormError):
    """Process configuration is missing or unusable"""
    pass


class DeliveryErrorKind(Enum):
    """Why an email dispatch failed"""
    NOT_CONFIGURED = "not_configured"
    AUTHENTICATION_FAILED = "authentication_failed"
    TRANSPORT_UNAVAILABLE = "transport_unavailable"
    SEND_FAILED = "send_failed"


class DeliveryError(ContactFormError):
    """Email delivery failed; never retried automatically"""

    def __init__(self, kind: DeliveryErrorKind, message: str, recipient: str = None):
        super().__init__(message)
        self.kind = kind
        self.recipient = recipient

    def __str__(self):
        base = super().__str__()
        if self.recipient:
            return f"[{self.kind.value}] {base} (recipient: {self.recipient})"
        return f"[{self.kind.value}] {base}"

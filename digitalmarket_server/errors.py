# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Errors raised by the password reset and account services.

Each error carries a stable ``code`` for clients, a message key for the
localized text, and the HTTP status the API answers with. The application
installs one exception handler (see ``main``) that turns them into
``{"detail": ..., "code": ...}`` responses.
"""

from fastapi import status

from digitalmarket_server.i18n import translate


class ResetServiceError(Exception):
    """Base class for errors surfaced to users."""

    code = "error"
    message_key = "storage_unavailable"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message_key: str | None = None, **params):
        if message_key is not None:
            self.message_key = message_key
        self.params = params
        super().__init__(self.message_key)

    def message(self, lang: str | None = None) -> str:
        return translate(self.message_key, lang, **self.params)


class ValidationError(ResetServiceError):
    """Bad input; raised before any store or identity access."""

    code = "validation_error"
    message_key = "missing_fields"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidOrExpiredCodeError(ResetServiceError):
    """No live code matches. Wrong and expired codes are deliberately indistinguishable."""

    code = "invalid_or_expired_code"
    message_key = "invalid_or_expired_code"
    status_code = status.HTTP_400_BAD_REQUEST


class CredentialUpdateError(ResetServiceError):
    """The identity store refused the password change. The code stays usable."""

    code = "credential_update_failed"
    message_key = "credential_update_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConfigurationError(ResetServiceError):
    code = "configuration_error"
    message_key = "email_not_configured"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PersistenceError(ResetServiceError):
    code = "persistence_error"
    message_key = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class DeliveryError(ResetServiceError):
    """Email was not delivered. A stored code is not rolled back."""

    code = "delivery_failed"
    message_key = "delivery_failed"
    status_code = status.HTTP_502_BAD_GATEWAY


class AuthenticationError(ResetServiceError):
    code = "invalid_credentials"
    message_key = "invalid_credentials"
    status_code = status.HTTP_401_UNAUTHORIZED


class ConflictError(ResetServiceError):
    code = "conflict"
    message_key = "email_taken"
    status_code = status.HTTP_400_BAD_REQUEST

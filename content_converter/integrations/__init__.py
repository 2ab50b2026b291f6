"""Integrations layer - clients for external services."""

from content_converter.integrations.email import (
    EmailAuthenticationError,
    EmailClient,
    EmailConnectionError,
    EmailError,
    EmailResult,
    EmailTimeoutError,
    get_email_client,
)

__all__ = [
    "EmailAuthenticationError",
    "EmailClient",
    "EmailConnectionError",
    "EmailError",
    "EmailResult",
    "EmailTimeoutError",
    "get_email_client",
]

"""SMTP delivery of conversion reports.

The client builds a text/HTML alternative message and hands it to
aiosmtplib. Transient failures (timeouts, dropped or refused connections)
are retried with exponential backoff; authentication failures end the send
immediately since retrying cannot fix them.

ERROR LOGGING REQUIREMENTS:
- Log every delivery attempt with recipient and attempt number
- Log timeouts and connection errors at WARNING, auth and protocol errors at ERROR
- Never log credentials
"""

import asyncio
import time
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any

import aiosmtplib

from content_converter.core.config import get_settings
from content_converter.core.logging import get_logger

logger = get_logger(__name__)

# Recipients and subjects are truncated in log records
_LOG_FIELD_LIMIT = 50


@dataclass
class EmailResult:
    """Outcome of delivering one message to one recipient."""

    success: bool
    recipient: str
    subject: str
    error: str | None = None
    duration_ms: float = 0.0
    retry_attempt: int = 0


class EmailError(Exception):
    """Base exception for email delivery errors."""


class EmailConnectionError(EmailError):
    """The SMTP server refused or dropped the connection."""


class EmailTimeoutError(EmailError):
    """The SMTP exchange did not finish within the timeout."""


class EmailAuthenticationError(EmailError):
    """The SMTP server rejected the credentials."""


@dataclass(frozen=True)
class SmtpConfig:
    """Connection details for one SMTP relay."""

    host: str | None
    port: int
    username: str | None
    password: str | None
    starttls: bool
    implicit_tls: bool
    timeout: float
    sender_address: str | None
    sender_name: str

    @property
    def complete(self) -> bool:
        return bool(self.host and self.sender_address)

    @property
    def sender(self) -> str:
        return formataddr((self.sender_name, self.sender_address or ""))


class EmailClient:
    """Sends conversion reports through an SMTP relay."""

    def __init__(
        self,
        smtp_host: str | None = None,
        smtp_port: int | None = None,
        smtp_username: str | None = None,
        smtp_password: str | None = None,
        use_tls: bool | None = None,
        use_ssl: bool | None = None,
        timeout: float | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
    ) -> None:
        settings = get_settings()
        self.config = SmtpConfig(
            host=smtp_host or settings.smtp_host,
            port=smtp_port or settings.smtp_port,
            username=smtp_username or settings.smtp_username,
            password=smtp_password or settings.smtp_password,
            starttls=settings.smtp_use_tls if use_tls is None else use_tls,
            implicit_tls=settings.smtp_use_ssl if use_ssl is None else use_ssl,
            timeout=timeout or settings.smtp_timeout,
            sender_address=from_email or settings.smtp_from_email,
            sender_name=from_name or settings.smtp_from_name,
        )

    @property
    def available(self) -> bool:
        """True when a relay host and a sender address are configured."""
        return self.config.complete

    def _build_message(
        self, recipient: str, subject: str, body_html: str, body_text: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.config.sender
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body_text)
        message.add_alternative(body_html, subtype="html")
        return message

    async def _deliver(self, message: EmailMessage) -> None:
        config = self.config
        async with aiosmtplib.SMTP(
            hostname=config.host,
            port=config.port,
            use_tls=config.implicit_tls,
            start_tls=config.starttls and not config.implicit_tls,
            timeout=config.timeout,
        ) as smtp:
            if config.username and config.password:
                await smtp.login(config.username, config.password)
            await smtp.send_message(message)

    def _classify_failure(self, error: Exception) -> EmailError:
        """Map an aiosmtplib/OS error onto the EmailError family."""
        if isinstance(error, aiosmtplib.SMTPAuthenticationError):
            return EmailAuthenticationError(f"Authentication failed: {error}")
        if isinstance(error, (TimeoutError, aiosmtplib.SMTPTimeoutError)):
            return EmailTimeoutError(f"Timeout after {self.config.timeout}s")
        if isinstance(
            error,
            (aiosmtplib.SMTPConnectError, aiosmtplib.SMTPServerDisconnected, OSError),
        ):
            return EmailConnectionError(f"Connection error: {error}")
        return EmailError(f"{type(error).__name__}: {error}")

    async def send(
        self,
        recipient: str,
        subject: str,
        body_html: str,
        body_text: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ) -> EmailResult:
        """Deliver one message, retrying transient failures.

        The wait before attempt n (counting from 0) is retry_delay * 2**(n-1).

        Returns:
            EmailResult; failures are reported, never raised
        """
        log_extra: dict[str, Any] = {
            "recipient": recipient[:_LOG_FIELD_LIMIT],
            "subject": subject[:_LOG_FIELD_LIMIT],
        }

        if not self.available:
            logger.warning("Email relay not configured", extra=log_extra)
            return EmailResult(
                success=False,
                recipient=recipient,
                subject=subject,
                error="Email client not configured (missing SMTP settings)",
            )

        message = self._build_message(recipient, subject, body_html, body_text)
        start_time = time.monotonic()
        failure: EmailError | None = None
        attempt = 0

        for attempt in range(max_retries):
            if attempt:
                delay = retry_delay * (2 ** (attempt - 1))
                logger.info(
                    f"Retrying email delivery in {delay}s",
                    extra={**log_extra, "retry_attempt": attempt},
                )
                await asyncio.sleep(delay)

            logger.debug(
                "Delivering email", extra={**log_extra, "retry_attempt": attempt}
            )
            try:
                await self._deliver(message)
            except (aiosmtplib.SMTPException, OSError) as e:
                failure = self._classify_failure(e)
                failure_extra = {
                    **log_extra,
                    "retry_attempt": attempt,
                    "error_type": type(failure).__name__,
                    "error_message": str(failure),
                }
                if isinstance(failure, (EmailTimeoutError, EmailConnectionError)):
                    logger.warning("Email delivery attempt failed", extra=failure_extra)
                    continue
                logger.error("Email delivery failed", extra=failure_extra)
                break
            else:
                duration_ms = (time.monotonic() - start_time) * 1000
                logger.info(
                    "Email sent",
                    extra={
                        **log_extra,
                        "retry_attempt": attempt,
                        "duration_ms": round(duration_ms, 2),
                    },
                )
                return EmailResult(
                    success=True,
                    recipient=recipient,
                    subject=subject,
                    duration_ms=duration_ms,
                    retry_attempt=attempt,
                )

        return EmailResult(
            success=False,
            recipient=recipient,
            subject=subject,
            error=str(failure) if failure else "Send failed after all retries",
            duration_ms=(time.monotonic() - start_time) * 1000,
            retry_attempt=attempt,
        )


_email_client: EmailClient | None = None


def get_email_client() -> EmailClient:
    """Get or create the shared email client."""
    global _email_client
    if _email_client is None:
        _email_client = EmailClient()
        logger.info(
            "Email client created",
            extra={"configured": _email_client.available},
        )
    return _email_client

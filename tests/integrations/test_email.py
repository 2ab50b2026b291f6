"""Tests for the SMTP email client.

Tests cover:
- Unconfigured client never connects
- Successful send
- Retry with backoff on connection errors and timeouts
- No retry on authentication failures
"""

from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from content_converter.integrations.email import EmailClient


@pytest.fixture
def client() -> EmailClient:
    return EmailClient(
        smtp_host="smtp.example.com",
        smtp_port=587,
        from_email="converter@example.com",
        from_name="Converter",
    )


@pytest.fixture
def no_sleep():
    with patch("content_converter.integrations.email.asyncio.sleep", AsyncMock()) as sleep:
        yield sleep


class TestEmailClient:
    """Tests for EmailClient.send."""

    async def test_unconfigured_client(self) -> None:
        client = EmailClient(smtp_host="", from_email="")
        assert client.available is False

        result = await client.send("a@example.com", "s", "<p>h</p>", "t")

        assert result.success is False
        assert "not configured" in (result.error or "")

    async def test_build_message(self, client: EmailClient) -> None:
        message = client._build_message("a@example.com", "Subject", "<p>h</p>", "t")

        assert message["To"] == "a@example.com"
        assert message["From"] == "Converter <converter@example.com>"
        assert message["Subject"] == "Subject"
        assert len(message.get_payload()) == 2

    async def test_send_success(self, client: EmailClient) -> None:
        with patch.object(client, "_deliver", AsyncMock()) as deliver:
            result = await client.send("a@example.com", "s", "<p>h</p>", "t")

        assert result.success is True
        assert result.retry_attempt == 0
        deliver.assert_awaited_once()

    async def test_retries_connection_errors(
        self, client: EmailClient, no_sleep: AsyncMock
    ) -> None:
        deliver = AsyncMock(
            side_effect=[aiosmtplib.SMTPConnectError("refused"), None]
        )
        with patch.object(client, "_deliver", deliver):
            result = await client.send("a@example.com", "s", "<p>h</p>", "t")

        assert result.success is True
        assert result.retry_attempt == 1
        no_sleep.assert_awaited_once_with(1.0)

    async def test_gives_up_after_max_retries(
        self, client: EmailClient, no_sleep: AsyncMock
    ) -> None:
        deliver = AsyncMock(side_effect=TimeoutError())
        with patch.object(client, "_deliver", deliver):
            result = await client.send(
                "a@example.com", "s", "<p>h</p>", "t", max_retries=3, retry_delay=0.5
            )

        assert result.success is False
        assert "Timeout" in (result.error or "")
        assert deliver.await_count == 3
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.5, 1.0]

    async def test_auth_failure_not_retried(
        self, client: EmailClient, no_sleep: AsyncMock
    ) -> None:
        deliver = AsyncMock(
            side_effect=aiosmtplib.SMTPAuthenticationError(535, "bad credentials")
        )
        with patch.object(client, "_deliver", deliver):
            result = await client.send("a@example.com", "s", "<p>h</p>", "t")

        assert result.success is False
        assert "Authentication failed" in (result.error or "")
        deliver.assert_awaited_once()
        no_sleep.assert_not_awaited()

    async def test_generic_smtp_error_not_retried(
        self, client: EmailClient, no_sleep: AsyncMock
    ) -> None:
        deliver = AsyncMock(side_effect=aiosmtplib.SMTPDataError(554, "rejected"))
        with patch.object(client, "_deliver", deliver):
            result = await client.send("a@example.com", "s", "<p>h</p>", "t")

        assert result.success is False
        assert "SMTPDataError" in (result.error or "")
        no_sleep.assert_not_awaited()

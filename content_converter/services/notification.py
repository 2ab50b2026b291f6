"""ConversionNotificationService: emails the result list of a conversion run.

Delivery is fire-and-forget from the run's point of view: failures are
logged and reported in the returned EmailResults, never raised.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log delivery failures with recipient and error
- Add timing logs for operations >1 second
"""

import html
import time

from content_converter.core.logging import get_logger
from content_converter.integrations.email import EmailClient, EmailResult, get_email_client
from content_converter.services.results import BatchRunSummary, ConversionResult

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

SUBJECT_TEMPLATE = "{kind} conversion: {converted} converted, {failed} failed{chunks}"


class ConversionNotificationService:
    """Renders and sends the result email of a conversion run."""

    def __init__(self, email_client: EmailClient | None = None) -> None:
        """Initialize service.

        Args:
            email_client: Optional email client (defaults to global)
        """
        self._email_client = email_client or get_email_client()

    def render_subject(self, summary: BatchRunSummary) -> str:
        chunks = (
            f", {len(summary.failed_chunks)} chunk(s) aborted"
            if summary.failed_chunks
            else ""
        )
        return SUBJECT_TEMPLATE.format(
            kind=summary.kind.capitalize(),
            converted=summary.converted,
            failed=summary.failed,
            chunks=chunks,
        )

    def render_text(self, summary: BatchRunSummary) -> str:
        lines = [
            f"Records selected: {summary.total_records}",
            f"Converted: {summary.converted}",
            f"Failed: {summary.failed}",
            f"Chunks: {summary.chunk_count}",
        ]
        for chunk in summary.failed_chunks:
            lines.append(
                f"Chunk {chunk.chunk_index} aborted ({len(chunk.record_ids)} records): "
                f"{chunk.error}"
            )
        lines.append("")
        lines.extend(_result_line(result) for result in _sorted(summary.results))
        return "\n".join(lines)

    def render_html(self, summary: BatchRunSummary) -> str:
        rows = "".join(
            "<tr>"
            f"<td>{'Success' if result.success else 'Failure'}</td>"
            f"<td>{html.escape(result.source_record_id)}</td>"
            f"<td>{html.escape(result.new_content_id or '')}</td>"
            f"<td>{html.escape(result.message)}</td>"
            "</tr>"
            for result in _sorted(summary.results)
        )
        aborted = "".join(
            f"<li>Chunk {chunk.chunk_index} ({len(chunk.record_ids)} records): "
            f"{html.escape(chunk.error)}</li>"
            for chunk in summary.failed_chunks
        )
        return (
            f"<p>Records selected: {summary.total_records}<br>"
            f"Converted: {summary.converted}<br>"
            f"Failed: {summary.failed}<br>"
            f"Chunks: {summary.chunk_count}</p>"
            + (f"<p>Aborted chunks:</p><ul>{aborted}</ul>" if aborted else "")
            + "<table><tr><th>Status</th><th>Source record</th>"
            "<th>New file</th><th>Message</th></tr>"
            f"{rows}</table>"
        )

    async def send_results(
        self,
        summary: BatchRunSummary,
        addresses: list[str] | tuple[str, ...],
    ) -> list[EmailResult]:
        """Send the run summary to every address.

        Returns:
            One EmailResult per address
        """
        if not addresses:
            return []

        start_time = time.monotonic()
        subject = self.render_subject(summary)
        body_text = self.render_text(summary)
        body_html = self.render_html(summary)
        logger.debug(
            "Sending conversion results",
            extra={
                "kind": summary.kind,
                "recipient_count": len(addresses),
                "result_count": len(summary.results),
            },
        )

        sent: list[EmailResult] = []
        for address in addresses:
            result = await self._email_client.send(
                recipient=address,
                subject=subject,
                body_html=body_html,
                body_text=body_text,
            )
            if not result.success:
                logger.warning(
                    "Conversion result email not delivered",
                    extra={"recipient": address[:50], "error": result.error},
                )
            sent.append(result)

        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow conversion result notification",
                extra={
                    "duration_ms": round(duration_ms, 2),
                    "threshold_ms": SLOW_OPERATION_THRESHOLD_MS,
                },
            )
        return sent


def _sorted(results: list[ConversionResult]) -> list[ConversionResult]:
    return sorted(results, key=lambda r: r.source_record_id)


def _result_line(result: ConversionResult) -> str:
    status = "SUCCESS" if result.success else "FAILURE"
    line = f"{status} {result.source_record_id}"
    if result.new_content_id:
        line += f" -> {result.new_content_id}"
    if result.message:
        line += f": {result.message}"
    return line

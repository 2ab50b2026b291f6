"""Per-record conversion outcomes and their accumulation across pipeline phases."""

from collections.abc import Iterator
from dataclasses import dataclass, field


@dataclass
class ConversionResult:
    """Outcome of converting one legacy record.

    A successful conversion can still carry a message, e.g. when the file was
    created but could not be shared.
    """

    source_record_id: str
    success: bool = False
    new_content_id: str | None = None
    content_document_id: str | None = None
    message: str = ""

    def add_message(self, message: str) -> None:
        """Append a message, keeping earlier ones."""
        self.message = f"{self.message} {message}" if self.message else message


class ConversionResultSet:
    """Ordered map of source record id to ConversionResult for one chunk.

    Seeded by eligibility rejections, populated by materialized successes and
    annotated in place by later phases. Holds at most one result per id.
    """

    def __init__(self) -> None:
        self._results: dict[str, ConversionResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, source_record_id: object) -> bool:
        return source_record_id in self._results

    def __iter__(self) -> Iterator[ConversionResult]:
        return iter(self._results.values())

    def _get_or_create(self, source_record_id: str) -> ConversionResult:
        result = self._results.get(source_record_id)
        if result is None:
            result = ConversionResult(source_record_id=source_record_id)
            self._results[source_record_id] = result
        return result

    def record_failure(self, source_record_id: str, message: str) -> ConversionResult:
        """Record a record that will not be converted."""
        result = self._get_or_create(source_record_id)
        result.success = False
        result.add_message(message)
        return result

    def record_success(
        self, source_record_id: str, new_content_id: str
    ) -> ConversionResult:
        """Record a record whose content version was created."""
        result = self._get_or_create(source_record_id)
        result.success = True
        result.new_content_id = new_content_id
        return result

    def annotate(self, source_record_id: str, message: str) -> ConversionResult:
        """Append a message to an existing result.

        Raises:
            KeyError: If no result exists for the id
        """
        result = self._results[source_record_id]
        result.add_message(message)
        return result

    def get(self, source_record_id: str) -> ConversionResult | None:
        return self._results.get(source_record_id)

    def results(self) -> list[ConversionResult]:
        """All results in insertion order."""
        return list(self._results.values())

    def sorted_results(self) -> list[ConversionResult]:
        """All results sorted by source record id."""
        return sorted(self._results.values(), key=lambda r: r.source_record_id)

    def succeeded_ids(self) -> list[str]:
        return [r.source_record_id for r in self._results.values() if r.success]

    def failed_ids(self) -> list[str]:
        return [r.source_record_id for r in self._results.values() if not r.success]


@dataclass
class FailedChunk:
    """A chunk whose invocation aborted on a store failure. Nothing in it was converted."""

    chunk_index: int
    record_ids: list[str]
    error: str


@dataclass
class BatchRunSummary:
    """Outcome of a whole conversion run across all chunks."""

    kind: str
    total_records: int = 0
    chunk_count: int = 0
    results: list[ConversionResult] = field(default_factory=list)
    failed_chunks: list[FailedChunk] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def converted(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return sum(1 for result in self.results if not result.success)

    @property
    def succeeded(self) -> bool:
        """True when no chunk aborted."""
        return not self.failed_chunks

    def counts(self) -> dict[str, int]:
        return {
            "total_records": self.total_records,
            "converted": self.converted,
            "failed": self.failed,
            "chunk_count": self.chunk_count,
            "failed_chunks": len(self.failed_chunks),
        }

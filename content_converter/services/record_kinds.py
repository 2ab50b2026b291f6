"""Record kind strategies: what differs between converting notes and attachments.

The pipeline is generic; a strategy tells it which table to read, how to
build the new content version from a record, and whether inbound email
routing applies.
"""

from abc import ABC, abstractmethod

from content_converter.models.legacy_attachment import LegacyAttachment
from content_converter.models.legacy_note import LegacyNote
from content_converter.repositories.content import NewVersion
from content_converter.repositories.source_records import SourceRecord
from content_converter.schemas.conversion import ConversionKind
from content_converter.utils.rich_text import escape_note_body

NOTE_FILE_EXTENSION = "snote"


class RecordKindStrategy(ABC):
    """Per-kind behavior of the conversion pipeline."""

    kind: ConversionKind
    model: type[LegacyNote] | type[LegacyAttachment]
    routes_inbound_messages: bool = False

    @abstractmethod
    def build_version(self, record: SourceRecord) -> NewVersion:
        """Field values of the content version created from the record."""

    @staticmethod
    def provenance(record: SourceRecord) -> dict[str, str]:
        return {
            "original_record_id": str(record.id),
            "original_record_parent_id": str(record.parent_id),
            "original_record_owner_id": str(record.owner_id),
        }


class NoteKind(RecordKindStrategy):
    """Plain-text notes become rich-text note files."""

    kind = ConversionKind.NOTES
    model = LegacyNote

    def build_version(self, record: SourceRecord) -> NewVersion:
        assert isinstance(record, LegacyNote)
        return NewVersion(
            title=record.title,
            path_on_client=f"{record.title}.{NOTE_FILE_EXTENSION}",
            file_extension=NOTE_FILE_EXTENSION,
            version_data=escape_note_body(record.body).encode("utf-8"),
            **self.provenance(record),
        )


class AttachmentKind(RecordKindStrategy):
    """Binary attachments are copied verbatim into files."""

    kind = ConversionKind.ATTACHMENTS
    model = LegacyAttachment
    routes_inbound_messages = True

    def build_version(self, record: SourceRecord) -> NewVersion:
        assert isinstance(record, LegacyAttachment)
        return NewVersion(
            title=record.name,
            path_on_client=f"/{record.name}",
            file_extension=file_extension(record.name),
            description=record.description,
            version_data=record.body,
            **self.provenance(record),
        )


def file_extension(filename: str) -> str | None:
    """Lower-cased extension of a file name, None when it has none."""
    stem, dot, extension = filename.rpartition(".")
    if not dot or not stem or not extension:
        return None
    return extension.lower()


_STRATEGIES: dict[ConversionKind, RecordKindStrategy] = {
    ConversionKind.NOTES: NoteKind(),
    ConversionKind.ATTACHMENTS: AttachmentKind(),
}


def get_record_kind(kind: ConversionKind | str) -> RecordKindStrategy:
    """Strategy for a conversion kind.

    Raises:
        ValueError: If the kind is unknown
    """
    return _STRATEGIES[ConversionKind(kind)]

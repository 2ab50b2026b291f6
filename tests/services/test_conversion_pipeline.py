"""Tests for ConversionPipeline against an in-memory database.

Tests cover:
- Exactly one result per input record
- Records whose share target cannot be shared with, with and without override
- Private records and share_private
- Owner restored to the source owner, never the running principal
- Owners, links and messages follow each record whatever order versions are re-read in
- Deletion of exactly the converted records; re-running is a no-op
- Inbound email attachments routed to the case
- Note payload escaping and provenance fields
- Store failures propagate
"""

from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from content_converter.models import (
    ContentDocument,
    ContentVersion,
    LegacyAttachment,
    LegacyNote,
)
from content_converter.repositories.content import ContentRepository
from content_converter.schemas.conversion import ConversionKind, ConversionOptions
from content_converter.services.conversion import (
    ConversionPipeline,
    ConversionValidationError,
)
from content_converter.services.eligibility import OVERRIDE_FLAG


async def _versions(session: AsyncSession, results: list) -> dict[str, ContentVersion]:
    """Re-read created versions keyed by source record id."""
    ids = [r.new_content_id for r in results if r.new_content_id]
    versions = await ContentRepository(session).get_versions_by_ids(ids)
    return {v.original_record_id: v for v in versions}


async def _links(session: AsyncSession, results: list) -> list:
    doc_ids = [r.content_document_id for r in results if r.content_document_id]
    return await ContentRepository(session).get_links_for_documents(doc_ids)


def _by_id(results: list) -> dict[str, Any]:
    return {r.source_record_id: r for r in results}


# ---------------------------------------------------------------------------
# Basic conversion
# ---------------------------------------------------------------------------


class TestConversionBasics:
    """One result per record, content created and linked."""

    async def test_empty_input(self, db_session: AsyncSession) -> None:
        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        assert await pipeline.convert([]) == []

    async def test_unknown_kind_rejected(self, db_session: AsyncSession) -> None:
        with pytest.raises(ConversionValidationError) as exc_info:
            ConversionPipeline(db_session, "events")
        assert exc_info.value.field_name == "kind"

    async def test_note_converted_and_shared(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(
            sharing_world["account"], sharing_world["owner"], title="Call", body="a\nb"
        )

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        [result] = await pipeline.convert_ids([note.id])

        assert result.success is True
        assert result.source_record_id == note.id
        assert result.new_content_id is not None
        assert result.content_document_id is not None
        assert result.message == ""

        version = (await _versions(db_session, [result]))[note.id]
        assert version.id == result.new_content_id
        assert version.path_on_client == "Call.snote"
        assert version.file_extension == "snote"
        assert version.version_data == b"a<br>b"
        assert version.original_record_parent_id == sharing_world["account"].id
        assert version.original_record_owner_id == sharing_world["owner"].id
        assert version.document.latest_published_version_id == version.id

        [link] = await _links(db_session, [result])
        assert link.linked_entity_id == sharing_world["account"].id
        assert link.share_type == "V"
        assert link.visibility == "AllUsers"

    async def test_attachment_payload_copied(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        attachment = await factory.attachment(
            sharing_world["account"],
            sharing_world["owner"],
            name="scan.PNG",
            body=b"\x89PNG\r\n",
            description="Scan",
        )

        pipeline = ConversionPipeline(db_session, ConversionKind.ATTACHMENTS)
        [result] = await pipeline.convert_ids([attachment.id])

        version = (await _versions(db_session, [result]))[attachment.id]
        assert version.version_data == b"\x89PNG\r\n"
        assert version.path_on_client == "/scan.PNG"
        assert version.file_extension == "png"
        assert version.description == "Scan"

    async def test_one_result_per_record(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        owner = sharing_world["owner"]
        notes = [
            await factory.note(sharing_world["account"], owner),
            await factory.note(sharing_world["restricted"], owner),
            await factory.note(sharing_world["case"], owner, is_private=True),
        ]

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        results = await pipeline.convert_ids([n.id for n in notes])

        assert sorted(r.source_record_id for r in results) == sorted(n.id for n in notes)

    async def test_duplicate_records_converted_once(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["account"], sharing_world["owner"])

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        results = await pipeline.convert([note, note])

        assert len(results) == 1
        count = await db_session.execute(select(ContentDocument))
        assert len(count.scalars().all()) == 1

    async def test_custom_share_type_and_visibility(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["account"], sharing_world["owner"])
        options = ConversionOptions(share_type="C", visibility="InternalUsers")

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        results = await pipeline.convert_ids([note.id])

        [link] = await _links(db_session, results)
        assert link.share_type == "C"
        assert link.visibility == "InternalUsers"


# ---------------------------------------------------------------------------
# Sharing capability
# ---------------------------------------------------------------------------


class TestSharingCapability:
    """Records whose share target type does not support sharing."""

    async def test_rejected_without_override(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["restricted"], sharing_world["owner"])

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        [result] = await pipeline.convert_ids([note.id])

        assert result.success is False
        assert result.new_content_id is None
        assert "Restricted" in result.message
        assert OVERRIDE_FLAG in result.message
        versions = await db_session.execute(select(ContentVersion))
        assert versions.scalars().all() == []

    async def test_converted_with_override_but_not_shared(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["restricted"], sharing_world["owner"])
        options = ConversionOptions(convert_if_sharing_capability_disabled=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        [result] = await pipeline.convert_ids([note.id])

        assert result.success is True
        assert result.new_content_id is not None
        assert "does not support sharing" in result.message
        assert await _links(db_session, [result]) == []

    async def test_rejected_record_never_deleted(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["restricted"], sharing_world["owner"])
        options = ConversionOptions(delete_source_upon_conversion=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        await pipeline.convert_ids([note.id])

        remaining = await db_session.execute(select(LegacyNote.id))
        assert remaining.scalars().all() == [note.id]


# ---------------------------------------------------------------------------
# Private records
# ---------------------------------------------------------------------------


class TestPrivateRecords:
    """Private records are only shared when share_private is set."""

    async def test_private_not_shared_by_default(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(
            sharing_world["account"], sharing_world["owner"], is_private=True
        )

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES)
        [result] = await pipeline.convert_ids([note.id])

        assert result.success is True
        assert result.new_content_id is not None
        assert "private" in result.message
        assert await _links(db_session, [result]) == []

    async def test_private_shared_when_allowed(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(
            sharing_world["account"], sharing_world["owner"], is_private=True
        )
        options = ConversionOptions(share_private=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        [result] = await pipeline.convert_ids([note.id])

        assert result.message == ""
        links = await _links(db_session, [result])
        assert len(links) == 1
        assert links[0].linked_entity_id == sharing_world["account"].id


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------


class TestOwnership:
    """Owner of the created file is the source record's owner."""

    async def test_owner_restored(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        owner = sharing_world["owner"]
        other_owner = await factory.principal(name="Other")
        notes = [
            await factory.note(sharing_world["account"], owner),
            await factory.note(sharing_world["case"], other_owner),
        ]
        options = ConversionOptions(run_as_principal_id=sharing_world["runner"].id)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        results = await pipeline.convert_ids([n.id for n in notes])

        versions = await _versions(db_session, results)
        assert versions[notes[0].id].owner_id == owner.id
        assert versions[notes[1].id].owner_id == other_owner.id
        assert all(
            v.owner_id != sharing_world["runner"].id for v in versions.values()
        )

    async def test_owner_restored_when_not_shared(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(
            sharing_world["account"], sharing_world["owner"], is_private=True
        )
        options = ConversionOptions(run_as_principal_id=sharing_world["runner"].id)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        results = await pipeline.convert_ids([note.id])

        versions = await _versions(db_session, results)
        assert versions[note.id].owner_id == sharing_world["owner"].id

    async def test_requery_order_does_not_matter(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        first_owner = sharing_world["owner"]
        second_owner = await factory.principal(name="Second")
        shared = await factory.note(sharing_world["account"], first_owner)
        private = await factory.note(sharing_world["case"], second_owner, is_private=True)
        restricted = await factory.note(sharing_world["restricted"], second_owner)
        options = ConversionOptions(convert_if_sharing_capability_disabled=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        requery = pipeline.content_repo.get_versions_by_ids

        async def reversed_requery(version_ids: list[str]) -> list[ContentVersion]:
            return list(reversed(await requery(version_ids)))

        with patch.object(
            pipeline.content_repo, "get_versions_by_ids", side_effect=reversed_requery
        ):
            results = await pipeline.convert_ids([shared.id, private.id, restricted.id])

        by_id = _by_id(results)
        assert all(r.success for r in results)
        assert by_id[shared.id].message == ""
        assert "private" in by_id[private.id].message
        assert "does not support sharing" in by_id[restricted.id].message

        versions = await _versions(db_session, results)
        assert versions[shared.id].owner_id == first_owner.id
        assert versions[private.id].owner_id == second_owner.id
        assert versions[restricted.id].owner_id == second_owner.id

        [link] = await _links(db_session, results)
        assert link.linked_entity_id == sharing_world["account"].id
        assert link.content_document_id == by_id[shared.id].content_document_id


# ---------------------------------------------------------------------------
# Cleanup
# ---------------------------------------------------------------------------


class TestCleanup:
    """Deletion of converted source records."""

    async def test_records_kept_by_default(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["account"], sharing_world["owner"])

        await ConversionPipeline(db_session, ConversionKind.NOTES).convert_ids([note.id])

        remaining = await db_session.execute(select(LegacyNote.id))
        assert remaining.scalars().all() == [note.id]

    async def test_deletes_exactly_converted_records(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        owner = sharing_world["owner"]
        shared = await factory.note(sharing_world["account"], owner)
        private = await factory.note(sharing_world["case"], owner, is_private=True)
        rejected = await factory.note(sharing_world["restricted"], owner)
        options = ConversionOptions(delete_source_upon_conversion=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        results = await pipeline.convert_ids([shared.id, private.id, rejected.id])

        succeeded = {r.source_record_id for r in results if r.success}
        assert succeeded == {shared.id, private.id}
        remaining = await db_session.execute(select(LegacyNote.id))
        assert remaining.scalars().all() == [rejected.id]

    async def test_provenance_survives_deletion(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["account"], sharing_world["owner"])
        options = ConversionOptions(delete_source_upon_conversion=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        results = await pipeline.convert_ids([note.id])

        version = (await _versions(db_session, results))[note.id]
        assert version.original_record_id == note.id

    async def test_rerun_on_deleted_records_is_noop(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["account"], sharing_world["owner"])
        options = ConversionOptions(delete_source_upon_conversion=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        await pipeline.convert_ids([note.id])
        second = await ConversionPipeline(
            db_session, ConversionKind.NOTES, options
        ).convert_ids([note.id])

        assert second == []
        versions = await db_session.execute(select(ContentVersion))
        assert len(versions.scalars().all()) == 1


# ---------------------------------------------------------------------------
# Inbound email routing
# ---------------------------------------------------------------------------


class TestInboundRouting:
    """Attachments of inbound email messages."""

    async def test_routed_to_case_when_enabled(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        attachment = await factory.attachment(
            sharing_world["message"], sharing_world["owner"]
        )
        options = ConversionOptions(route_inbound_message_attachments_to_case=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.ATTACHMENTS, options)
        [result] = await pipeline.convert_ids([attachment.id])

        assert result.success is True
        [link] = await _links(db_session, [result])
        assert link.linked_entity_id == sharing_world["case"].id

    async def test_rejected_without_routing(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        """Email messages do not support sharing themselves."""
        attachment = await factory.attachment(
            sharing_world["message"], sharing_world["owner"]
        )

        pipeline = ConversionPipeline(db_session, ConversionKind.ATTACHMENTS)
        [result] = await pipeline.convert_ids([attachment.id])

        assert result.success is False
        assert "EmailMessage" in result.message

    async def test_notes_never_routed(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        note = await factory.note(sharing_world["message"], sharing_world["owner"])
        options = ConversionOptions(route_inbound_message_attachments_to_case=True)

        pipeline = ConversionPipeline(db_session, ConversionKind.NOTES, options)
        [result] = await pipeline.convert_ids([note.id])

        assert result.success is False
        assert "EmailMessage" in result.message


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class TestStoreFailures:
    """Store errors are not turned into results."""

    async def test_materialize_failure_propagates(
        self, db_session: AsyncSession, factory: Any, sharing_world: dict[str, Any]
    ) -> None:
        attachment = await factory.attachment(
            sharing_world["account"], sharing_world["owner"]
        )
        pipeline = ConversionPipeline(db_session, ConversionKind.ATTACHMENTS)
        pipeline.content_repo.create_versions = AsyncMock(
            side_effect=OperationalError("INSERT", {}, Exception("disk full"))
        )

        with pytest.raises(OperationalError):
            await pipeline.convert_ids([attachment.id])

        remaining = await db_session.execute(select(LegacyAttachment.id))
        assert remaining.scalars().all() == [attachment.id]

"""Create principals, entities, legacy record and content tables.

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _id_column() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=False),
        server_default=sa.text("gen_random_uuid()"),
        nullable=False,
    )


def _timestamp_column(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def _legacy_columns() -> list[sa.Column]:
    """Columns shared by legacy_notes and legacy_attachments."""
    return [
        _id_column(),
        sa.Column("parent_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=False), nullable=False),
    ]


def upgrade() -> None:
    """Create conversion tables."""
    op.create_table(
        "principals",
        _id_column(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column(
            "is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False
        ),
        _timestamp_column("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_principals_is_active"), "principals", ["is_active"], unique=False
    )

    op.create_table(
        "entity_types",
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column(
            "sharing_enabled",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("name"),
    )

    op.create_table(
        "entities",
        _id_column(),
        sa.Column("entity_type", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("parent_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column(
            "is_incoming", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column(
            "has_attachment",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        _timestamp_column("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["entity_type"],
            ["entity_types.name"],
            name="fk_entities_entity_type",
        ),
    )
    op.create_index(
        op.f("ix_entities_entity_type"), "entities", ["entity_type"], unique=False
    )
    op.create_index(op.f("ix_entities_parent_id"), "entities", ["parent_id"], unique=False)

    op.create_table(
        "legacy_notes",
        *_legacy_columns(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column(
            "is_private", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["entities.id"],
            name="fk_legacy_notes_parent_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["owner_id"], ["principals.id"], name="fk_legacy_notes_owner_id"
        ),
    )

    op.create_table(
        "legacy_attachments",
        *_legacy_columns(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("body", sa.LargeBinary(), nullable=False),
        sa.Column("content_type", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "is_private", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        _timestamp_column("created_at"),
        _timestamp_column("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["entities.id"],
            name="fk_legacy_attachments_parent_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["owner_id"], ["principals.id"], name="fk_legacy_attachments_owner_id"
        ),
    )

    for table in ("legacy_notes", "legacy_attachments"):
        op.create_index(op.f(f"ix_{table}_parent_id"), table, ["parent_id"], unique=False)
        op.create_index(op.f(f"ix_{table}_owner_id"), table, ["owner_id"], unique=False)

    op.create_table(
        "content_documents",
        _id_column(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column(
            "latest_published_version_id",
            postgresql.UUID(as_uuid=False),
            nullable=True,
        ),
        _timestamp_column("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "content_versions",
        _id_column(),
        sa.Column(
            "content_document_id", postgresql.UUID(as_uuid=False), nullable=False
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("path_on_client", sa.String(length=500), nullable=False),
        sa.Column("file_extension", sa.String(length=40), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("version_data", sa.LargeBinary(), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=False), nullable=True),
        # Provenance, deliberately without foreign keys
        sa.Column("original_record_id", postgresql.UUID(as_uuid=False), nullable=True),
        sa.Column(
            "original_record_parent_id", postgresql.UUID(as_uuid=False), nullable=True
        ),
        sa.Column(
            "original_record_owner_id", postgresql.UUID(as_uuid=False), nullable=True
        ),
        _timestamp_column("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["content_document_id"],
            ["content_documents.id"],
            name="fk_content_versions_content_document_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["owner_id"], ["principals.id"], name="fk_content_versions_owner_id"
        ),
    )
    for column in ("content_document_id", "owner_id", "original_record_id"):
        op.create_index(
            op.f(f"ix_content_versions_{column}"),
            "content_versions",
            [column],
            unique=False,
        )

    op.create_table(
        "content_document_links",
        _id_column(),
        sa.Column(
            "content_document_id", postgresql.UUID(as_uuid=False), nullable=False
        ),
        sa.Column("linked_entity_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("share_type", sa.String(length=1), nullable=False),
        sa.Column("visibility", sa.String(length=20), nullable=False),
        _timestamp_column("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["content_document_id"],
            ["content_documents.id"],
            name="fk_content_document_links_content_document_id",
            ondelete="CASCADE",
        ),
    )
    for column in ("content_document_id", "linked_entity_id"):
        op.create_index(
            op.f(f"ix_content_document_links_{column}"),
            "content_document_links",
            [column],
            unique=False,
        )


def downgrade() -> None:
    """Drop conversion tables."""
    for column in ("linked_entity_id", "content_document_id"):
        op.drop_index(
            op.f(f"ix_content_document_links_{column}"),
            table_name="content_document_links",
        )
    op.drop_table("content_document_links")

    for column in ("original_record_id", "owner_id", "content_document_id"):
        op.drop_index(
            op.f(f"ix_content_versions_{column}"), table_name="content_versions"
        )
    op.drop_table("content_versions")
    op.drop_table("content_documents")

    for table in ("legacy_attachments", "legacy_notes"):
        op.drop_index(op.f(f"ix_{table}_owner_id"), table_name=table)
        op.drop_index(op.f(f"ix_{table}_parent_id"), table_name=table)
        op.drop_table(table)

    op.drop_index(op.f("ix_entities_parent_id"), table_name="entities")
    op.drop_index(op.f("ix_entities_entity_type"), table_name="entities")
    op.drop_table("entities")
    op.drop_table("entity_types")

    op.drop_index(op.f("ix_principals_is_active"), table_name="principals")
    op.drop_table("principals")

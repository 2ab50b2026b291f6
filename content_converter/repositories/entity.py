"""EntityRepository: bulk lookups of parent entities and entity type metadata."""

import time
from collections.abc import Collection

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from content_converter.core.logging import db_logger, get_logger
from content_converter.models.entity import Entity, EntityType

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000


class EntityRepository:
    """Read-only access to entities and entity types."""

    TABLE_NAME = "entities"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session."""
        self.session = session

    async def get_by_ids(self, entity_ids: Collection[str]) -> dict[str, Entity]:
        """Load entities keyed by id. Unknown ids are absent from the map."""
        if not entity_ids:
            return {}

        start_time = time.monotonic()
        try:
            result = await self.session.execute(
                select(Entity).where(Entity.id.in_(list(entity_ids)))
            )
            entities = {str(entity.id): entity for entity in result.scalars().all()}
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Loading {len(entity_ids)} entities",
            )
            raise

        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query="SELECT FROM entities WHERE id IN (...)",
                duration_ms=duration_ms,
                table=self.TABLE_NAME,
            )
        logger.debug(
            "Entities loaded",
            extra={
                "requested": len(entity_ids),
                "found": len(entities),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return entities

    async def get_sharing_flags(self, type_names: Collection[str]) -> dict[str, bool]:
        """Return sharing_enabled per entity type name for the known types."""
        if not type_names:
            return {}

        try:
            result = await self.session.execute(
                select(EntityType.name, EntityType.sharing_enabled).where(
                    EntityType.name.in_(list(type_names))
                )
            )
            return {name: bool(enabled) for name, enabled in result.all()}
        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table="entity_types",
                context=f"Loading sharing flags for {sorted(type_names)}",
            )
            raise

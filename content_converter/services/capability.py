"""SharingCapabilityService: does an entity type accept share links?

The lookup is side-effect free; answers are memoized for the lifetime of the
service, which is one pipeline invocation.
"""

from collections.abc import Collection

from content_converter.core.logging import get_logger
from content_converter.repositories.entity import EntityRepository

logger = get_logger(__name__)


class SharingCapabilityService:
    """Answers the sharing capability of entity types."""

    def __init__(self, entity_repo: EntityRepository) -> None:
        self._entity_repo = entity_repo
        self._cache: dict[str, bool] = {}

    async def supports_sharing(self, type_names: Collection[str]) -> dict[str, bool]:
        """Return the capability of each requested type.

        Types without metadata are reported as not supporting sharing.
        """
        missing = {name for name in type_names if name not in self._cache}
        if missing:
            flags = await self._entity_repo.get_sharing_flags(missing)
            for name in missing:
                self._cache[name] = flags.get(name, False)
            unknown = sorted(name for name in missing if name not in flags)
            if unknown:
                logger.warning(
                    "Entity types without metadata treated as not sharable",
                    extra={"entity_types": unknown},
                )
        return {name: self._cache[name] for name in type_names}


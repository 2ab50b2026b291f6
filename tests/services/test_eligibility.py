"""Tests for sharing capability lookup and the eligibility filter.

Tests cover:
- Capability flags per entity type, unknown types not sharable
- Memoization of capability lookups
- Rejection of records whose share target cannot be shared with
- Override flag lets such records through
"""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy.ext.asyncio import AsyncSession

from content_converter.repositories.entity import EntityRepository
from content_converter.services.capability import SharingCapabilityService
from content_converter.services.eligibility import OVERRIDE_FLAG, EligibilityFilter
from content_converter.services.results import ConversionResultSet
from content_converter.services.routing import ConversionRequest


def _request(record_id: str, target_type: str | None) -> ConversionRequest:
    record = MagicMock()
    record.id = record_id
    record.parent_id = f"parent-{record_id}"
    return ConversionRequest(
        record=record,
        share_target_id=f"parent-{record_id}",
        share_target_type=target_type,
    )


def _capability(flags: dict[str, bool]) -> SharingCapabilityService:
    repo = MagicMock(spec=EntityRepository)
    repo.get_sharing_flags = AsyncMock(
        side_effect=lambda names: {n: flags[n] for n in names if n in flags}
    )
    return SharingCapabilityService(repo)


# ---------------------------------------------------------------------------
# SharingCapabilityService
# ---------------------------------------------------------------------------


class TestSharingCapabilityService:
    """Tests for SharingCapabilityService."""

    async def test_flags_from_database(
        self, db_session: AsyncSession, sharing_world: dict[str, Any]
    ) -> None:
        service = SharingCapabilityService(EntityRepository(db_session))

        flags = await service.supports_sharing(["Account", "Restricted"])

        assert flags == {"Account": True, "Restricted": False}

    async def test_unknown_type_not_sharable(
        self, db_session: AsyncSession, sharing_world: dict[str, Any]
    ) -> None:
        service = SharingCapabilityService(EntityRepository(db_session))

        flags = await service.supports_sharing(["Account", "NoSuchType"])

        assert flags == {"Account": True, "NoSuchType": False}

    async def test_lookups_memoized(self) -> None:
        service = _capability({"Account": True})

        await service.supports_sharing(["Account"])
        await service.supports_sharing(["Account"])
        await service.supports_sharing(["Account", "Account"])

        service._entity_repo.get_sharing_flags.assert_awaited_once()


# ---------------------------------------------------------------------------
# EligibilityFilter
# ---------------------------------------------------------------------------


class TestEligibilityFilter:
    """Tests for EligibilityFilter."""

    async def test_sharable_targets_pass(self) -> None:
        results = ConversionResultSet()
        request = _request("r1", "Account")

        eligible = await EligibilityFilter(_capability({"Account": True})).apply(
            [request], results
        )

        assert eligible == [request]
        assert request.sharing_supported is True
        assert len(results) == 0

    async def test_unsharable_target_rejected(self) -> None:
        results = ConversionResultSet()
        request = _request("r1", "Restricted")

        eligible = await EligibilityFilter(_capability({"Restricted": False})).apply(
            [request], results
        )

        assert eligible == []
        result = results.get("r1")
        assert result is not None
        assert result.success is False
        assert "Restricted" in result.message
        assert OVERRIDE_FLAG in result.message

    async def test_unknown_entity_rejected_as_unknown(self) -> None:
        results = ConversionResultSet()

        eligible = await EligibilityFilter(_capability({})).apply(
            [_request("r1", None)], results
        )

        assert eligible == []
        result = results.get("r1")
        assert result is not None
        assert "'unknown'" in result.message

    async def test_override_lets_unsharable_through(self) -> None:
        results = ConversionResultSet()
        request = _request("r1", "Restricted")

        eligible = await EligibilityFilter(
            _capability({"Restricted": False}),
            convert_if_sharing_capability_disabled=True,
        ).apply([request], results)

        assert eligible == [request]
        assert request.sharing_supported is False
        assert len(results) == 0

    async def test_mixed_requests_keep_order(self) -> None:
        results = ConversionResultSet()
        requests = [
            _request("a", "Account"),
            _request("b", "Restricted"),
            _request("c", "Account"),
        ]

        eligible = await EligibilityFilter(
            _capability({"Account": True, "Restricted": False})
        ).apply(requests, results)

        assert [r.source_record_id for r in eligible] == ["a", "c"]
        assert results.failed_ids() == ["b"]

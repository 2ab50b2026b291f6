"""EligibilityFilter: drop requests whose share target cannot accept links."""

from collections.abc import Sequence

from content_converter.core.logging import get_logger
from content_converter.services.capability import SharingCapabilityService
from content_converter.services.results import ConversionResultSet
from content_converter.services.routing import ConversionRequest

logger = get_logger(__name__)

OVERRIDE_FLAG = "convert_if_sharing_capability_disabled"


def sharing_disabled_message(request: ConversionRequest) -> str:
    type_name = request.share_target_type or "unknown"
    return (
        f"Not converted: entity type '{type_name}' of share target "
        f"{request.share_target_id} does not support sharing. "
        f"Enable {OVERRIDE_FLAG} to convert such records without sharing them."
    )


class EligibilityFilter:
    """Splits requests into convertible ones and recorded rejections."""

    def __init__(
        self,
        capability_service: SharingCapabilityService,
        convert_if_sharing_capability_disabled: bool = False,
    ) -> None:
        self._capability = capability_service
        self._override = convert_if_sharing_capability_disabled

    async def apply(
        self,
        requests: Sequence[ConversionRequest],
        results: ConversionResultSet,
    ) -> list[ConversionRequest]:
        """Return the requests that may be converted.

        Every request gets `sharing_supported` set. Rejected requests are
        recorded as failed results and excluded from the return value.
        """
        flags = await self._capability.supports_sharing(
            {r.share_target_type for r in requests if r.share_target_type is not None}
        )

        eligible = []
        for request in requests:
            request.sharing_supported = (
                request.share_target_type is not None
                and flags[request.share_target_type]
            )
            if request.sharing_supported or self._override:
                eligible.append(request)
            else:
                results.record_failure(
                    request.source_record_id, sharing_disabled_message(request)
                )

        rejected = len(requests) - len(eligible)
        if rejected:
            logger.info(
                "Records rejected, share target does not support sharing",
                extra={"rejected": rejected, "eligible": len(eligible)},
            )
        return eligible

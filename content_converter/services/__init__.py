"""Services layer - Conversion pipeline, batch driver and notifications.

Services coordinate between repositories and integrations to implement
the conversion use cases. Database access is delegated to repositories.
"""

from content_converter.services.batch import (
    ConversionBatchRunner,
    chunked,
    run_conversion,
    run_scheduled_conversion,
)
from content_converter.services.capability import SharingCapabilityService
from content_converter.services.conversion import (
    ConversionPipeline,
    ConversionServiceError,
    ConversionValidationError,
)
from content_converter.services.eligibility import EligibilityFilter
from content_converter.services.notification import ConversionNotificationService
from content_converter.services.record_kinds import (
    AttachmentKind,
    NoteKind,
    RecordKindStrategy,
    get_record_kind,
)
from content_converter.services.results import (
    BatchRunSummary,
    ConversionResult,
    ConversionResultSet,
    FailedChunk,
)
from content_converter.services.routing import ConversionRequest, RoutingResolver

__all__ = [
    # Batch
    "ConversionBatchRunner",
    "chunked",
    "run_conversion",
    "run_scheduled_conversion",
    # Pipeline
    "ConversionPipeline",
    "ConversionServiceError",
    "ConversionValidationError",
    "ConversionRequest",
    "EligibilityFilter",
    "RoutingResolver",
    "SharingCapabilityService",
    # Record kinds
    "AttachmentKind",
    "NoteKind",
    "RecordKindStrategy",
    "get_record_kind",
    # Results
    "BatchRunSummary",
    "ConversionResult",
    "ConversionResultSet",
    "FailedChunk",
    # Notification
    "ConversionNotificationService",
]

"""Schemas layer - Pydantic models for options and API I/O."""

from content_converter.schemas.conversion import (
    ConversionKind,
    ConversionOptions,
    ConversionResultResponse,
    ConversionRunRequest,
    ConversionRunResponse,
    ConversionScheduleCreate,
    FailedChunkResponse,
    ScheduledJobResponse,
)

__all__ = [
    "ConversionKind",
    "ConversionOptions",
    "ConversionResultResponse",
    "ConversionRunRequest",
    "ConversionRunResponse",
    "ConversionScheduleCreate",
    "FailedChunkResponse",
    "ScheduledJobResponse",
]

"""Core utilities and configuration."""

from content_converter.core.config import Settings, get_settings
from content_converter.core.database import Base, db_manager, get_session, transaction
from content_converter.core.logging import (
    conversion_logger,
    db_logger,
    get_logger,
    scheduler_logger,
    setup_logging,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "Base",
    "db_manager",
    "get_session",
    "transaction",
    # Logging
    "conversion_logger",
    "db_logger",
    "get_logger",
    "scheduler_logger",
    "setup_logging",
]

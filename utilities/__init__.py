from .database import (
    db,
    Category,
    Employee,
    Asset,
    AssetAssignment,
    AssetHistory,
    User,
    ActivityLog,
    log_activity,
    utc_now,
    ASSET_STATUSES,
    HISTORY_ACTIONS,
    RETURN_REASONS,
)
from .logger import setup_logger

__all__ = [
    "db",
    "Category",
    "Employee",
    "Asset",
    "AssetAssignment",
    "AssetHistory",
    "User",
    "ActivityLog",
    "log_activity",
    "utc_now",
    "ASSET_STATUSES",
    "HISTORY_ACTIONS",
    "RETURN_REASONS",
    "setup_logger",
]

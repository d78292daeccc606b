"""Versioned, idempotent data migrations."""

from src.migrations.migration_step import MigrationError, MigrationStep
from src.migrations.migration_runner import (
    BOOTSTRAP_CUTOFF_VERSION,
    MigrationFailure,
    MigrationReport,
    MigrationRunner,
)
from src.migrations.updates import ALL_MIGRATIONS

__all__ = [
    "MigrationError",
    "MigrationStep",
    "BOOTSTRAP_CUTOFF_VERSION",
    "MigrationFailure",
    "MigrationReport",
    "MigrationRunner",
    "ALL_MIGRATIONS",
]

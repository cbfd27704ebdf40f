"""Data migrations: catalog seeding, legacy backfills and renumbering."""

from visaflow.migrations.runner import MIGRATIONS, Migration, get_migration, run_migrations

__all__ = ["MIGRATIONS", "Migration", "get_migration", "run_migrations"]

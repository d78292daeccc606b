"""
Versioned data migration runner.

Runs every registered migration step newer than the stored ``schema_version``
in ascending order. Each step sweeps settings, world actors (each followed by
its embedded items), world items and unlocked world compendiums, including
documents that no longer pass validation. The schema version is persisted
only after a step's full sweep, so an interrupted run resumes at that step.

A failure in one document is logged, recorded in the report and skipped; it
never stops the run.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import logging

from src.data_models import ActorDocument, is_empty
from src.documents.document_store import CompendiumPack, DocumentStore
from src.game_state.settings import GameSettings
from src.migrations.migration_step import MigrationError, MigrationStep
from src.migrations.updates import ALL_MIGRATIONS
from src.observability.notifications import NotificationSink
from src.observability.run_log import get_run_log

logger = logging.getLogger(__name__)

# Worlds created after this version were never migrated from an unset schema
BOOTSTRAP_CUTOFF_VERSION = 230417.2

MIGRATABLE_DOCUMENT_TYPES = ("Actor", "Item")


@dataclass
class MigrationFailure:
    """A document that could not be migrated by one step."""
    version: float
    document_type: str
    name: str
    pack: Optional[str]
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "document_type": self.document_type,
            "name": self.name,
            "pack": self.pack,
            "error": self.error,
        }


@dataclass
class MigrationReport:
    """Summary of one migration run."""
    start_version: float
    end_version: float = 0
    applied_versions: list[float] = field(default_factory=list)
    migrated: int = 0
    failures: list[MigrationFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "start_version": self.start_version,
            "end_version": self.end_version,
            "applied_versions": list(self.applied_versions),
            "migrated": self.migrated,
            "failures": [f.to_dict() for f in self.failures],
        }


class MigrationRunner:
    """
    Applies pending migration steps to the world.

    Args:
        store: Document store holding world actors, items and packs
        settings: Settings holding ``schema_version``
        system_schema_version: Schema version the installed system ships with
        notifications: Sink for user-facing progress notices
        migrations: Step classes to register (defaults to ALL_MIGRATIONS)
    """

    def __init__(
        self,
        store: DocumentStore,
        settings: GameSettings,
        system_schema_version: float = 0,
        notifications: Optional[NotificationSink] = None,
        migrations: Optional[list[type[MigrationStep]]] = None,
    ):
        self.store = store
        self.settings = settings
        self.system_schema_version = float(system_schema_version)
        self.notifications = notifications or NotificationSink()

        self.latest_version: float = 0
        self.current_migration: Optional[MigrationStep] = None
        self._registered: list[MigrationStep] = []
        self.pending: list[MigrationStep] = []

        for migration_class in ALL_MIGRATIONS if migrations is None else migrations:
            self.register(migration_class())

    @property
    def current_version(self) -> float:
        return self.settings.get("schema_version")

    def register(self, step: MigrationStep) -> None:
        self._registered.append(step)

    def build_migrations(self) -> list[MigrationStep]:
        """Record the latest known version and return pending steps, oldest first."""
        current = self.current_version
        self.latest_version = max(
            [self.latest_version] + [step.version for step in self._registered]
        )
        self.pending = sorted(
            (step for step in self._registered if step.version > current),
            key=lambda step: step.version,
        )
        return self.pending

    def needs_migration(self) -> bool:
        return self.latest_version > self.current_version

    # =========================================================================
    # RUN
    # =========================================================================

    async def run(self) -> MigrationReport:
        """
        Bring the world up to the latest schema version.

        Returns:
            MigrationReport describing what was applied and what failed
        """
        logger.info(f"Current schema version {self.current_version}")

        # A new world never stored a schema version; adopt the system's unless
        # it predates the cutoff, whose step must still run.
        if self.current_version == 0 and self.system_schema_version > BOOTSTRAP_CUTOFF_VERSION:
            await self.settings.set("schema_version", self.system_schema_version)

        report = MigrationReport(start_version=self.current_version)
        self.build_migrations()

        if not self.needs_migration():
            report.end_version = self.current_version
            return report

        self.notifications.info("Beginning system data migration. Please be patient.")
        get_run_log().log_migration("begin", self.current_version)

        for step in self.pending:
            if self.current_version >= step.version:
                continue
            self.current_migration = step
            migrated_before = report.migrated
            failures_before = len(report.failures)

            await self.migrate_world(step, report)
            await self.settings.set("schema_version", step.version)
            report.applied_versions.append(step.version)

            get_run_log().log_migration(
                "step",
                step.version,
                description=step.description,
                migrated=report.migrated - migrated_before,
                failures=len(report.failures) - failures_before,
            )

        self.current_migration = None
        report.end_version = self.current_version

        self.notifications.info("System data migration complete.")
        if report.failures:
            self.notifications.warn(
                f"{len(report.failures)} documents failed to migrate. "
                f"Check the log for details.",
                permanent=True,
            )
        get_run_log().log_migration(
            "complete",
            report.end_version,
            migrated=report.migrated,
            failures=len(report.failures),
        )
        return report

    async def migrate_world(self, step: MigrationStep, report: MigrationReport) -> None:
        """Apply one step to settings, actors, items and world compendiums."""
        self.notifications.info(f"Applying data migration for schema version {step.version}")

        try:
            await step.update_settings(self.settings)
        except Exception as e:
            self._record_failure(report, step, "Settings", self.settings.namespace, e)

        await self.migrate_world_actors(step, report)
        await self.migrate_world_items(step, report)
        await self.migrate_world_compendiums(step, report)

        self.notifications.info(f"Data migration for schema version {step.version} complete")

    # =========================================================================
    # WORLD DOCUMENTS
    # =========================================================================

    async def migrate_world_actors(self, step: MigrationStep, report: MigrationReport) -> None:
        sources: list[tuple[str, dict[str, Any]]] = []
        for actor in await self.store.list_actors():
            sources.append((actor.actor_id, actor.to_object()))
        for actor_id in await self.store.list_invalid_actor_ids():
            try:
                sources.append((actor_id, await self.store.get_invalid_actor_source(actor_id)))
            except Exception as e:
                self._record_failure(report, step, "Actor", actor_id, e)

        for actor_id, actor_source in sources:
            name = actor_source.get("name") or actor_id
            try:
                update = await step.update_actor(actor_source)
                if not is_empty(update):
                    logger.info(f"Migrating Actor document '{name}'")
                    await self.store.update_actor(actor_id, update)
                    report.migrated += 1
            except Exception as e:
                self._record_failure(report, step, "Actor", name, e)

            await self._migrate_actor_items(step, report, actor_id, actor_source)

    async def _migrate_actor_items(
        self,
        step: MigrationStep,
        report: MigrationReport,
        actor_id: str,
        actor_source: dict[str, Any],
    ) -> None:
        for item_id, item_source in await self._item_sources(step, report, actor_id):
            name = item_source.get("name") or item_id
            try:
                update = await step.update_item(item_source, actor_source)
                if not is_empty(update):
                    logger.info(f"Migrating Actor Item document '{name}'")
                    await self.store.update_item(item_id, update, actor_id=actor_id)
                    report.migrated += 1
            except Exception as e:
                self._record_failure(report, step, "Item", name, e)

    async def migrate_world_items(self, step: MigrationStep, report: MigrationReport) -> None:
        for item_id, item_source in await self._item_sources(step, report, None):
            name = item_source.get("name") or item_id
            try:
                update = await step.update_item(item_source)
                if not is_empty(update):
                    logger.info(f"Migrating Item document '{name}'")
                    await self.store.update_item(item_id, update)
                    report.migrated += 1
            except Exception as e:
                self._record_failure(report, step, "Item", name, e)

    async def _item_sources(
        self,
        step: MigrationStep,
        report: MigrationReport,
        actor_id: Optional[str],
    ) -> list[tuple[str, dict[str, Any]]]:
        """Sources of valid and invalid items of an actor (or of the world)."""
        sources: list[tuple[str, dict[str, Any]]] = []
        try:
            for item in await self.store.list_items(actor_id):
                sources.append((item.item_id, item.to_object()))
            for item_id in await self.store.list_invalid_item_ids(actor_id):
                sources.append(
                    (item_id, await self.store.get_invalid_item_source(item_id, actor_id))
                )
        except Exception as e:
            self._record_failure(report, step, "Item", f"items of {actor_id or 'world'}", e)
        return sources

    # =========================================================================
    # COMPENDIUMS
    # =========================================================================

    async def migrate_world_compendiums(self, step: MigrationStep, report: MigrationReport) -> None:
        for pack in await self.store.list_packs():
            # System packs ship already migrated
            if pack.package_type != "world":
                continue
            if pack.document_name not in MIGRATABLE_DOCUMENT_TYPES:
                continue
            try:
                await self.migrate_compendium(step, pack, report)
            except Exception as e:
                self._record_failure(
                    report, step, "Compendium", pack.collection, e, pack=pack.collection
                )

    async def migrate_compendium(
        self, step: MigrationStep, pack: CompendiumPack, report: MigrationReport
    ) -> None:
        """Migrate every document of one pack; the pack's lock state is always restored."""
        document_name = pack.document_name
        was_locked = pack.locked
        await pack.configure(locked=False)

        try:
            await pack.migrate()
            for doc in await pack.get_documents():
                try:
                    source = doc.to_object()
                    if document_name == "Actor":
                        update = await step.update_actor(source)
                    else:
                        update = await step.update_item(source)

                    if is_empty(update):
                        continue
                    doc_id = doc.actor_id if isinstance(doc, ActorDocument) else doc.item_id
                    await pack.update_document(doc_id, update)
                    report.migrated += 1
                    logger.info(
                        f"Migrated {document_name} document '{doc.name}' "
                        f"in Compendium '{pack.collection}'"
                    )
                except Exception as e:
                    self._record_failure(
                        report, step, document_name, doc.name, e, pack=pack.collection
                    )
        finally:
            await pack.configure(locked=was_locked)

        logger.info(
            f"Migrated all '{document_name}' documents from Compendium '{pack.collection}'"
        )

    def _record_failure(
        self,
        report: MigrationReport,
        step: MigrationStep,
        document_type: str,
        name: str,
        cause: Exception,
        pack: Optional[str] = None,
    ) -> MigrationError:
        location = f" in pack '{pack}'" if pack else ""
        error = MigrationError(
            f"Failed system migration {step.version} for {document_type} "
            f"'{name}'{location}: {cause}",
            document_type=document_type,
            name=name,
            pack=pack,
        )
        logger.error(str(error))
        report.failures.append(
            MigrationFailure(
                version=step.version,
                document_type=document_type,
                name=name,
                pack=pack,
                error=str(cause),
            )
        )
        return error

"""
Tests for the migration runner.

Verifies that:
1. Pending steps run oldest first and the schema version follows each step
2. A new world adopts the system version and skips steps at or below it
3. One failing document never stops the run
4. Documents that fail validation are migrated through the raw fallback
5. World compendiums are migrated and their lock state restored
6. A second run over migrated data changes nothing
"""

import json

import pytest

from src.data_models import ActorDocument, ActorType, ItemDocument, ItemType
from src.documents.document_store import (
    CompendiumPack,
    DocumentStoreError,
    InMemoryDocumentStore,
)
from src.game_state.settings import GameSettings
from src.migrations.migration_runner import MigrationRunner
from src.migrations.migration_step import MigrationStep
from src.observability.notifications import NotificationLevel
from src.observability.run_log import get_run_log
from tests.helpers import raw_item

LATEST = 230601.1


def recording_step(version: float, calls: list):
    """A step class that records every item it sees."""

    class RecordingStep(MigrationStep):
        description = f"Recording {version}"

        async def update_item(self, item_source, actor_source=None):
            calls.append((self.version, item_source["_id"]))
            return {}

    RecordingStep.version = version
    return RecordingStep


class FlakyStep(MigrationStep):
    version = 230700
    description = "Marks items, fails on one"

    async def update_item(self, item_source, actor_source=None):
        if item_source["_id"] == "b":
            raise RuntimeError("bad data")
        return {"system.marked": True}


@pytest.fixture
def legacy_settings(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "namespace": "shadowdark",
        "values": {"schema_version": 230401, "track_light_sources_interval_mins": 0.5},
    }))
    settings = GameSettings()
    settings.load(path)
    return settings


@pytest.fixture
def legacy_store():
    """An old-format world, including documents that fail validation."""
    store = InMemoryDocumentStore()
    store.add_raw_actor({
        "_id": "kell",
        "name": "Kell",
        "type": "Player",
        "system": {"light": {"active": True}},
        "items": [
            raw_item("torch", "Torch", light={
                "isSource": True, "active": True, "template": "torch", "remainingMins": 2,
            }),
            raw_item("bless", "Blessed", "Effect", duration={"type": "minutes", "value": "1"}),
            raw_item("broken", 42, light={"isSource": True, "remainingMins": 1}),
        ],
    })
    store.add_raw_actor({
        "_id": "ghost",
        "name": None,
        "type": "Player",
        "system": {"light": {"active": True}},
        "items": [raw_item("lamp", "Lamp", light={"isSource": True, "remainingMins": 1})],
    })
    store.add_raw_actor({
        "_id": "dropped",
        "name": "Torch (dropped)",
        "type": "Light",
        "system": {"light": {"template": "torch"}},
    })
    store.add_raw_item(raw_item("spare", "Spare Torch", light={"isSource": True, "remainingMins": 60}))
    store.add_raw_item(raw_item("bad", "Bad", item_type="Gizmo", light={"remainingMins": 3}))

    store.add_pack(CompendiumPack("world.gear", "Item", documents=[
        ItemDocument("spell", "Light Spell", ItemType.EFFECT, {"duration": {"type": "hours", "value": 1.0}}),
    ]))
    store.add_pack(CompendiumPack("world.heroes", "Actor", documents=[
        ActorDocument("hero", "Hero", ActorType.PLAYER, {"light": {"active": False}}),
    ]))
    store.add_pack(CompendiumPack("shadowdark.gear", "Item", package_type="system", documents=[
        ItemDocument("sys", "Bless", ItemType.EFFECT, {"duration": {"type": "hours", "value": 1.0}}),
    ]))
    store.add_pack(CompendiumPack("world.scenes", "Scene"))
    return store


@pytest.fixture
def runner(legacy_store, legacy_settings, notifications):
    return MigrationRunner(
        legacy_store, legacy_settings, system_schema_version=LATEST, notifications=notifications
    )


async def pack_named(store, collection):
    return next(p for p in await store.list_packs() if p.collection == collection)


# =============================================================================
# ORDERING
# =============================================================================


class TestOrdering:
    """Tests for step ordering and version bookkeeping."""

    @pytest.mark.asyncio
    async def test_steps_run_in_ascending_order(self, legacy_store, legacy_settings):
        calls = []
        runner = MigrationRunner(
            legacy_store,
            legacy_settings,
            migrations=[recording_step(230505.1, calls), recording_step(230417.2, calls)],
        )

        report = await runner.run()

        assert report.applied_versions == [230417.2, 230505.1]
        versions = [version for version, _ in calls]
        assert versions == sorted(versions)
        assert legacy_settings.get("schema_version") == 230505.1

    @pytest.mark.asyncio
    async def test_schema_version_persisted_after_each_step(self, runner, legacy_settings):
        seen = []
        legacy_settings.on_change("schema_version", seen.append)

        report = await runner.run()

        assert seen == [230417.2, 230505.1, 230601.1]
        assert report.start_version == 230401
        assert report.end_version == LATEST

    @pytest.mark.asyncio
    async def test_step_at_current_version_is_skipped(self, legacy_store, legacy_settings):
        calls = []
        await legacy_settings.set("schema_version", 230417.2)
        runner = MigrationRunner(
            legacy_store,
            legacy_settings,
            migrations=[recording_step(230417.2, calls), recording_step(230505.1, calls)],
        )

        report = await runner.run()

        assert report.applied_versions == [230505.1]
        assert {version for version, _ in calls} == {230505.1}

    @pytest.mark.asyncio
    async def test_nothing_pending(self, runner, legacy_settings, notifications):
        await legacy_settings.set("schema_version", LATEST)

        report = await runner.run()

        assert report.applied_versions == []
        assert report.end_version == LATEST
        assert notifications.notifications == []
        assert get_run_log().get_migrations() == []

    def test_build_migrations(self, runner):
        pending = runner.build_migrations()

        assert [step.version for step in pending] == [230417.2, 230505.1, 230601.1]
        assert runner.latest_version == LATEST
        assert runner.needs_migration()


# =============================================================================
# BOOTSTRAP
# =============================================================================


class TestBootstrap:
    """Tests for worlds that never stored a schema version."""

    @pytest.mark.asyncio
    async def test_new_world_skips_older_steps(self, legacy_store):
        settings = GameSettings()
        runner = MigrationRunner(legacy_store, settings, system_schema_version=230500)

        report = await runner.run()

        assert report.start_version == 230500
        assert report.applied_versions == [230505.1, 230601.1]
        torch = await legacy_store.get_item("torch", actor_id="kell")
        assert torch.light["remainingMins"] == 2
        bless = await legacy_store.get_item("bless", actor_id="kell")
        assert bless.system["start"] == {"value": 0, "combatTime": None}

    @pytest.mark.asyncio
    async def test_old_system_runs_every_step(self, legacy_store):
        settings = GameSettings()
        runner = MigrationRunner(legacy_store, settings, system_schema_version=230401)

        report = await runner.run()

        assert report.applied_versions == [230417.2, 230505.1, 230601.1]


# =============================================================================
# DOCUMENTS
# =============================================================================


class TestWorldDocuments:
    """Tests for the document sweep."""

    @pytest.mark.asyncio
    async def test_world_migrated(self, runner, legacy_store, legacy_settings):
        report = await runner.run()

        assert report.failures == []
        torch = await legacy_store.get_item("torch", actor_id="kell")
        assert torch.light == {
            "isSource": True, "active": True, "template": "torch",
            "remainingSecs": 120, "longevitySecs": 3600,
        }
        bless = await legacy_store.get_item("bless", actor_id="kell")
        assert bless.system["duration"]["value"] == 1
        spare = await legacy_store.get_item("spare")
        assert spare.light["remainingSecs"] == 3600
        kell = await legacy_store.get_actor("kell")
        assert "light" not in kell.system
        dropped = await legacy_store.get_actor("dropped")
        assert dropped.system["light"] == {"template": "torch"}

    @pytest.mark.asyncio
    async def test_settings_migrated(self, runner, legacy_settings):
        await runner.run()

        assert legacy_settings.get("track_light_sources_interval") == 30
        assert legacy_settings.get_legacy("track_light_sources_interval_mins") is None

    @pytest.mark.asyncio
    async def test_invalid_documents_migrated(self, runner, legacy_store):
        await runner.run()

        ghost = await legacy_store.get_invalid_actor_source("ghost")
        assert "light" not in ghost["system"]
        lamp = await legacy_store.get_invalid_item_source("lamp", "ghost")
        assert lamp["system"]["light"] == {
            "isSource": True, "remainingSecs": 60, "longevitySecs": 3600,
        }
        broken = await legacy_store.get_invalid_item_source("broken", "kell")
        assert broken["system"]["light"]["remainingSecs"] == 60
        bad = await legacy_store.get_invalid_item_source("bad")
        assert bad["system"]["light"] == {"remainingSecs": 180}

    @pytest.mark.asyncio
    async def test_failing_document_does_not_stop_run(self, settings, notifications):
        store = InMemoryDocumentStore()
        for item_id in ("a", "b", "c"):
            store.add_item(ItemDocument(item_id, item_id.upper(), ItemType.BASIC))
        runner = MigrationRunner(store, settings, notifications=notifications, migrations=[FlakyStep])

        report = await runner.run()

        assert report.migrated == 2
        assert [(f.document_type, f.name, f.version) for f in report.failures] == [("Item", "B", 230700)]
        assert (await store.get_item("a")).system == {"marked": True}
        assert (await store.get_item("c")).system == {"marked": True}
        assert settings.get("schema_version") == 230700

        warnings = notifications.by_level(NotificationLevel.WARNING)
        assert len(warnings) == 1
        assert warnings[0].message.startswith("1 documents failed to migrate")
        assert warnings[0].permanent is True

    @pytest.mark.asyncio
    async def test_failed_actor_update_still_migrates_items(self, runner, legacy_store):
        legacy_store.fail_on_update.add("kell")

        report = await runner.run()

        assert [f.name for f in report.failures] == ["Kell"]
        torch = await legacy_store.get_item("torch", actor_id="kell")
        assert torch.light["remainingSecs"] == 120

    @pytest.mark.asyncio
    async def test_settings_failure_recorded(self, legacy_store, settings):
        class BrokenSettingsStep(MigrationStep):
            version = 230700

            async def update_settings(self, settings):
                raise ValueError("corrupt setting")

        runner = MigrationRunner(legacy_store, settings, migrations=[BrokenSettingsStep])
        await settings.set("schema_version", LATEST)

        report = await runner.run()

        assert report.failures[0].document_type == "Settings"
        assert settings.get("schema_version") == 230700

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, runner, legacy_settings):
        await runner.run()
        await legacy_settings.set("schema_version", 230401)

        report = await runner.run()

        assert report.migrated == 0
        assert report.failures == []


# =============================================================================
# COMPENDIUMS
# =============================================================================


class TestCompendiums:
    """Tests for compendium migration."""

    @pytest.mark.asyncio
    async def test_world_item_pack_migrated_and_relocked(self, runner, legacy_store):
        await runner.run()
        pack = await pack_named(legacy_store, "world.gear")

        spell = (await pack.get_documents())[0]
        assert spell.system["start"] == {"value": 0, "combatTime": None}
        assert spell.system["duration"]["value"] == 1
        assert pack.locked is True
        assert pack.migrate_count == 3

    @pytest.mark.asyncio
    async def test_world_actor_pack_migrated(self, runner, legacy_store):
        await runner.run()
        pack = await pack_named(legacy_store, "world.heroes")

        hero = (await pack.get_documents())[0]
        assert "light" not in hero.system

    @pytest.mark.asyncio
    async def test_system_and_scene_packs_untouched(self, runner, legacy_store):
        await runner.run()

        system_pack = await pack_named(legacy_store, "shadowdark.gear")
        assert system_pack.migrate_count == 0
        assert "start" not in (await system_pack.get_documents())[0].system
        assert (await pack_named(legacy_store, "world.scenes")).migrate_count == 0

    @pytest.mark.asyncio
    async def test_unlocked_pack_stays_unlocked(self, runner, legacy_store):
        pack = await pack_named(legacy_store, "world.gear")
        await pack.configure(locked=False)

        await runner.run()

        assert pack.locked is False

    @pytest.mark.asyncio
    async def test_pack_failure_restores_lock(self, settings):
        class UnavailablePack(CompendiumPack):
            async def migrate(self):
                raise DocumentStoreError("pack unavailable")

        store = InMemoryDocumentStore()
        pack = store.add_pack(UnavailablePack("world.broken", "Item"))
        runner = MigrationRunner(store, settings, migrations=[FlakyStep])

        report = await runner.run()

        assert pack.locked is True
        assert report.failures[0].document_type == "Compendium"
        assert report.failures[0].pack == "world.broken"


# =============================================================================
# REPORTING
# =============================================================================


class TestReporting:
    """Tests for notices and the run log."""

    @pytest.mark.asyncio
    async def test_notices(self, runner, notifications):
        await runner.run()

        messages = [n.message for n in notifications.by_level(NotificationLevel.INFO)]
        assert messages[0] == "Beginning system data migration. Please be patient."
        assert messages[-1] == "System data migration complete."
        assert notifications.by_level(NotificationLevel.WARNING) == []

    @pytest.mark.asyncio
    async def test_run_log(self, runner):
        report = await runner.run()

        events = get_run_log().get_migrations()
        assert [e.phase for e in events] == ["begin", "step", "step", "step", "complete"]
        assert events[-1].migrated == report.migrated

    @pytest.mark.asyncio
    async def test_report_to_dict(self, runner):
        data = (await runner.run()).to_dict()

        assert data["applied_versions"] == [230417.2, 230505.1, 230601.1]
        assert data["failures"] == []

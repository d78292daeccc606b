"""
Pytest fixtures for the Shadowdark VTT core test suite.

Provides reusable fixtures for the world clock, settings, an in-memory
document store populated with characters and light sources, and GM/player
instances of the light tracker sharing one socket relay.
"""

import pytest

from src.data_models import (
    ActorDocument,
    ActorType,
    ItemDocument,
    ItemType,
    UserDocument,
)
from src.documents.document_store import InMemoryDocumentStore
from src.game_state.settings import GameSettings
from src.game_state.world_clock import WorldClock
from src.integrations.foundry.socket_relay import AuthorityRole, LocalSocketRelay
from src.light_tracker.light_source_tracker import LightSourceTracker
from src.observability.notifications import NotificationSink
from src.observability.run_log import reset_run_log
from tests.helpers import make_light


# =============================================================================
# RUN LOG
# =============================================================================


@pytest.fixture(autouse=True)
def clean_run_log():
    """Every test starts with an empty RunLog."""
    reset_run_log()
    yield
    reset_run_log()


# =============================================================================
# CLOCK AND SETTINGS
# =============================================================================


@pytest.fixture
def clock():
    """World clock at world time 0, not paused, no combat."""
    return WorldClock()


@pytest.fixture
def settings():
    """System settings with registered defaults."""
    return GameSettings()


@pytest.fixture
def notifications():
    return NotificationSink()


# =============================================================================
# DOCUMENT STORE
# =============================================================================


@pytest.fixture
def store():
    """
    A world with:
    - a GM, an active player (Kell) and an inactive player (Ralina)
    - Kell carrying a burning torch (45s left) and a burning lantern (600s left)
    - Ralina carrying a burning torch (300s left)
    - an NPC with no user
    """
    store = InMemoryDocumentStore()

    kell = ActorDocument("kell", "Kell", ActorType.PLAYER)
    kell.items["torch1"] = make_light("torch1", "Torch", remaining=45)
    kell.items["lantern1"] = make_light(
        "lantern1", "Lantern", remaining=600, longevity=14400, template="lantern"
    )
    kell.items["rope1"] = ItemDocument("rope1", "Rope", ItemType.BASIC)
    store.add_actor(kell)

    ralina = ActorDocument("ralina", "Ralina", ActorType.PLAYER)
    ralina.items["torch2"] = make_light("torch2", "Torch", remaining=300)
    store.add_actor(ralina)

    store.add_actor(ActorDocument("goblin", "Goblin", ActorType.NPC))

    store.add_user(UserDocument("gm", "Game Master", is_gm=True))
    store.add_user(UserDocument("alice", "Alice", character_id="kell"))
    store.add_user(UserDocument("bob", "Bob", active=False, character_id="ralina"))
    return store


# =============================================================================
# TRACKERS
# =============================================================================


@pytest.fixture
def relay():
    return LocalSocketRelay()


@pytest.fixture
def gm_tracker(store, settings, clock, relay, notifications):
    """Light tracker on the GM instance."""
    return LightSourceTracker(
        store, settings, clock,
        role=AuthorityRole.GAME_MASTER,
        relay=relay,
        notifications=notifications,
    )


@pytest.fixture
def player_tracker(store, settings, clock, relay):
    """Light tracker on a player instance sharing the GM's relay."""
    return LightSourceTracker(
        store, settings, clock,
        role=AuthorityRole.PLAYER,
        relay=relay,
        notifications=NotificationSink(),
    )

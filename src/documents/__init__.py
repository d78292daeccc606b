"""Documents, timed resources and the document store seam."""

from src.documents.document_store import (
    CompendiumPack,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    InMemoryDocumentStore,
)
from src.documents.timed_resource import (
    EffectCreationError,
    evaluate,
    fuel_resource_from_item,
    light_remaining_string,
    prepare_effect_for_create,
    remaining_duration,
    resource_from_item,
    total_duration,
)

__all__ = [
    "CompendiumPack",
    "DocumentNotFoundError",
    "DocumentStore",
    "DocumentStoreError",
    "InMemoryDocumentStore",
    "EffectCreationError",
    "evaluate",
    "fuel_resource_from_item",
    "light_remaining_string",
    "prepare_effect_for_create",
    "remaining_duration",
    "resource_from_item",
    "total_duration",
]

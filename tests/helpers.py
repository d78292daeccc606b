"""
Test helpers for the Shadowdark VTT core test suite.

Builders for light source and effect items in the shape the host stores them.
"""

from typing import Any, Optional

from src.data_models import ItemDocument, ItemType


def make_light(
    item_id: str,
    name: str = "Torch",
    remaining: float = 3600,
    longevity: float = 3600,
    active: bool = True,
    template: str = "torch",
) -> ItemDocument:
    """A Basic light source item."""
    return ItemDocument(
        item_id=item_id,
        name=name,
        item_type=ItemType.BASIC,
        system={
            "light": {
                "isSource": True,
                "active": active,
                "template": template,
                "remainingSecs": remaining,
                "longevitySecs": longevity,
            }
        },
    )


def make_effect(
    item_id: str,
    name: str = "Effect",
    duration_type: str = "minutes",
    value: float = 1,
    start_value: float = 0,
    combat_time: Optional[str] = None,
) -> ItemDocument:
    """An Effect item with a recorded start."""
    return ItemDocument(
        item_id=item_id,
        name=name,
        item_type=ItemType.EFFECT,
        system={
            "duration": {"type": duration_type, "value": value},
            "start": {"value": start_value, "combatTime": combat_time},
        },
    )


def raw_item(item_id: str, name: Any, item_type: str = "Basic", **system: Any) -> dict[str, Any]:
    """Raw item source; pass a non-string name to make it fail validation."""
    return {"_id": item_id, "name": name, "type": item_type, "system": dict(system)}

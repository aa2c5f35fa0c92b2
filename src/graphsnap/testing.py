"""Sample persistable types used by the test-suite and examples."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .node import Node, PersistMode, Resource


class Room(Node):
    """Anchored node, part of the hand-built level layout."""

    persist_fields = Node.persist_fields + (("visited", "tags"),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.persist_mode = PersistMode.ANCHORED
        self.visited = False
        self.tags: List[str] = []


class Unit(Node):
    """Ephemeral node, spawned at runtime."""

    persist_fields = Node.persist_fields + (("hp", "target", "inventory", "notes"),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.persist_mode = PersistMode.EPHEMERAL
        self.hp = 10
        self.target: Any = None
        self.inventory: List[Any] = []
        self.notes: Dict[Any, Any] = {}
        # derived state, never persisted
        self.path_cache: List[Any] = []


class Holder(Node):
    """Ephemeral node with a single untyped list field."""

    persist_fields = Node.persist_fields + (("values",),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.persist_mode = PersistMode.EPHEMERAL
        self.values: List[Any] = []


class Scratch(Node):
    """Node that is never persisted."""

    persist_fields = Node.persist_fields + (("junk",),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.junk = 0


class Item(Resource):
    """Freestanding helper shared between units."""

    persist_fields = (("label", "weight", "owner"),)

    def __init__(self) -> None:
        self.label = ""
        self.weight = 0.0
        self.owner: Any = None


class Crate(Node):
    """First version of a versioned ephemeral type."""

    persist_fields = Node.persist_fields + (("contents",),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.persist_mode = PersistMode.EPHEMERAL
        self.contents: List[Any] = []


class LockedCrate(Crate):
    """Crate with one additional field group."""

    persist_fields = Crate.persist_fields + (("locked", "key_name"),)

    def __init__(self, name: str = "") -> None:
        super().__init__(name)
        self.locked = False
        self.key_name: Optional[str] = None


class NeedsArgs(Resource):
    """Resource that cannot be rebuilt without arguments."""

    persist_fields = (("value",),)

    def __init__(self, value: int) -> None:
        self.value = value


def build_level() -> Room:
    """Return a fresh anchored layout: Level / {Hall, Vault}."""
    level = Room("Level")
    level.add_child(Room("Hall"))
    level.add_child(Room("Vault"))
    return level

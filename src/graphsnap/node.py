"""Host object model consumed by the snapshot codec.

The codec only needs four things from the objects it walks: the declared
field groups of each type, the persistence mode of each object, a way to make
a fresh instance of a type, and a way to find an anchored node by path. This
module provides those through two small base classes:

- ``Node``: structural objects arranged in a parent/child tree.
- ``Resource``: freestanding helper objects reachable only through fields.

Field groups are declared per class and extended additively::

    class Enemy(Node):
        persist_fields = Node.persist_fields + (("hp", "target"),)

    class Boss(Enemy):
        persist_fields = Enemy.persist_fields + (("phase",),)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import ClassVar, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

FieldGroups = Tuple[Tuple[str, ...], ...]


class PersistMode(str, Enum):
    NONE = "none"
    ANCHORED = "anchored"
    EPHEMERAL = "ephemeral"


class Persistable:
    """Base for every object the codec may persist.

    Subclasses must be constructible without arguments.
    """

    persist_fields: ClassVar[FieldGroups] = ()
    persist_mode: PersistMode = PersistMode.NONE

    def persist_field_groups(self) -> FieldGroups:
        return type(self).persist_fields

    def get_persist_mode(self) -> PersistMode:
        return self.persist_mode


class Resource(Persistable):
    """Freestanding helper object, shared by reference between nodes."""

    persist_mode: PersistMode = PersistMode.EPHEMERAL

    def __repr__(self) -> str:
        return f"<{type(self).__name__} at {id(self):#x}>"


class Node(Persistable):
    """A named node in an ordered tree."""

    persist_fields: ClassVar[FieldGroups] = (("name",),)

    def __init__(self, name: str = "") -> None:
        self.name: str = name or type(self).__name__
        self.parent: Optional[Node] = None
        self._children: List[Node] = []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"

    # Tree structure

    @property
    def children(self) -> Tuple["Node", ...]:
        return tuple(self._children)

    def iter_children(self) -> Iterator["Node"]:
        return iter(list(self._children))

    def get_child_count(self) -> int:
        return len(self._children)

    def get_child(self, index: int) -> "Node":
        return self._children[index]

    def get_index(self) -> int:
        if self.parent is None:
            return 0
        return self.parent._children.index(self)

    def add_child(self, child: "Node") -> None:
        if child.parent is not None:
            raise ValueError(f"{child!r} already has parent {child.parent!r}")
        if child is self or child.is_ancestor_of(self):
            raise ValueError(f"Cannot add {child!r} below itself")
        child.name = self._unique_name(child.name)
        child.parent = self
        self._children.append(child)

    def remove_child(self, child: "Node") -> None:
        if child.parent is not self:
            raise ValueError(f"{child!r} is not a child of {self!r}")
        self._children.remove(child)
        child.parent = None

    def move_child(self, child: "Node", index: int) -> None:
        if child.parent is not self:
            raise ValueError(f"{child!r} is not a child of {self!r}")
        self._children.remove(child)
        index = max(0, min(index, len(self._children)))
        self._children.insert(index, child)

    def queue_free(self) -> None:
        """Detach this node from its parent so it can be collected."""
        if self.parent is not None:
            self.parent.remove_child(self)

    def is_ancestor_of(self, other: "Node") -> bool:
        current = other.parent
        while current is not None:
            if current is self:
                return True
            current = current.parent
        return False

    def _unique_name(self, name: str) -> str:
        taken = {c.name for c in self._children}
        if name not in taken:
            return name
        n = 2
        while f"{name}{n}" in taken:
            n += 1
        return f"{name}{n}"

    # Paths

    def find_child(self, name: str) -> Optional["Node"]:
        for child in self._children:
            if child.name == name:
                return child
        return None

    def get_node_or_none(self, path: str) -> Optional["Node"]:
        node: Optional[Node] = self
        for part in path.split("/"):
            if node is None:
                return None
            if part in ("", "."):
                continue
            if part == "..":
                node = node.parent
            else:
                node = node.find_child(part)
        return node

    def get_node(self, path: str) -> "Node":
        node = self.get_node_or_none(path)
        if node is None:
            raise KeyError(f"No node at path {path!r} under {self!r}")
        return node

    def get_path_to(self, node: "Node") -> str:
        """Return the slash-separated path from this node down to ``node``."""
        parts: List[str] = []
        current: Optional[Node] = node
        while current is not None and current is not self:
            parts.append(current.name)
            current = current.parent
        if current is None:
            raise ValueError(f"{node!r} is not below {self!r}")
        return "/".join(reversed(parts))


def teardown_ephemeral(anchor: Node) -> int:
    """Detach every ephemeral subtree below ``anchor``.

    Anchored nodes are kept and searched recursively; subtrees that are not
    persisted at all are left alone. Returns the number of subtrees removed.
    """
    removed = 0
    for child in anchor.iter_children():
        mode = child.get_persist_mode()
        if mode is PersistMode.EPHEMERAL:
            child.queue_free()
            removed += 1
        elif mode is PersistMode.ANCHORED:
            removed += teardown_ephemeral(child)
    if removed:
        logger.debug("Tore down %d ephemeral subtree(s) under %r", removed, anchor)
    return removed

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, List, Optional

from .errors import ContractViolation
from .indexer import IndexResult, index_tree
from .node import Node, Persistable, PersistMode
from .record import (
    ANCHORED_TYPE,
    DETACHED_ROOT,
    AnchoredPlacement,
    EncodedFreestanding,
    EncodedStructural,
    EphemeralPlacement,
    Placement,
    SnapshotRecord,
)
from .settings import CodecSettings
from .type_table import TypeRegistry, TypeTable, registry as default_registry
from .values import ValueEncoder

logger = logging.getLogger(__name__)


class _EncodePass:
    """State of a single encode call.

    Structural nodes are indexed up front; freestanding objects receive the
    next free identity the first time a field refers to them and are queued,
    then drained after the structural pass until the queue is empty.
    """

    def __init__(self, root: Node, settings: CodecSettings, registry: TypeRegistry) -> None:
        self.root = root
        self.settings = settings
        self.registry = registry
        self.index: IndexResult = index_tree(root)
        self.types = TypeTable()
        self.objects: List[Persistable] = list(self.index.objects)
        self.queue: Deque[Persistable] = deque()
        self.values = ValueEncoder(self, settings)

    # ReferenceEncoder

    def identity_of(self, obj: Persistable) -> int:
        identity = self.index.identity_of(obj)
        if identity is not None:
            return identity
        if isinstance(obj, Node):
            raise ContractViolation(f"{obj!r} is referenced but not persisted under {self.root!r}")
        mode = obj.get_persist_mode()
        if mode is not PersistMode.EPHEMERAL:
            raise ContractViolation(f"Freestanding {obj!r} must be ephemeral, not {mode.value}")
        identity = len(self.objects)
        self.index.ids[id(obj)] = identity
        self.objects.append(obj)
        self.queue.append(obj)
        logger.debug("Discovered freestanding %r as object %d", obj, identity)
        return identity

    def type_hint_of(self, cls: type) -> Optional[int]:
        """Type id for container metadata, or None when ``cls`` has no descriptor.

        Anchored classes are never instantiated on restore and need not be
        loadable.
        """
        try:
            return self.type_id_of(cls)
        except ContractViolation:
            logger.debug("No descriptor for %s; omitting container type", cls.__qualname__)
            return None

    def type_id_of(self, cls: type) -> int:
        return self.types.add(self.registry.descriptor_for(cls))

    # Encoding

    def encode_fields(self, obj: Persistable) -> List[List[Any]]:
        groups: List[List[Any]] = []
        for names in obj.persist_field_groups():
            group: List[Any] = []
            for name in names:
                try:
                    value = getattr(obj, name)
                except AttributeError as e:
                    raise ContractViolation(
                        f"{type(obj).__qualname__} declares field {name!r} but has no such attribute"
                    ) from e
                group.append(self.values.encode(value))
            groups.append(group)
        return groups

    def placement_of(self, node: Node, identity: int, mode: PersistMode) -> Placement:
        index = node.get_index()
        if mode is not PersistMode.EPHEMERAL:
            return AnchoredPlacement(path=self.root.get_path_to(node), index=index)
        if identity == 0:
            return EphemeralPlacement(parent=DETACHED_ROOT, index=index)
        parent = self.index.identity_of(node.parent)
        if parent is None:
            raise ContractViolation(f"Parent of {node!r} is not persisted")
        return EphemeralPlacement(parent=parent, index=index)

    def encode_structural(self, identity: int, node: Node) -> EncodedStructural:
        mode = node.get_persist_mode()
        placement = self.placement_of(node, identity, mode)
        if mode is PersistMode.EPHEMERAL:
            type_id = self.type_id_of(type(node))
        else:
            type_id = ANCHORED_TYPE
        return EncodedStructural(
            identity=identity,
            type_id=type_id,
            placement=placement,
            field_groups=self.encode_fields(node),
        )

    def run(self) -> SnapshotRecord:
        structural = [
            self.encode_structural(identity, node) for identity, node in enumerate(self.index.objects)
        ]
        freestanding: List[EncodedFreestanding] = []
        while self.queue:
            obj = self.queue.popleft()
            identity = self.index.ids[id(obj)]
            type_id = self.type_id_of(type(obj))
            freestanding.append(
                EncodedFreestanding(identity=identity, type_id=type_id, field_groups=self.encode_fields(obj))
            )
        return SnapshotRecord(
            object_count=len(self.objects),
            structural=structural,
            freestanding=freestanding,
            types=self.types.descriptors,
        )


class SnapshotEncoder:
    """Produces a SnapshotRecord from a live tree."""

    def __init__(self, settings: Optional[CodecSettings] = None, registry: Optional[TypeRegistry] = None) -> None:
        self.settings = settings or CodecSettings()
        self.registry = registry or default_registry

    def encode(self, root: Optional[Node]) -> SnapshotRecord:
        if root is None:
            logger.info("Snapshot root is absent; producing an empty record")
            return SnapshotRecord(object_count=0)
        record = _EncodePass(root, self.settings, self.registry).run()
        logger.info(
            "Encoded snapshot of %r: %d structural, %d freestanding, %d type(s)",
            root,
            len(record.structural),
            len(record.freestanding),
            len(record.types),
        )
        return record


def encode_tree(root: Optional[Node], settings: Optional[CodecSettings] = None) -> SnapshotRecord:
    return SnapshotEncoder(settings).encode(root)

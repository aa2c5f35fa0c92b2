"""Rebuild a live tree from a SnapshotRecord.

Restore runs as four strictly ordered phases:

1. LOAD_TYPES: resolve every type descriptor in the record
2. LOCATE: find anchored nodes under the anchor, instantiate everything else
3. REPLAY: decode all field values, then assign them
4. ATTACH: add ephemeral nodes to their recorded parent and sibling index

Nothing is written to the anchor's tree before REPLAY, and REPLAY decodes the
whole record before the first assignment, so resolution failures and
malformed values abort the restore without touching existing objects.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import AnchorPathError, ContractViolation, MalformedRecordError, TypeResolutionError
from .node import Node, Persistable, PersistMode
from .record import AnchoredPlacement, EncodedFreestanding, EncodedStructural, EphemeralPlacement, SnapshotRecord
from .type_table import TypeRegistry, registry as default_registry
from .values import ValueDecoder

logger = logging.getLogger(__name__)

EncodedObject = Union[EncodedStructural, EncodedFreestanding]


class RestorePhase(str, Enum):
    LOAD_TYPES = "load_types"
    LOCATE = "locate"
    REPLAY = "replay"
    ATTACH = "attach"
    DONE = "done"


class _RestorePass:
    def __init__(
        self,
        record: SnapshotRecord,
        anchor: Optional[Node],
        registry: TypeRegistry,
        prepare: Optional[Callable[[], object]] = None,
    ) -> None:
        self.record = record
        self.anchor = anchor
        self.registry = registry
        self.prepare = prepare
        self.phase: Optional[RestorePhase] = None
        self.types: List[type] = []
        self.objects: Dict[int, Persistable] = {}
        self.values = ValueDecoder(self)

    # ReferenceDecoder

    def object_for(self, identity: int) -> Persistable:
        return self.objects[identity]

    def type_for(self, type_id: int) -> type:
        try:
            return self.types[type_id]
        except IndexError as e:
            raise MalformedRecordError(f"Unknown type id {type_id}") from e

    # Phases

    def _enter(self, phase: RestorePhase) -> None:
        self.phase = phase
        logger.debug("Restore phase: %s", phase.value)

    def load_types(self) -> None:
        self._enter(RestorePhase.LOAD_TYPES)
        self.types = [self.registry.resolve(d) for d in self.record.types]

    def _instantiate(self, type_id: int) -> Persistable:
        cls = self.type_for(type_id)
        try:
            return cls()
        except TypeError as e:
            raise ContractViolation(f"{cls.__qualname__} cannot be instantiated without arguments") from e

    def _locate_anchored(self, entry: EncodedStructural) -> Node:
        if not isinstance(entry.placement, AnchoredPlacement):
            raise MalformedRecordError(f"Anchored object {entry.identity} has no anchored path")
        path = entry.placement.path
        if self.anchor is None:
            raise AnchorPathError(path, "cannot be resolved without an anchor")
        node = self.anchor.get_node_or_none(path)
        if node is None:
            raise AnchorPathError(path)
        mode = node.get_persist_mode()
        if mode is PersistMode.ANCHORED or (entry.identity == 0 and mode is PersistMode.NONE):
            return node
        raise AnchorPathError(path, f"is {mode.value}, not anchored")

    def locate(self) -> None:
        self._enter(RestorePhase.LOCATE)
        for entry in self.record.structural:
            if entry.is_anchored:
                self.objects[entry.identity] = self._locate_anchored(entry)
                continue
            obj = self._instantiate(entry.type_id)
            if not isinstance(obj, Node):
                raise TypeResolutionError(self.record.types[entry.type_id], "structural type is not a Node")
            self.objects[entry.identity] = obj
        for fentry in self.record.freestanding:
            self.objects[fentry.identity] = self._instantiate(fentry.type_id)

    def _plan_fields(self, entry: EncodedObject) -> List[Tuple[Persistable, str, Any]]:
        obj = self.objects[entry.identity]
        live_groups = obj.persist_field_groups()
        plan: List[Tuple[Persistable, str, Any]] = []
        for g, values in enumerate(entry.field_groups):
            if g >= len(live_groups):
                logger.debug(
                    "%s declares %d field group(s); ignoring recorded group %d",
                    type(obj).__qualname__,
                    len(live_groups),
                    g,
                )
                continue
            names = live_groups[g]
            if len(values) > len(names):
                raise ContractViolation(
                    f"Record holds {len(values)} values for field group {g} of "
                    f"{type(obj).__qualname__}, which declares only {len(names)}"
                )
            for name, slot in zip(names, values):
                plan.append((obj, name, self.values.decode(slot)))
        return plan

    def decode_fields(self) -> List[Tuple[Persistable, str, Any]]:
        self._enter(RestorePhase.REPLAY)
        plan: List[Tuple[Persistable, str, Any]] = []
        for entry in [*self.record.structural, *self.record.freestanding]:
            plan.extend(self._plan_fields(entry))
        return plan

    def apply_fields(self, plan: List[Tuple[Persistable, str, Any]]) -> None:
        for obj, name, value in plan:
            setattr(obj, name, value)
        logger.debug("Replayed %d field value(s)", len(plan))

    def attach(self) -> None:
        self._enter(RestorePhase.ATTACH)
        for entry in self.record.structural:
            if entry.is_anchored or entry.identity == 0:
                continue
            if not isinstance(entry.placement, EphemeralPlacement):
                raise MalformedRecordError(f"Ephemeral object {entry.identity} has no parent placement")
            node = self.objects[entry.identity]
            parent = self.objects[entry.placement.parent]
            if not isinstance(node, Node) or not isinstance(parent, Node):
                raise MalformedRecordError(f"Object {entry.identity} or its parent is not a node")
            parent.add_child(node)
            # move_child clamps to the parent's current child count
            parent.move_child(node, entry.placement.index)

    def run(self) -> Optional[Node]:
        self.load_types()
        self.locate()
        plan = self.decode_fields()
        if self.prepare is not None:
            self.prepare()
        self.apply_fields(plan)
        self.attach()
        self._enter(RestorePhase.DONE)
        root = self.record.root
        if root.is_anchored:
            return None
        result = self.objects[0]
        if not isinstance(result, Node):
            raise MalformedRecordError("Recorded root is not a node")
        return result


class SnapshotRestorer:
    """Applies a SnapshotRecord onto an anchor, or builds a detached tree."""

    def __init__(self, registry: Optional[TypeRegistry] = None) -> None:
        self.registry = registry or default_registry

    def restore(
        self,
        record: SnapshotRecord,
        anchor: Optional[Node] = None,
        prepare: Optional[Callable[[], object]] = None,
    ) -> Optional[Node]:
        """Restore ``record``.

        ``prepare`` runs once every type, anchored path and field value has
        resolved, before any field is written; orchestration code uses it to tear down
        stale ephemeral nodes only when the restore is known to proceed.

        Returns the new root when the recorded root was ephemeral; otherwise
        the anchor is updated in place and None is returned.
        """
        record.check_consistency()
        if record.object_count == 0:
            logger.info("Empty snapshot record; nothing to restore")
            return None
        result = _RestorePass(record, anchor, self.registry, prepare).run()
        logger.info(
            "Restored snapshot: %d structural, %d freestanding object(s)",
            len(record.structural),
            len(record.freestanding),
        )
        return result


def restore_tree(
    record: SnapshotRecord,
    anchor: Optional[Node] = None,
    registry: Optional[TypeRegistry] = None,
) -> Optional[Node]:
    return SnapshotRestorer(registry).restore(record, anchor)

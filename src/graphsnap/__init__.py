"""Snapshot and restore of live object trees.

This package provides:
- A host object model (Node, Resource) with declarative persisted fields
- An encoder that turns a tree plus its referenced helpers into a record
- A restorer that rebuilds or updates a tree from a record
- A JSON file store and a small CLI for inspecting stored records
"""

from .encoder import SnapshotEncoder, encode_tree
from .errors import (
    AnchorPathError,
    ContractViolation,
    MalformedRecordError,
    ResolutionError,
    SnapshotError,
    TypeResolutionError,
)
from .indexer import IndexResult, index_tree
from .node import Node, Persistable, PersistMode, Resource, teardown_ephemeral
from .record import (
    RECORD_VERSION,
    AnchoredPlacement,
    EncodedFreestanding,
    EncodedStructural,
    EphemeralPlacement,
    SnapshotRecord,
)
from .restorer import RestorePhase, SnapshotRestorer, restore_tree
from .service import load_slot, load_tree, save_slot, save_tree
from .settings import CodecSettings
from .storage import SnapshotStore
from .type_table import TypeRegistry, TypeTable, registry

__version__ = "0.1.0"

__all__ = [
    "RECORD_VERSION",
    "AnchorPathError",
    "AnchoredPlacement",
    "CodecSettings",
    "ContractViolation",
    "EncodedFreestanding",
    "EncodedStructural",
    "EphemeralPlacement",
    "IndexResult",
    "MalformedRecordError",
    "Node",
    "PersistMode",
    "Persistable",
    "ResolutionError",
    "Resource",
    "RestorePhase",
    "SnapshotEncoder",
    "SnapshotError",
    "SnapshotRecord",
    "SnapshotRestorer",
    "SnapshotStore",
    "TypeRegistry",
    "TypeResolutionError",
    "TypeTable",
    "encode_tree",
    "index_tree",
    "load_slot",
    "load_tree",
    "registry",
    "restore_tree",
    "save_slot",
    "save_tree",
    "teardown_ephemeral",
]

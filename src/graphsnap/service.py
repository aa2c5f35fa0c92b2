"""Convenience entry points for application code.

These wrap the codec with the steps an application performs around it:
tearing down ephemeral nodes before a restore, and optionally reading or
writing a SnapshotStore slot. Callers must keep the tree stable (no
background mutation) while these run.
"""

from __future__ import annotations

import functools
import logging
from typing import Callable, Optional

from .encoder import SnapshotEncoder
from .node import Node, teardown_ephemeral
from .record import SnapshotRecord
from .restorer import SnapshotRestorer
from .settings import CodecSettings
from .storage import SnapshotStore
from .type_table import TypeRegistry

logger = logging.getLogger(__name__)


def save_tree(
    root: Node,
    settings: Optional[CodecSettings] = None,
    registry: Optional[TypeRegistry] = None,
) -> SnapshotRecord:
    return SnapshotEncoder(settings, registry).encode(root)


def load_tree(
    record: SnapshotRecord,
    anchor: Optional[Node] = None,
    registry: Optional[TypeRegistry] = None,
    *,
    teardown: bool = True,
) -> Optional[Node]:
    """Restore ``record`` onto ``anchor``.

    When ``teardown`` is set, ephemeral nodes currently under the anchor are
    detached once the record has resolved, so the restore does not duplicate
    them and a failed restore leaves them in place.
    """
    prepare: Optional[Callable[[], object]] = None
    if anchor is not None and teardown and record.object_count and record.root.is_anchored:
        prepare = functools.partial(teardown_ephemeral, anchor)

    return SnapshotRestorer(registry).restore(record, anchor, prepare)


def save_slot(
    store: SnapshotStore,
    name: str,
    root: Node,
    settings: Optional[CodecSettings] = None,
    registry: Optional[TypeRegistry] = None,
) -> SnapshotRecord:
    record = save_tree(root, settings, registry)
    store.save(name, record)
    return record


def load_slot(
    store: SnapshotStore,
    name: str,
    anchor: Optional[Node] = None,
    registry: Optional[TypeRegistry] = None,
) -> Optional[Node]:
    record = store.load(name)
    return load_tree(record, anchor, registry)

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ContractViolation
from .node import Node, PersistMode

logger = logging.getLogger(__name__)


@dataclass
class IndexResult:
    """Identity assignment for one snapshot operation.

    ``objects[i]`` is the object with identity ``i``; ``ids`` maps ``id(obj)``
    back to the identity.
    """

    objects: List[Node] = field(default_factory=list)
    ids: Dict[int, int] = field(default_factory=dict)

    @property
    def object_count(self) -> int:
        return len(self.objects)

    def identity_of(self, obj: object) -> Optional[int]:
        return self.ids.get(id(obj))


def index_tree(root: Optional[Node]) -> IndexResult:
    """Assign pre-order identities to every persisted node under ``root``.

    The root always gets identity 0. Subtrees whose root has mode NONE are
    skipped entirely. Anchored nodes below an ephemeral one are rejected.
    """
    result = IndexResult()
    if root is None:
        return result

    # explicit stack of (node, has ephemeral ancestor)
    stack: List[Tuple[Node, bool]] = [(root, False)]
    while stack:
        node, under_ephemeral = stack.pop()
        mode = node.get_persist_mode()
        if node is not root and mode is PersistMode.NONE:
            continue
        if mode is PersistMode.ANCHORED and under_ephemeral:
            raise ContractViolation(f"Anchored {node!r} has an ephemeral ancestor")

        result.ids[id(node)] = len(result.objects)
        result.objects.append(node)

        child_flag = under_ephemeral or mode is PersistMode.EPHEMERAL
        for child in reversed(node.children):
            stack.append((child, child_flag))

    logger.debug("Indexed %d node(s) under %r", result.object_count, root)
    return result

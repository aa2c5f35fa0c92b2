"""Snapshot record data model.

A record is plain data produced whole by one encode call and consumed whole
by one restore call. ``SnapshotRecord.to_dict()`` yields nested dicts, lists
and primitives that any JSON-like container format can carry::

    {
      "version": 1,
      "object_count": 4,
      "types": ["game.units:Enemy"],
      "structural": [
        {"id": 0, "type": -1, "path": "", "index": 0, "fields": [[1, 3]]},
        {"id": 1, "type": 0, "parent": 0, "index": 2, "fields": [[2, "s:orc", "o:2"]]}
      ],
      "freestanding": [
        {"id": 2, "type": 0, "fields": [[0]]}
      ]
    }

Each entry of ``fields`` is one declared field group, prefixed with its
value count.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, List, Union

from jsonschema import Draft202012Validator

from .errors import MalformedRecordError

logger = logging.getLogger(__name__)

# Increment when making breaking format changes
RECORD_VERSION = 1

# type id used by anchored structural objects
ANCHORED_TYPE = -1
# parent id of an ephemeral snapshot root
DETACHED_ROOT = -1


@dataclass(frozen=True)
class AnchoredPlacement:
    path: str
    index: int


@dataclass(frozen=True)
class EphemeralPlacement:
    parent: int
    index: int


Placement = Union[AnchoredPlacement, EphemeralPlacement]


def _groups_to_data(groups: List[List[Any]]) -> List[List[Any]]:
    return [[len(g), *g] for g in groups]


def _groups_from_data(identity: int, data: List[List[Any]]) -> List[List[Any]]:
    groups: List[List[Any]] = []
    for n, raw in enumerate(data):
        count = raw[0]
        if count != len(raw) - 1:
            raise MalformedRecordError(
                f"Object {identity}: field group {n} declares {count} values but holds {len(raw) - 1}"
            )
        groups.append(list(raw[1:]))
    return groups


@dataclass
class EncodedStructural:
    identity: int
    type_id: int
    placement: Placement
    field_groups: List[List[Any]] = field(default_factory=list)

    @property
    def is_anchored(self) -> bool:
        return self.type_id == ANCHORED_TYPE

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.identity, "type": self.type_id}
        if isinstance(self.placement, AnchoredPlacement):
            data["path"] = self.placement.path
        else:
            data["parent"] = self.placement.parent
        data["index"] = self.placement.index
        data["fields"] = _groups_to_data(self.field_groups)
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EncodedStructural":
        identity = int(data["id"])
        type_id = int(data["type"])
        placement: Placement
        if type_id == ANCHORED_TYPE:
            placement = AnchoredPlacement(path=str(data["path"]), index=int(data["index"]))
        else:
            placement = EphemeralPlacement(parent=int(data["parent"]), index=int(data["index"]))
        return EncodedStructural(
            identity=identity,
            type_id=type_id,
            placement=placement,
            field_groups=_groups_from_data(identity, data.get("fields", [])),
        )


@dataclass
class EncodedFreestanding:
    identity: int
    type_id: int
    field_groups: List[List[Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.identity,
            "type": self.type_id,
            "fields": _groups_to_data(self.field_groups),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "EncodedFreestanding":
        identity = int(data["id"])
        return EncodedFreestanding(
            identity=identity,
            type_id=int(data["type"]),
            field_groups=_groups_from_data(identity, data.get("fields", [])),
        )


@dataclass
class SnapshotRecord:
    """One complete snapshot of an object graph."""

    object_count: int
    structural: List[EncodedStructural] = field(default_factory=list)
    freestanding: List[EncodedFreestanding] = field(default_factory=list)
    types: List[str] = field(default_factory=list)
    version: int = RECORD_VERSION

    @property
    def root(self) -> EncodedStructural:
        if not self.structural:
            raise MalformedRecordError("Record has no structural objects")
        return self.structural[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "object_count": self.object_count,
            "types": list(self.types),
            "structural": [s.to_dict() for s in self.structural],
            "freestanding": [f.to_dict() for f in self.freestanding],
        }

    @staticmethod
    def from_dict(data: Dict[str, Any], *, validate: bool = True) -> "SnapshotRecord":
        if validate:
            validate_record_data(data)
        try:
            record = SnapshotRecord(
                object_count=int(data["object_count"]),
                structural=[EncodedStructural.from_dict(s) for s in data["structural"]],
                freestanding=[EncodedFreestanding.from_dict(f) for f in data["freestanding"]],
                types=[str(t) for t in data["types"]],
                version=int(data.get("version", RECORD_VERSION)),
            )
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise MalformedRecordError(f"Invalid snapshot record: {e}") from e
        record.check_consistency()
        return record

    def check_consistency(self) -> None:
        """Verify cross-references inside the record."""
        if self.version > RECORD_VERSION:
            raise MalformedRecordError(
                f"Record version {self.version} is newer than supported {RECORD_VERSION}"
            )
        if self.object_count and not self.structural:
            raise MalformedRecordError("Record has objects but no structural root")
        if self.structural and self.structural[0].identity != 0:
            raise MalformedRecordError("First structural object must be the root (id 0)")
        for f in self.freestanding:
            if f.type_id < 0:
                raise MalformedRecordError(f"Freestanding object {f.identity} has no type")
        seen = set()
        for entry in [*self.structural, *self.freestanding]:
            if not 0 <= entry.identity < self.object_count:
                raise MalformedRecordError(
                    f"Object id {entry.identity} outside object_count {self.object_count}"
                )
            if entry.identity in seen:
                raise MalformedRecordError(f"Duplicate object id {entry.identity}")
            seen.add(entry.identity)
            if not ANCHORED_TYPE <= entry.type_id < len(self.types):
                raise MalformedRecordError(f"Object {entry.identity} names unknown type id {entry.type_id}")
        if len(seen) != self.object_count:
            raise MalformedRecordError(
                f"object_count is {self.object_count} but record holds {len(seen)} objects"
            )
        structural_ids = {s.identity for s in self.structural}
        for s in self.structural:
            if s.is_anchored != isinstance(s.placement, AnchoredPlacement):
                raise MalformedRecordError(
                    f"Object {s.identity}: type id {s.type_id} does not match its {type(s.placement).__name__}"
                )
            if isinstance(s.placement, EphemeralPlacement):
                parent = s.placement.parent
                if parent == DETACHED_ROOT:
                    if s.identity != 0:
                        raise MalformedRecordError(f"Only the root may be detached (object {s.identity})")
                    continue
                # identities are pre-order, so a parent always precedes its children
                if parent not in structural_ids or parent >= s.identity:
                    raise MalformedRecordError(
                        f"Object {s.identity} names parent {parent}, which is not an earlier structural object"
                    )


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    text = resources.files("graphsnap.schemas").joinpath("snapshot.schema.json").read_text(encoding="utf-8")
    return Draft202012Validator(json.loads(text))


def validate_record_data(data: Any) -> None:
    """Validate raw record data against the bundled JSON Schema."""
    errors = sorted(_validator().iter_errors(data), key=lambda e: [str(p) for p in e.path])
    if errors:
        for err in errors:
            logger.debug("Snapshot schema error at %s: %s", list(err.path), err.message)
        raise MalformedRecordError("Snapshot record failed schema validation", errors)

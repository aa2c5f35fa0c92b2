"""Field value codec.

Encoded slots are plain JSON-compatible data. The decoder tells slots apart by
their runtime shape alone:

- ``None``, ``bool``, ``int``, ``float``: stored unchanged
- ``str``: tagged, ``"<tag>:<payload>"``

  - ``s:`` plain string
  - ``o:<id>`` reference to an object of the snapshot
  - ``w:<id>`` weak reference to a live object, ``w:`` a dead one

- ``list``: either a plain copy of a homogeneous bool/int/float list, or the
  encoded elements followed by one trailing metadata mapping
  ``{"": {"kind": ..., "elem": ..., "type": ...}}``
- ``dict``: encoded keys to encoded values, with metadata stored under the
  empty-string key, which no key encoding ever produces

Containers are copied by value. Two fields holding the same list come back
as two equal but independent lists.
"""

from __future__ import annotations

import json
import logging
import weakref
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from .errors import ContractViolation, MalformedRecordError
from .node import Persistable
from .settings import CodecSettings

logger = logging.getLogger(__name__)

META_KEY = ""

STRING_TAG = "s"
OBJECT_TAG = "o"
WEAK_TAG = "w"
DEAD_WEAK = f"{WEAK_TAG}:"

# key-only tags
INT_KEY = "i"
FLOAT_KEY = "f"
BOOL_KEY = "b"
NONE_KEY = "n"
TUPLE_KEY = "t"

_FAST_TYPES = (bool, int, float)
_SEQUENCE_KINDS: Dict[type, str] = {tuple: "tuple", set: "set", frozenset: "frozenset", list: "list"}
_SEQUENCE_TYPES = {v: k for k, v in _SEQUENCE_KINDS.items()}
_REF_KINDS = ("object", "weak")


class ReferenceEncoder(Protocol):
    def identity_of(self, obj: Persistable) -> int: ...

    def type_hint_of(self, cls: type) -> Optional[int]: ...


class ReferenceDecoder(Protocol):
    def object_for(self, identity: int) -> Persistable: ...

    def type_for(self, type_id: int) -> type: ...


_PRIMITIVE_KINDS: Dict[type, str] = {bool: "bool", int: "int", float: "float", str: "str"}


def value_kind(value: Any) -> str:
    """Return the element kind name recorded in container metadata.

    Primitive and container kinds match on the exact type; subclasses such
    as enums are not persistable and report ``any``.
    """
    if value is None:
        return "none"
    kind = _PRIMITIVE_KINDS.get(type(value))
    if kind is not None:
        return kind
    if isinstance(value, Persistable):
        return "object"
    if isinstance(value, weakref.ReferenceType):
        return "weak"
    if type(value) is dict:
        return "dict"
    if type(value) in _SEQUENCE_KINDS:
        return "list"
    return "any"


def _common_kind(values: Iterable[Any]) -> str:
    kinds = {value_kind(v) for v in values}
    if len(kinds) == 1:
        return kinds.pop()
    return "any"


def _referent(value: Any) -> Optional[Persistable]:
    if isinstance(value, weakref.ReferenceType):
        return value()
    return value


def _common_type(values: Iterable[Any]) -> Optional[type]:
    types = {type(r) for r in map(_referent, values) if r is not None}
    if len(types) == 1:
        return types.pop()
    return None


class ValueEncoder:
    def __init__(self, refs: ReferenceEncoder, settings: Optional[CodecSettings] = None) -> None:
        self._refs = refs
        self._settings = settings or CodecSettings()
        # ids of containers currently being encoded
        self._active: Set[int] = set()

    def encode(self, value: Any) -> Any:
        if value is None or type(value) in _FAST_TYPES:
            return value
        if type(value) is str:
            return f"{STRING_TAG}:{value}"
        if isinstance(value, Persistable):
            return f"{OBJECT_TAG}:{self._refs.identity_of(value)}"
        if isinstance(value, weakref.ReferenceType):
            return self._encode_weak(value)
        if type(value) is dict:
            return self._guarded(value, self._encode_mapping)
        if type(value) in _SEQUENCE_KINDS:
            if self._settings.fast_path and type(value) is list and _is_homogeneous(value):
                return list(value)
            return self._guarded(value, self._encode_sequence)
        return self._disallowed(value)

    def _encode_weak(self, ref: "weakref.ReferenceType[Any]") -> Any:
        target = ref()
        if target is None:
            return DEAD_WEAK
        if not isinstance(target, Persistable):
            return self._disallowed(ref)
        return f"{WEAK_TAG}:{self._refs.identity_of(target)}"

    def _guarded(self, container: Any, encode_fn) -> Any:
        key = id(container)
        if key in self._active:
            raise ContractViolation(f"Container {type(container).__name__} contains itself")
        self._active.add(key)
        try:
            return encode_fn(container)
        finally:
            self._active.discard(key)

    def _type_meta(self, meta: Dict[str, Any], kind: str, values: List[Any], field: str) -> None:
        if kind not in _REF_KINDS:
            return
        cls = _common_type(values)
        if cls is None:
            return
        type_id = self._refs.type_hint_of(cls)
        if type_id is not None:
            meta[field] = type_id

    def _encode_sequence(self, value: Any) -> Any:
        kind = _SEQUENCE_KINDS[type(value)]
        items = list(value)
        encoded: Optional[List[Any]] = None
        if kind in ("set", "frozenset"):
            # written in a canonical order, independent of hashing
            if _holds_references(items):
                return self._disallowed(value, "sets of objects have no stable order; use a list")
            pairs = sorted(((v, self.encode(v)) for v in items), key=_set_order)
            items = [v for v, _ in pairs]
            encoded = [e for _, e in pairs]
        elem = _common_kind(items)
        meta: Dict[str, Any] = {"kind": kind, "elem": elem}
        self._type_meta(meta, elem, items, "type")
        if encoded is None:
            encoded = [self.encode(v) for v in items]
        encoded.append({META_KEY: meta})
        return encoded

    def _encode_mapping(self, value: Dict[Any, Any]) -> Dict[str, Any]:
        keys = list(value.keys())
        values = list(value.values())
        key_kind = _common_kind(keys)
        value_kind_ = _common_kind(values)
        meta: Dict[str, Any] = {"kind": "dict", "key": key_kind, "value": value_kind_}
        self._type_meta(meta, key_kind, keys, "key_type")
        self._type_meta(meta, value_kind_, values, "value_type")

        out: Dict[str, Any] = {META_KEY: meta}
        for k, v in value.items():
            ek = self.encode_key(k)
            if ek is None:
                continue
            out[ek] = self.encode(v)
        return out

    def encode_key(self, key: Any) -> Optional[str]:
        """Encode a mapping key to a non-empty string.

        Returns None when the entry must be dropped.
        """
        key_type = type(key)
        if key_type is str:
            return f"{STRING_TAG}:{key}"
        if key_type is bool:
            return f"{BOOL_KEY}:{int(key)}"
        if key_type is int:
            return f"{INT_KEY}:{key}"
        if key_type is float:
            return f"{FLOAT_KEY}:{key!r}"
        if key is None:
            return f"{NONE_KEY}:"
        if isinstance(key, weakref.ReferenceType) and key() is None:
            # every dead reference encodes to the same key
            logger.warning("Dropping mapping entry keyed by a dead weak reference")
            return None
        if isinstance(key, (Persistable, weakref.ReferenceType)):
            return self.encode(key)
        if key_type is tuple and all(k is None or type(k) in _PRIMITIVE_KINDS for k in key):
            return f"{TUPLE_KEY}:{json.dumps(list(key))}"
        return self._disallowed(key)

    def _disallowed(self, value: Any, reason: str = "") -> None:
        msg = f"Cannot persist value of type {type(value).__module__}.{type(value).__qualname__}"
        if reason:
            msg = f"{msg}: {reason}"
        if self._settings.strict:
            raise ContractViolation(msg)
        logger.warning("%s; writing null", msg)
        return None


def _holds_references(values: Iterable[Any]) -> bool:
    for v in values:
        if isinstance(v, (Persistable, weakref.ReferenceType)):
            return True
        if isinstance(v, (tuple, frozenset)) and _holds_references(v):
            return True
    return False


def _set_order(pair: Tuple[Any, Any]) -> Tuple[int, Any, str]:
    value, encoded = pair
    # numbers sort numerically ahead of everything else, the rest by their
    # canonical encoded form
    if type(value) in _FAST_TYPES:
        return (0, value, "")
    return (1, 0, json.dumps(encoded, sort_keys=True))


def _is_homogeneous(items: List[Any]) -> bool:
    if not items:
        return True
    first = type(items[0])
    return first in _FAST_TYPES and all(type(v) is first for v in items)


def is_meta(slot: Any) -> bool:
    return isinstance(slot, dict) and len(slot) == 1 and isinstance(slot.get(META_KEY), dict)


class _Tombstone:
    pass


def _dead_ref() -> "weakref.ReferenceType[Any]":
    # the tombstone is released as soon as the call returns
    return weakref.ref(_Tombstone())


class ValueDecoder:
    def __init__(self, refs: ReferenceDecoder) -> None:
        self._refs = refs

    def decode(self, slot: Any) -> Any:
        if slot is None or isinstance(slot, _FAST_TYPES):
            return slot
        if isinstance(slot, str):
            return self._decode_tagged(slot)
        if isinstance(slot, list):
            if slot and is_meta(slot[-1]):
                return self._decode_sequence(slot[:-1], slot[-1][META_KEY])
            return [self.decode(v) for v in slot]
        if isinstance(slot, dict):
            meta = slot.get(META_KEY)
            if not isinstance(meta, dict):
                raise MalformedRecordError("Encoded mapping is missing its metadata entry")
            return self._decode_mapping(slot, meta)
        raise MalformedRecordError(f"Unexpected encoded slot of type {type(slot).__name__}")

    def _split(self, text: str) -> Tuple[str, str]:
        tag, sep, rest = text.partition(":")
        if not sep:
            raise MalformedRecordError(f"Untagged string slot {text!r}")
        return tag, rest

    def _lookup(self, rest: str) -> Persistable:
        try:
            identity = int(rest)
        except ValueError as e:
            raise MalformedRecordError(f"Invalid object id {rest!r}") from e
        try:
            return self._refs.object_for(identity)
        except KeyError as e:
            raise MalformedRecordError(f"Dangling reference to object {identity}") from e

    def _decode_tagged(self, text: str) -> Any:
        tag, rest = self._split(text)
        if tag == STRING_TAG:
            return rest
        if tag == OBJECT_TAG:
            return self._lookup(rest)
        if tag == WEAK_TAG:
            if not rest:
                return _dead_ref()
            return weakref.ref(self._lookup(rest))
        raise MalformedRecordError(f"Unknown slot tag {tag!r}")

    def decode_key(self, text: str) -> Any:
        tag, rest = self._split(text)
        try:
            if tag == INT_KEY:
                return int(rest)
            if tag == FLOAT_KEY:
                return float(rest)
            if tag == BOOL_KEY:
                return rest == "1"
            if tag == NONE_KEY:
                return None
            if tag == TUPLE_KEY:
                return tuple(json.loads(rest))
        except ValueError as e:
            raise MalformedRecordError(f"Invalid mapping key {text!r}") from e
        return self._decode_tagged(text)

    def _check_type(self, values: Iterable[Any], type_id: Optional[int]) -> None:
        if type_id is None:
            return
        cls = self._refs.type_for(int(type_id))
        for v in values:
            target = _referent(v)
            if target is not None and not isinstance(target, cls):
                raise ContractViolation(
                    f"Container typed {cls.__qualname__} holds {type(target).__qualname__}"
                )

    def _decode_sequence(self, items: List[Any], meta: Dict[str, Any]) -> Any:
        kind = meta.get("kind", "list")
        container = _SEQUENCE_TYPES.get(kind)
        if container is None:
            raise MalformedRecordError(f"Unknown sequence kind {kind!r}")
        values = [self.decode(v) for v in items]
        self._check_type(values, meta.get("type"))
        if container is list:
            return values
        return container(values)

    def _decode_mapping(self, slot: Dict[str, Any], meta: Dict[str, Any]) -> Dict[Any, Any]:
        out: Dict[Any, Any] = {}
        for ek, ev in slot.items():
            if ek == META_KEY:
                continue
            out[self.decode_key(ek)] = self.decode(ev)
        self._check_type(out.keys(), meta.get("key_type"))
        self._check_type(out.values(), meta.get("value_type"))
        return out

from __future__ import annotations

import importlib
import logging
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Type, TypeVar, overload

from .errors import ContractViolation, TypeResolutionError
from .node import Persistable

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Type[Persistable])


class TypeRegistry:
    """Explicit descriptor <-> class mapping, consulted before importing.

    Classes that cannot be found by import path (defined inside functions,
    generated at runtime, or renamed since a record was written) are
    registered here under a stable descriptor.
    """

    def __init__(self) -> None:
        self._by_descriptor: Dict[str, type] = {}
        self._by_type: Dict[type, str] = {}

    @overload
    def register(self, cls: T, *, descriptor: Optional[str] = None) -> T: ...

    @overload
    def register(self, cls: None = None, *, descriptor: Optional[str] = None) -> Callable[[T], T]: ...

    def register(self, cls=None, *, descriptor=None):
        def _register(klass):
            if not (isinstance(klass, type) and issubclass(klass, Persistable)):
                raise TypeError(f"{klass!r} is not a Persistable class")
            key = descriptor or _import_path(klass)
            existing = self._by_descriptor.get(key)
            if existing is not None and existing is not klass:
                raise ValueError(f"Descriptor {key!r} already registered for {existing!r}")
            self._by_descriptor[key] = klass
            self._by_type[klass] = key
            logger.debug("Registered type %s as %r", klass.__qualname__, key)
            return klass

        if cls is None:
            return _register
        return _register(cls)

    def unregister(self, cls: type) -> None:
        key = self._by_type.pop(cls, None)
        if key is not None:
            self._by_descriptor.pop(key, None)

    def descriptor_for(self, cls: type) -> str:
        """Return the loadable descriptor for ``cls``."""
        registered = self._by_type.get(cls)
        if registered is not None:
            return registered
        path = _import_path(cls)
        if "<locals>" in path:
            raise ContractViolation(
                f"{cls.__qualname__} is defined in a local scope; register it to make it loadable"
            )
        return path

    def resolve(self, descriptor: str) -> Type[Persistable]:
        """Load the class named by ``descriptor``."""
        registered = self._by_descriptor.get(descriptor)
        if registered is not None:
            return registered

        module_name, sep, qualname = descriptor.partition(":")
        if not sep or not module_name or not qualname:
            raise TypeResolutionError(descriptor, "expected 'module:QualName'")
        try:
            obj = importlib.import_module(module_name)
        except ImportError as e:
            raise TypeResolutionError(descriptor, str(e)) from e
        for attr in qualname.split("."):
            try:
                obj = getattr(obj, attr)
            except AttributeError as e:
                raise TypeResolutionError(descriptor, f"no attribute {attr!r}") from e
        if not (isinstance(obj, type) and issubclass(obj, Persistable)):
            raise TypeResolutionError(descriptor, "not a Persistable class")
        return obj


def _import_path(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


# Module-level registry for convenience
registry = TypeRegistry()


class TypeTable:
    """Dense, first-seen ids for type descriptors."""

    def __init__(self, descriptors: Iterable[str] = ()) -> None:
        self._descriptors: List[str] = []
        self._ids: Dict[str, int] = {}
        for d in descriptors:
            self.add(d)

    def add(self, descriptor: str) -> int:
        type_id = self._ids.get(descriptor)
        if type_id is None:
            type_id = len(self._descriptors)
            self._descriptors.append(descriptor)
            self._ids[descriptor] = type_id
        return type_id

    def id_of(self, descriptor: str) -> Optional[int]:
        return self._ids.get(descriptor)

    def descriptor(self, type_id: int) -> str:
        if not 0 <= type_id < len(self._descriptors):
            raise IndexError(f"Unknown type id {type_id}")
        return self._descriptors[type_id]

    @property
    def descriptors(self) -> List[str]:
        return list(self._descriptors)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[str]:
        return iter(self._descriptors)

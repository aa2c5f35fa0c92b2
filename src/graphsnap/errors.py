from __future__ import annotations

from typing import Optional, Sequence


class SnapshotError(Exception):
    """Base exception for snapshot encode/restore errors."""


class ContractViolation(SnapshotError):
    """Raised when the caller hands the codec something it must never see.

    Disallowed value kinds, references to structural objects outside the
    snapshot root, anchored objects below ephemeral ones, and records naming
    fields the target type does not declare all end up here.
    """


class ResolutionError(SnapshotError):
    """Raised when the environment cannot satisfy a restore."""


class TypeResolutionError(ResolutionError):
    """Raised when a type descriptor cannot be loaded."""

    def __init__(self, descriptor: str, reason: str = "") -> None:
        self.descriptor = descriptor
        msg = f"Cannot resolve type descriptor {descriptor!r}"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)


class AnchorPathError(ResolutionError):
    """Raised when an anchored path does not resolve under the anchor."""

    def __init__(self, path: str, reason: str = "not found") -> None:
        self.path = path
        super().__init__(f"Anchored object at {path!r} {reason}")


class MalformedRecordError(SnapshotError):
    """Raised when a snapshot record has the wrong shape or counts."""

    def __init__(self, message: str, errors: Optional[Sequence[object]] = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])

    def to_human(self) -> str:
        parts = [str(self)]
        for e in self.errors:
            path = "/".join(str(p) for p in getattr(e, "path", [])) or "<root>"
            parts.append(f" - at {path}: {getattr(e, 'message', e)}")
        return "\n".join(parts)

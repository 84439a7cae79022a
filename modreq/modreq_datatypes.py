"""
Defines the core data types for the modreq module system.

This module provides the descriptor produced by identifier classification,
the per-require module record handed to evaluators, the cache entry states
and the error taxonomy raised through `require`.
"""

from __future__ import annotations

import enum
import posixpath
from dataclasses import dataclass, field
from types import SimpleNamespace, TracebackType
from typing import Any, Callable, List, Literal, Optional


# =================================================================
# Errors
# =================================================================

class RequireError(Exception):
    """Base class for every error raised by `require`."""
    pass


class UnsupportedProtocol(RequireError):
    def __init__(self, protocol: str):
        super().__init__(f"unsupported protocol `{protocol}`")
        self.protocol = protocol


class NoBareLoader(RequireError):
    def __init__(self, id: str):
        super().__init__(f"no loader for bare identifier `{id}`")
        self.id = id


class LoaderFailure(RequireError):
    """A protocol loader could not produce source for `id`."""
    def __init__(self, id: str, cause: BaseException):
        super().__init__(f"failed to load `{id}`: {cause}")
        self.id = id
        self.cause = cause


class EvaluationFailure(RequireError):
    """The module's own code raised while being evaluated."""
    def __init__(self, id: str, cause: BaseException):
        super().__init__(f"error evaluating `{id}`: {type(cause).__name__}: {cause}")
        self.id = id
        self.cause = cause


class CyclicRequireError(RequireError):
    def __init__(self, id: str):
        super().__init__(f"cyclic require of `{id}` has no partial exports")
        self.id = id


# =================================================================
# Identifiers
# =================================================================

DescriptorKind = Literal["path", "scheme", "bare"]


@dataclass(frozen=True)
class Descriptor:
    """The classified form of a raw module identifier.

    `kind` records which rule matched: a local path (rewritten to the
    `file` protocol), an explicit `scheme://` identifier, or a bare name
    passed through unchanged with no protocol.
    """
    protocol: Optional[str]
    id: str
    kind: DescriptorKind = "bare"

    @property
    def canonical(self) -> str:
        if self.protocol is None:
            return self.id
        return f"{self.protocol}://{self.id}"


# =================================================================
# Modules
# =================================================================

@dataclass(eq=False)
class Module:
    """The module object a loaded unit of source executes against.

    `exports` exists before the module body runs so a cyclic require sees
    the live, partially populated object.
    """
    id: str
    filename: Optional[str] = None
    parent: Optional['Module'] = None
    exports: Any = field(default_factory=SimpleNamespace)
    loaded: bool = False
    children: List['Module'] = field(default_factory=list)
    require: Optional[Callable[[str], Any]] = None

    @property
    def dirname(self) -> Optional[str]:
        if not self.filename or not self.filename.startswith("/"):
            return None
        return posixpath.dirname(self.filename)

    def __repr__(self):
        state = "loaded" if self.loaded else "loading"
        return f"<Module {self.id!r} {state}>"


# =================================================================
# Cache entries
# =================================================================

class EntryState(enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(eq=False)
class CacheEntry:
    id: str
    state: EntryState = EntryState.PENDING
    value: Any = None
    error: Optional[BaseException] = None
    traceback: Optional[TracebackType] = None
    partial: Optional[Callable[[], Any]] = None

    # The state is written last: readers outside the lock trust it.

    def resolve(self, value: Any):
        assert self.state is EntryState.PENDING, self.state
        self.value = value
        self.partial = None
        self.state = EntryState.RESOLVED

    def fail(self, error: BaseException):
        assert self.state is EntryState.PENDING, self.state
        self.error = error
        self.traceback = error.__traceback__
        self.partial = None
        self.state = EntryState.FAILED


__all__ = [
    "RequireError",
    "UnsupportedProtocol",
    "NoBareLoader",
    "LoaderFailure",
    "EvaluationFailure",
    "CyclicRequireError",
    "Descriptor",
    "Module",
    "EntryState",
    "CacheEntry",
]

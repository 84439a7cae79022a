from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, TYPE_CHECKING

from modreq.modreq_datatypes import NoBareLoader, UnsupportedProtocol

if TYPE_CHECKING:
    from modreq.modreq_datatypes import Module


class Loader(ABC):
    """A protocol handler: turns a protocol-local id into module source."""

    def resolve(self, id: str, parent: Optional['Module'] = None) -> str:
        """Normalize `id` relative to the requiring module. Identity by default."""
        return id

    @abstractmethod
    def load(self, id: str) -> str:
        raise NotImplementedError


class LoaderRegistry:
    """Maps protocol names to loaders, plus one optional bare-identifier loader."""

    def __init__(self):
        self._lock = threading.Lock()
        self._loaders: Dict[str, Loader] = {}
        self._bare: Optional[Loader] = None

    def register(self, protocol: str, loader: Loader):
        if not isinstance(protocol, str) or not protocol:
            raise ValueError(f"protocol must be a non-empty string, not {protocol!r}")
        with self._lock:
            # Copy-on-write so lookups never see a half-updated mapping
            loaders = dict(self._loaders)
            loaders[protocol] = loader
            self._loaders = loaders

    def register_bare(self, loader: Optional[Loader]):
        with self._lock:
            self._bare = loader

    def resolve(self, protocol: Optional[str], id: str = "") -> Loader:
        if protocol is None:
            if self._bare is None:
                raise NoBareLoader(id)
            return self._bare
        loader = self._loaders.get(protocol)
        if loader is None:
            raise UnsupportedProtocol(protocol)
        return loader

    @property
    def bare(self) -> Optional[Loader]:
        return self._bare

    def protocols(self) -> List[str]:
        return sorted(self._loaders)

    def __contains__(self, protocol: object) -> bool:
        return protocol in self._loaders

    def __repr__(self):
        return f"<LoaderRegistry protocols={self.protocols()!r} bare={self._bare!r}>"

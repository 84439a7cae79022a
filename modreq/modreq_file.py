from __future__ import annotations

import logging
import os
import posixpath
from typing import Dict, Iterable, List, Mapping, Optional, TYPE_CHECKING

from modreq.modreq_registry import Loader

if TYPE_CHECKING:
    from modreq.modreq_datatypes import Module

LOGGER = logging.getLogger("modreq.file")

DEFAULT_EXTENSIONS = (".py", ".json", ".yaml", ".yml", ".toml", ".xml")


def resolve_locator(id: str, base_dir: str, pathmod=os.path) -> str:
    """Absolute ids are normalized as-is; anything else joins `base_dir`."""
    # Absolute filesystem root
    if id.startswith("/"):
        return pathmod.normpath(id)
    # './x', '../x' and plain 'x' are all relative to the base
    return pathmod.normpath(pathmod.join(base_dir, id))


class FileLoader(Loader):
    """
    Loads module source from the local filesystem.

    Relative ids resolve against the requiring module's directory, or the
    loader's base directory for top-level requires. A path that does not exist
    and has no extension is probed with each configured extension; a directory
    is probed for `index<ext>`.
    """

    def __init__(self, base_dir: Optional[str] = None, extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self.base_dir = os.path.abspath(base_dir or os.getcwd())
        self.extensions: List[str] = list(extensions)

    def _base_for(self, parent: Optional['Module']) -> str:
        if parent is not None and parent.dirname:
            return parent.dirname
        return self.base_dir

    def _isfile(self, path: str) -> bool:
        return os.path.isfile(path)

    def _isdir(self, path: str) -> bool:
        return os.path.isdir(path)

    def _probe(self, path: str, pathmod=os.path) -> Optional[str]:
        if self._isfile(path):
            return path
        if self._isdir(path):
            for ext in self.extensions:
                candidate = pathmod.join(path, "index" + ext)
                if self._isfile(candidate):
                    return candidate
            return None
        if not pathmod.splitext(path)[1]:
            for ext in self.extensions:
                if self._isfile(path + ext):
                    return path + ext
        return None

    def resolve(self, id: str, parent: Optional['Module'] = None) -> str:
        path = resolve_locator(id, self._base_for(parent))
        found = self._probe(path)
        if found is None:
            # Let load() report the missing file so the failure is cached
            LOGGER.debug("unresolved %s -> %s", id, path)
            return path
        LOGGER.debug("resolved %s -> %s", id, found)
        return found

    def load(self, id: str) -> str:
        with open(id, "r", encoding="utf-8") as f:
            return f.read()

    def __repr__(self):
        return f"<FileLoader base_dir={self.base_dir!r}>"


class MemoryLoader(FileLoader):
    """
    A file loader backed by an in-memory {absolute posix path: source} map.

    Resolution follows FileLoader's rules with posix paths. `loads` counts
    load() calls.
    """

    def __init__(self, files: Optional[Mapping[str, str]] = None, base_dir: str = "/",
                 extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self.files: Dict[str, str] = dict(files or {})
        self.base_dir = base_dir
        self.extensions = list(extensions)
        self.loads = 0

    def _isfile(self, path: str) -> bool:
        return path in self.files

    def _isdir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        return any(name.startswith(prefix) for name in self.files)

    def resolve(self, id: str, parent: Optional['Module'] = None) -> str:
        path = resolve_locator(id, self._base_for(parent), pathmod=posixpath)
        return self._probe(path, pathmod=posixpath) or path

    def load(self, id: str) -> str:
        self.loads += 1
        try:
            return self.files[id]
        except KeyError:
            raise FileNotFoundError(id) from None

    def __repr__(self):
        return f"<MemoryLoader files={len(self.files)}>"


class SearchPathLoader(FileLoader):
    """Bare-identifier loader: finds `name` under a list of module directories."""

    def __init__(self, paths: Iterable[str], extensions: Iterable[str] = DEFAULT_EXTENSIONS):
        self.paths = [os.path.abspath(p) for p in paths]
        self.extensions = list(extensions)
        self.base_dir = self.paths[0] if self.paths else os.getcwd()

    def resolve(self, id: str, parent: Optional['Module'] = None) -> str:
        for root in self.paths:
            found = self._probe(os.path.normpath(os.path.join(root, id)))
            if found is not None:
                LOGGER.debug("found %s at %s", id, found)
                return found
        return id

    def load(self, id: str) -> str:
        if not os.path.isabs(id):
            raise FileNotFoundError(f"module {id!r} not found in {self.paths!r}")
        return super().load(id)

    def __repr__(self):
        return f"<SearchPathLoader paths={self.paths!r}>"

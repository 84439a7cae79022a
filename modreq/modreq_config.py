from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from modreq.modreq_file import DEFAULT_EXTENSIONS
from modreq.modreq_serialize import deserialize, format_for_extension

KNOWN_PROTOCOLS = ("file", "http", "https")


def _http_defaults() -> Dict[str, Any]:
    return {"timeout": 5.0, "retries": 2, "backoff": 0.2, "headers": {}}


@dataclass
class RuntimeConfig:
    """Settings for a ModuleContext, read from kebab-case config mappings."""
    base_dir: str = field(default_factory=os.getcwd)
    extensions: List[str] = field(default_factory=lambda: list(DEFAULT_EXTENSIONS))
    module_paths: List[str] = field(default_factory=list)
    protocols: List[str] = field(default_factory=lambda: list(KNOWN_PROTOCOLS))
    http: Dict[str, Any] = field(default_factory=_http_defaults)

    @classmethod
    def from_mapping(cls, cfg: Optional[Mapping[str, Any]] = None, *, config_dir: Optional[str] = None) -> 'RuntimeConfig':
        cfg = dict(cfg or {})
        out = cls()
        root = config_dir or os.getcwd()

        def _path(p: str) -> str:
            return os.path.normpath(os.path.join(root, os.path.expanduser(str(p))))

        if 'base-dir' in cfg:
            out.base_dir = _path(cfg['base-dir'])
        if 'extensions' in cfg:
            exts = [str(e) for e in cfg['extensions']]
            out.extensions = [e if e.startswith('.') else '.' + e for e in exts]
        if 'module-paths' in cfg:
            out.module_paths = [_path(p) for p in cfg['module-paths']]
        if 'protocols' in cfg:
            protocols = [str(p) for p in cfg['protocols']]
            unknown = [p for p in protocols if p not in KNOWN_PROTOCOLS]
            if unknown:
                raise ValueError(f"Unknown protocol(s) in config: {', '.join(unknown)}")
            out.protocols = protocols
        http = cfg.get('http')
        if http is not None:
            if not isinstance(http, Mapping):
                raise ValueError("'http' config must be a mapping")
            merged = _http_defaults()
            merged.update(http)
            out.http = merged
        return out

    @classmethod
    def from_file(cls, path: str | Path) -> 'RuntimeConfig':
        """Load a JSON, YAML or TOML config file; relative paths are relative to it."""
        p = Path(path)
        fmt = format_for_extension(p.suffix)
        if fmt not in ('json', 'yaml', 'toml'):
            raise ValueError(f"Unsupported config file type: {p.suffix or p.name}")
        data = deserialize(p.read_bytes(), fmt=fmt)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"Config file {p} must contain a mapping")
        return cls.from_mapping(data, config_dir=str(p.resolve().parent))

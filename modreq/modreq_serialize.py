from __future__ import annotations

import collections.abc
import json
import re
import tomllib
from typing import Any, Optional

import xmltodict
import yaml


# --------------------------
# Helpers
# --------------------------

_EXTENSION_FORMATS = {
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".xml": "xml",
}

# Content-Type substrings, first match wins
_CONTENT_TYPE_FORMATS = ("json", "yaml", "toml", "xml")


def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        try:
            return data.decode(encoding or 'utf-8', errors='replace')
        except LookupError:
            # Unknown charset label from a server
            return data.decode('utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def encoding_from_content_type(content_type: Optional[str]) -> Optional[str]:
    if not content_type:
        return None
    m = re.search(r'charset\s*=\s*([^\s;]+)', content_type, re.IGNORECASE)
    if m:
        return m.group(1).strip('"').strip("'")
    return None


def _to_builtin(obj: Any) -> Any:
    # xmltodict returns nested dict subclasses; flatten to plain containers
    if isinstance(obj, list):
        return [_to_builtin(x) for x in obj]
    if isinstance(obj, collections.abc.Mapping):
        return {k: _to_builtin(v) for k, v in obj.items()}
    return obj


def format_for_extension(ext: str) -> Optional[str]:
    """'.json' -> 'json', '.yml' -> 'yaml', ...; None for non-data extensions."""
    return _EXTENSION_FORMATS.get((ext or "").lower())


def detect_format(content_type: Optional[str]) -> Optional[str]:
    """The data format named by a Content-Type header, e.g. 'application/yaml' -> 'yaml'."""
    ct = (content_type or "").lower()
    for fmt in _CONTENT_TYPE_FORMATS:
        if fmt in ct:
            return fmt
    return None


# --------------------------
# Public API
# --------------------------

def decode_text(data: bytes | bytearray | str, *, content_type: Optional[str] = None) -> str:
    """Bytes (or text) to text, honouring a charset in `content_type`."""
    return _norm_text(data, encoding=encoding_from_content_type(content_type))


def deserialize(data: bytes | bytearray | str,
                *,
                content_type: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert data module source (bytes/string) to native Python structures.
    Supported fmt: 'json', 'yaml', 'toml', 'xml'.
    If fmt is None, the format comes from content_type; with neither the
    decoded text is returned as is.

    Unlike a lenient wire decoder, malformed input raises: a data module that
    does not parse is an evaluation error, not a string.
    """
    text = decode_text(data, content_type=content_type)
    f = fmt or detect_format(content_type)
    match f:
        case 'json':
            return json.loads(text)
        case 'yaml':
            return yaml.safe_load(text)
        case 'toml':
            return tomllib.loads(text)
        case 'xml':
            return _to_builtin(xmltodict.parse(text))
        case None:
            return text
        case _:
            raise ValueError(f"Unsupported data format: {f!r}")


__all__ = [
    "deserialize",
    "decode_text",
    "detect_format",
    "format_for_extension",
    "encoding_from_content_type",
]

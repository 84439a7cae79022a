from __future__ import annotations

import re
from typing import Optional

from modreq.modreq_datatypes import Descriptor

# <scheme>://<path>: the path keeps its optional leading slash.
SCHEME_RE = re.compile(r'([a-zA-Z0-9]+)://(/?[a-zA-Z0-9.\-]+(?:/[a-zA-Z0-9.\-]+)*)')

# '/', './' or '../' followed by segments without NUL or backslash and
# no empty segments. Written without nested quantifiers so a failed match
# stays linear.
LOCAL_PATH_RE = re.compile(r'(?:/|\.\.?/)(?:[^/\\\x00]+(?:/[^/\\\x00]+)*/?)?')

FILE_PREFIX = "file://"


def is_local_path(raw: str) -> bool:
    return LOCAL_PATH_RE.fullmatch(raw) is not None


def match_scheme(raw: str) -> Optional[tuple[str, str]]:
    m = SCHEME_RE.fullmatch(raw)
    if m is None:
        return None
    return m.group(1), m.group(2)


def classify(raw: str) -> Descriptor:
    """
    Classify a raw module identifier into a Descriptor.

    Rules, in order:
      - local path ('/x', './x', '../x'): rewritten to 'file://<raw>' and
        re-read as a scheme identifier, so protocol is 'file' and id is
        everything after the prefix.
      - explicit '<scheme>://<path>': protocol is the scheme, id the path.
      - anything else is a bare identifier with no protocol.

    Never raises.
    """
    if not isinstance(raw, str):
        raw = str(raw)
    if is_local_path(raw):
        scheme = match_scheme(FILE_PREFIX + raw)
        if scheme is not None:
            return Descriptor(scheme[0], scheme[1], "path")
        # Still a local path even when a segment falls outside the scheme grammar.
        return Descriptor("file", raw, "path")
    scheme = match_scheme(raw)
    if scheme is not None:
        return Descriptor(scheme[0], scheme[1], "scheme")
    return Descriptor(None, raw, "bare")


def canonical_id(protocol: Optional[str], id: str) -> str:
    """Join a protocol and id into the key used for cache lookups."""
    return Descriptor(protocol, id).canonical


__all__ = [
    "SCHEME_RE",
    "LOCAL_PATH_RE",
    "classify",
    "canonical_id",
    "is_local_path",
    "match_scheme",
]

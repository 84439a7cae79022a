import logging
import time
from typing import Any, Dict, Optional

import httpx

from modreq.modreq_registry import Loader
from modreq.modreq_serialize import decode_text

LOGGER = logging.getLogger("modreq.http")


def http_get_text(url: str, *, config: Optional[Dict[str, Any]] = None) -> str:
    """
    Fetch `url` and return its body as text.

    config:
      - timeout: seconds per attempt (default 5.0)
      - retries: extra attempts after the first (default 2)
      - backoff: base delay, doubled per attempt (default 0.2)
      - headers: extra request headers

    Non-2xx responses raise RuntimeError; after the last attempt the final
    error (including httpx.TimeoutException) propagates.
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', 5.0))
    retries = int(cfg.pop('retries', 2))
    backoff = float(cfg.pop('backoff', 0.2))
    headers = dict(cfg.pop('headers', {}))

    with httpx.Client(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = client.request("GET", url, headers=headers)
                if 200 <= resp.status_code < 300:
                    return decode_text(resp.content, content_type=resp.headers.get("Content-Type"))
                preview = (resp.text or "")[:200]
                raise RuntimeError(f"HTTP {resp.status_code} for {url}: {preview}")
            except Exception as e:
                last_exc = e
                if attempt < retries:
                    LOGGER.warning("GET %s failed (%s), retry %d/%d", url, e, attempt + 1, retries)
                    time.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc


class HttpLoader(Loader):
    """Loads module source over HTTP(S); the id is everything after '<scheme>://'."""

    def __init__(self, scheme: str = "http", config: Optional[Dict[str, Any]] = None):
        self.scheme = scheme
        self.config = dict(config or {})

    def url_for(self, id: str) -> str:
        return f"{self.scheme}://{id}"

    def load(self, id: str) -> str:
        url = self.url_for(id)
        LOGGER.debug("GET %s", url)
        return http_get_text(url, config=self.config)

    def __repr__(self):
        return f"<HttpLoader scheme={self.scheme!r}>"

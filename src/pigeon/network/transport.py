# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.transport",
#   "purpose": "HTTPX client pool keyed by TLS verification mode.",
#   "sections": [
#     {
#       "id": "create-ssl-context",
#       "name": "create_ssl_context",
#       "anchor": "function-create-ssl-context",
#       "kind": "function"
#     },
#     {
#       "id": "httpclientpool",
#       "name": "HttpClientPool",
#       "anchor": "class-httpclientpool",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""HTTPX client factory.

The executor never touches ambient library defaults: timeouts travel with
each request and TLS verification selects one of (at most) two lazily built
``httpx.Client`` objects. Redirects are always disabled at the client level
because the executor follows them itself.

Key design:
- **Lazy initialization**: clients are created on first use, not at import time.
- **Thread-safe**: creation is guarded by a ``threading.Lock``.
- **Injectable transport**: tests pass an ``httpx.MockTransport``; production
  uses the default ``httpx.HTTPTransport`` with a certifi-backed SSL context.
"""

from __future__ import annotations

import logging
import ssl
import threading
from functools import lru_cache
from typing import Dict, Optional

import certifi
import httpx

logger = logging.getLogger(__name__)


@lru_cache(maxsize=2)
def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create an SSL context: certifi bundle when verifying, no checks otherwise."""
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    ctx = ssl.create_default_context(cafile=certifi.where())
    ctx.check_hostname = True
    ctx.verify_mode = ssl.CERT_REQUIRED
    return ctx


class HttpClientPool:
    """Holds one ``httpx.Client`` per TLS verification mode."""

    def __init__(self, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._transport = transport
        self._clients: Dict[bool, httpx.Client] = {}
        self._lock = threading.Lock()

    def get(self, verify: bool) -> httpx.Client:
        client = self._clients.get(verify)
        if client is not None:
            return client
        with self._lock:
            client = self._clients.get(verify)
            if client is None:
                client = self._create(verify)
                self._clients[verify] = client
            return client

    def close(self) -> None:
        """Close every client. Safe to call more than once."""
        with self._lock:
            clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            try:
                client.close()
            except Exception as exc:
                logger.error(f"Error closing HTTP client: {exc}")

    def _create(self, verify: bool) -> httpx.Client:
        if not verify:
            logger.warning("TLS verification DISABLED for requests sent with ssl_verify=False")
        client = httpx.Client(
            transport=self._transport,
            verify=create_ssl_context(verify),
            follow_redirects=False,
        )
        logger.debug(
            "HTTPX client created",
            extra={"verify": verify, "custom_transport": self._transport is not None},
        )
        return client


__all__ = ["HttpClientPool", "create_ssl_context"]

# === NAVMAP v1 ===
# {
#   "module": "pigeon.network.policy",
#   "purpose": "HTTP engine constants: verbs, redirect sets, timeouts and default headers",
#   "sections": []
# }
# === /NAVMAP ===

"""HTTP engine policy constants.

Single source of truth for the verbs the engine speaks, which statuses are
followed as redirects, and the transport defaults applied when a request does
not override them.
"""

from pigeon._version import __version__

# ============================================================================
# Verbs
# ============================================================================

#: Verbs that may carry a request body
BODY_VERBS = frozenset({"POST", "PUT"})

#: Verbs that must not carry a body, query goes to the URL instead
BODYLESS_VERBS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS", "TRACE"})


# ============================================================================
# Redirects
# ============================================================================

#: Redirects that rewrite the next hop to a bodyless GET
REDIRECT_REWRITE_STATUSES = frozenset({301, 302, 303})

#: Redirects that replay the same method and body
REDIRECT_PRESERVE_STATUSES = frozenset({307, 308})

REDIRECT_STATUSES = REDIRECT_REWRITE_STATUSES | REDIRECT_PRESERVE_STATUSES

#: Maximum number of redirect hops followed when a request does not say
MAX_REDIRECT_HOPS = 5

#: Headers never carried from one hop to the next
HOP_ONLY_HEADERS = frozenset({"host"})

#: Body headers dropped when a redirect rewrites the request to GET
BODY_HEADERS = frozenset({"content-type", "content-length", "transfer-encoding"})


# ============================================================================
# Timeouts (seconds, 0 or None = unbounded)
# ============================================================================

#: Read timeout used when neither the request nor the client sets one
HTTP_READ_TIMEOUT = 60.0

#: Connect timeout used when neither the request nor the client sets one
HTTP_OPEN_TIMEOUT = 10.0


# ============================================================================
# Headers & TLS
# ============================================================================

USER_AGENT = f"pigeon/{__version__}"

DEFAULT_HEADERS = {"User-Agent": USER_AGENT}

#: Verify peer certificates unless a request opts out
TLS_VERIFY_ENABLED = True


__all__ = [
    "BODY_VERBS",
    "BODYLESS_VERBS",
    "REDIRECT_REWRITE_STATUSES",
    "REDIRECT_PRESERVE_STATUSES",
    "REDIRECT_STATUSES",
    "MAX_REDIRECT_HOPS",
    "HOP_ONLY_HEADERS",
    "BODY_HEADERS",
    "HTTP_READ_TIMEOUT",
    "HTTP_OPEN_TIMEOUT",
    "USER_AGENT",
    "DEFAULT_HEADERS",
    "TLS_VERIFY_ENABLED",
]

from __future__ import annotations

import os
import threading
from typing import Any, Dict, Optional, Tuple

import oci

from ..auth.providers import AuthContext, make_client

_CLIENT_CACHE: Dict[Tuple[str, int, Optional[str]], Any] = {}
_CLIENT_CACHE_LOCK = threading.Lock()


def clear_client_cache() -> None:
    with _CLIENT_CACHE_LOCK:
        _CLIENT_CACHE.clear()


def _cache_disabled() -> bool:
    return (os.getenv("OCI_POLICY_AUDIT_DISABLE_CLIENT_CACHE") or "").lower() in ("1", "true", "yes")


def get_identity_client(ctx: AuthContext, region: Optional[str] = None) -> Any:
    """
    Create (or reuse) an IdentityClient with retry strategy, honoring region when provided.
    Clients are cached per auth context and region for the lifetime of the process.
    """
    client_cls = oci.identity.IdentityClient
    if _cache_disabled():
        return make_client(client_cls, ctx, region=region)
    key = ("identity", id(ctx), region)
    with _CLIENT_CACHE_LOCK:
        client = _CLIENT_CACHE.get(key)
        if client is None:
            client = make_client(client_cls, ctx, region=region)
            _CLIENT_CACHE[key] = client
    return client


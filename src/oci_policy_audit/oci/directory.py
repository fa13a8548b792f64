from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Tuple

from ..auth.providers import AuthContext
from ..logging import get_logger
from ..model import CompartmentRef, Policy
from ..util.errors import ConnectivityError, map_oci_error
from ..util.pagination import next_page_token, paginate
from .clients import get_identity_client

LOG = get_logger(__name__)

ACTIVE = "ACTIVE"
PAGE_LIMIT = 1000
DEFAULT_TENANCY_NAME = "Tenancy"
DEFAULT_REGION = "N/A"


class DirectoryClient(Protocol):
    """
    Read-only view of the tenancy's identity directory used by the audit pipeline.
    Implementations page through all results and raise on failure; callers decide
    whether a failure is fatal.
    """

    def list_child_compartments(self, compartment_id: str, lifecycle_filter: str = ACTIVE) -> Sequence[CompartmentRef]:
        ...

    def list_policies(self, compartment_id: str) -> Sequence[Policy]:
        ...

    def resolve_tenancy_name(self, tenancy_id: str) -> str:
        ...

    def resolve_home_region(self, tenancy_id: str) -> str:
        ...

    def check_connectivity(self, tenancy_id: str) -> List[str]:
        ...


def _to_compartment_ref(item: Any) -> Optional[CompartmentRef]:
    cid = getattr(item, "id", None)
    name = getattr(item, "name", None)
    if not cid or not name:
        return None
    return CompartmentRef(id=str(cid), name=str(name))


def _to_policy(item: Any) -> Optional[Policy]:
    pid = getattr(item, "id", None)
    if not pid:
        return None
    statements = getattr(item, "statements", None) or []
    return Policy(
        id=str(pid),
        name=str(getattr(item, "name", None) or ""),
        statements=tuple(str(s) for s in statements),
    )


class OCIDirectoryClient:
    """
    DirectoryClient backed by oci.identity.IdentityClient.
    """

    def __init__(self, ctx: AuthContext, identity: Any = None) -> None:
        self._identity = identity if identity is not None else get_identity_client(ctx)
        self._subscriptions: Optional[List[Any]] = None

    def _region_subscriptions(self, tenancy_id: str) -> List[Any]:
        if self._subscriptions is None:
            try:
                resp = self._identity.list_region_subscriptions(tenancy_id)
            except Exception as e:
                mapped = map_oci_error(e, "OCI SDK error while listing region subscriptions")
                if mapped:
                    raise mapped from e
                raise
            self._subscriptions = list(getattr(resp, "data", None) or [])
        return self._subscriptions

    def check_connectivity(self, tenancy_id: str) -> List[str]:
        """
        Probe the identity service by listing region subscriptions.
        Any failure here means nothing else will work, so it is raised as ConnectivityError.
        """
        try:
            subs = self._region_subscriptions(tenancy_id)
        except Exception as e:
            raise ConnectivityError(f"Unable to reach OCI identity service: {e}") from e
        return sorted({str(getattr(s, "region_name", "")) for s in subs if getattr(s, "region_name", None)})

    def _list_all(self, operation: str, call: Any, compartment_id: str, **kwargs: Any) -> List[Any]:
        def fetch(page: str | None) -> Tuple[Sequence[Any], str | None]:
            try:
                resp = call(compartment_id, page=page, limit=PAGE_LIMIT, **kwargs)
            except Exception as e:
                mapped = map_oci_error(e, f"OCI SDK error while listing {operation} in {compartment_id}")
                if mapped:
                    raise mapped from e
                raise
            data = getattr(resp, "data", None)
            if data is None:
                data = []
            return data, next_page_token(resp)

        return list(paginate(fetch))

    def list_child_compartments(self, compartment_id: str, lifecycle_filter: str = ACTIVE) -> List[CompartmentRef]:
        items = self._list_all(
            "compartments",
            self._identity.list_compartments,
            compartment_id,
            lifecycle_state=lifecycle_filter,
        )
        out: List[CompartmentRef] = []
        for item in items:
            ref = _to_compartment_ref(item)
            if ref is None:
                LOG.debug("Skipping malformed compartment entry", extra={"compartment_id": compartment_id})
                continue
            out.append(ref)
        return out

    def list_policies(self, compartment_id: str) -> List[Policy]:
        items = self._list_all("policies", self._identity.list_policies, compartment_id)
        out: List[Policy] = []
        for item in items:
            policy = _to_policy(item)
            if policy is None:
                LOG.debug("Skipping malformed policy entry", extra={"compartment_id": compartment_id})
                continue
            out.append(policy)
        return out

    def resolve_tenancy_name(self, tenancy_id: str) -> str:
        try:
            data = self._identity.get_tenancy(tenancy_id).data
        except Exception as e:
            LOG.warning("Could not resolve tenancy name", extra={"error": str(e)})
            return DEFAULT_TENANCY_NAME
        return str(getattr(data, "name", None) or DEFAULT_TENANCY_NAME)

    def resolve_home_region(self, tenancy_id: str) -> str:
        try:
            subs = self._region_subscriptions(tenancy_id)
        except Exception as e:
            LOG.warning("Could not resolve home region", extra={"error": str(e)})
            return DEFAULT_REGION
        for sub in subs:
            if getattr(sub, "is_home_region", False) and getattr(sub, "region_name", None):
                return str(sub.region_name)
        if subs and getattr(subs[0], "region_name", None):
            return str(subs[0].region_name)
        return DEFAULT_REGION

from __future__ import annotations

import os
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

import pytest

from oci_policy_audit.model import CompartmentRef, Policy


class FakeDirectory:
    """
    In-memory DirectoryClient: children and policies keyed by compartment id.
    Ids listed in fail_children / fail_policies raise when queried; raw_children
    responses are returned as-is, however malformed.
    """

    def __init__(
        self,
        children: Optional[Dict[str, Sequence[CompartmentRef]]] = None,
        policies: Optional[Dict[str, Sequence[Policy]]] = None,
        *,
        raw_children: Optional[Dict[str, Any]] = None,
        fail_children: Sequence[str] = (),
        fail_policies: Sequence[str] = (),
        tenancy_name: str = "Root",
        regions: Sequence[str] = ("us-ashburn-1",),
    ) -> None:
        self.children = dict(children or {})
        self.policies = dict(policies or {})
        self.raw_children = dict(raw_children or {})
        self.fail_children: Set[str] = set(fail_children)
        self.fail_policies: Set[str] = set(fail_policies)
        self.tenancy_name = tenancy_name
        self.regions = list(regions)
        self.child_calls: List[str] = []
        self.policy_calls: List[str] = []

    def list_child_compartments(self, compartment_id: str, lifecycle_filter: str = "ACTIVE"):
        self.child_calls.append(compartment_id)
        if compartment_id in self.fail_children:
            raise RuntimeError(f"NotAuthorizedOrNotFound: {compartment_id}")
        if compartment_id in self.raw_children:
            return self.raw_children[compartment_id]
        return list(self.children.get(compartment_id, []))

    def list_policies(self, compartment_id: str):
        self.policy_calls.append(compartment_id)
        if compartment_id in self.fail_policies:
            raise RuntimeError(f"NotAuthorizedOrNotFound: {compartment_id}")
        return list(self.policies.get(compartment_id, []))

    def resolve_tenancy_name(self, tenancy_id: str) -> str:
        return self.tenancy_name

    def resolve_home_region(self, tenancy_id: str) -> str:
        return self.regions[0] if self.regions else "N/A"

    def check_connectivity(self, tenancy_id: str) -> List[str]:
        return sorted(self.regions)


@pytest.fixture(autouse=True)
def _clean_audit_env(monkeypatch) -> None:
    for key in list(os.environ):
        if key.startswith("OCI_POLICY_AUDIT_"):
            monkeypatch.delenv(key, raising=False)
    for key in ("OCI_TENANCY_OCID", "OCI_TENANCY", "OCI_CS_USER_OCID", "OCI_REGION", "OCI_CLI_REGION"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def make_directory() -> Callable[..., FakeDirectory]:
    return FakeDirectory


@pytest.fixture
def scenario_a() -> FakeDirectory:
    """Root with two leaf children; only root holds a policy (3 statements)."""
    return FakeDirectory(
        children={"root": [CompartmentRef("a", "Apps"), CompartmentRef("b", "Network")]},
        policies={
            "root": [
                Policy(
                    id="ocid1.policy.admins",
                    name="Admins",
                    statements=(
                        "Allow group Administrators to manage all-resources in tenancy",
                        "Allow group NetAdmins to manage virtual-network-family in tenancy",
                        "Allow group Auditors to inspect all-resources in tenancy",
                    ),
                )
            ]
        },
    )


@pytest.fixture
def scenario_b() -> FakeDirectory:
    """Chain root -> A -> B, one single-statement policy each."""
    return FakeDirectory(
        children={"root": [CompartmentRef("a", "A")], "a": [CompartmentRef("b", "B")]},
        policies={
            "root": [Policy(id="p-root", name="RootPolicy", statements=("Allow group G0 to read all-resources in tenancy",))],
            "a": [Policy(id="p-a", name="APolicy", statements=("Allow group G1 to read buckets in compartment A",))],
            "b": [Policy(id="p-b", name="BPolicy", statements=("Allow group G2 to read objects in compartment A:B",))],
        },
    )

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Tuple

PATH_SEPARATOR = " > "


@dataclass(frozen=True)
class CompartmentRef:
    """Child compartment as returned by the directory service."""

    id: str
    name: str


@dataclass(frozen=True)
class CompartmentNode:
    """
    A compartment placed in the tenancy tree.

    depth is 0 only for the tenancy root; path is the breadcrumb of names from
    the root down to this node joined with PATH_SEPARATOR.
    """

    id: str
    name: str
    depth: int
    path: str

    @classmethod
    def root(cls, compartment_id: str, name: str) -> CompartmentNode:
        return cls(id=compartment_id, name=name, depth=0, path=name)

    def child(self, compartment_id: str, name: str) -> CompartmentNode:
        return CompartmentNode(
            id=compartment_id,
            name=name,
            depth=self.depth + 1,
            path=f"{self.path}{PATH_SEPARATOR}{name}",
        )


@dataclass(frozen=True)
class Policy:
    id: str
    name: str
    statements: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PolicyStats:
    compartment_id: str
    policy_count: int = 0
    statement_count: int = 0

    @property
    def has_policies(self) -> bool:
        return self.policy_count > 0


@dataclass(frozen=True)
class TenancySummary:
    total_compartments: int = 0
    total_policies: int = 0
    total_statements: int = 0
    compartments_with_policies: int = 0
    compartments_without_policies: int = 0


def summarize(stats: Iterable[PolicyStats]) -> TenancySummary:
    """
    Fold per-compartment stats into tenancy-wide totals.
    """
    total = policies = statements = with_policies = 0
    for s in stats:
        total += 1
        if s.has_policies:
            with_policies += 1
            policies += s.policy_count
            statements += s.statement_count
    return TenancySummary(
        total_compartments=total,
        total_policies=policies,
        total_statements=statements,
        compartments_with_policies=with_policies,
        compartments_without_policies=total - with_policies,
    )

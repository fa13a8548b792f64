from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..logging import get_logger
from ..model import CompartmentNode, Policy, PolicyStats, TenancySummary, summarize
from ..oci.directory import DirectoryClient

LOG = get_logger(__name__)

StatsCallback = Callable[[CompartmentNode, PolicyStats], None]


def _coerce_policy(item: object) -> Optional[Policy]:
    if not isinstance(item, Policy):
        return None
    statements = item.statements or ()
    if isinstance(statements, str):
        return None
    return Policy(id=item.id, name=item.name, statements=tuple(str(s) for s in statements))


class PolicyFetcher:
    """
    Fail-soft, per-compartment cache over DirectoryClient.list_policies.

    The aggregation pass fills the cache; the detail renderer reads statements
    back from it instead of calling the directory a second time.
    """

    def __init__(self, client: DirectoryClient) -> None:
        self._client = client
        self._cache: Dict[str, Tuple[Policy, ...]] = {}
        self.failures: Dict[str, str] = {}

    def __call__(self, compartment_id: str) -> Tuple[Policy, ...]:
        return self.policies_for(compartment_id)

    def policies_for(self, compartment_id: str) -> Tuple[Policy, ...]:
        cached = self._cache.get(compartment_id)
        if cached is not None:
            return cached
        try:
            fetched = self._client.list_policies(compartment_id)
            coerced = [_coerce_policy(p) for p in (fetched or [])]
            policies = tuple(p for p in coerced if p is not None)
        except Exception as e:
            LOG.warning(
                "Listing policies failed; counting compartment as policy-free",
                extra={"compartment_id": compartment_id, "error": str(e)},
            )
            self.failures[compartment_id] = str(e)
            policies = ()
        self._cache[compartment_id] = policies
        return policies


def stats_for(compartment_id: str, policies: Sequence[Policy]) -> PolicyStats:
    return PolicyStats(
        compartment_id=compartment_id,
        policy_count=len(policies),
        statement_count=sum(len(p.statements) for p in policies),
    )


def aggregate(
    source: Union[DirectoryClient, PolicyFetcher],
    nodes: Sequence[CompartmentNode],
    *,
    on_stats: Optional[StatsCallback] = None,
) -> Tuple[List[PolicyStats], TenancySummary]:
    """
    Count the policies attached directly to each compartment, in the order given.

    A compartment whose policies cannot be listed contributes (0, 0). The summary
    is folded from the returned stats, so both always agree.
    """
    fetcher = source if isinstance(source, PolicyFetcher) else PolicyFetcher(source)
    stats: List[PolicyStats] = []
    for node in nodes:
        s = stats_for(node.id, fetcher.policies_for(node.id))
        stats.append(s)
        if on_stats is not None:
            on_stats(node, s)
    return stats, summarize(stats)

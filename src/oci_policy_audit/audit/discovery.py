from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Set

from ..logging import get_logger
from ..model import CompartmentNode, CompartmentRef
from ..oci.directory import ACTIVE, DirectoryClient

LOG = get_logger(__name__)

# OCI allows six levels of nesting below the root; anything deeper is not a real tree.
DEFAULT_MAX_DEPTH = 32

NodeCallback = Callable[[CompartmentNode, int], None]


def _children_of(client: DirectoryClient, node: CompartmentNode) -> Sequence[CompartmentRef]:
    try:
        children = list(client.list_child_compartments(node.id, lifecycle_filter=ACTIVE) or [])
    except Exception as e:
        LOG.warning(
            "Listing child compartments failed; treating as leaf",
            extra={"compartment_id": node.id, "compartment": node.name, "error": str(e)},
        )
        return []
    valid: List[CompartmentRef] = []
    for child in children:
        if not getattr(child, "id", None) or not getattr(child, "name", None):
            LOG.warning("Ignoring malformed child compartment", extra={"compartment_id": node.id})
            continue
        valid.append(child)
    return valid


def discover(
    client: DirectoryClient,
    root_id: str,
    root_name: str,
    *,
    max_depth: int = DEFAULT_MAX_DEPTH,
    on_node: Optional[NodeCallback] = None,
) -> List[CompartmentNode]:
    """
    Walk the compartment tree depth-first from the tenancy root.

    Returns nodes in pre-order: every parent precedes its descendants and siblings
    keep the order the directory returned them in. A compartment whose children
    cannot be listed is kept as a leaf. on_node(node, child_count) is called once
    per node after its children are known.
    """
    out: List[CompartmentNode] = []
    visited: Set[str] = set()

    def visit(node: CompartmentNode) -> None:
        visited.add(node.id)
        out.append(node)
        if node.depth >= max_depth:
            LOG.warning(
                "Maximum compartment depth reached; not descending further",
                extra={"compartment_id": node.id, "depth": node.depth},
            )
            children: Sequence[CompartmentRef] = []
        else:
            children = _children_of(client, node)
        if on_node is not None:
            on_node(node, len(children))
        for child in children:
            if child.id in visited:
                LOG.warning("Compartment already visited; skipping", extra={"compartment_id": child.id})
                continue
            visit(node.child(child.id, child.name))

    visit(CompartmentNode.root(root_id, root_name))
    return out

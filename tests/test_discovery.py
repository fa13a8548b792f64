from __future__ import annotations

import types

import pytest

from oci_policy_audit.audit.discovery import discover
from oci_policy_audit.model import PATH_SEPARATOR, CompartmentRef


@pytest.fixture
def tree(make_directory):
    # root
    # ├── Prod
    # │   ├── Web
    # │   └── Db
    # └── Dev
    #     └── Sandbox
    return make_directory(
        children={
            "root": [CompartmentRef("prod", "Prod"), CompartmentRef("dev", "Dev")],
            "prod": [CompartmentRef("web", "Web"), CompartmentRef("db", "Db")],
            "dev": [CompartmentRef("sbx", "Sandbox")],
        }
    )


def test_discover_is_preorder_with_depth_and_path(tree) -> None:
    nodes = discover(tree, "root", "Tenant")

    assert [n.id for n in nodes] == ["root", "prod", "web", "db", "dev", "sbx"]
    assert [n.depth for n in nodes] == [0, 1, 2, 2, 1, 2]
    assert nodes[0].path == "Tenant"
    assert nodes[2].path == "Tenant > Prod > Web"
    assert nodes[5].path == "Tenant > Dev > Sandbox"


def test_discover_depth_and_path_follow_parent(tree) -> None:
    nodes = discover(tree, "root", "Tenant")
    by_id = {n.id: n for n in nodes}
    parents = {"prod": "root", "dev": "root", "web": "prod", "db": "prod", "sbx": "dev"}

    assert by_id["root"].depth == 0
    for child, parent in parents.items():
        assert by_id[child].depth == by_id[parent].depth + 1
        assert by_id[child].path == by_id[parent].path + PATH_SEPARATOR + by_id[child].name


def test_discover_keeps_directory_order_of_siblings(make_directory) -> None:
    client = make_directory(
        children={"root": [CompartmentRef("z", "Zeta"), CompartmentRef("a", "Alpha"), CompartmentRef("m", "Mid")]}
    )

    nodes = discover(client, "root", "Root")

    assert [n.name for n in nodes] == ["Root", "Zeta", "Alpha", "Mid"]


def test_discover_single_root_without_children(make_directory) -> None:
    nodes = discover(make_directory(), "root", "Root")

    assert len(nodes) == 1
    assert nodes[0].depth == 0
    assert nodes[0].path == "Root"


def test_discover_child_listing_failure_keeps_node_as_leaf(tree) -> None:
    tree.fail_children.add("prod")

    nodes = discover(tree, "root", "Tenant")

    assert [n.id for n in nodes] == ["root", "prod", "dev", "sbx"]
    assert tree.child_calls == ["root", "prod", "dev", "sbx"]


def test_discover_treats_none_response_as_no_children(make_directory) -> None:
    client = make_directory(children={"root": [CompartmentRef("a", "A")]}, raw_children={"a": None})

    nodes = discover(client, "root", "Root")

    assert [n.id for n in nodes] == ["root", "a"]


def test_discover_treats_non_iterable_response_as_leaf(make_directory) -> None:
    client = make_directory(
        children={"root": [CompartmentRef("a", "A"), CompartmentRef("b", "B")]},
        raw_children={"a": types.SimpleNamespace(data=[CompartmentRef("a1", "A1")])},
    )
    seen = []

    nodes = discover(client, "root", "Root", on_node=lambda node, count: seen.append((node.id, count)))

    assert [n.id for n in nodes] == ["root", "a", "b"]
    assert seen == [("root", 2), ("a", 0), ("b", 0)]


def test_discover_skips_malformed_child_entries(make_directory) -> None:
    client = make_directory(
        children={"root": [CompartmentRef("a", "A")]},
        raw_children={"a": [types.SimpleNamespace(id="x", name=None), CompartmentRef("a1", "A1")]},
    )

    nodes = discover(client, "root", "Root")

    assert [n.id for n in nodes] == ["root", "a", "a1"]


def test_discover_skips_already_visited_compartments(make_directory) -> None:
    client = make_directory(
        children={
            "root": [CompartmentRef("a", "A")],
            "a": [CompartmentRef("root", "Loop"), CompartmentRef("b", "B")],
        }
    )

    nodes = discover(client, "root", "Root")

    assert [n.id for n in nodes] == ["root", "a", "b"]


def test_discover_honors_max_depth(tree) -> None:
    nodes = discover(tree, "root", "Tenant", max_depth=1)

    assert [n.id for n in nodes] == ["root", "prod", "dev"]
    assert tree.child_calls == ["root"]


def test_discover_reports_each_node_with_child_count(tree) -> None:
    seen = []

    discover(tree, "root", "Tenant", on_node=lambda node, count: seen.append((node.id, count)))

    assert seen == [("root", 2), ("prod", 2), ("web", 0), ("db", 0), ("dev", 1), ("sbx", 0)]

from __future__ import annotations

import types

from oci_policy_audit.util.pagination import next_page_token, paginate


def test_paginate_yields_all_compartments_across_pages() -> None:
    calls = []
    pages = {
        None: ([{"id": "c1"}, {"id": "c2"}], "page-2"),
        "page-2": ([{"id": "c3"}], None),
    }

    def fetch(page):
        calls.append(page)
        return pages[page]

    assert [c["id"] for c in paginate(fetch)] == ["c1", "c2", "c3"]
    assert calls == [None, "page-2"]


def test_next_page_token_reads_header_or_attribute() -> None:
    assert next_page_token(types.SimpleNamespace(headers={"opc-next-page": "abc"})) == "abc"
    assert next_page_token(types.SimpleNamespace(next_page="xyz", headers={})) == "xyz"
    assert next_page_token(types.SimpleNamespace(headers={})) is None
    assert next_page_token(object()) is None

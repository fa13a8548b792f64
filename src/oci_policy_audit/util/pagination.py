from __future__ import annotations

from typing import Any, Callable, Generator, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")


def paginate(
    fetch: Callable[[str | None], Tuple[Sequence[T], str | None]]
) -> Generator[T, None, None]:
    """
    Generic paginator yielding items from a fetch(page_token) function.
    The fetch function must return (items, next_page_token). If next_page_token
    is falsy, pagination stops.
    """
    page: str | None = None
    while True:
        items, next_page = fetch(page)
        for it in items:
            yield it
        if not next_page:
            break
        page = next_page


def next_page_token(resp: Any) -> Optional[str]:
    """
    Read the opc-next-page token from an OCI SDK response.
    """
    next_page = getattr(resp, "next_page", None)
    if next_page:
        return str(next_page)
    headers = getattr(resp, "headers", None) or {}
    token = headers.get("opc-next-page")
    return str(token) if token else None

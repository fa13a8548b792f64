from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def local_now() -> datetime:
    return datetime.now().astimezone()


def file_timestamp(when: Optional[datetime] = None) -> str:
    """
    Timestamp used in report file names, e.g. 20260115_093000.
    """
    return (when or local_now()).strftime("%Y%m%d_%H%M%S")


def banner_timestamp(when: Optional[datetime] = None) -> str:
    return (when or local_now()).strftime("%Y-%m-%d %H:%M:%S")

# models/common.py
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Iterable, List

from dateutil import parser
from sqlalchemy import DateTime
from sqlmodel import Field


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every table stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def timestamp():
    # Column type pinned to a plain DateTime: newer sqlmodel releases map bare
    # datetime annotations to a tz-aware type that rejects naive values.
    return Field(default_factory=utcnow, sa_type=DateTime)


def parse_date(x):
    if x is None or x == "":
        return None
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    try:
        return parser.parse(str(x)).date()
    except (ValueError, OverflowError):
        raise ValueError("not a recognizable date")


def unique_strings(values: Iterable[str] | None) -> List[str]:
    """Strip, drop blanks and duplicates, keep first-seen order."""
    seen, out = set(), []
    for v in values or []:
        v = str(v).strip()
        if v and v.lower() not in seen:
            seen.add(v.lower())
            out.append(v)
    return out


def normalize_email(value: str) -> str:
    value = (value or "").strip().lower()
    local, _, domain = value.partition("@")
    if not local or "." not in domain or " " in value:
        raise ValueError("not a valid email address")
    return value

"""Placeholder interpolation for request paths and bodies.

Supported placeholders:
  - ``{$currentDate}`` / ``{$currentDate|days=1,months=-2,years=+1}``: today's
    date plus offsets, as ``YYYY-MM-DD``
  - ``{$currentTimestamp}``: milliseconds since the Unix epoch
  - ``{$random|a,b,c}``: one element of the list
  - ``{$range|min=1,max=10}``: an integer in the closed interval

Anything that does not resolve is left in the output unchanged.
"""
from __future__ import annotations

import random
import re
import time
from datetime import date, timedelta
from typing import Callable, Optional

from core.logging_config import get_logger
from shared.codes import WarmupCode


logger = get_logger(__name__)

# "{$" + name, optionally followed by "|" and modifiers made of ASCII word chars, + - = and ,
PLACEHOLDER_RE = re.compile(r"\{\$\w+(?:\|[\w+\-=,]+)?\}", re.ASCII)
_DATE_RE = re.compile(r"\{\$currentDate(?:\|(?P<params>[\w+\-=,]+))?\}", re.ASCII)
_DATE_PART_RE = re.compile(r"(?P<unit>days|months|years)=?(?P<value>.*)", re.ASCII)
_RANDOM_RE = re.compile(r"\{\$random\|(?P<elements>[\w,\-]+)\}", re.ASCII)
_RANGE_RE = re.compile(r"\{\$range\|min=(?P<min>\d+),max=(?P<max>\d+)\}", re.ASCII)


def _offset(value: str) -> int:
    # unparsable offsets count as zero
    try:
        return int(value)
    except ValueError:
        return 0


def add_calendar_offset(day: date, years: int = 0, months: int = 0, days: int = 0) -> date:
    """Shift a date, letting overflowing days roll into the next month.

    Jan 31 + 1 month is Feb 31, which normalizes to Mar 3 (or Mar 2 in a
    leap year).
    """
    total_months = day.month - 1 + months
    year = day.year + years + total_months // 12
    month = total_months % 12 + 1
    return date(year, month, 1) + timedelta(days=day.day - 1 + days)


def resolve_date(placeholder: str) -> Optional[str]:
    m = _DATE_RE.fullmatch(placeholder)
    if m is None:
        return None

    offsets = {"days": 0, "months": 0, "years": 0}
    params = m.group("params") or ""
    for part in params.split(","):
        if not part:
            continue
        pm = _DATE_PART_RE.fullmatch(part)
        if pm is None:
            return None
        offsets[pm.group("unit")] = _offset(pm.group("value"))

    try:
        resolved = add_calendar_offset(date.today(), **offsets)
    except (ValueError, OverflowError):
        logger.warning(
            "template_invalid_date",
            placeholder=placeholder,
            code=int(WarmupCode.TEMPLATE_WARNING),
            **offsets,
        )
        return None
    return resolved.isoformat()


def resolve_timestamp(placeholder: str) -> Optional[str]:
    return str(time.time_ns() // 1_000_000)


def resolve_random(placeholder: str) -> Optional[str]:
    m = _RANDOM_RE.fullmatch(placeholder)
    if m is None:
        return None
    elements = [e for e in m.group("elements").split(",") if e]
    if not elements:
        logger.warning("template_empty_random", placeholder=placeholder, code=int(WarmupCode.TEMPLATE_WARNING))
        return None
    return random.choice(elements)


def resolve_range(placeholder: str) -> Optional[str]:
    m = _RANGE_RE.fullmatch(placeholder)
    if m is None:
        return None
    low, high = int(m.group("min")), int(m.group("max"))
    if low > high:
        logger.warning(
            "template_invalid_range",
            placeholder=placeholder,
            min=low,
            max=high,
            code=int(WarmupCode.TEMPLATE_WARNING),
        )
        return None
    return str(random.randint(low, high))


# Checked in order; the first keyword contained in the placeholder wins
RESOLVERS: tuple[tuple[str, Callable[[str], Optional[str]]], ...] = (
    ("currentDate", resolve_date),
    ("currentTimestamp", resolve_timestamp),
    ("random", resolve_random),
    ("range", resolve_range),
)


def _resolve(match: re.Match) -> str:
    placeholder = match.group(0)
    for keyword, resolver in RESOLVERS:
        if keyword in placeholder:
            value = resolver(placeholder)
            break
    else:
        value = None

    if value is None:
        logger.warning("template_unresolved", placeholder=placeholder, code=int(WarmupCode.TEMPLATE_WARNING))
        return placeholder
    return value


def interpolate_placeholders(source: str) -> str:
    """Replace every placeholder in ``source`` in a single pass.

    Resolved values are not scanned again.
    """
    return PLACEHOLDER_RE.sub(_resolve, source)

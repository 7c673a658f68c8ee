"""Schedule preference: weekday time ranges and weekend default in a timezone."""

import re
import sys
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from voicereply.domain.models import TEXT, VOICE
from voicereply.interaction_state import resolve_zone


def _log(msg: str):
    print(msg, file=sys.stderr)


_RANGE_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def parse_range(range_str: str) -> Optional[Tuple[int, int]]:
    """Parse "HH:MM-HH:MM" into (start, end) minutes since midnight."""
    m = _RANGE_RE.match(range_str)
    if not m:
        return None
    sh, sm, eh, em = (int(g) for g in m.groups())
    if sm > 59 or em > 59:
        return None
    start, end = sh * 60 + sm, eh * 60 + em
    if start >= 24 * 60 or end > 24 * 60:
        return None
    return start, end


def in_range(minute_of_day: int, start: int, end: int) -> bool:
    """[start, end) membership; start > end spans midnight."""
    if start > end:
        return minute_of_day >= start or minute_of_day < end
    return start <= minute_of_day < end


def schedule_preference(schedule: Dict[str, Any], now: datetime) -> Tuple[str, str]:
    """Return (modality, detail) preferred by the schedule at *now*.

    Weekday ranges are scanned in declaration order and the first match
    wins; overlapping ranges are therefore resolved by position, not by
    span. No match falls back to voice.
    """
    local = now.astimezone(resolve_zone(schedule.get("timezone", "UTC")))

    if local.weekday() >= 5:
        pref = schedule.get("weekend", VOICE)
        return (VOICE if pref == VOICE else TEXT), "weekend"

    current = local.hour * 60 + local.minute
    for range_str, mode in (schedule.get("weekday") or {}).items():
        bounds = parse_range(range_str)
        if bounds is None:
            _log(f"[Schedule] skipping unparseable range {range_str!r}")
            continue
        if in_range(current, *bounds):
            return (VOICE if mode == VOICE else TEXT), f"weekday {range_str}"

    return VOICE, "no matching range"

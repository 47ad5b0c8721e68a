"""Common utilities."""
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

_link_re = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


def get_now(seconds_only: bool = False) -> datetime:
    """Get the current tz-aware UTC datetime.

    Args:
        seconds_only: Don't include microseconds.
    """
    dt = datetime.now(tz=timezone.utc)
    if seconds_only:
        dt = dt.replace(microsecond=0)

    return dt


def is_link(value: str) -> bool:
    """Whether ``value`` starts with a URI scheme, like ``https://``."""
    return _link_re.match(value) is not None


def update_nested(prev: Mapping[str, Any], path: str, value: Any) -> dict[str, Any]:
    """Return a copy of ``prev`` with the dotted ``path`` set to ``value``.

    Intermediate mappings along the path are copied, not mutated. Non-mapping values
    along the path are replaced with new dicts.
    """
    key, _, rest = path.partition(".")
    result = dict(prev)
    if not rest:
        result[key] = value
    else:
        current = prev.get(key)
        child = current if isinstance(current, Mapping) else {}
        result[key] = update_nested(child, rest, value)
    return result

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple


def parse_order_by(raw: Optional[str]) -> List[str]:
    """Split a comma separated ``orderby`` value into field names."""

    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def order_records(
    records: Sequence[Dict[str, str]], fields: Sequence[str]
) -> List[Dict[str, str]]:
    """Return a sorted copy of ``records`` ordered by ``fields``.

    Comparison is always lexicographic on string values, even for numeric
    looking attributes. Missing or empty attributes sort as ``""``. Later
    fields only break ties on earlier ones, and equal keys keep their order.
    """

    return sorted(
        records,
        key=lambda record: tuple(str(record.get(name) or "") for name in fields),
    )


def page_window(
    total: int, index: Optional[int], count: Optional[int]
) -> Tuple[int, int]:
    """Translate a 1-based ``index`` and optional ``count`` into slice bounds.

    ``index`` values that are missing or below 1 start at the first record.
    A missing or non-positive ``count`` runs to the end of the set. Windows
    that start past the end are empty rather than an error.
    """

    start = max(0, (index or 1) - 1)
    start = min(start, total)
    if count and count > 0:
        end = min(start + count, total)
    else:
        end = total
    return start, end

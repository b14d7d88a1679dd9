"""
Size estimation for cached values.

Sizes are estimates of in-memory footprint derived from the JSON encoding
of a value: two bytes per encoded character plus a fixed per-entry
overhead. Values that cannot be encoded fall back to a flat estimate.
"""

from __future__ import annotations

from typing import Any

import orjson

ENTRY_OVERHEAD = 50
SEARCH_ENTRY_OVERHEAD = 100
FALLBACK_SIZE = 1000

_DUMPS_OPTIONS = orjson.OPT_NON_STR_KEYS


def json_length(value: Any) -> int:
    """Length of the JSON encoding of ``value``.

    Raises:
        TypeError: If the value cannot be encoded.
    """
    return len(orjson.dumps(value, default=str, option=_DUMPS_OPTIONS))


def estimate_entry_size(value: Any, key: Any = "") -> int:
    """Estimated footprint of one domain cache entry in bytes."""
    try:
        return json_length(value) * 2 + len(str(key)) * 2 + ENTRY_OVERHEAD
    except (TypeError, ValueError):
        return FALLBACK_SIZE


def estimate_search_result_size(
    results: Any, metadata: Any, query: str, key: Any = ""
) -> int:
    """Estimated footprint of one search cache entry in bytes."""
    try:
        return (
            json_length(results) * 2
            + json_length(metadata) * 2
            + len(query) * 2
            + len(str(key)) * 2
            + SEARCH_ENTRY_OVERHEAD
        )
    except (TypeError, ValueError):
        return FALLBACK_SIZE

from __future__ import annotations

import ulid


def new_id() -> str:
    """Generate a sortable identifier (ULID, 26 chars).

    Used for subscription ids and envelope message ids.
    """
    return str(ulid.new())


def new_trace_id() -> str:
    """Generate trace_id for bridge responses (same format as IDs)."""
    return new_id()

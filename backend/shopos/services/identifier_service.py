# Overview: Client-side identifier generation and validation.

"""
Identifier Service

WHY: Writes may be deferred (queued while offline), so every entity gets its
id on the device before any remote write happens. The remote store uses
canonical UUIDs; tenants created before that switch carry legacy ids such as
"shop_1700000000123" and are permanently local-only.
"""

import re
import uuid


_UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


def generate_id() -> str:
    """Generate a canonical UUID4 string."""
    return str(uuid.uuid4())


def is_valid_uuid(value) -> bool:
    """True only for canonical UUID4 text."""
    if not isinstance(value, str):
        return False
    return bool(_UUID_V4_RE.match(value))

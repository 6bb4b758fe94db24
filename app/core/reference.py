import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

# no 0/O, 1/I to keep references readable over the phone
REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
SUFFIX_LENGTH = 4
MAX_ATTEMPTS = 10


def generate_reference_number(prefix: str, now: Optional[datetime] = None) -> str:
    """PREFIX-YYYYMMDD-XXXX, date in UTC, random 4 character suffix."""
    now = now or datetime.now(timezone.utc)
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}-{now.strftime('%Y%m%d')}-{suffix}"


def unique_reference_number(prefix: str, exists: Callable[[str], bool]) -> str:
    """
    Draw reference numbers until ``exists`` reports a free one.

    The unique index is still the final guard; this only keeps collisions
    from surfacing as errors in the common case.
    """
    for _ in range(MAX_ATTEMPTS):
        ref = generate_reference_number(prefix)
        if not exists(ref):
            return ref
    raise RuntimeError(f"Could not allocate a unique {prefix} reference number")

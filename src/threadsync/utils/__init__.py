"""
threadsync utilities

Small helpers shared across the package:
- date_utils: timezone-aware timestamps and millisecond arithmetic
"""

from .date_utils import elapsed_ms, ensure_utc, to_epoch_ms, utc_now

__all__ = [
    "utc_now",
    "ensure_utc",
    "to_epoch_ms",
    "elapsed_ms",
]

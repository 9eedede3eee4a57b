"""
Dispatch status history exports.
"""

from .store import MAX_ENTRIES, StatusStore

__all__ = [
    "MAX_ENTRIES",
    "StatusStore",
]

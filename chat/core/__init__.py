from __future__ import annotations

"""
Session core:
- conversation records and their projections
- id generation
- the JSON-file backed session store
- lifecycle operations over the store
"""

from chat.core import ids, models, sessions, store

__all__ = [
    "ids",
    "models",
    "sessions",
    "store",
]

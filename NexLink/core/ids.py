"""Identifier generation shared by every entity kind."""

from __future__ import annotations

import time
import uuid


def new_id() -> str:
    """Return an opaque id: 16 random hex chars plus a millisecond suffix."""
    return f"{uuid.uuid4().hex[:16]}{int(time.time() * 1000):x}"

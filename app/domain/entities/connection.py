"""In-memory record of a live real-time connection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Connection:
    """A websocket session bound to an authenticated user."""

    id: str
    user_id: int
    role: str
    connected_at: datetime
    last_heartbeat: datetime
    rooms: set[str] = field(default_factory=set)
    authenticated: bool = True
    error_count: int = 0
    last_error: str | None = None
    vendor_id: int | None = None

    def age_seconds(self, now: datetime) -> float:
        return (now - self.connected_at).total_seconds()


__all__ = ["Connection"]

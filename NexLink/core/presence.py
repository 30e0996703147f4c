"""Presence computation and the session heartbeat thread."""

from __future__ import annotations

import logging
from datetime import datetime
from threading import Event, Thread
from typing import TYPE_CHECKING, Optional

from .models import User

if TYPE_CHECKING:
    from .store import SocialStore

logger = logging.getLogger(__name__)


def is_user_online(user: User, now: datetime, window_seconds: int = 60) -> bool:
    """Online flag, or activity within the presence window."""
    if user.is_online:
        return True
    if user.last_active is None:
        return False
    return (now - user.last_active).total_seconds() < window_seconds


class HeartbeatTimer:
    """Refreshes the active session's `last_active` on a fixed interval.

    The loop ends on the first tick that finds no session, or when `stop()`
    is called.
    """

    def __init__(self, store: "SocialStore", interval_seconds: Optional[float] = None) -> None:
        self.store = store
        self.interval = interval_seconds or store.settings.HEARTBEAT_INTERVAL_SECONDS
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> bool:
        user_id = self.store.current_user_id
        if user_id is None:
            return False
        return self.store.heartbeat(user_id)

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="nexlink-heartbeat", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            if not self.tick():
                logger.debug("Heartbeat stopped: no active session")
                return
            self._stop_event.wait(timeout=self.interval)

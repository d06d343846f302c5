"""
PCOS Portal - Session Context
Explicit session value plus the auth-change notifier the portal shell subscribes to
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class AuthEvent(str, Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"


@dataclass(frozen=True)
class SessionContext:
    """Authenticated identity handed to every form handler"""
    token: str
    user_id: int
    username: str


AuthListener = Callable[[AuthEvent, Optional[SessionContext]], None]


class AuthStateNotifier:
    """Push-style stream of sign-in / sign-out events"""

    def __init__(self):
        self._listeners: List[AuthListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns the function that unsubscribes it"""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: AuthEvent, context: Optional[SessionContext]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, context)
            except Exception:
                logger.exception("Auth listener failed on %s", event.value)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


auth_notifier = AuthStateNotifier()

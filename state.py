import logging
import secrets
import string
import time
from typing import Callable, Dict, Optional

from controller import AnalyzerController, SessionState

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def new_session_id() -> str:
    """session_<epoch ms>_<9 base36 chars>, minted once per browser tab."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"session_{int(time.time() * 1000)}_{suffix}"


class SessionRegistry:
    """
    In-memory analysis sessions keyed by session id.

    Nothing here is persisted; images and reports live only as long as
    their session. Sessions idle for longer than `ttl_seconds` are cleared
    and dropped the next time the registry is touched. A running analysis
    keeps its session alive.
    """

    def __init__(
        self,
        controller_factory: Callable[[str], AnalyzerController],
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.controller_factory = controller_factory
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.sessions: Dict[str, AnalyzerController] = {}
        self.last_seen: Dict[str, float] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def create(self) -> AnalyzerController:
        self.evict_idle()
        session_id = new_session_id()
        while session_id in self.sessions:
            session_id = new_session_id()
        controller = self.controller_factory(session_id)
        self.sessions[session_id] = controller
        self.last_seen[session_id] = self.clock()
        return controller

    def get(self, session_id: str) -> Optional[AnalyzerController]:
        self.evict_idle()
        controller = self.sessions.get(session_id)
        if controller is not None:
            self.last_seen[session_id] = self.clock()
        return controller

    def evict_idle(self) -> int:
        if not self.ttl_seconds:
            return 0
        cutoff = self.clock() - self.ttl_seconds
        idle = [
            session_id
            for session_id, seen in self.last_seen.items()
            if seen < cutoff and self.sessions[session_id].state != SessionState.ANALYZING
        ]
        for session_id in idle:
            self.drop(session_id)
        if idle:
            logger.info("Evicted %d idle session(s)", len(idle))
        return len(idle)

    def drop(self, session_id: str) -> None:
        self.last_seen.pop(session_id, None)
        controller = self.sessions.pop(session_id, None)
        if controller is not None:
            controller.clear()

    def close_all(self) -> None:
        for session_id in list(self.sessions):
            self.drop(session_id)

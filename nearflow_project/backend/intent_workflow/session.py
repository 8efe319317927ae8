"""
Session store - run id to RunSession, plus a "latest" pointer
"""
import asyncio
import logging
from typing import Dict, Optional

from .models import RunSession

logger = logging.getLogger(__name__)


class SessionStore:
    """
    In-memory, process-wide registry of run sessions.

    Writes go through one asyncio.Lock and always replace the whole entry;
    two writers on the same run id resolve as last-write-wins. Entries are
    never evicted.
    """

    def __init__(self):
        self._sessions: Dict[str, RunSession] = {}
        self._latest_run_id: Optional[str] = None
        self._write_lock = asyncio.Lock()

    async def save(self, session: RunSession) -> RunSession:
        async with self._write_lock:
            self._sessions[session.run_id] = session
            self._latest_run_id = session.run_id
        logger.info(f"Recorded session {session.run_id} ({session.intent.type} on {session.network})")
        return session

    def get(self, run_id: Optional[str] = None) -> Optional[RunSession]:
        """Session for run_id, or the most recently written one when run_id is None"""
        if run_id:
            return self._sessions.get(run_id)
        if self._latest_run_id is None:
            return None
        return self._sessions.get(self._latest_run_id)

    @property
    def latest_run_id(self) -> Optional[str]:
        return self._latest_run_id

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, run_id: str) -> bool:
        return run_id in self._sessions

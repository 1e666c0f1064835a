"""Registry of connected browser sessions and their WebSocket channels."""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from starlette.websockets import WebSocketState

from app.jobs.events import ProgressEvent

logger = logging.getLogger(__name__)


@dataclass
class Session:
    id: str
    channel: Any  # starlette WebSocket or anything with send_json()
    alive: bool = True

    @property
    def is_open(self) -> bool:
        if not self.alive:
            return False
        state = getattr(self.channel, "application_state", WebSocketState.CONNECTED)
        return state == WebSocketState.CONNECTED


class SessionRegistry:
    """Issues session ids and routes events to the matching channel.

    - ``register`` binds a new channel and immediately sends it its id
    - ``send`` is best-effort: unknown or closed sessions drop the event
    - ``unregister`` is idempotent

    All access happens on the event loop, so the mapping needs no lock.
    """

    def __init__(self):
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def _new_id(self) -> str:
        session_id = str(uuid.uuid4())
        while session_id in self._sessions:
            session_id = str(uuid.uuid4())
        return session_id

    async def register(self, channel: Any) -> str:
        """Bind ``channel`` to a fresh session id and announce it to the client."""
        session_id = self._new_id()
        session = Session(id=session_id, channel=channel)
        self._sessions[session_id] = session
        try:
            await channel.send_json({"type": "clientId", "value": session_id})
        except Exception:
            self._sessions.pop(session_id, None)
            session.alive = False
            raise
        logger.info("Session %s connected (%d live)", session_id, len(self._sessions))
        return session_id

    async def send(self, session_id: str, event: ProgressEvent) -> bool:
        """Deliver ``event`` to the session. Returns False if it was dropped."""
        session = self._sessions.get(session_id)
        if session is None or not session.is_open:
            logger.debug("Dropping %s event for absent session %s", event.type, session_id)
            return False
        try:
            await session.channel.send_json(event.to_message())
        except Exception as exc:
            # Channel went away between the state check and the write.
            session.alive = False
            logger.debug("Delivery to session %s failed: %s", session_id, exc)
            return False
        return True

    def unregister(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.alive = False
            logger.info("Session %s disconnected (%d live)", session_id, len(self._sessions))

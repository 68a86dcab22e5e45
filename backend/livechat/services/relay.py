"""Real-time Relay: in-memory fan-out of chat events to WebSocket subscribers.

One :class:`Relay` is created when the application starts and cleared when it
shuts down. It is only touched from coroutines running on the server's event
loop, so the maps below are mutated between suspension points and need no
locking. Nothing here is persisted: a client that misses events re-reads the
Message Log after reconnecting.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"


@dataclass(eq=False)
class Subscriber:
    websocket: WebSocket
    role: str = ROLE_CUSTOMER
    admin_id: Optional[str] = None
    sessions: Set[str] = field(default_factory=set)

    async def send(self, event: Dict[str, Any]) -> None:
        await self.websocket.send_json(event)


class Relay:
    def __init__(self) -> None:
        self._subscribers: Dict[WebSocket, Subscriber] = {}
        self._sessions: Dict[str, Set[Subscriber]] = {}
        self._admins: Set[Subscriber] = set()

    def connect(self, websocket: WebSocket, admin_id: Optional[str] = None) -> Subscriber:
        sub = Subscriber(websocket=websocket, admin_id=admin_id)
        self._subscribers[websocket] = sub
        return sub

    def join(self, sub: Subscriber, session_id: str, role: str) -> None:
        sub.role = role
        sub.sessions.add(session_id)
        self._sessions.setdefault(session_id, set()).add(sub)
        logger.debug("%s joined chat session %s", role, session_id)

    def register_admin(self, sub: Subscriber) -> None:
        sub.role = ROLE_ADMIN
        self._admins.add(sub)

    def unregister_admin(self, sub: Subscriber) -> None:
        self._admins.discard(sub)

    def disconnect(self, websocket: WebSocket) -> None:
        sub = self._subscribers.pop(websocket, None)
        if sub is None:
            return
        self._admins.discard(sub)
        for session_id in sub.sessions:
            members = self._sessions.get(session_id)
            if members is None:
                continue
            members.discard(sub)
            if not members:
                del self._sessions[session_id]

    def subscribers(self, session_id: str) -> Set[Subscriber]:
        return set(self._sessions.get(session_id, ()))

    def online_admins(self) -> Set[Subscriber]:
        return set(self._admins)

    def is_connected(self, admin_id: str) -> bool:
        return any(sub.admin_id == admin_id for sub in self._subscribers.values())

    async def publish(
        self,
        session_id: str,
        event: Dict[str, Any],
        origin: Optional[Subscriber] = None,
        origin_event: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Push ``event`` to every subscriber of ``session_id``.

        ``origin`` gets ``origin_event`` instead when given, or is skipped
        when it is not.
        """
        targets = []
        for sub in self.subscribers(session_id):
            if sub is origin:
                if origin_event is not None:
                    targets.append((sub, origin_event))
                continue
            targets.append((sub, event))
        if origin is not None and origin_event is not None and origin not in self._sessions.get(session_id, ()):
            targets.append((origin, origin_event))
        return await self._deliver(targets)

    async def publish_to_admins(
        self,
        event: Dict[str, Any],
        predicate: Optional[Callable[[Subscriber], bool]] = None,
    ) -> int:
        targets = [(sub, event) for sub in self.online_admins() if predicate is None or predicate(sub)]
        return await self._deliver(targets)

    async def _deliver(self, targets: Iterable) -> int:
        delivered = 0
        for sub, event in targets:
            try:
                await sub.send(event)
                delivered += 1
            except Exception as exc:
                logger.warning("Dropping relay subscriber after failed send: %s", exc)
                self.disconnect(sub.websocket)
        return delivered

    def clear(self) -> None:
        self._subscribers.clear()
        self._sessions.clear()
        self._admins.clear()

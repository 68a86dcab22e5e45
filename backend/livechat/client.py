"""Reconnecting relay client.

A dropped relay connection loses whatever events were sent while it was
down, so every (re)join starts by reading the full history over HTTP.
Reconnects back off exponentially up to a cap and give up after a bounded
number of attempts; a successful join restores the full budget.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional

import httpx
import websockets

logger = logging.getLogger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class ReconnectPolicy:
    initial_delay: float = 3.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    max_attempts: Optional[int] = 10

    def delays(self) -> Iterator[float]:
        delay = self.initial_delay
        attempt = 0
        while self.max_attempts is None or attempt < self.max_attempts:
            yield min(delay, self.max_delay)
            delay *= self.multiplier
            attempt += 1


class RelayClient:
    def __init__(
        self,
        base_url: str,
        session_id: str,
        role: str = "customer",
        api_key: Optional[str] = None,
        policy: Optional[ReconnectPolicy] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id
        self.role = role
        self.api_key = api_key
        self.policy = policy or ReconnectPolicy()
        self.http = http or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        self.history: List[Dict[str, Any]] = []
        self._ws = None
        self._joined = False

    @property
    def ws_url(self) -> str:
        url = self.base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1) + "/ws"
        if self.api_key:
            return str(httpx.URL(url, params={"api_key": self.api_key}))
        return url

    async def fetch_history(self) -> List[Dict[str, Any]]:
        resp = await self.http.get(f"/api/chat/session/{self.session_id}/messages")
        resp.raise_for_status()
        self.history = resp.json()
        return self.history

    async def send(self, frame: Dict[str, Any]) -> None:
        if self._ws is None:
            raise ConnectionError("Relay connection is not open")
        await self._ws.send(json.dumps(frame))

    async def send_message(self, text: str) -> None:
        await self.send({"type": "send_message", "session_id": self.session_id, "message": text})

    async def _session(self, on_event: EventHandler) -> None:
        async with websockets.connect(self.ws_url) as ws:
            self._ws = ws
            try:
                await self.send({"type": "join_session", "session_id": self.session_id, "role": self.role})
                await self.fetch_history()
                self._joined = True
                async for raw in ws:
                    await on_event(json.loads(raw))
            finally:
                self._ws = None

    async def run(self, on_event: EventHandler) -> None:
        """Stay connected until the server closes cleanly or retries run out."""
        delays = self.policy.delays()
        while True:
            self._joined = False
            try:
                await self._session(on_event)
                return
            except (OSError, websockets.ConnectionClosedError, websockets.InvalidHandshake, httpx.HTTPError) as exc:
                if self._joined:
                    # a fresh outage gets the full retry budget again
                    delays = self.policy.delays()
                delay = next(delays, None)
                if delay is None:
                    logger.error("Giving up on relay for chat %s: %s", self.session_id, exc)
                    raise
                logger.warning("Relay connection lost (%s), reconnecting in %.1fs", exc, delay)
                await asyncio.sleep(delay)

    async def aclose(self) -> None:
        await self.http.aclose()

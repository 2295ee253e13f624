from __future__ import annotations

import asyncio
from typing import Any, Protocol

import structlog

from app.services.report_events import ReportEvent

logger = structlog.get_logger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


def report_topic(report_id: int) -> str:
    return f'report:{int(report_id)}'


def role_topic(role: str) -> str:
    return f'role:{role.strip().lower()}'


class RealtimeHub:
    """Topic registry for live report updates.

    Topics are ``report:<id>`` and ``role:<name>``. Joining or leaving a topic is a
    set operation, so repeated subscribe/unsubscribe calls never leak entries.
    Delivery is best-effort: a connection that fails to receive is dropped.
    """

    def __init__(self) -> None:
        self._connections: set[Connection] = set()
        self._topics: dict[str, set[Connection]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, conn: Connection) -> None:
        async with self._lock:
            self._connections.add(conn)

    async def disconnect(self, conn: Connection) -> None:
        async with self._lock:
            self._remove(conn)

    def _remove(self, conn: Connection) -> None:
        self._connections.discard(conn)
        for topic in list(self._topics):
            members = self._topics[topic]
            members.discard(conn)
            if not members:
                del self._topics[topic]

    async def _join(self, conn: Connection, topic: str) -> None:
        async with self._lock:
            self._connections.add(conn)
            self._topics.setdefault(topic, set()).add(conn)

    async def _leave(self, conn: Connection, topic: str) -> None:
        async with self._lock:
            members = self._topics.get(topic)
            if members is None:
                return
            members.discard(conn)
            if not members:
                del self._topics[topic]

    async def subscribe_report(self, conn: Connection, report_id: int) -> None:
        await self._join(conn, report_topic(report_id))

    async def unsubscribe_report(self, conn: Connection, report_id: int) -> None:
        await self._leave(conn, report_topic(report_id))

    async def subscribe_role(self, conn: Connection, role: str) -> None:
        await self._join(conn, role_topic(role))

    async def unsubscribe_role(self, conn: Connection, role: str) -> None:
        await self._leave(conn, role_topic(role))

    async def subscribers(self, topic: str) -> set[Connection]:
        async with self._lock:
            return set(self._topics.get(topic, set()))

    async def connection_count(self) -> int:
        async with self._lock:
            return len(self._connections)

    async def topic_count(self) -> int:
        async with self._lock:
            return len(self._topics)

    async def _targets(self, event: ReportEvent) -> list[Connection]:
        async with self._lock:
            if event.broadcast:
                return list(self._connections)
            targets: set[Connection] = set()
            if event.report_id is not None:
                targets.update(self._topics.get(report_topic(event.report_id), set()))
            for role in event.roles:
                targets.update(self._topics.get(role_topic(role), set()))
            return list(targets)

    async def publish(self, event: ReportEvent) -> int:
        data = {'event': event.name, 'data': event.payload}
        delivered = 0
        for conn in await self._targets(event):
            try:
                await conn.send_json(data)
                delivered += 1
            except Exception as exc:
                logger.warning('realtime_send_failed', event_name=event.name, error=str(exc))
                async with self._lock:
                    self._remove(conn)
        return delivered

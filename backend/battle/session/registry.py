"""In-memory connection registry for battle sessions."""

from __future__ import annotations

import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from battle.messaging.encoder import encode
from battle.messaging.types import UserLeftMessage

if TYPE_CHECKING:
    from battle.messaging.protocol import ConnectionProtocol
    from battle.messaging.types import ServerMessage

logger = structlog.get_logger()


@dataclass(frozen=True)
class ConnectionBinding:
    """Which user and session a socket speaks for. Never persisted."""

    connection_id: str
    user_id: int
    session_id: int


class ConnectionRegistry:
    """Track sockets per user and per session for message fan-out.

    Closed sockets are skipped on broadcast but only removed by unregister().
    """

    def __init__(self) -> None:
        self._sessions: dict[int, dict[str, ConnectionProtocol]] = {}  # session_id -> {conn_id -> conn}
        self._users: dict[int, ConnectionProtocol] = {}  # user_id -> latest conn
        self._bindings: dict[str, ConnectionBinding] = {}  # conn_id -> binding (reverse index)

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    @property
    def connection_count(self) -> int:
        return len(self._bindings)

    def binding_for(self, connection_id: str) -> ConnectionBinding | None:
        return self._bindings.get(connection_id)

    def connection_for_user(self, user_id: int) -> ConnectionProtocol | None:
        return self._users.get(user_id)

    def session_connection_ids(self, session_id: int) -> list[str]:
        return list(self._sessions.get(session_id, {}))

    def is_user_in_session(self, user_id: int, session_id: int) -> bool:
        """Whether any registered socket still speaks for this user in this session."""
        return any(b.user_id == user_id and b.session_id == session_id for b in self._bindings.values())

    def register(self, user_id: int, session_id: int, connection: ConnectionProtocol) -> ConnectionBinding:
        """Bind a socket to a user and session. Older sockets for the user stay bound until they close."""
        previous = self._bindings.get(connection.connection_id)
        if previous is not None and previous.session_id != session_id:
            self._discard_from_session(previous.session_id, connection.connection_id)

        binding = ConnectionBinding(connection.connection_id, user_id, session_id)
        self._bindings[connection.connection_id] = binding
        self._users[user_id] = connection
        self._sessions.setdefault(session_id, {})[connection.connection_id] = connection
        return binding

    async def unregister(self, connection: ConnectionProtocol) -> ConnectionBinding | None:
        """Drop a socket and tell the rest of its session that the user left."""
        binding = self._bindings.pop(connection.connection_id, None)
        if binding is None:
            return None

        self._discard_from_session(binding.session_id, connection.connection_id)
        if self._users.get(binding.user_id) is connection:
            fallback = self._other_connection_for_user(binding.user_id)
            if fallback is None:
                del self._users[binding.user_id]
            else:
                self._users[binding.user_id] = fallback

        await self.broadcast(binding.session_id, UserLeftMessage(user_id=binding.user_id))
        logger.info("connection unregistered", session_id=binding.session_id, user_id=binding.user_id)
        return binding

    async def broadcast(
        self,
        session_id: int,
        message: ServerMessage,
        exclude_connection_id: str | None = None,
    ) -> None:
        """Send one event to every open socket in the session.

        The payload is serialized once. Send failures are swallowed so one
        dead socket cannot block the rest. Snapshot via list() because a
        concurrent unregister can mutate the set while we yield.
        """
        connections = self._sessions.get(session_id)
        if not connections:
            return
        payload = encode(message.to_wire())
        for conn_id, connection in list(connections.items()):
            if conn_id == exclude_connection_id or not connection.is_open:
                continue
            with contextlib.suppress(RuntimeError, OSError):
                await connection.send_text(payload)

    async def send(self, connection: ConnectionProtocol, message: ServerMessage) -> None:
        if not connection.is_open:
            return
        with contextlib.suppress(RuntimeError, OSError):
            await connection.send_message(message.to_wire())

    async def close_all(self, code: int = 1001, reason: str = "server_shutdown") -> None:
        """Close every tracked socket and forget all bindings."""
        connections = [conn for session in self._sessions.values() for conn in session.values()]
        self._sessions.clear()
        self._users.clear()
        self._bindings.clear()
        for connection in connections:
            with contextlib.suppress(RuntimeError, OSError):
                await connection.close(code=code, reason=reason)

    def _other_connection_for_user(self, user_id: int) -> ConnectionProtocol | None:
        for binding in reversed(self._bindings.values()):
            if binding.user_id == user_id:
                return self._sessions[binding.session_id][binding.connection_id]
        return None

    def _discard_from_session(self, session_id: int, connection_id: str) -> None:
        connections = self._sessions.get(session_id)
        if connections is None:
            return
        connections.pop(connection_id, None)
        if not connections:
            del self._sessions[session_id]

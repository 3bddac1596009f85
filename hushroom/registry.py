# hushroom/registry.py
# Connection Registry: one Session per live WebSocket connection.
# The registry is an unordered mapping keyed by the connection id the transport assigns at connect time.

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from .errors import DuplicateConnectionError
from .identity import IdentityGenerator


@dataclass
class Session:
    """
    Server-side record of one live connection.

    Attributes:
        id (str): Connection id assigned by the transport. Never changes.
        alias (str | None): Display name. Starts as a 'UserNNNN' placeholder and is
            overwritten by 'update alias' events or by the alias carried in a chat message.
        color (str): CSS color tag assigned at connect time. Never changes.
        connected_at (datetime): UTC time the session was created.
    """
    id: str
    alias: Optional[str]
    color: str
    connected_at: datetime


class ConnectionRegistry:
    """Tracks every registered connection's Session."""

    def __init__(self, identity=None):
        self._identity = identity or IdentityGenerator()
        self._sessions: Dict[str, Session] = {}

    def register(self, connection_id):
        """
        Creates a session with a fresh color and placeholder alias.

        Raises:
            DuplicateConnectionError: If the id is already registered. A correct transport
                never reuses ids, so this indicates a programming error.
        """
        if connection_id in self._sessions:
            raise DuplicateConnectionError(connection_id)
        session = Session(
            id=connection_id,
            alias=self._identity.alias(),
            color=self._identity.color(),
            connected_at=self._identity.now(),
        )
        self._sessions[connection_id] = session
        return session

    def update_alias(self, connection_id, alias):
        session = self._sessions.get(connection_id)
        if session is None:
            logging.debug(f"Alias update for unknown connection {connection_id} ignored.")
            return
        session.alias = alias

    def get(self, connection_id) -> Optional[Session]:
        return self._sessions.get(connection_id)

    def unregister(self, connection_id) -> Optional[Session]:
        """Removes and returns the session, or returns None if it was already gone."""
        return self._sessions.pop(connection_id, None)

    def count(self) -> int:
        return len(self._sessions)

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, connection_id):
        return connection_id in self._sessions

# hushroom/typing_tracker.py
# Side table of connections currently signalling "typing".
# Entries are removed on an explicit stop or on disconnect; the relay never expires them on its own.

from typing import Dict


class TypingTracker:

    def __init__(self):
        # connection id -> {'alias': ..., 'clientId': ...}
        self._typing: Dict[str, dict] = {}

    def set_typing(self, connection_id, alias, client_id):
        self._typing[connection_id] = {'alias': alias, 'clientId': client_id}

    def clear_typing(self, connection_id):
        self._typing.pop(connection_id, None)

    def is_typing(self, connection_id):
        return connection_id in self._typing

    def typing_users(self):
        """Returns a snapshot copy of the current typing table."""
        return {connection_id: dict(entry) for connection_id, entry in self._typing.items()}

    def __len__(self):
        return len(self._typing)

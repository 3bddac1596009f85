# hushroom/router.py
# Event Router: validates every inbound event, applies it to the shared relay state and
# returns the outbound events it produces. Nothing here touches the network; the server
# hands the returned Outbound list to the transport for delivery.
#
# Delivery scopes:
# - chat messages go to everyone, sender included (the sender renders its own bubble from the echo,
#   which carries the server-assigned id and timestamp);
# - presence and typing notices go to everyone except the sender;
# - validation errors go to the sender only.

import logging
from dataclasses import dataclass, field

from . import config
from . import protocol
from .errors import ValidationError
from .identity import IdentityGenerator
from .protocol import to_all, to_all_except, to_only
from .registry import ConnectionRegistry
from .typing_tracker import TypingTracker

JOINED_NOTICE = "A new user joined the chat"
LEFT_NOTICE = "A user left the chat"
FALLBACK_ALIAS = "Anonymous"


@dataclass
class RelayState:
    """Shared mutable state of the room, built once at startup and injected into the router."""
    registry: ConnectionRegistry = field(default_factory=ConnectionRegistry)
    typing: TypingTracker = field(default_factory=TypingTracker)


def validate_message(message, max_length=None):
    """
    Checks a chat message and returns the trimmed text.

    The length limit applies to the text as sent, before trimming.

    Raises:
        ValidationError: If the message is missing, not a string, blank, or too long.
    """
    if max_length is None:
        max_length = config.MAX_MESSAGE_LENGTH
    if not isinstance(message, str) or not message.strip():
        raise ValidationError("Message cannot be empty")
    if len(message) > max_length:
        raise ValidationError("Message too long")
    return message.strip()


def _text_or_none(value):
    # Aliases are only honoured when they are non-empty strings.
    if isinstance(value, str) and value:
        return value
    return None


class EventRouter:
    """
    Dispatches inbound events for every connection.

    The router trusts every connection that reaches it: passphrase checks happen before a
    client is handed the channel.

    Args:
        state (RelayState): Registry and typing tracker shared by all connections.
        identity (IdentityGenerator | None): Source of message ids and timestamps.
        max_message_length (int | None): Overrides config.MAX_MESSAGE_LENGTH.
    """

    def __init__(self, state=None, identity=None, max_message_length=None):
        self.identity = identity or IdentityGenerator()
        self.state = state or RelayState(registry=ConnectionRegistry(self.identity))
        self.max_message_length = max_message_length or config.MAX_MESSAGE_LENGTH
        self._handlers = {
            protocol.CONNECT: self.handle_connect,
            protocol.CHAT_MESSAGE: self.handle_chat_message,
            protocol.TYPING: self.handle_typing,
            protocol.UPDATE_ALIAS: self.handle_update_alias,
            protocol.DISCONNECT: self.handle_disconnect,
        }

    @property
    def registry(self):
        return self.state.registry

    @property
    def typing(self):
        return self.state.typing

    def dispatch(self, connection_id, event, payload=None):
        """
        Routes one event and returns the list of Outbound events it produced.

        Unknown event names are logged and ignored. Client events from a connection
        that is not registered are dropped silently.
        """
        handler = self._handlers.get(event)
        if handler is None:
            logging.warning(f"Unknown event '{event}' from {connection_id}. Ignoring.")
            return []
        if not isinstance(payload, dict):
            payload = {}
        if event in protocol.CLIENT_EVENTS and connection_id not in self.registry:
            if config.DEBUG:
                logging.info(f"Dropping '{event}' from unregistered connection {connection_id}.")
            return []
        return handler(connection_id, payload)

    # --- Lifecycle ---

    def handle_connect(self, connection_id, payload=None):
        session = self.registry.register(connection_id)
        logging.info(f"User connected: {connection_id} as '{session.alias}'")
        return [
            to_all(protocol.USER_COUNT, {"count": self.registry.count()}),
            to_all_except(connection_id, protocol.USER_JOINED, {
                "id": connection_id,
                "message": JOINED_NOTICE,
                "timestamp": self.identity.timestamp(),
            }),
        ]

    def handle_disconnect(self, connection_id, payload=None):
        """Cleans up after a closed connection. Repeated calls for the same id produce nothing."""
        reason = (payload or {}).get("reason")
        if connection_id not in self.registry:
            if config.DEBUG:
                logging.info(f"Duplicate disconnect for {connection_id} ignored.")
            return []
        logging.info(f"User disconnected: {connection_id} - Reason: {reason}")
        self.typing.clear_typing(connection_id)
        left = to_all_except(connection_id, protocol.USER_LEFT, {
            "id": connection_id,
            "message": LEFT_NOTICE,
            "timestamp": self.identity.timestamp(),
        })
        self.registry.unregister(connection_id)
        return [left, to_all(protocol.USER_COUNT, {"count": self.registry.count()})]

    # --- Client events ---

    def handle_chat_message(self, connection_id, payload):
        try:
            text = validate_message(payload.get("message"), self.max_message_length)
        except ValidationError as e:
            logging.warning(f"Rejected chat message from {connection_id}: {e.message}")
            return [to_only(connection_id, protocol.ERROR, {"message": e.message})]

        session = self.registry.get(connection_id)
        alias = _text_or_none(payload.get("alias"))
        if alias:
            # Sticky alias: later messages without an alias reuse this one.
            self.registry.update_alias(connection_id, alias)

        message = {
            "id": self.identity.message_id(),
            "message": text,
            "alias": alias or session.alias or FALLBACK_ALIAS,
            "clientId": payload.get("clientId") or connection_id,
            "timestamp": self.identity.timestamp(),
            "color": session.color,
        }
        if config.DEBUG:
            logging.info(f"Message broadcast from {message['alias']}: {message['message']}")
        return [to_all(protocol.CHAT_MESSAGE, message)]

    def handle_typing(self, connection_id, payload):
        is_typing = payload.get("isTyping")
        alias = payload.get("alias")
        client_id = payload.get("clientId")
        if is_typing:
            self.typing.set_typing(connection_id, alias, client_id)
        else:
            self.typing.clear_typing(connection_id)
        return [to_all_except(connection_id, protocol.USER_TYPING, {
            "isTyping": is_typing,
            "alias": alias,
            "clientId": client_id,
        })]

    def handle_update_alias(self, connection_id, payload):
        # Stored only; other participants see the new alias on this user's next message.
        self.registry.update_alias(connection_id, _text_or_none(payload.get("alias")))
        return []

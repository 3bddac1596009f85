# hushroom/protocol.py
# Wire protocol for the relay channel.
# Every frame, in both directions, is a JSON object of the form {"type": "<event name>", "payload": {...}}.

import json
from dataclasses import dataclass, field
from typing import Optional

from .errors import FrameError

# --- Inbound events (client -> relay) ---
CHAT_MESSAGE = "chat message"   # {message, alias?, clientId?}
TYPING = "typing"               # {isTyping, alias, clientId}
UPDATE_ALIAS = "update alias"   # {alias}

# Lifecycle events raised by the transport itself, never sent by clients.
CONNECT = "connect"
DISCONNECT = "disconnect"

# --- Outbound events (relay -> clients) ---
# CHAT_MESSAGE is reused for outbound messages: {id, message, alias, clientId, timestamp, color}
USER_JOINED = "user joined"     # {id, message, timestamp}
USER_LEFT = "user left"         # {id, message, timestamp}
USER_COUNT = "user count"       # {count}
USER_TYPING = "user typing"     # {isTyping, alias, clientId}
ERROR = "error"                 # {message}, unicast to the originating connection only

CLIENT_EVENTS = frozenset({CHAT_MESSAGE, TYPING, UPDATE_ALIAS})

# --- Delivery scopes ---
SCOPE_ALL = "all"          # every registered connection, sender included
SCOPE_EXCEPT = "except"    # every registered connection except `connection_id`
SCOPE_ONLY = "only"        # `connection_id` alone


@dataclass
class Outbound:
    """
    One outbound event produced by the router, together with who should receive it.

    Attributes:
        event (str): Outbound event name (e.g. USER_COUNT).
        payload (dict): Event data, serialized as the frame's "payload".
        scope (str): SCOPE_ALL, SCOPE_EXCEPT or SCOPE_ONLY.
        connection_id (str | None): The excluded connection for SCOPE_EXCEPT, or the
            single recipient for SCOPE_ONLY. Unused for SCOPE_ALL.
    """
    event: str
    payload: dict = field(default_factory=dict)
    scope: str = SCOPE_ALL
    connection_id: Optional[str] = None


def to_all(event, payload):
    return Outbound(event, payload, SCOPE_ALL)


def to_all_except(connection_id, event, payload):
    return Outbound(event, payload, SCOPE_EXCEPT, connection_id)


def to_only(connection_id, event, payload):
    return Outbound(event, payload, SCOPE_ONLY, connection_id)


def encode_frame(event, payload):
    """Serializes an event into the JSON text frame sent over the WebSocket."""
    return json.dumps({"type": event, "payload": payload})


def decode_frame(raw):
    """
    Parses a raw text frame into (event, payload).

    A missing or non-object payload is returned as an empty dict so handlers can treat absent
    fields as falsy. Only frames that cannot identify an event at all are rejected.

    Raises:
        FrameError: If the frame is not valid JSON, is not a JSON object, or has no string 'type'.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FrameError("Binary frame is not valid UTF-8.") from e
    try:
        data = json.loads(raw)
    except ValueError as e:
        # JSONDecodeError, and integers longer than the interpreter's digit limit.
        raise FrameError("Invalid JSON.") from e
    except RecursionError as e:
        raise FrameError("JSON nested too deeply.") from e
    if not isinstance(data, dict):
        raise FrameError("Frame is not a JSON object.")
    event = data.get("type")
    if not isinstance(event, str) or not event:
        raise FrameError("Missing or invalid 'type'.")
    payload = data.get("payload")
    if not isinstance(payload, dict):
        payload = {}
    return event, payload

# hushroom/config.py
# This file centralizes configuration settings for the Hushroom relay server.
# Every setting can be overridden through an environment variable of the same name
# (or the HUSHROOM_ prefixed name where noted) so deployments never need to edit this file.

import os # Import the 'os' module to read environment variables and build file paths.


def _env_flag(name, default):
    """Reads a boolean switch from the environment ('1', 'true', 'yes', 'on' count as enabled)."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


# --- Network Configuration ---

# HOST: The IP address the relay should listen on.
# - '0.0.0.0': Listen on all available network interfaces.
# - '127.0.0.1' or 'localhost': Listen only on the local machine.
HOST = os.environ.get('HUSHROOM_HOST', '0.0.0.0')

# PORT: The TCP port serving both the WebSocket channel and the small HTTP API (/api/login, /api/health).
PORT = int(os.environ.get('PORT', '3001'))

# --- Authentication ---

# CHAT_ROOM_PASSCODE: The shared passphrase every participant must know to join the room.
# The default exists for local testing only; a warning is logged at startup while it is in use.
DEFAULT_PASSCODE = 'secret123'
CHAT_ROOM_PASSCODE = os.environ.get('CHAT_ROOM_PASSCODE', DEFAULT_PASSCODE)

# GATE_WEBSOCKET: When True, the WebSocket handshake itself must carry a valid ?passphrase= query parameter.
# When False, the relay trusts any client that reaches the channel (the login endpoint is the gate).
GATE_WEBSOCKET = _env_flag('GATE_WEBSOCKET', False)

# FRONTEND_URL: Origin allowed to talk to the relay. Sent as Access-Control-Allow-Origin and
# checked on the WebSocket handshake when the client sends an Origin header; clients that send
# no Origin (non-browser tools) are still accepted. Must match exactly, e.g. no trailing slash.
# Unset means any origin.
FRONTEND_URL = os.environ.get('FRONTEND_URL') or None

# --- SSL Configuration ---
# Settings related to enabling Secure WebSockets (WSS) using TLS/SSL certificates.

# CERT_DIR: The directory where SSL certificate files (cert.pem, key.pem) are expected to be located.
CERT_DIR = os.environ.get('CERT_DIR', os.path.join(os.getcwd(), 'certs'))
CERT_FILE = os.environ.get('CERT_FILE', os.path.join(CERT_DIR, 'cert.pem'))
KEY_FILE = os.environ.get('KEY_FILE', os.path.join(CERT_DIR, 'key.pem'))

# ENABLE_SSL: Master switch for WSS. Falls back to plain WS if the certificate files cannot be loaded.
ENABLE_SSL = _env_flag('ENABLE_SSL', False)

# --- Message Limits ---

# MAX_MESSAGE_LENGTH: Maximum number of characters accepted in a single chat message.
MAX_MESSAGE_LENGTH = int(os.environ.get('MAX_MESSAGE_LENGTH', '1000'))

# MAX_FRAME_SIZE: Maximum size of an incoming WebSocket frame in bytes.
# A 1000 character message plus alias, clientId and JSON envelope fits comfortably in 64 KiB.
MAX_FRAME_SIZE = int(os.environ.get('MAX_FRAME_SIZE', str(64 * 1024)))

# OUTBOX_LIMIT: Maximum number of events queued for one connection. A client that stops reading
# and lets its queue overflow is disconnected (close code 1008).
OUTBOX_LIMIT = int(os.environ.get('OUTBOX_LIMIT', '1000'))

# --- Debugging Configuration ---

# DEBUG: Enables verbose logging of frame contents (chat text included).
# Keep False in production; connections, warnings and errors are logged regardless.
DEBUG = _env_flag('DEBUG', False)

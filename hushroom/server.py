# hushroom/server.py
# This file contains the network side of the Hushroom relay.
# Responsibilities include:
# - Accepting WebSocket connections and giving each one a connection id.
# - Decoding inbound frames and passing them to the EventRouter.
# - Handing the router's outbound events to the Broadcaster for delivery.
# - Running disconnect cleanup exactly once per connection, however the connection ends.
# - Answering the small HTTP API (/api/login, /api/health) on the same port.
# - Setting up SSL context for Secure WebSockets (WSS) if configured.

import asyncio          # For the event loop and the shutdown future.
import http             # For HTTP status codes in the HTTP API responses.
import json             # For serializing HTTP API response bodies.
import logging          # For logging connections, rejected frames and errors.
import signal           # For graceful shutdown on SIGINT/SIGTERM.
import ssl              # For creating SSL contexts for WSS.
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import serve
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.http11 import Response

from . import config
from . import protocol
from .auth import PassphraseGate
from .errors import FrameError
from .router import EventRouter
from .transport import Broadcaster

LOGIN_PATH = "/api/login"
HEALTH_PATH = "/api/health"


def describe_close(websocket):
    """Builds the disconnect reason reported to the router from the connection's close frame."""
    code = getattr(websocket, "close_code", None)
    if code is None:
        return "transport error"
    reason = getattr(websocket, "close_reason", "") or ""
    return f"{code} {reason}".strip()


def json_response(status, body, origin=None):
    """Builds an HTTP response with a JSON body for the websockets process_request hook."""
    payload = json.dumps(body).encode('utf-8')
    headers = Headers()
    headers["Content-Type"] = "application/json"
    headers["Content-Length"] = str(len(payload))
    headers["Access-Control-Allow-Origin"] = origin or "*"
    headers["Connection"] = "close"
    return Response(status.value, status.phrase, headers, payload)


class RelayServer:
    """
    Binds the relay core (router and broadcaster) to websockets connections.

    Args:
        router (EventRouter | None): Event router; a fresh one with empty state by default.
        gate (PassphraseGate | None): Passphrase check used by /api/login and, when
            gate_websocket is on, by the WebSocket handshake.
        gate_websocket (bool | None): Overrides config.GATE_WEBSOCKET.
        broadcaster (Broadcaster | None): Outbound transport.
    """

    def __init__(self, router=None, gate=None, gate_websocket=None, broadcaster=None):
        self.router = router or EventRouter()
        self.gate = gate or PassphraseGate()
        self.gate_websocket = config.GATE_WEBSOCKET if gate_websocket is None else gate_websocket
        self.broadcaster = broadcaster or Broadcaster()

    # --- HTTP API ---

    def process_request(self, connection, request):
        """
        Called by websockets for every HTTP request before the WebSocket handshake.
        Returns a Response to answer the request directly, or None to continue the handshake.
        """
        url = urlsplit(request.path)
        query = parse_qs(url.query)
        passphrase = query.get("passphrase", [None])[0]

        if url.path == HEALTH_PATH:
            return json_response(http.HTTPStatus.OK, {
                "status": "ok",
                "message": "Server is running",
                "connectedClients": self.router.registry.count(),
            }, config.FRONTEND_URL)

        if url.path == LOGIN_PATH:
            if not passphrase:
                return json_response(http.HTTPStatus.BAD_REQUEST, {
                    "status": "error", "message": "Passphrase is required"}, config.FRONTEND_URL)
            if self.gate.check(passphrase):
                return json_response(http.HTTPStatus.OK, {
                    "status": "success", "message": "Authentication successful"}, config.FRONTEND_URL)
            return json_response(http.HTTPStatus.UNAUTHORIZED, {
                "status": "error", "message": "Invalid passphrase"}, config.FRONTEND_URL)

        if self.gate_websocket and not self.gate.check(passphrase):
            logging.warning(f"Refused WebSocket handshake from {connection.remote_address}: bad or missing passphrase.")
            return json_response(http.HTTPStatus.UNAUTHORIZED, {
                "status": "error", "message": "Invalid passphrase"}, config.FRONTEND_URL)
        return None

    # --- WebSocket channel ---

    def handle_frame(self, connection_id, raw):
        """Decodes one inbound frame, routes it and queues the resulting events."""
        if config.DEBUG:
            logging.info(f"Raw message received from {connection_id}: {raw}")
        try:
            event, payload = protocol.decode_frame(raw)
        except FrameError as e:
            logging.warning(f"Invalid frame from {connection_id}: {e}. Ignoring.")
            return
        if event not in protocol.CLIENT_EVENTS:
            logging.warning(f"Unsupported event '{event}' from {connection_id}. Ignoring.")
            return
        self.broadcaster.deliver(self.router.dispatch(connection_id, event, payload))

    async def connection_handler(self, websocket):
        """
        Handles one client's WebSocket connection from open to close.

        The connection is attached to the broadcaster and registered, then every inbound frame is
        routed until the connection closes. Cleanup runs in `finally` so it happens exactly once
        whether the client closed cleanly, the network dropped, or an unexpected error occurred.
        """
        connection_id = str(websocket.id)
        client_address = websocket.remote_address
        logging.info(f"Connection accepted from {client_address} as {connection_id}")

        self.broadcaster.attach(connection_id, websocket)
        self.broadcaster.deliver(self.router.dispatch(connection_id, protocol.CONNECT))

        try:
            async for message in websocket:
                self.handle_frame(connection_id, message)
        except ConnectionClosedOK:
            logging.info(f"Client {client_address} disconnected gracefully.")
        except ConnectionClosedError as e:
            logging.info(f"Client {client_address} disconnected with error: {e}")
        except Exception:
            # Transport-level error: observed only, the relay keeps serving everyone else.
            logging.exception(f"An unexpected error occurred handling client {client_address}")
        finally:
            # Stop writing to this connection before announcing the departure to the others.
            self.broadcaster.detach(connection_id)
            reason = describe_close(websocket)
            self.broadcaster.deliver(
                self.router.dispatch(connection_id, protocol.DISCONNECT, {"reason": reason}))
            logging.info(f"Connection closed for {client_address}")

    def serve(self, host, port, ssl_context=None):
        """Returns the websockets server for this relay (use with `async with` or `await`)."""
        # None admits handshakes without an Origin header.
        origins = [config.FRONTEND_URL, None] if config.FRONTEND_URL else None
        return serve(
            self.connection_handler,
            host,
            port,
            ssl=ssl_context,
            process_request=self.process_request,
            origins=origins,
            max_size=config.MAX_FRAME_SIZE,
        )


def create_ssl_context():
    """
    Loads the certificate and key configured for WSS.
    Returns None (plain WS) if SSL is disabled or the files cannot be loaded.
    """
    if not config.ENABLE_SSL:
        return None
    try:
        logging.info(f"Attempting to load SSL cert: {config.CERT_FILE}")
        logging.info(f"Attempting to load SSL key: {config.KEY_FILE}")
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        ssl_context.load_cert_chain(config.CERT_FILE, config.KEY_FILE)
        logging.info("SSL context created successfully. Server will use WSS.")
        return ssl_context
    except FileNotFoundError:
        logging.error(f"SSL Error: Certificate or Key file not found (Cert: '{config.CERT_FILE}', Key: '{config.KEY_FILE}'). Disabling SSL, falling back to WS.")
    except Exception:
        logging.exception("SSL Error: Failed to create SSL context. Disabling SSL, falling back to WS.")
    return None


async def start_server(host, port, relay=None):
    """
    Starts the relay on the given host and port and runs until SIGINT/SIGTERM.

    Args:
        host (str): The hostname or IP address to bind to.
        port (int): The port number to bind to.
        relay (RelayServer | None): Relay instance; built from config when omitted.
    """
    relay = relay or RelayServer()
    ssl_context = create_ssl_context()
    effective_protocol = "wss" if ssl_context else "ws"

    logging.info(f"Starting server on {effective_protocol}://{host}:{port}")
    logging.info(f"CORS enabled for: {config.FRONTEND_URL or 'all origins'}")
    logging.info(f"Passphrase protection: {'Default' if relay.gate.uses_default else 'Custom'}")
    if relay.gate.uses_default:
        logging.warning("CHAT_ROOM_PASSCODE is not set; the default passphrase is in use.")
    logging.info(f"WebSocket handshake passphrase check: {'ENABLED' if relay.gate_websocket else 'DISABLED'}")
    logging.info(f"Server Debug Logging: {'ENABLED' if config.DEBUG else 'DISABLED'}")

    loop = asyncio.get_running_loop()
    stop = loop.create_future()

    def _request_stop(signame):
        if not stop.done():
            logging.info(f"{signame} received, shutting down gracefully")
            stop.set_result(None)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig.name)
        except NotImplementedError:
            pass  # Windows event loops do not support signal handlers.

    try:
        async with relay.serve(host, port, ssl_context):
            await stop
    except OSError:
        logging.exception(f"OSError starting server on {host}:{port} - Is the port already in use?")
        raise
    finally:
        await relay.broadcaster.close()
        logging.info("Server closed")

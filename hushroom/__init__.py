# hushroom/__init__.py
# Hushroom: a single-room, passphrase-gated, in-memory chat relay built on asyncio and websockets.

__version__ = "1.0.0"

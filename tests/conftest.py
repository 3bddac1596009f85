"""Shared fixtures for relay tests."""
import itertools
import random
from datetime import datetime, timezone

import pytest

from hushroom.identity import IdentityGenerator
from hushroom.registry import ConnectionRegistry
from hushroom.router import EventRouter, RelayState
from hushroom.typing_tracker import TypingTracker

FIXED_NOW = datetime(2024, 5, 1, 12, 30, 0, 123000, tzinfo=timezone.utc)
FIXED_TIMESTAMP = "2024-05-01T12:30:00.123Z"


class FixedIdentity(IdentityGenerator):
    """Deterministic colors, aliases, ids and clock for assertions."""

    def __init__(self):
        super().__init__(random.Random(0))
        self._aliases = itertools.count(1000)
        self._hues = itertools.count(0, 10)
        self._ids = itertools.count(1)

    def color(self):
        return f"hsl({next(self._hues)}, 70%, 65%)"

    def alias(self):
        return f"User{next(self._aliases)}"

    def now(self):
        return FIXED_NOW

    def message_id(self):
        return f"msg-{next(self._ids)}"


@pytest.fixture
def identity():
    return FixedIdentity()


@pytest.fixture
def registry(identity):
    return ConnectionRegistry(identity)


@pytest.fixture
def router(identity, registry):
    return EventRouter(RelayState(registry=registry, typing=TypingTracker()), identity)

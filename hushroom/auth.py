# hushroom/auth.py
# Authentication Gate: a pass/fail check of a candidate passphrase against the room's shared secret.

import hmac
import logging

from . import config


class PassphraseGate:
    """
    Validates the shared room passphrase.

    Args:
        secret (str | None): The configured passphrase. Defaults to config.CHAT_ROOM_PASSCODE.
    """

    def __init__(self, secret=None):
        self._secret = secret if secret is not None else config.CHAT_ROOM_PASSCODE

    @property
    def uses_default(self):
        return self._secret == config.DEFAULT_PASSCODE

    def check(self, candidate):
        if not isinstance(candidate, str) or not candidate:
            return False
        # Constant-time comparison so response timing does not leak how much of the guess matched.
        ok = hmac.compare_digest(candidate.encode('utf-8'), self._secret.encode('utf-8'))
        if not ok:
            logging.warning("Rejected invalid passphrase.")
        return ok

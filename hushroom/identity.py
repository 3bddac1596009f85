# hushroom/identity.py
# Generates the server-assigned values attached to sessions and messages:
# display colors, placeholder aliases, message ids and timestamps.
# Everything random or time dependent goes through IdentityGenerator so tests can swap in fixed values.

import random
import string
from datetime import datetime, timezone

# Characters used for the random suffix of message ids (lowercase base 36).
_BASE36 = string.digits + string.ascii_lowercase


def format_timestamp(moment):
    """Formats a datetime as ISO-8601 UTC with millisecond precision and a 'Z' suffix."""
    return moment.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class IdentityGenerator:
    """
    Default source of colors, aliases, ids and timestamps.

    Args:
        rng (random.Random | None): Random number generator to draw from. A private
            instance is created when omitted; pass a seeded one for reproducible output.
    """

    def __init__(self, rng=None):
        self._rng = rng or random.Random()

    def color(self):
        # Random hue; saturation and lightness are fixed.
        return f"hsl({self._rng.randrange(360)}, 70%, 65%)"

    def alias(self):
        # Placeholder alias: 'User' followed by four digits (1000-9999).
        return f"User{self._rng.randint(1000, 9999)}"

    def now(self):
        return datetime.now(timezone.utc)

    def timestamp(self):
        return format_timestamp(self.now())

    def message_id(self):
        """Time based id with a random suffix: epoch milliseconds followed by 9 base-36 characters."""
        suffix = ''.join(self._rng.choice(_BASE36) for _ in range(9))
        return f"{int(self.now().timestamp() * 1000)}{suffix}"

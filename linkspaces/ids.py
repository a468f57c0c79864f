from __future__ import annotations

import random
import time
import uuid


def create_id() -> str:
    """Return a new unique identifier.

    Uses ``uuid4`` (backed by ``os.urandom``). Platforms without a strong
    random source get a pseudo-random token suffixed with the current time.
    """
    try:
        return str(uuid.uuid4())
    except NotImplementedError:
        return f"{random.getrandbits(52):x}-{now_ms()}"


def now_ms() -> int:
    return int(time.time() * 1000)

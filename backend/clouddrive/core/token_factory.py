"""Functions for generating identifiers and tokens.

Session tokens and share tokens are random and unguessable. Logical file
ids are time-derived so they sort by creation and stay stable across
storage backends.
"""

import secrets
import threading
import time

# 8 random bytes = 16 hex chars for share links.
SHARE_TOKEN_BYTES = 8
SESSION_TOKEN_BYTES = 32


def now_ms() -> int:
    """Current time as epoch milliseconds (the unit every timestamp column uses)."""
    return int(time.time() * 1000)


def generate_share_token() -> str:
    """Fixed-length random hex token for a share link."""
    return secrets.token_hex(SHARE_TOKEN_BYTES)


def generate_session_token() -> str:
    """Random token identifying a login session."""
    return secrets.token_hex(SESSION_TOKEN_BYTES)


_logical_id_lock = threading.Lock()
_last_logical_id = 0


def generate_logical_id(at_ms: int = None) -> str:
    """Time-derived logical file id: epoch ms * 1000 plus a random 0-999 suffix.

    Ids handed out by one process strictly increase, so files created in
    the same millisecond never collide.
    """
    global _last_logical_id
    ms = now_ms() if at_ms is None else at_ms
    candidate = ms * 1000 + secrets.randbelow(1000)
    with _logical_id_lock:
        if candidate <= _last_logical_id:
            candidate = _last_logical_id + 1
        _last_logical_id = candidate
    return str(candidate)


def session_expiry_ms(ttl_hours: int) -> int:
    return now_ms() + ttl_hours * 3600 * 1000

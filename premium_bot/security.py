"""Input handling and admin checks.

Buyer text arrives from an untrusted chat, admin identities from two
independent surfaces. Everything here is a pure function except
:func:`log_security_event`, which records refused admin attempts.
"""
from __future__ import annotations

import logging
import re
from typing import Iterable, Optional

from .database import Database, to_timestamp, utcnow

LOGGER = logging.getLogger(__name__)

MAX_STRING_LENGTH = 500
MAX_AMOUNT = 1_000_000_000

AFFIRMATIVE_WORDS = ("sudah", "bayar", "transfer", "bukti", "paid", "done", "lunas")
CANCEL_WORDS = ("/batal", "batal", "/cancel", "cancel")

_MARKDOWN_SPECIAL = re.compile(r"([_*`\[])")


def sanitize_string(value: Optional[str], max_length: int = MAX_STRING_LENGTH) -> str:
    """Trim buyer input to ``max_length`` and drop null bytes and edge whitespace."""

    if not isinstance(value, str):
        return ""
    return value[:max_length].replace("\x00", "").strip()


def parse_amount(value: Optional[str]) -> Optional[int]:
    """Parse a claimed amount such as ``Rp 15.000``.

    Every non-digit character is removed before parsing, so thousands
    separators and currency prefixes are accepted. Returns ``None`` when no
    digits remain, the value is zero, or it is absurdly large.
    """
    digits = re.sub(r"[^0-9]", "", value or "")
    if not digits:
        return None
    amount = int(digits)
    if amount <= 0 or amount > MAX_AMOUNT:
        return None
    return amount


def is_affirmative(text: str) -> bool:
    """True when the buyer says they have paid without sending a photo."""

    lowered = (text or "").lower()
    return any(word in lowered for word in AFFIRMATIVE_WORDS)


def is_cancel(text: str) -> bool:
    return (text or "").strip().lower() in CANCEL_WORDS


def escape_markdown(value: object) -> str:
    """Escape user supplied text for Telegram's legacy Markdown mode."""

    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(value))


def constant_time_equals(provided: str, expected: str) -> bool:
    """Compare two strings without leaking the mismatch position."""

    if not provided or not expected:
        return False
    if len(provided) != len(expected):
        return False
    result = 0
    for a, b in zip(provided, expected):
        result |= ord(a) ^ ord(b)
    return result == 0


def is_admin_identity(identity: Optional[object], allowed: Iterable[str]) -> bool:
    """Exact match of ``identity`` against an allow-list."""

    if identity is None:
        return False
    candidate = str(identity).strip()
    matched = False
    for admin_id in allowed:
        # no early exit: every entry is compared
        matched = constant_time_equals(candidate, admin_id) or matched
    return matched


def log_security_event(db: Database, actor: Optional[str], event_type: str, description: str) -> None:
    """Record a security-related event. Failures are logged, not raised."""

    try:
        with db.transaction() as cur:
            cur.execute(
                "INSERT INTO security_events (actor, event_type, description, created_at) VALUES (?, ?, ?, ?)",
                (actor, event_type, description, to_timestamp(utcnow())),
            )
        LOGGER.info("security event logged: %s - %s", event_type, description)
    except Exception as exc:
        LOGGER.error("failed to log security event: %s", exc)

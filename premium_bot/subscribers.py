"""Subscriber accounts that receive the premium entitlement.

The account itself belongs to the reading app; this module only touches the
entitlement fields and the in-app notification list.
"""
from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from . import database
from .database import Database, from_timestamp, to_timestamp, utcnow


@dataclass
class Notification:
    title: str
    message: str
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Subscriber:
    key: str
    display_name: str = ""
    is_premium: bool = False
    premium_until: Optional[datetime] = None
    notifications: List[Notification] = field(default_factory=list)

    def active_until(self, now: datetime) -> Optional[datetime]:
        """Expiry of an entitlement that is still running at ``now``."""

        if self.is_premium and self.premium_until and self.premium_until > now:
            return self.premium_until
        return None

    def to_dict(self) -> dict:
        return {
            "googleId": self.key,
            "displayName": self.display_name,
            "isPremium": self.is_premium,
            "premiumUntil": to_timestamp(self.premium_until),
            "notifications": [
                {
                    "title": item.title,
                    "message": item.message,
                    "isRead": item.is_read,
                    "createdAt": to_timestamp(item.created_at),
                }
                for item in self.notifications
            ],
        }


class SubscriberStore:
    """Reads and writes subscriber rows."""

    def __init__(self, db: Database, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.clock = clock

    def find_by_key(self, key: str, *, cursor: Optional[sqlite3.Cursor] = None) -> Optional[Subscriber]:
        if cursor is None:
            with self.db.transaction() as cur:
                return self._load(cur, key)
        return self._load(cursor, key)

    def _load(self, cur: sqlite3.Cursor, key: str) -> Optional[Subscriber]:
        cur.execute("SELECT * FROM subscribers WHERE key = ?", (key,))
        row = database.fetch_one(cur)
        if not row:
            return None
        cur.execute(
            "SELECT title, message, is_read, created_at FROM subscriber_notifications"
            " WHERE subscriber_key = ? ORDER BY id",
            (key,),
        )
        notifications = [
            Notification(
                title=item["title"],
                message=item["message"],
                is_read=bool(item["is_read"]),
                created_at=from_timestamp(item["created_at"]),
            )
            for item in database.fetch_all(cur)
        ]
        return Subscriber(
            key=row["key"],
            display_name=row["display_name"] or "",
            is_premium=bool(row["is_premium"]),
            premium_until=from_timestamp(row["premium_until"]),
            notifications=notifications,
        )

    def sync(self, key: str, display_name: str = "") -> Subscriber:
        """Create or refresh the account row reported by the reading app.

        Unknown keys get a fresh row. A known key keeps its entitlement, except
        that one which has already run out is cleared.
        """
        now = self.clock()
        with self.db.transaction(immediate=True) as cur:
            cur.execute(
                "INSERT OR IGNORE INTO subscribers (key, display_name, created_at) VALUES (?, ?, ?)",
                (key, display_name, to_timestamp(now)),
            )
            if display_name:
                cur.execute("UPDATE subscribers SET display_name = ? WHERE key = ?", (display_name, key))
            subscriber = self._load(cur, key)
            if subscriber.is_premium and subscriber.premium_until and subscriber.premium_until <= now:
                subscriber.is_premium = False
                subscriber.premium_until = None
                self._save(cur, subscriber, [])
        return subscriber

    def save(
        self,
        subscriber: Subscriber,
        *,
        new_notifications: Optional[List[Notification]] = None,
        cursor: Optional[sqlite3.Cursor] = None,
    ) -> None:
        """Persist the entitlement fields and append notifications."""

        if cursor is None:
            with self.db.transaction() as cur:
                self._save(cur, subscriber, new_notifications or [])
        else:
            self._save(cursor, subscriber, new_notifications or [])

    def _save(self, cur: sqlite3.Cursor, subscriber: Subscriber, notifications: List[Notification]) -> None:
        cur.execute(
            "UPDATE subscribers SET is_premium = ?, premium_until = ? WHERE key = ?",
            (1 if subscriber.is_premium else 0, to_timestamp(subscriber.premium_until), subscriber.key),
        )
        if cur.rowcount == 0:
            raise sqlite3.IntegrityError(f"subscriber {subscriber.key} disappeared")
        for notification in notifications:
            cur.execute(
                "INSERT INTO subscriber_notifications (subscriber_key, title, message, is_read, created_at)"
                " VALUES (?, ?, ?, ?, ?)",
                (
                    subscriber.key,
                    notification.title,
                    notification.message,
                    1 if notification.is_read else 0,
                    to_timestamp(notification.created_at),
                ),
            )
            subscriber.notifications.append(notification)

"""Order records and their persistence.

An order is one purchase attempt. Its ``status`` column doubles as the
conversation session: the chat driver never keeps per-buyer state in memory.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from . import database
from .catalog import Package
from .database import Database, from_timestamp, to_timestamp, utcnow
from .errors import DuplicateOrder, OrderAlreadyProcessed, OrderNotFound

LOGGER = logging.getLogger(__name__)

STATUS_AWAITING_SUBSCRIBER_ID = "awaiting_subscriber_id"
STATUS_AWAITING_PROOF = "awaiting_proof"
STATUS_AWAITING_AMOUNT = "awaiting_amount"
STATUS_PENDING_REVIEW = "pending_review"
STATUS_CONFIRMED = "confirmed"
STATUS_REJECTED = "rejected"

IN_PROGRESS_STATUSES = (
    STATUS_AWAITING_SUBSCRIBER_ID,
    STATUS_AWAITING_PROOF,
    STATUS_AWAITING_AMOUNT,
    STATUS_PENDING_REVIEW,
)
# Buyer-owned steps; these may be cancelled or expire.
CONVERSATION_STATUSES = IN_PROGRESS_STATUSES[:3]
TERMINAL_STATUSES = (STATUS_CONFIRMED, STATUS_REJECTED)

ALLOWED_TRANSITIONS: Dict[str, tuple] = {
    STATUS_AWAITING_SUBSCRIBER_ID: (STATUS_AWAITING_PROOF, STATUS_REJECTED),
    STATUS_AWAITING_PROOF: (STATUS_AWAITING_AMOUNT, STATUS_REJECTED),
    STATUS_AWAITING_AMOUNT: (STATUS_PENDING_REVIEW, STATUS_REJECTED),
    STATUS_PENDING_REVIEW: (STATUS_CONFIRMED, STATUS_REJECTED),
    STATUS_CONFIRMED: (),
    STATUS_REJECTED: (),
}

UPDATABLE_COLUMNS = {
    "buyer_display_name",
    "buyer_handle",
    "subscriber_key",
    "claimed_amount",
    "amount_accepted",
    "payment_proof_ref",
    "status",
    "decided_by",
    "decided_at",
}


@dataclass
class Order:
    """One purchase attempt and its conversation progress."""

    id: str
    buyer_channel_id: str
    package_id: str
    package_name: str
    package_price_label: str
    package_price_amount: int
    package_validity_days: int
    status: str = STATUS_AWAITING_SUBSCRIBER_ID
    buyer_display_name: str = ""
    buyer_handle: str = ""
    subscriber_key: str = ""
    claimed_amount: Optional[int] = None
    amount_accepted: bool = False
    payment_proof_ref: Optional[str] = None
    decided_by: Optional[str] = None
    decided_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @classmethod
    def new(
        cls,
        buyer_channel_id: str,
        package: Package,
        *,
        display_name: str = "",
        handle: str = "",
        now: Optional[datetime] = None,
    ) -> "Order":
        now = now or utcnow()
        return cls(
            id=uuid4().hex,
            buyer_channel_id=str(buyer_channel_id),
            package_id=package.id,
            package_name=package.name,
            package_price_label=package.price_label,
            package_price_amount=package.price_amount,
            package_validity_days=package.validity_days,
            buyer_display_name=display_name or "",
            buyer_handle=handle or "",
            created_at=now,
            updated_at=now,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Order":
        return cls(
            id=row["id"],
            buyer_channel_id=row["buyer_channel_id"],
            package_id=row["package_id"],
            package_name=row["package_name"],
            package_price_label=row["package_price_label"],
            package_price_amount=int(row["package_price_amount"]),
            package_validity_days=int(row["package_validity_days"]),
            status=row["status"],
            buyer_display_name=row["buyer_display_name"] or "",
            buyer_handle=row["buyer_handle"] or "",
            subscriber_key=row["subscriber_key"] or "",
            claimed_amount=row["claimed_amount"],
            amount_accepted=bool(row["amount_accepted"]),
            payment_proof_ref=row["payment_proof_ref"],
            decided_by=row["decided_by"],
            decided_at=from_timestamp(row["decided_at"]),
            created_at=from_timestamp(row["created_at"]),
            updated_at=from_timestamp(row["updated_at"]),
        )

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_STATUSES

    @property
    def buyer_label(self) -> str:
        if self.buyer_handle:
            return f"@{self.buyer_handle}"
        return self.buyer_display_name or self.buyer_channel_id

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly representation for the admin API."""

        return {
            "id": self.id,
            "buyerChannelId": self.buyer_channel_id,
            "buyer": self.buyer_label,
            "packageId": self.package_id,
            "packageName": self.package_name,
            "packagePrice": self.package_price_label,
            "packageAmount": self.package_price_amount,
            "packageDays": self.package_validity_days,
            "subscriberKey": self.subscriber_key,
            "claimedAmount": self.claimed_amount,
            "amountAccepted": self.amount_accepted,
            "hasProof": bool(self.payment_proof_ref),
            "status": self.status,
            "decidedBy": self.decided_by,
            "createdAt": to_timestamp(self.created_at),
            "updatedAt": to_timestamp(self.updated_at),
        }


def _encode(column: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return to_timestamp(value)
    if column == "amount_accepted":
        return 1 if value else 0
    return value


class OrderStore:
    """Persistence for :class:`Order` records."""

    def __init__(self, db: Database, *, clock: Callable[[], datetime] = utcnow) -> None:
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    def create_order(self, order: Order) -> Order:
        """Insert a new order.

        The partial unique index on ``buyer_channel_id`` makes the check for
        an existing in-progress order and the insert a single atomic step.
        """
        columns = [
            "id", "buyer_channel_id", "buyer_display_name", "buyer_handle",
            "package_id", "package_name", "package_price_label",
            "package_price_amount", "package_validity_days", "subscriber_key",
            "claimed_amount", "amount_accepted", "payment_proof_ref", "status",
            "created_at", "updated_at",
        ]
        values = [_encode(column, getattr(order, column)) for column in columns]
        placeholders = ", ".join("?" for _ in columns)
        try:
            with self.db.transaction() as cur:
                cur.execute(
                    f"INSERT INTO orders ({', '.join(columns)}) VALUES ({placeholders})",
                    values,
                )
        except sqlite3.IntegrityError as exc:
            LOGGER.info("refused second in-progress order for buyer %s", order.buyer_channel_id)
            raise DuplicateOrder("buyer already has an order in progress") from exc
        LOGGER.info("created order %s for buyer %s (package %s)", order.id, order.buyer_channel_id, order.package_id)
        return order

    # ------------------------------------------------------------------
    def find_by_id(self, order_id: str, *, cursor: Optional[sqlite3.Cursor] = None) -> Optional[Order]:
        if cursor is not None:
            cursor.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
            row = database.fetch_one(cursor)
        else:
            with self.db.transaction() as cur:
                cur.execute("SELECT * FROM orders WHERE id = ?", (order_id,))
                row = database.fetch_one(cur)
        return Order.from_row(row) if row else None

    def find_in_progress_by_buyer(self, buyer_channel_id: str) -> Optional[Order]:
        """Resolve the buyer's current conversation session, if any."""

        placeholders = ", ".join("?" for _ in IN_PROGRESS_STATUSES)
        with self.db.transaction() as cur:
            cur.execute(
                f"SELECT * FROM orders WHERE buyer_channel_id = ? AND status IN ({placeholders})"
                " ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (str(buyer_channel_id), *IN_PROGRESS_STATUSES),
            )
            row = database.fetch_one(cur)
        return Order.from_row(row) if row else None

    def find_latest_by_buyer(self, buyer_channel_id: str) -> Optional[Order]:
        with self.db.transaction() as cur:
            cur.execute(
                "SELECT * FROM orders WHERE buyer_channel_id = ? ORDER BY created_at DESC, rowid DESC LIMIT 1",
                (str(buyer_channel_id),),
            )
            row = database.fetch_one(cur)
        return Order.from_row(row) if row else None

    def list_pending_review(self) -> List[Order]:
        with self.db.transaction() as cur:
            cur.execute(
                "SELECT * FROM orders WHERE status = ? ORDER BY created_at DESC",
                (STATUS_PENDING_REVIEW,),
            )
            rows = database.fetch_all(cur)
        return [Order.from_row(row) for row in rows]

    def find_stale(self, cutoff: datetime) -> List[Order]:
        """Buyer-owned orders that have not moved since ``cutoff``."""

        placeholders = ", ".join("?" for _ in CONVERSATION_STATUSES)
        with self.db.transaction() as cur:
            cur.execute(
                f"SELECT * FROM orders WHERE status IN ({placeholders}) AND updated_at < ?"
                " ORDER BY updated_at",
                (*CONVERSATION_STATUSES, to_timestamp(cutoff)),
            )
            rows = database.fetch_all(cur)
        return [Order.from_row(row) for row in rows]

    # ------------------------------------------------------------------
    def conditional_update(
        self,
        order_id: str,
        expected_status: str,
        patch: Dict[str, Any],
        *,
        cursor: Optional[sqlite3.Cursor] = None,
    ) -> Order:
        """Apply ``patch`` only if the order is still in ``expected_status``.

        Raises
        ------
        OrderNotFound
            If no order has this id.
        OrderAlreadyProcessed
            If the order exists but its status has moved on.
        ValueError
            If the patch names an unknown column or an illegal transition.
        """
        unknown = set(patch) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"cannot update columns: {sorted(unknown)}")
        new_status = patch.get("status")
        if new_status is not None and new_status not in ALLOWED_TRANSITIONS.get(expected_status, ()):
            raise ValueError(f"illegal transition {expected_status} -> {new_status}")

        if cursor is None:
            with self.db.transaction() as cur:
                return self._apply(cur, order_id, expected_status, patch)
        return self._apply(cursor, order_id, expected_status, patch)

    def _apply(self, cur: sqlite3.Cursor, order_id: str, expected_status: str, patch: Dict[str, Any]) -> Order:
        assignments = dict(patch)
        assignments["updated_at"] = self.clock()
        columns = list(assignments)
        sql = "UPDATE orders SET {} WHERE id = ? AND status = ?".format(
            ", ".join(f"{column} = ?" for column in columns)
        )
        params = [_encode(column, assignments[column]) for column in columns]
        cur.execute(sql, (*params, order_id, expected_status))
        if cur.rowcount == 0:
            current = self.find_by_id(order_id, cursor=cur)
            if current is None:
                raise OrderNotFound(f"order {order_id} not found")
            raise OrderAlreadyProcessed(f"order {order_id} is already {current.status}")
        updated = self.find_by_id(order_id, cursor=cur)
        if "status" in patch:
            LOGGER.info("order %s: %s -> %s", order_id, expected_status, patch["status"])
        return updated

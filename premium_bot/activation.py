"""Idempotent premium activation.

``activate`` is the only place that credits premium days. It runs in one
``BEGIN IMMEDIATE`` transaction: the subscriber row is written first, then
the order is moved from ``pending_review`` to ``confirmed`` with a
conditional update. Any failure rolls both back, so an order is never
confirmed without credit and credit is never kept without a confirmed order.
A second call for the same order fails the status gate with
:class:`OrderAlreadyProcessed`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import i18n
from .database import Database, utcnow
from .errors import OrderAlreadyProcessed, OrderNotFound, SubscriberNotFound, SubscriberUnresolved
from .orders import STATUS_CONFIRMED, STATUS_PENDING_REVIEW, STATUS_REJECTED, Order, OrderStore
from .subscribers import Notification, Subscriber, SubscriberStore

LOGGER = logging.getLogger(__name__)


@dataclass
class ActivationResult:
    order: Order
    new_expiry: datetime
    subscriber: Subscriber


def compute_expiry(subscriber: Subscriber, validity_days: int, now: datetime) -> datetime:
    """Stack ``validity_days`` onto any entitlement still running at ``now``."""

    start = subscriber.active_until(now) or now
    return start + timedelta(days=validity_days)


class ActivationEngine:
    """Confirms or rejects orders under review."""

    def __init__(
        self,
        db: Database,
        orders: OrderStore,
        subscribers: SubscriberStore,
        *,
        clock: Callable[[], datetime] = utcnow,
        lang: str = i18n.DEFAULT_LANGUAGE,
    ) -> None:
        self.db = db
        self.orders = orders
        self.subscribers = subscribers
        self.clock = clock
        self.lang = lang

    def activate(self, order_id: str, decided_by: Optional[str] = None) -> ActivationResult:
        with self.db.transaction(immediate=True) as cur:
            order = self.orders.find_by_id(order_id, cursor=cur)
            if order is None:
                raise OrderNotFound(i18n.get_text("errors.order_not_found", self.lang))
            if order.status != STATUS_PENDING_REVIEW:
                raise OrderAlreadyProcessed(i18n.get_text("errors.already_processed", self.lang))
            if not order.subscriber_key:
                raise SubscriberUnresolved(i18n.get_text("errors.subscriber_unresolved", self.lang))
            subscriber = self.subscribers.find_by_key(order.subscriber_key, cursor=cur)
            if subscriber is None:
                raise SubscriberNotFound(
                    i18n.get_text("errors.subscriber_not_found", self.lang, subscriber=order.subscriber_key)
                )

            now = self.clock()
            new_expiry = compute_expiry(subscriber, order.package_validity_days, now)
            subscriber.is_premium = True
            subscriber.premium_until = new_expiry
            notification = Notification(
                title=i18n.get_text("subscriber.activated_title", self.lang),
                message=i18n.get_text(
                    "subscriber.activated_message", self.lang, days=order.package_validity_days
                ),
                created_at=now,
            )
            self.subscribers.save(subscriber, new_notifications=[notification], cursor=cur)
            confirmed = self.orders.conditional_update(
                order.id,
                STATUS_PENDING_REVIEW,
                {"status": STATUS_CONFIRMED, "decided_by": decided_by, "decided_at": now},
                cursor=cur,
            )
        LOGGER.info(
            "activated order %s: subscriber %s premium until %s",
            order.id,
            subscriber.key,
            new_expiry.isoformat(),
        )
        return ActivationResult(order=confirmed, new_expiry=new_expiry, subscriber=subscriber)

    def reject(self, order_id: str, decided_by: Optional[str] = None) -> Order:
        with self.db.transaction(immediate=True) as cur:
            order = self.orders.find_by_id(order_id, cursor=cur)
            if order is None:
                raise OrderNotFound(i18n.get_text("errors.order_not_found", self.lang))
            if order.status != STATUS_PENDING_REVIEW:
                raise OrderAlreadyProcessed(i18n.get_text("errors.already_processed", self.lang))
            rejected = self.orders.conditional_update(
                order.id,
                STATUS_PENDING_REVIEW,
                {"status": STATUS_REJECTED, "decided_by": decided_by, "decided_at": self.clock()},
                cursor=cur,
            )
        LOGGER.info("rejected order %s", order_id)
        return rejected

"""Admin decisions on orders under review.

The inline buttons in the admin chat and the admin app's HTTP calls both end
up in :class:`AdminGateway`. Only the identity check differs per channel;
the decision itself always goes through :class:`ActivationEngine`, whose
status gate is what stops two admins from activating the same order twice.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List

from .activation import ActivationEngine, ActivationResult
from .config import Settings
from .database import Database
from .errors import AuthorizationError
from .notifications import Notifier
from .orders import Order, OrderStore
from .security import is_admin_identity, log_security_event

LOGGER = logging.getLogger(__name__)

CHANNEL_TELEGRAM = "telegram"
CHANNEL_API = "api"


@dataclass(frozen=True)
class AdminActor:
    """Who is deciding, and through which surface."""

    identity: str
    channel: str

    @property
    def label(self) -> str:
        return f"{self.channel}:{self.identity}"


class AdminGateway:
    def __init__(
        self,
        settings: Settings,
        db: Database,
        orders: OrderStore,
        engine: ActivationEngine,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self.db = db
        self.orders = orders
        self.engine = engine
        self.notifier = notifier

    def _allowed(self, channel: str) -> FrozenSet[str]:
        if channel == CHANNEL_TELEGRAM:
            return self.settings.admin_chat_ids
        if channel == CHANNEL_API:
            return self.settings.admin_api_ids
        return frozenset()

    def authorize(self, actor: AdminActor) -> None:
        if not is_admin_identity(actor.identity, self._allowed(actor.channel)):
            log_security_event(self.db, actor.label, "admin_denied", f"non-admin {actor.label} attempted an admin action")
            raise AuthorizationError("admin required")

    def confirm(self, order_id: str, actor: AdminActor) -> ActivationResult:
        self.authorize(actor)
        result = self.engine.activate(order_id, decided_by=actor.label)
        LOGGER.info("order %s confirmed by %s", order_id, actor.label)
        self.notifier.notify_activated(result.order, result.new_expiry)
        return result

    def reject(self, order_id: str, actor: AdminActor) -> Order:
        self.authorize(actor)
        order = self.engine.reject(order_id, decided_by=actor.label)
        LOGGER.info("order %s rejected by %s", order_id, actor.label)
        self.notifier.notify_rejected(order)
        return order

    def pending_orders(self, actor: AdminActor) -> List[Order]:
        self.authorize(actor)
        return self.orders.list_pending_review()

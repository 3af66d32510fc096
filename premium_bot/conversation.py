"""Chat conversation driver for the purchase flow.

Each inbound buyer event is routed by the status of the buyer's in-progress
order::

    (idle) --select--> awaiting_subscriber_id --id--> awaiting_proof
        --photo/"sudah bayar"--> awaiting_amount --amount--> pending_review
                                                   \\--too low--> rejected

The order row is the only session state, so the process may restart between
two messages without losing track of a buyer. Every transition is a
conditional update on the status the step was entered with; a concurrent
change (sweeper, second device) surfaces as a conflict and the buyer gets
their current status instead.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from . import i18n
from .catalog import format_amount, get_package, is_amount_accepted
from .config import Settings
from .database import utcnow
from .errors import ConflictError, DuplicateOrder, UnknownPackage
from .notifications import CALLBACK_SELECT_PACKAGE, Notifier, Reply, format_date, menu_keyboard
from .orders import (
    CONVERSATION_STATUSES,
    STATUS_AWAITING_AMOUNT,
    STATUS_AWAITING_PROOF,
    STATUS_AWAITING_SUBSCRIBER_ID,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
    Order,
    OrderStore,
)
from .security import escape_markdown, is_affirmative, is_cancel, parse_amount, sanitize_string

LOGGER = logging.getLogger(__name__)

MENU_COMMANDS = ("/start", "/beli", "/menu")
MENU_WORDS = ("beli", "premium", "halo", "hai", "mulai")
STATUS_COMMAND = "/status"


@dataclass
class BuyerEvent:
    """One inbound message or button press from a buyer."""

    buyer_channel_id: str
    text: str = ""
    attachment_ref: Optional[str] = None
    action_token: Optional[str] = None
    display_name: str = ""
    handle: str = ""


def _command(text: str) -> str:
    """Normalize ``/beli@SomeBot extra`` to ``/beli``."""

    head = text.strip().split(maxsplit=1)[0] if text.strip() else ""
    return head.split("@", 1)[0].lower()


class OrderFlow:
    """Drives one buyer event through the order state machine."""

    def __init__(
        self,
        settings: Settings,
        orders: OrderStore,
        notifier: Notifier,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.orders = orders
        self.notifier = notifier
        self.clock = clock
        self.lang = settings.default_language

    def _t(self, key: str, **kwargs) -> str:
        return i18n.get_text(key, self.lang, **kwargs)

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------
    def handle(self, event: BuyerEvent) -> Reply:
        token = event.action_token or ""
        if token.startswith(f"{CALLBACK_SELECT_PACKAGE}:"):
            return self.select_package(event, token.split(":", 1)[1])
        return self.handle_message(event)

    def menu(self, display_name: str = "") -> Reply:
        """Package list with selection buttons. Never looks at orders."""

        return Reply(
            text=self._t("menu.greeting", name=escape_markdown(sanitize_string(display_name, 64)) or self._t("menu.default_name")),
            keyboard=menu_keyboard(self.lang),
        )

    def status(self, buyer_channel_id: str) -> Reply:
        """Latest order of any status. Read-only."""

        order = self.orders.find_latest_by_buyer(buyer_channel_id)
        if order is None:
            return Reply(text=self._t("status.none"))
        return Reply(
            text=self._t(
                "status.summary",
                package=order.package_name,
                price=order.package_price_label,
                label=self._t(f"status.{order.status}"),
                created=format_date(order.created_at),
            )
        )

    def select_package(self, event: BuyerEvent, package_id: str) -> Reply:
        try:
            package = get_package(package_id)
        except UnknownPackage:
            return Reply(text=self._t("order.unknown_package"))

        current = self._resolve(event.buyer_channel_id)
        if current is not None and self._is_stale(current):
            self._expire(current)
            current = None
        if current is not None:
            return Reply(text=self._t("order.already_in_progress"))

        order = Order.new(
            event.buyer_channel_id,
            package,
            display_name=sanitize_string(event.display_name, 128),
            handle=sanitize_string(event.handle, 64),
            now=self.clock(),
        )
        try:
            self.orders.create_order(order)
        except DuplicateOrder:
            # lost a race against another selection from the same buyer
            return Reply(text=self._t("order.already_in_progress"))
        return Reply(text=self._t("order.ask_subscriber_id", package=package.name, price=package.price_label))

    def handle_message(self, event: BuyerEvent) -> Reply:
        text = sanitize_string(event.text)
        command = _command(text)
        if command == STATUS_COMMAND:
            return self.status(event.buyer_channel_id)
        if command in MENU_COMMANDS:
            return self.menu(event.display_name)

        order = self._resolve(event.buyer_channel_id)
        if order is not None and self._is_stale(order):
            return self._expire(order, display_name=event.display_name)

        if is_cancel(text):
            return self.cancel(order)
        if order is None:
            return self._idle(event, text)

        step = {
            STATUS_AWAITING_SUBSCRIBER_ID: self._on_subscriber_id,
            STATUS_AWAITING_PROOF: self._on_proof,
            STATUS_AWAITING_AMOUNT: self._on_amount,
            STATUS_PENDING_REVIEW: self._on_pending,
        }[order.status]
        try:
            return step(order, event, text)
        except ConflictError as exc:
            LOGGER.info("order %s changed underneath buyer %s: %s", order.id, event.buyer_channel_id, exc)
            return self.status(event.buyer_channel_id)

    def cancel(self, order: Optional[Order]) -> Reply:
        if order is None or order.status not in CONVERSATION_STATUSES:
            return Reply(text=self._t("order.nothing_to_cancel"))
        try:
            self.orders.conditional_update(order.id, order.status, {"status": STATUS_REJECTED})
        except ConflictError:
            return self.status(order.buyer_channel_id)
        LOGGER.info("buyer %s cancelled order %s", order.buyer_channel_id, order.id)
        return Reply(text=self._t("order.cancelled"))

    # ------------------------------------------------------------------
    # steps
    # ------------------------------------------------------------------
    def _idle(self, event: BuyerEvent, text: str) -> Reply:
        lowered = text.lower()
        if any(lowered.startswith(word) for word in MENU_WORDS):
            return self.menu(event.display_name)
        return Reply(text=self._t("menu.hint"))

    def _on_subscriber_id(self, order: Order, event: BuyerEvent, text: str) -> Reply:
        minimum = self.settings.min_subscriber_id_length
        if len(text) < minimum:
            return Reply(text=self._t("order.invalid_subscriber_id", min_length=minimum))

        patch = {"subscriber_key": text, "status": STATUS_AWAITING_PROOF}
        if event.display_name:
            patch["buyer_display_name"] = sanitize_string(event.display_name, 128)
        if event.handle:
            patch["buyer_handle"] = sanitize_string(event.handle, 64)
        updated = self.orders.conditional_update(order.id, STATUS_AWAITING_SUBSCRIBER_ID, patch)

        reply = Reply(text=self._t("order.subscriber_id_saved", package=updated.package_name, price=updated.package_price_label))
        photo = self.settings.qris_photo
        if photo:
            reply.photo = photo
            reply.photo_caption = self._t("order.qris_caption", price=updated.package_price_label)
        else:
            LOGGER.warning("no QRIS image configured; buyer %s gets text instructions only", order.buyer_channel_id)
            reply.text += "\n\n" + self._t("order.qris_missing")
        return reply

    def _on_proof(self, order: Order, event: BuyerEvent, text: str) -> Reply:
        if not event.attachment_ref and not is_affirmative(text):
            return Reply(text=self._t("order.reprompt_proof"))

        patch = {"status": STATUS_AWAITING_AMOUNT}
        if event.attachment_ref:
            patch["payment_proof_ref"] = event.attachment_ref
        updated = self.orders.conditional_update(order.id, STATUS_AWAITING_PROOF, patch)
        return Reply(
            text=self._t(
                "order.ask_amount",
                price=updated.package_price_label,
                example=updated.package_price_amount,
            )
        )

    def _on_amount(self, order: Order, event: BuyerEvent, text: str) -> Reply:
        claimed = parse_amount(text)
        if claimed is None:
            return Reply(text=self._t("order.invalid_amount", example=order.package_price_amount))

        accepted = is_amount_accepted(claimed, order.package_price_amount, self.settings.amount_tolerance)
        updated = self.orders.conditional_update(
            order.id,
            STATUS_AWAITING_AMOUNT,
            {
                "claimed_amount": claimed,
                "amount_accepted": accepted,
                "status": STATUS_PENDING_REVIEW if accepted else STATUS_REJECTED,
            },
        )
        if not accepted:
            LOGGER.info(
                "order %s auto-rejected: claimed %s, required %s",
                order.id,
                claimed,
                order.package_price_amount,
            )
            self.notifier.notify_auto_rejected(updated)
            return Reply(
                text=self._t(
                    "order.amount_rejected",
                    claimed=format_amount(claimed),
                    price=order.package_price_label,
                )
            )
        self.notifier.alert_admin_review(updated)
        return Reply(text=self._t("order.amount_accepted"))

    def _on_pending(self, order: Order, event: BuyerEvent, text: str) -> Reply:
        return Reply(text=self._t("order.awaiting_review"))

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _resolve(self, buyer_channel_id: str) -> Optional[Order]:
        return self.orders.find_in_progress_by_buyer(buyer_channel_id)

    def _is_stale(self, order: Order) -> bool:
        if order.status not in CONVERSATION_STATUSES:
            return False
        window = timedelta(minutes=self.settings.session_timeout_minutes)
        return self.clock() - order.updated_at > window

    def _expire(self, order: Order, *, display_name: str = "") -> Reply:
        """Reject an abandoned session and put the buyer back at the menu."""

        try:
            self.orders.conditional_update(order.id, order.status, {"status": STATUS_REJECTED})
            LOGGER.info("order %s expired in %s", order.id, order.status)
        except ConflictError:
            LOGGER.debug("order %s was already moved when expiring", order.id)
        menu = self.menu(display_name)
        return Reply(
            text=self._t("order.expired", minutes=self.settings.session_timeout_minutes) + "\n\n" + menu.text,
            keyboard=menu.keyboard,
        )

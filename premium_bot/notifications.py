"""Outbound messages to buyers and admins.

Delivery is best effort. The order and subscriber rows are the source of
truth, so every send here catches :class:`TransportError`, logs it and
reports ``False`` instead of raising into the transition that caused it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import i18n
from .catalog import format_amount, list_packages
from .config import Settings
from .errors import TransportError
from .orders import Order
from .security import escape_markdown
from .telegram import TelegramBot

LOGGER = logging.getLogger(__name__)

CALLBACK_SELECT_PACKAGE = "pkg"
CALLBACK_ADMIN_CONFIRM = "admin:confirm"
CALLBACK_ADMIN_REJECT = "admin:reject"


@dataclass
class Reply:
    """A rendered message for one chat."""

    text: str
    keyboard: Optional[Dict[str, Any]] = None
    photo: Optional[str] = None
    photo_caption: Optional[str] = None


def format_date(value: datetime) -> str:
    return value.strftime("%d-%m-%Y %H:%M UTC")


def menu_keyboard(lang: str) -> Dict[str, Any]:
    rows: List[List[Dict[str, str]]] = []
    for package in list_packages():
        label = i18n.get_text(
            "menu.button",
            lang,
            icon="⭐" if package.highlight else "📦",
            name=package.name,
            price=package.price_label,
        )
        if package.highlight:
            label += i18n.get_text("menu.best_seller", lang)
        rows.append([{"text": label, "callback_data": f"{CALLBACK_SELECT_PACKAGE}:{package.id}"}])
    return {"inline_keyboard": rows}


def review_keyboard(order_id: str, lang: str) -> Dict[str, Any]:
    return {
        "inline_keyboard": [
            [
                {"text": i18n.get_text("admin.confirm_button", lang), "callback_data": f"{CALLBACK_ADMIN_CONFIRM}:{order_id}"},
                {"text": i18n.get_text("admin.reject_button", lang), "callback_data": f"{CALLBACK_ADMIN_REJECT}:{order_id}"},
            ]
        ]
    }


class Notifier:
    """Fire-and-forget sender bound to one bot and admin allow-list."""

    def __init__(self, bot: TelegramBot, settings: Settings) -> None:
        self.bot = bot
        self.settings = settings
        self.lang = settings.default_language

    # ------------------------------------------------------------------
    def send(self, chat_id: Any, text: str, *, keyboard: Optional[Dict[str, Any]] = None) -> bool:
        try:
            self.bot.send_message(chat_id, text, reply_markup=keyboard)
        except TransportError as exc:
            LOGGER.warning("failed to send message to %s: %s", chat_id, exc)
            return False
        return True

    def send_photo(self, chat_id: Any, photo: str, *, caption: Optional[str] = None, keyboard: Optional[Dict[str, Any]] = None) -> bool:
        try:
            self.bot.send_photo(chat_id, photo, caption=caption, reply_markup=keyboard)
        except TransportError as exc:
            LOGGER.warning("failed to send photo to %s: %s", chat_id, exc)
            return False
        return True

    def edit(self, chat_id: Any, message_id: Optional[int], text: str) -> bool:
        if message_id is None:
            return self.send(chat_id, text)
        try:
            self.bot.edit_message_text(chat_id, message_id, text)
        except TransportError as exc:
            LOGGER.warning("failed to edit message %s in %s: %s", message_id, chat_id, exc)
            return False
        return True

    def answer(self, callback_query_id: str, text: Optional[str] = None) -> bool:
        try:
            self.bot.answer_callback_query(callback_query_id, text=text)
        except TransportError as exc:
            LOGGER.warning("failed to answer callback %s: %s", callback_query_id, exc)
            return False
        return True

    def deliver(self, chat_id: Any, reply: Reply) -> bool:
        """Send a :class:`Reply`: text first, then its photo if any."""

        delivered = self.send(chat_id, reply.text, keyboard=reply.keyboard)
        if reply.photo:
            delivered = self.send_photo(chat_id, reply.photo, caption=reply.photo_caption) and delivered
        return delivered

    def notify_admins(self, text: str, *, keyboard: Optional[Dict[str, Any]] = None, photo: Optional[str] = None, caption: Optional[str] = None) -> int:
        """Send to every admin chat; returns how many admins got the text."""

        if not self.settings.admin_chat_ids:
            LOGGER.warning("no admin chat configured, dropping admin notice")
            return 0
        delivered = 0
        for admin_id in sorted(self.settings.admin_chat_ids):
            if photo:
                self.send_photo(admin_id, photo, caption=caption)
            if self.send(admin_id, text, keyboard=keyboard):
                delivered += 1
        return delivered

    # ------------------------------------------------------------------
    def alert_admin_review(self, order: Order) -> int:
        text = i18n.get_text(
            "admin.review",
            self.lang,
            buyer=escape_markdown(order.buyer_label),
            buyer_id=order.buyer_channel_id,
            subscriber=escape_markdown(order.subscriber_key),
            package=order.package_name,
            price=order.package_price_label,
            claimed=format_amount(order.claimed_amount or 0),
            mark="✅" if order.amount_accepted else "❌",
            order_id=order.id,
        )
        if not order.payment_proof_ref:
            text = i18n.get_text("admin.no_proof", self.lang) + "\n\n" + text
        return self.notify_admins(
            text,
            keyboard=review_keyboard(order.id, self.lang),
            photo=order.payment_proof_ref,
            caption=i18n.get_text("admin.proof_caption", self.lang, order_id=order.id),
        )

    def notify_auto_rejected(self, order: Order) -> int:
        return self.notify_admins(
            i18n.get_text(
                "admin.auto_rejected",
                self.lang,
                buyer=escape_markdown(order.buyer_label),
                package=order.package_name,
                claimed=format_amount(order.claimed_amount or 0),
                price=order.package_price_label,
            )
        )

    def notify_activated(self, order: Order, new_expiry: datetime) -> bool:
        return self.send(
            order.buyer_channel_id,
            i18n.get_text("buyer.activated", self.lang, package=order.package_name, expiry=format_date(new_expiry)),
        )

    def notify_rejected(self, order: Order) -> bool:
        return self.send(order.buyer_channel_id, i18n.get_text("buyer.rejected", self.lang))

    def notify_expired(self, order: Order) -> bool:
        return self.send(
            order.buyer_channel_id,
            i18n.get_text("order.expired", self.lang, minutes=self.settings.session_timeout_minutes),
        )

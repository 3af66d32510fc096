"""Telegram binding of the purchase flow.

:class:`BotApp` wires the stores, the activation engine, the admin gateway
and the conversation driver together, then translates raw Telegram updates
into :class:`BuyerEvent` objects and admin button presses. The same
``process_update`` serves the long-poll loop and the webhook route.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from . import i18n
from .activation import ActivationEngine
from .config import Settings
from .conversation import BuyerEvent, OrderFlow
from .database import Database, utcnow
from .errors import AuthorizationError, OrderFlowError
from .gateway import CHANNEL_TELEGRAM, AdminActor, AdminGateway
from .notifications import CALLBACK_ADMIN_CONFIRM, CALLBACK_ADMIN_REJECT, CALLBACK_SELECT_PACKAGE, Notifier, format_date
from .orders import OrderStore
from .security import escape_markdown
from .subscribers import SubscriberStore
from .telegram import TelegramAPIError, TelegramBot

LOGGER = logging.getLogger(__name__)


def _attachment_ref(message: Dict[str, Any]) -> Optional[str]:
    """File id of a photo, or of an image sent as a document."""

    photos = message.get("photo") or []
    if photos:
        return photos[-1]["file_id"]
    document = message.get("document") or {}
    if str(document.get("mime_type", "")).startswith("image/"):
        return document.get("file_id")
    return None


class BotApp:
    """Telegram bot that processes updates sequentially."""

    def __init__(
        self,
        settings: Settings,
        *,
        bot: Optional[TelegramBot] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.lang = settings.default_language
        self.db = Database(settings.database_path)
        self.bot = bot or TelegramBot(settings.bot_token)
        self.orders = OrderStore(self.db, clock=clock)
        self.subscribers = SubscriberStore(self.db, clock=clock)
        self.notifier = Notifier(self.bot, settings)
        self.engine = ActivationEngine(self.db, self.orders, self.subscribers, clock=clock, lang=self.lang)
        self.gateway = AdminGateway(settings, self.db, self.orders, self.engine, self.notifier)
        self.flow = OrderFlow(settings, self.orders, self.notifier, clock=clock)

    # ------------------------------------------------------------------
    # main loop
    # ------------------------------------------------------------------
    def run(self) -> None:  # pragma: no cover - infinite loop
        LOGGER.info("bot started")
        offset: Optional[int] = None
        while True:
            try:
                updates = self.bot.get_updates(offset=offset, timeout=25)
            except TelegramAPIError as exc:
                LOGGER.error("failed to fetch updates: %s", exc)
                time.sleep(self.settings.poll_interval)
                continue
            for update in updates:
                offset = update["update_id"] + 1
                self.process_update(update)
            time.sleep(self.settings.poll_interval)

    # ------------------------------------------------------------------
    def process_update(self, update: Dict[str, Any]) -> None:
        try:
            if "message" in update:
                self._handle_message(update["message"])
            elif "callback_query" in update:
                self._handle_callback(update["callback_query"])
        except Exception as exc:
            LOGGER.exception("unhandled error while processing update %s: %s", update.get("update_id"), exc)

    # ------------------------------------------------------------------
    def _handle_message(self, message: Dict[str, Any]) -> None:
        chat = message.get("chat", {})
        if chat.get("type", "private") != "private":
            return
        sender = message.get("from") or chat
        event = BuyerEvent(
            buyer_channel_id=str(sender["id"]),
            text=message.get("text") or message.get("caption") or "",
            attachment_ref=_attachment_ref(message),
            display_name=sender.get("first_name") or "",
            handle=sender.get("username") or "",
        )
        reply = self.flow.handle(event)
        self.notifier.deliver(chat["id"], reply)

    # ------------------------------------------------------------------
    def _handle_callback(self, callback: Dict[str, Any]) -> None:
        data = callback.get("data") or ""
        message = callback.get("message") or {}
        chat_id = message.get("chat", {}).get("id")
        sender = callback.get("from") or {}

        if data.startswith(f"{CALLBACK_ADMIN_CONFIRM}:") or data.startswith(f"{CALLBACK_ADMIN_REJECT}:"):
            decision, order_id = data.rsplit(":", 1)
            self._admin_decision(callback, decision, order_id)
            return

        self.notifier.answer(callback["id"])
        if data.startswith(f"{CALLBACK_SELECT_PACKAGE}:") and chat_id is not None:
            event = BuyerEvent(
                buyer_channel_id=str(sender.get("id", chat_id)),
                action_token=data,
                display_name=sender.get("first_name") or "",
                handle=sender.get("username") or "",
            )
            self.notifier.deliver(chat_id, self.flow.handle(event))

    def _admin_decision(self, callback: Dict[str, Any], decision: str, order_id: str) -> None:
        message = callback.get("message") or {}
        chat_id = message.get("chat", {}).get("id")
        identity = str(callback.get("from", {}).get("id", ""))
        if chat_id is not None and str(chat_id) in self.settings.admin_chat_ids:
            # a press inside a configured admin chat (e.g. a group) speaks for that chat
            identity = str(chat_id)
        actor = AdminActor(identity=identity, channel=CHANNEL_TELEGRAM)
        try:
            if decision == CALLBACK_ADMIN_CONFIRM:
                result = self.gateway.confirm(order_id, actor)
                order = result.order
                text = i18n.get_text(
                    "admin.confirmed",
                    self.lang,
                    order_id=order.id,
                    subscriber=escape_markdown(order.subscriber_key),
                    package=order.package_name,
                    expiry=format_date(result.new_expiry),
                )
                answer = i18n.get_text("admin.confirm_ok", self.lang)
            else:
                order = self.gateway.reject(order_id, actor)
                text = i18n.get_text(
                    "admin.rejected",
                    self.lang,
                    order_id=order.id,
                    subscriber=escape_markdown(order.subscriber_key),
                )
                answer = i18n.get_text("admin.reject_ok", self.lang)
        except AuthorizationError:
            self.notifier.answer(callback["id"], i18n.get_text("admin.not_admin", self.lang))
            return
        except OrderFlowError as exc:
            LOGGER.info("admin %s on order %s failed: %s", decision, order_id, exc.reason)
            self.notifier.answer(callback["id"], i18n.get_text("admin.failed", self.lang, reason=exc.reason))
            return
        if chat_id is not None:
            self.notifier.edit(chat_id, message.get("message_id"), text)
        self.notifier.answer(callback["id"], answer)

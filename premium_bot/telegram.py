"""Small wrapper around the Telegram Bot API using :mod:`requests`."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Optional

import requests

from .errors import TransportError

LOGGER = logging.getLogger(__name__)

PARSE_MODE = "Markdown"


class TelegramAPIError(TransportError):
    """Error raised when Telegram returns a failure or cannot be reached."""


class TelegramBot:
    """Calls the HTTP Bot API directly.

    Only the methods the purchase flow needs are implemented: text and photo
    messages, editing the admin's review message and acknowledging inline
    button presses.
    """

    def __init__(self, token: str, *, timeout: int = 20) -> None:
        self.base_url = f"https://api.telegram.org/bot{token}/"
        self.timeout = timeout

    def _request(self, method: str, *, data: Optional[Dict[str, Any]] = None, timeout: Optional[int] = None) -> Any:
        try:
            response = requests.post(self.base_url + method, data=data, timeout=timeout or self.timeout)
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise TelegramAPIError(f"{method} failed: {exc}") from exc
        if not payload.get("ok"):
            raise TelegramAPIError(f"{method} failed: {payload.get('description') or payload}")
        return payload["result"]

    def get_updates(self, *, offset: Optional[int] = None, timeout: int = 25) -> Iterable[Dict[str, Any]]:
        data: Dict[str, Any] = {"timeout": timeout, "allowed_updates": json_dumps(["message", "callback_query"])}
        if offset is not None:
            data["offset"] = offset
        return self._request("getUpdates", data=data, timeout=timeout + 5) or []

    def send_message(self, chat_id: Any, text: str, *, reply_markup: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": chat_id, "text": text, "parse_mode": PARSE_MODE}
        if reply_markup is not None:
            data["reply_markup"] = json_dumps(reply_markup)
        return self._request("sendMessage", data=data)

    def send_photo(
        self,
        chat_id: Any,
        photo: str,
        *,
        caption: Optional[str] = None,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a photo by Telegram ``file_id`` or public URL."""

        data: Dict[str, Any] = {"chat_id": chat_id, "photo": photo}
        if caption:
            data["caption"] = caption
            data["parse_mode"] = PARSE_MODE
        if reply_markup is not None:
            data["reply_markup"] = json_dumps(reply_markup)
        return self._request("sendPhoto", data=data)

    def edit_message_text(
        self,
        chat_id: Any,
        message_id: int,
        text: str,
        *,
        reply_markup: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        data: Dict[str, Any] = {"chat_id": chat_id, "message_id": message_id, "text": text, "parse_mode": PARSE_MODE}
        if reply_markup is not None:
            data["reply_markup"] = json_dumps(reply_markup)
        return self._request("editMessageText", data=data)

    def answer_callback_query(self, callback_query_id: str, *, text: Optional[str] = None) -> None:
        data: Dict[str, Any] = {"callback_query_id": callback_query_id}
        if text:
            data["text"] = text
        self._request("answerCallbackQuery", data=data)

    def set_webhook(self, url: str, *, secret_token: Optional[str] = None) -> bool:
        data: Dict[str, Any] = {"url": url}
        if secret_token:
            data["secret_token"] = secret_token
        return bool(self._request("setWebhook", data=data))


def json_dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))

"""HTTP surface for the admin app and the Telegram webhook.

The admin app has no chat identity, so every admin route requires the admin
id out of band: the ``X-Admin-Id`` header, or ``adminId`` in the JSON body
or query string. Decisions go through the same :class:`AdminGateway` as the
inline buttons in the admin chat.

``/api/users/sync`` is the reading app's sign-in hook. It creates the
subscriber row that an activation later credits, so it takes no admin id.
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from .database import to_timestamp
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OrderFlowError,
    SubscriberNotFound,
    ValidationError,
)
from .gateway import CHANNEL_API, AdminActor
from .handlers import BotApp
from .security import constant_time_equals, sanitize_string

LOGGER = logging.getLogger(__name__)

WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


def _admin_actor() -> AdminActor:
    identity: Optional[str] = request.headers.get("X-Admin-Id")
    if not identity:
        body = request.get_json(silent=True) or {}
        identity = body.get("adminId") if isinstance(body, dict) else None
    if not identity:
        identity = request.args.get("adminId")
    return AdminActor(identity=str(identity or ""), channel=CHANNEL_API)


def _error(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def create_app(bot_app: BotApp) -> Flask:
    """Build the Flask application around an existing :class:`BotApp`."""

    app = Flask(__name__)
    app.config["BOT_APP"] = bot_app
    gateway = bot_app.gateway
    settings = bot_app.settings

    # ---------- Error handlers ----------
    @app.errorhandler(AuthorizationError)
    def handle_forbidden(err):
        return _error("admin access required", 403)

    @app.errorhandler(SubscriberNotFound)
    def handle_missing_subscriber(err):
        return _error(err.reason, 422)

    @app.errorhandler(NotFoundError)
    def handle_not_found(err):
        return _error(err.reason, 404)

    @app.errorhandler(ConflictError)
    def handle_conflict(err):
        return _error(err.reason, 409)

    @app.errorhandler(ValidationError)
    def handle_invalid(err):
        return _error(err.reason, 422)

    @app.errorhandler(OrderFlowError)
    def handle_domain_error(err):
        return _error(err.reason, 400)

    @app.errorhandler(Exception)
    def handle_unexpected(err):
        if isinstance(err, HTTPException):
            return _error(err.description or err.name, err.code or 500)
        LOGGER.exception("unhandled API error: %s", err)
        return _error("internal server error", 500)

    # ---------- Routes ----------
    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({"success": True})

    @app.route("/api/admin/orders", methods=["GET"])
    def list_pending_orders():
        orders = gateway.pending_orders(_admin_actor())
        return jsonify({"success": True, "data": [order.to_dict() for order in orders]})

    @app.route("/api/admin/orders/<order_id>/confirm", methods=["POST"])
    def confirm_order(order_id: str):
        result = gateway.confirm(order_id, _admin_actor())
        return jsonify(
            {
                "success": True,
                "order": result.order.to_dict(),
                "expiry": to_timestamp(result.new_expiry),
            }
        )

    @app.route("/api/admin/orders/<order_id>/reject", methods=["POST"])
    @app.route("/api/admin/orders/<order_id>", methods=["DELETE"])
    def reject_order(order_id: str):
        order = gateway.reject(order_id, _admin_actor())
        return jsonify({"success": True, "order": order.to_dict()})

    @app.route("/api/users/sync", methods=["POST"])
    def sync_user():
        """Called by the reading app on sign-in; creates the account a buyer's id refers to."""

        body = request.get_json(silent=True) or {}
        if not isinstance(body, dict):
            return _error("invalid body", 400)
        key = sanitize_string(str(body.get("googleId") or ""), 128)
        if not key:
            return _error("googleId is required", 400)
        display_name = sanitize_string(str(body.get("displayName") or ""), 128)
        subscriber = bot_app.subscribers.sync(key, display_name)
        return jsonify({"success": True, "data": subscriber.to_dict()})

    @app.route("/telegram/webhook", methods=["POST"])
    def telegram_webhook():
        if settings.webhook_secret and not constant_time_equals(
            request.headers.get(WEBHOOK_SECRET_HEADER, ""), settings.webhook_secret
        ):
            return _error("invalid webhook secret", 403)
        update = request.get_json(silent=True)
        if not isinstance(update, dict):
            return _error("invalid update", 400)
        bot_app.process_update(update)
        return jsonify({"ok": True})

    return app

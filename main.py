"""Application entrypoint.

``python main.py poll`` (the default) long-polls Telegram. ``python main.py
serve`` runs the admin HTTP API, which also accepts Telegram webhook
updates. ``python main.py set-webhook URL`` registers that webhook. Both
running modes start the abandoned-order sweeper.
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional

from premium_bot.api import create_app
from premium_bot.config import load_settings
from premium_bot.handlers import BotApp
from premium_bot.scheduler import AbandonedOrderSweeper
from premium_bot.telegram import TelegramAPIError

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Premium subscription order bot")
    parser.add_argument("mode", nargs="?", default="poll", choices=["poll", "serve", "set-webhook"])
    parser.add_argument("url", nargs="?", help="public webhook URL for set-webhook")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    app = BotApp(settings)

    if args.mode == "set-webhook":
        if not args.url:
            LOGGER.error("set-webhook needs the public URL of /telegram/webhook")
            return 2
        try:
            app.bot.set_webhook(args.url, secret_token=settings.webhook_secret)
        except TelegramAPIError as exc:
            LOGGER.error("could not set webhook: %s", exc)
            return 1
        LOGGER.info("webhook set to %s", args.url)
        return 0

    sweeper = None
    if settings.sweep_interval > 0:
        sweeper = AbandonedOrderSweeper(
            interval=settings.sweep_interval,
            timeout_minutes=settings.session_timeout_minutes,
            orders=app.orders,
            notifier=app.notifier,
        )
        sweeper.start()

    def handle_stop(signum: int, frame) -> None:  # pragma: no cover - signal handler
        LOGGER.info("received stop signal %s", signum)
        if sweeper is not None:
            sweeper.stop()
        raise KeyboardInterrupt

    signal.signal(signal.SIGTERM, handle_stop)

    try:
        if args.mode == "serve":
            create_app(app).run(host=settings.api_host, port=settings.api_port, threaded=True)
        else:
            app.run()
    except KeyboardInterrupt:  # pragma: no cover - interactive use
        LOGGER.info("exiting")
    finally:
        if sweeper is not None:
            sweeper.stop()
            sweeper.join(timeout=5)
    return 0


if __name__ == "__main__":
    sys.exit(main())

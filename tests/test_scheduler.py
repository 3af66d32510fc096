"""Tests for the abandoned order sweeper."""
from unittest.mock import Mock

from premium_bot.conversation import BuyerEvent
from premium_bot.errors import OrderAlreadyProcessed
from premium_bot.orders import STATUS_AWAITING_PROOF, STATUS_PENDING_REVIEW, STATUS_REJECTED
from premium_bot.scheduler import AbandonedOrderSweeper


def _sweeper(app, clock):
    return AbandonedOrderSweeper(
        interval=60,
        timeout_minutes=30,
        orders=app.orders,
        notifier=app.notifier,
        clock=clock,
    )


class TestAbandonedOrderSweeper:
    """Tests for AbandonedOrderSweeper.tick."""

    def test_rejects_abandoned_orders(self, app, bot, clock):
        app.flow.handle(BuyerEvent("100", action_token="pkg:2"))
        app.flow.handle(BuyerEvent("100", text="abc1234567"))
        clock.advance(minutes=45)

        assert _sweeper(app, clock).tick() == 1

        assert app.orders.find_latest_by_buyer("100").status == STATUS_REJECTED
        assert bot.send_message.call_args.args[0] == "100"

    def test_ignores_recent_orders(self, app, clock):
        app.flow.handle(BuyerEvent("100", action_token="pkg:2"))
        clock.advance(minutes=10)
        assert _sweeper(app, clock).tick() == 0
        assert app.orders.find_in_progress_by_buyer("100") is not None

    def test_never_touches_pending_review(self, app, clock, drive_to_review):
        drive_to_review()
        clock.advance(days=3)
        assert _sweeper(app, clock).tick() == 0
        assert app.orders.find_latest_by_buyer("100").status == STATUS_PENDING_REVIEW

    def test_skips_orders_that_moved(self, clock):
        """Test a buyer step racing the sweep is left alone."""
        order = Mock(id="o-1", status=STATUS_AWAITING_PROOF)
        orders = Mock()
        orders.find_stale.return_value = [order]
        orders.conditional_update.side_effect = OrderAlreadyProcessed("moved")
        notifier = Mock()
        sweeper = AbandonedOrderSweeper(interval=60, timeout_minutes=30, orders=orders, notifier=notifier, clock=clock)

        assert sweeper.tick() == 0
        orders.conditional_update.assert_called_once_with("o-1", STATUS_AWAITING_PROOF, {"status": STATUS_REJECTED})
        notifier.notify_expired.assert_not_called()

    def test_stop(self, app, clock):
        sweeper = _sweeper(app, clock)
        sweeper.stop()
        assert sweeper._stop_event.is_set()
        assert sweeper.daemon is True

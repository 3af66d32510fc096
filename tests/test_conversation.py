"""Tests for the chat purchase flow."""
from datetime import timedelta

from premium_bot import i18n
from premium_bot.conversation import BuyerEvent, OrderFlow
from premium_bot.gateway import CHANNEL_TELEGRAM, AdminActor
from premium_bot.handlers import BotApp
from premium_bot.orders import (
    STATUS_AWAITING_AMOUNT,
    STATUS_AWAITING_PROOF,
    STATUS_AWAITING_SUBSCRIBER_ID,
    STATUS_CONFIRMED,
    STATUS_PENDING_REVIEW,
    STATUS_REJECTED,
)


def _t(key, **kwargs):
    return i18n.get_text(key, "id", **kwargs)


def _say(app, text="", buyer="100", **kwargs):
    return app.flow.handle(BuyerEvent(buyer, text=text, **kwargs))


def _select(app, package="2", buyer="100"):
    return app.flow.handle(BuyerEvent(buyer, action_token=f"pkg:{package}", display_name="Budi"))


def _latest(app, buyer="100"):
    return app.orders.find_latest_by_buyer(buyer)


def _callback_data(keyboard):
    return [button["callback_data"] for row in keyboard["inline_keyboard"] for button in row]


class TestHappyPath:
    """Test the full purchase from menu to activation."""

    def test_purchase_to_activation(self, app, bot, clock):
        """Test package 2, a valid id, a photo and the exact amount, then admin confirm."""
        reply = _select(app)
        assert _latest(app).status == STATUS_AWAITING_SUBSCRIBER_ID
        assert "Paket 30 Hari" in reply.text

        reply = _say(app, "abc1234567")
        order = _latest(app)
        assert order.status == STATUS_AWAITING_PROOF
        assert order.subscriber_key == "abc1234567"
        assert reply.photo == "QRIS_FILE_ID"
        assert "Rp 15.000" in reply.photo_caption

        _say(app, attachment_ref="proof-photo-1")
        order = _latest(app)
        assert order.status == STATUS_AWAITING_AMOUNT
        assert order.payment_proof_ref == "proof-photo-1"

        reply = _say(app, "15000")
        order = _latest(app)
        assert order.status == STATUS_PENDING_REVIEW
        assert order.claimed_amount == 15000
        assert order.amount_accepted is True
        assert reply.text == _t("order.amount_accepted")

        # admin got the proof photo and the decision buttons
        bot.send_photo.assert_any_call("999", "proof-photo-1", caption=_t("admin.proof_caption", order_id=order.id), reply_markup=None)
        keyboards = [call.kwargs.get("reply_markup") for call in bot.send_message.call_args_list if call.args[0] == "999"]
        assert [f"admin:confirm:{order.id}", f"admin:reject:{order.id}"] in [_callback_data(k) for k in keyboards if k]

        app.subscribers.sync("abc1234567")
        result = app.gateway.confirm(order.id, AdminActor("999", CHANNEL_TELEGRAM))
        assert result.new_expiry == clock.now + timedelta(days=30)
        assert _latest(app).status == STATUS_CONFIRMED

    def test_underpayment_is_auto_rejected(self, app, bot):
        _select(app)
        _say(app, "abc1234567")
        _say(app, attachment_ref="proof-photo-1")
        bot.reset_mock()

        reply = _say(app, "1000")

        order = _latest(app)
        assert order.status == STATUS_REJECTED
        assert order.amount_accepted is False
        assert order.claimed_amount == 1000
        assert "Rp 1.000" in reply.text
        assert "Rp 15.000" in reply.text
        assert bot.send_message.call_args.args[0] == "999"

    def test_amount_with_currency_prefix(self, app):
        _select(app)
        _say(app, "abc1234567")
        _say(app, "sudah bayar")
        _say(app, "Rp 15.000")
        assert _latest(app).status == STATUS_PENDING_REVIEW

    def test_affirmative_text_without_photo(self, app, bot):
        """Test that 'sudah bayar' advances without a proof reference."""
        _select(app)
        _say(app, "abc1234567")
        reply = _say(app, "sudah bayar")
        order = _latest(app)
        assert order.status == STATUS_AWAITING_AMOUNT
        assert order.payment_proof_ref is None
        assert "15000" in reply.text

        bot.reset_mock()
        _say(app, "15000")
        admin_text = bot.send_message.call_args.args[1]
        assert _t("admin.no_proof") in admin_text
        bot.send_photo.assert_not_called()


class TestInvalidInput:
    """Test reprompts that keep the order in place."""

    def test_short_subscriber_id(self, app):
        _select(app)
        reply = _say(app, "abc123456")
        assert reply.text == _t("order.invalid_subscriber_id", min_length=10)
        assert _latest(app).status == STATUS_AWAITING_SUBSCRIBER_ID

    def test_minimum_length_subscriber_id(self, app):
        _select(app)
        _say(app, "a" * 10)
        assert _latest(app).status == STATUS_AWAITING_PROOF

    def test_proof_reprompt(self, app):
        _select(app)
        _say(app, "abc1234567")
        reply = _say(app, "hello")
        assert reply.text == _t("order.reprompt_proof")
        assert _latest(app).status == STATUS_AWAITING_PROOF

    def test_amount_reprompt(self, app):
        _select(app)
        _say(app, "abc1234567")
        _say(app, attachment_ref="proof-photo-1")
        for text in ("abc", "0", ""):
            reply = _say(app, text)
            assert reply.text == _t("order.invalid_amount", example=15000)
        assert _latest(app).status == STATUS_AWAITING_AMOUNT

    def test_unknown_package(self, app):
        reply = _select(app, package="9")
        assert reply.text == _t("order.unknown_package")
        assert _latest(app) is None

    def test_pending_review_does_not_move(self, app, drive_to_review):
        drive_to_review()
        reply = _say(app, "halo admin?")
        assert reply.text == _t("order.awaiting_review")
        assert _latest(app).status == STATUS_PENDING_REVIEW


class TestOneOrderPerBuyer:
    """Test that a buyer cannot start a second order."""

    def test_select_while_in_progress(self, app):
        first = _select(app)
        second = _select(app, package="1")
        assert second.text == _t("order.already_in_progress")
        order = _latest(app)
        assert order.package_id == "2"
        assert first.text != second.text

    def test_select_while_pending_review(self, app, drive_to_review):
        order = drive_to_review()
        reply = _select(app, package="1")
        assert reply.text == _t("order.already_in_progress")
        assert _latest(app).id == order.id

    def test_select_after_rejection(self, app, drive_to_review):
        drive_to_review(amount="1000")
        _select(app, package="1")
        order = _latest(app)
        assert order.package_id == "1"
        assert order.status == STATUS_AWAITING_SUBSCRIBER_ID


class TestCancel:
    """Test the cancel command."""

    def test_cancel_in_each_buyer_step(self, app):
        for steps in ([], ["abc1234567"], ["abc1234567", "sudah"]):
            _select(app)
            for text in steps:
                _say(app, text)
            reply = _say(app, "/batal")
            assert reply.text == _t("order.cancelled")
            assert _latest(app).status == STATUS_REJECTED

    def test_cancel_when_idle(self, app):
        assert _say(app, "/batal").text == _t("order.nothing_to_cancel")

    def test_cancel_under_review(self, app, drive_to_review):
        drive_to_review()
        assert _say(app, "batal").text == _t("order.nothing_to_cancel")
        assert _latest(app).status == STATUS_PENDING_REVIEW


class TestTimeout:
    """Test lazy expiry of abandoned sessions."""

    def test_stale_session_expires(self, app, clock):
        _select(app)
        clock.advance(minutes=31)

        reply = _say(app, "abc1234567")

        order = _latest(app)
        assert order.status == STATUS_REJECTED
        assert order.subscriber_key == ""
        assert reply.text.startswith(_t("order.expired", minutes=30))
        assert "pkg:2" in _callback_data(reply.keyboard)

    def test_recent_session_continues(self, app, clock):
        _select(app)
        clock.advance(minutes=29)
        _say(app, "abc1234567")
        assert _latest(app).status == STATUS_AWAITING_PROOF

    def test_each_step_refreshes_timer(self, app, clock):
        _select(app)
        clock.advance(minutes=20)
        _say(app, "abc1234567")
        clock.advance(minutes=20)
        _say(app, "sudah bayar")
        assert _latest(app).status == STATUS_AWAITING_AMOUNT

    def test_stale_session_frees_selection(self, app, clock):
        _select(app)
        clock.advance(hours=2)
        reply = _select(app, package="1")
        assert "Paket 7 Hari" in reply.text
        assert _latest(app).package_id == "1"

    def test_pending_review_never_expires(self, app, clock, drive_to_review):
        drive_to_review()
        clock.advance(days=2)
        assert _say(app, "?").text == _t("order.awaiting_review")
        assert _latest(app).status == STATUS_PENDING_REVIEW


class TestMenuAndStatus:
    """Test commands available in every state."""

    def test_menu_commands(self, app):
        for text in ("/start", "/beli", "/menu", "/beli@PremiumBot"):
            reply = _say(app, text, display_name="Budi")
            assert "Budi" in reply.text
            assert _callback_data(reply.keyboard) == ["pkg:1", "pkg:2"]

    def test_menu_words_when_idle(self, app):
        assert _say(app, "Halo kak").keyboard is not None

    def test_unrecognized_text_when_idle(self, app):
        assert _say(app, "what is this").text == _t("menu.hint")

    def test_status_without_orders(self, app):
        assert _say(app, "/status").text == _t("status.none")

    def test_status_is_read_only(self, app):
        _select(app)
        _say(app, "abc1234567")
        reply = _say(app, "/status")
        assert _t("status.awaiting_proof") in reply.text
        assert _latest(app).status == STATUS_AWAITING_PROOF

    def test_status_after_confirmation(self, app, drive_to_review):
        order = drive_to_review()
        app.subscribers.sync("abc1234567")
        app.gateway.confirm(order.id, AdminActor("999", CHANNEL_TELEGRAM))
        assert _t("status.confirmed") in _say(app, "/status").text


class TestQrisFallback:
    """Test payment instructions without a QRIS image."""

    def test_missing_qris_image(self, settings, bot, clock):
        settings.qris_file_id = None
        settings.site_url = None
        app = BotApp(settings, bot=bot, clock=clock)
        _select(app)
        reply = _say(app, "abc1234567")
        assert reply.photo is None
        assert _t("order.qris_missing") in reply.text
        assert _latest(app).status == STATUS_AWAITING_PROOF

    def test_site_url_image(self, settings, bot, clock):
        settings.qris_file_id = None
        settings.site_url = "https://example.com/"
        flow = BotApp(settings, bot=bot, clock=clock).flow
        assert isinstance(flow, OrderFlow)
        flow.handle(BuyerEvent("100", action_token="pkg:1"))
        reply = flow.handle(BuyerEvent("100", text="abc1234567"))
        assert reply.photo == "https://example.com/qris.png"


class TestAmountTolerance:
    """Test a configured shortfall allowance at the amount step."""

    def test_tolerance_boundary(self, app, settings, drive_to_review):
        settings.amount_tolerance = 500
        accepted = drive_to_review(buyer="100", amount="14500")
        refused = drive_to_review(buyer="200", amount="14499")
        assert accepted.status == STATUS_PENDING_REVIEW
        assert accepted.amount_accepted is True
        assert refused.status == STATUS_REJECTED
        assert refused.amount_accepted is False


class TestMarkdownSafety:
    """Test that buyer supplied text cannot break Markdown formatting."""

    def test_display_name_is_escaped(self, app):
        reply = _say(app, "/start", display_name="A*B_")
        assert "*A\\*B\\_*" in reply.text

    def test_subscriber_id_with_backtick_in_admin_alert(self, app, bot, drive_to_review):
        drive_to_review(subscriber="abc`1234567")
        admin_texts = [call.args[1] for call in bot.send_message.call_args_list if call.args[0] == "999"]
        alert = admin_texts[-1]
        assert "Google ID: abc\\`1234567" in alert
        assert alert.replace("\\`", "").count("`") % 2 == 0

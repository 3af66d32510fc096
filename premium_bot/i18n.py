"""Translations for every buyer and admin facing text.

Keys are dotted paths into :data:`TRANSLATIONS`. Indonesian is the default
because that is what the buyers speak; English is the fallback.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping

LOGGER = logging.getLogger(__name__)

DEFAULT_LANGUAGE = "id"
FALLBACK_LANGUAGE = "en"
SUPPORTED_LANGUAGES = ("id", "en")

TRANSLATIONS: Dict[str, Dict[str, Any]] = {
    "id": {
        "menu": {
            "greeting": "👋 Halo *{name}*! Selamat datang di *Doujin Desu Premium*\n\nPilih paket berlangganan:",
            "button": "{icon} {name} — {price}",
            "best_seller": " (PALING LARIS)",
            "hint": "Ketik /beli untuk membeli Premium atau /status untuk cek status pesanan.",
            "default_name": "kamu",
        },
        "order": {
            "already_in_progress": "⚠️ Kamu masih punya pesanan yang belum selesai.\n\nLanjutkan pesanan sebelumnya atau tunggu konfirmasi admin.",
            "unknown_package": "⚠️ Paket tidak ditemukan. Ketik /beli untuk melihat daftar paket.",
            "ask_subscriber_id": "📦 *{package}* — *{price}*\n\nUntuk melanjutkan, kirimkan *Google ID* akun kamu.\n\n📌 Cara cek: *Buka app → Profil → salin ID di bawah email*",
            "invalid_subscriber_id": "⚠️ Google ID tidak valid (minimal {min_length} karakter). Salin tepat dari aplikasi.\n\nCara cek: *Buka app → Profil → salin ID di bawah email*",
            "subscriber_id_saved": "✅ Google ID tersimpan!\n\n📦 *{package}* — *{price}*\n\nSilakan bayar via *QRIS* di bawah ini, lalu kirim *foto bukti transfer* ke sini.\nKetik /batal untuk membatalkan.",
            "qris_caption": "📲 *Scan QR ini untuk membayar via QRIS*\nNominal: *{price}*\n_Mendukung semua e-wallet & mobile banking_",
            "qris_missing": "⚠️ QRIS belum tersedia. Hubungi admin langsung.",
            "reprompt_proof": "⏳ Kirim *foto/screenshot bukti transfer* setelah selesai membayar.\nKetik /batal untuk membatalkan.",
            "ask_amount": "📋 *Verifikasi Nominal*\n\nHarga paket: *{price}*\n\nKetik nominal yang kamu transfer (angka saja).\nContoh: `{example}`",
            "invalid_amount": "⚠️ Format tidak valid. Ketik angka saja, contoh: `{example}`",
            "amount_rejected": "❌ *Pembayaran Tidak Valid*\n\nNominal yang kamu masukkan: *{claimed}*\nHarga paket: *{price}*\n\nNominal kurang dari harga paket. Pesanan dibatalkan otomatis.\n\nKetik /beli untuk mencoba lagi.",
            "amount_accepted": "✅ *Nominal Sesuai!*\n\nPesananmu sedang diverifikasi admin.\nPremium aktif dalam *1–5 menit* ⚡\n\nTerima kasih sudah berlangganan *Doujin Desu Premium* 🎉",
            "awaiting_review": "⏳ Pesananmu sedang diverifikasi admin. Ketik /status untuk cek status.",
            "cancelled": "❌ Pesanan dibatalkan. Ketik /beli untuk memulai lagi.",
            "nothing_to_cancel": "Tidak ada pesanan yang bisa dibatalkan.",
            "expired": "⏰ Sesi pembelian kamu sudah habis ({minutes} menit). Pesanan dibatalkan.",
        },
        "status": {
            "none": "Belum ada pesanan. Ketik /beli untuk mulai.",
            "summary": "📋 *Status Pesanan Terakhir*\n\n📦 {package}\n💰 {price}\n📊 Status: {label}\n🕐 {created}",
            "awaiting_subscriber_id": "🔄 Menunggu Google ID",
            "awaiting_proof": "🔄 Menunggu bukti bayar",
            "awaiting_amount": "🔄 Menunggu input nominal",
            "pending_review": "⏳ Menunggu konfirmasi admin",
            "confirmed": "✅ Dikonfirmasi — Premium aktif",
            "rejected": "❌ Ditolak",
        },
        "admin": {
            "review": "🔔 *Pesanan Baru — Verifikasi Diperlukan*\n\n👤 User: {buyer} (ID: {buyer_id})\n🆔 Google ID: {subscriber}\n📦 Paket: {package}\n💰 Harga: {price}\n💵 Klaim bayar: *{claimed}* {mark}\n🧾 Order: `{order_id}`\n\n*Cek bukti bayar di atas, lalu konfirmasi:*",
            "proof_caption": "📎 Bukti bayar dari order `{order_id}`",
            "no_proof": "⚠️ Pembeli tidak mengirim foto bukti bayar.",
            "confirm_button": "✅ Konfirmasi & Aktifkan",
            "reject_button": "❌ Tolak",
            "auto_rejected": "⚠️ *Pembayaran Ditolak Otomatis*\n\n👤 {buyer}\n📦 {package}\n💰 Nominal klaim: {claimed} (kurang dari {price})",
            "confirmed": "✅ *Dikonfirmasi oleh admin*\n\nOrder ID: `{order_id}`\nGoogle ID: {subscriber}\nPaket: {package}\nPremium aktif sampai: *{expiry}*",
            "rejected": "❌ *Order Ditolak*\n\nOrder ID: `{order_id}`\nGoogle ID: {subscriber}",
            "confirm_ok": "✅ Premium berhasil diaktifkan!",
            "reject_ok": "Order ditolak.",
            "failed": "❌ Gagal: {reason}",
            "not_admin": "⛔ Hanya admin yang bisa konfirmasi.",
        },
        "buyer": {
            "activated": "🎉 *Premium Aktif!*\n\nPaket *{package}* sudah diaktifkan!\nBerlaku sampai: *{expiry}*\n\nSelamat menikmati akses tanpa batas! 📚✨",
            "rejected": "❌ *Pembayaran Ditolak*\n\nMaaf, pembayaran kamu tidak dapat diverifikasi.\nSilakan hubungi admin atau ketik /beli untuk mencoba lagi.",
        },
        "subscriber": {
            "activated_title": "🎉 Premium Diaktifkan!",
            "activated_message": "Admin telah mengaktifkan status Premium kamu selama {days} hari. Nikmati fitur unduhan tanpa batas!",
        },
        "errors": {
            "order_not_found": "Order tidak ditemukan.",
            "already_processed": "Order sudah diproses.",
            "subscriber_unresolved": "Google ID kosong.",
            "subscriber_not_found": "User dengan Google ID {subscriber} tidak ditemukan.",
        },
    },
    "en": {
        "menu": {
            "greeting": "👋 Hi *{name}*! Welcome to *Doujin Desu Premium*\n\nPick a subscription package:",
            "button": "{icon} {name} — {price}",
            "best_seller": " (BEST SELLER)",
            "hint": "Type /beli to buy Premium or /status to check your order.",
            "default_name": "there",
        },
        "order": {
            "already_in_progress": "⚠️ You still have an unfinished order.\n\nContinue it or wait for the admin to confirm it.",
            "unknown_package": "⚠️ Package not found. Type /beli to see the packages.",
            "ask_subscriber_id": "📦 *{package}* — *{price}*\n\nTo continue, send your account *Google ID*.\n\n📌 Find it in: *App → Profile → copy the ID below your email*",
            "invalid_subscriber_id": "⚠️ Invalid Google ID (at least {min_length} characters). Copy it exactly from the app.\n\nFind it in: *App → Profile → copy the ID below your email*",
            "subscriber_id_saved": "✅ Google ID saved!\n\n📦 *{package}* — *{price}*\n\nPay with the *QRIS* code below, then send a *photo of the transfer receipt* here.\nType /batal to cancel.",
            "qris_caption": "📲 *Scan this QR to pay via QRIS*\nAmount: *{price}*\n_Works with every e-wallet and mobile banking app_",
            "qris_missing": "⚠️ QRIS is not available yet. Please contact the admin.",
            "reprompt_proof": "⏳ Send a *photo/screenshot of the transfer receipt* once you have paid.\nType /batal to cancel.",
            "ask_amount": "📋 *Amount Check*\n\nPackage price: *{price}*\n\nType the amount you transferred (digits only).\nExample: `{example}`",
            "invalid_amount": "⚠️ Invalid format. Digits only, for example: `{example}`",
            "amount_rejected": "❌ *Invalid Payment*\n\nAmount you entered: *{claimed}*\nPackage price: *{price}*\n\nThe amount is below the package price. The order was cancelled automatically.\n\nType /beli to try again.",
            "amount_accepted": "✅ *Amount Accepted!*\n\nAn admin is verifying your order.\nPremium will be active in *1–5 minutes* ⚡\n\nThanks for subscribing to *Doujin Desu Premium* 🎉",
            "awaiting_review": "⏳ An admin is verifying your order. Type /status to check on it.",
            "cancelled": "❌ Order cancelled. Type /beli to start again.",
            "nothing_to_cancel": "There is no order to cancel.",
            "expired": "⏰ Your purchase session expired ({minutes} minutes). The order was cancelled.",
        },
        "status": {
            "none": "No orders yet. Type /beli to start.",
            "summary": "📋 *Latest Order Status*\n\n📦 {package}\n💰 {price}\n📊 Status: {label}\n🕐 {created}",
            "awaiting_subscriber_id": "🔄 Waiting for Google ID",
            "awaiting_proof": "🔄 Waiting for payment proof",
            "awaiting_amount": "🔄 Waiting for amount",
            "pending_review": "⏳ Waiting for admin confirmation",
            "confirmed": "✅ Confirmed — Premium active",
            "rejected": "❌ Rejected",
        },
        "admin": {
            "review": "🔔 *New Order — Verification Needed*\n\n👤 User: {buyer} (ID: {buyer_id})\n🆔 Google ID: {subscriber}\n📦 Package: {package}\n💰 Price: {price}\n💵 Claimed: *{claimed}* {mark}\n🧾 Order: `{order_id}`\n\n*Check the proof above, then decide:*",
            "proof_caption": "📎 Payment proof for order `{order_id}`",
            "no_proof": "⚠️ The buyer did not send a proof photo.",
            "confirm_button": "✅ Confirm & Activate",
            "reject_button": "❌ Reject",
            "auto_rejected": "⚠️ *Payment Rejected Automatically*\n\n👤 {buyer}\n📦 {package}\n💰 Claimed: {claimed} (below {price})",
            "confirmed": "✅ *Confirmed by admin*\n\nOrder ID: `{order_id}`\nGoogle ID: {subscriber}\nPackage: {package}\nPremium active until: *{expiry}*",
            "rejected": "❌ *Order Rejected*\n\nOrder ID: `{order_id}`\nGoogle ID: {subscriber}",
            "confirm_ok": "✅ Premium activated!",
            "reject_ok": "Order rejected.",
            "failed": "❌ Failed: {reason}",
            "not_admin": "⛔ Only the admin can do this.",
        },
        "buyer": {
            "activated": "🎉 *Premium Active!*\n\nYour *{package}* is now active!\nValid until: *{expiry}*\n\nEnjoy unlimited access! 📚✨",
            "rejected": "❌ *Payment Rejected*\n\nSorry, your payment could not be verified.\nContact the admin or type /beli to try again.",
        },
        "subscriber": {
            "activated_title": "🎉 Premium Activated!",
            "activated_message": "An admin activated your Premium status for {days} days. Enjoy unlimited downloads!",
        },
        "errors": {
            "order_not_found": "Order not found.",
            "already_processed": "Order was already processed.",
            "subscriber_unresolved": "Google ID is empty.",
            "subscriber_not_found": "No user with Google ID {subscriber}.",
        },
    },
}


def _lookup(table: Mapping[str, Any], key: str) -> Any:
    node: Any = table
    for part in key.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return None
        node = node[part]
    return node


def get_text(key: str, lang: str = DEFAULT_LANGUAGE, **kwargs: Any) -> str:
    """Return the translation for ``key``.

    Falls back to English, then to the key itself. Keyword arguments are
    substituted with :meth:`str.format`.
    """
    value = _lookup(TRANSLATIONS.get(lang, {}), key)
    if value is None:
        value = _lookup(TRANSLATIONS[FALLBACK_LANGUAGE], key)
    if value is None or isinstance(value, Mapping):
        LOGGER.debug("missing translation for %s", key)
        return key
    if kwargs:
        try:
            return value.format(**kwargs)
        except (KeyError, IndexError) as exc:
            LOGGER.warning("translation %s is missing parameter %s", key, exc)
            return value
    return value


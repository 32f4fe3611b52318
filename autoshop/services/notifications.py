"""
Outbound notifications: Eskiz SMS and a Telegram admin chat.

Everything here is fire-and-forget from the caller's point of view:
NotificationSink logs and swallows provider failures so a notification
never fails the request that triggered it.
"""

import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from autoshop.core.config import settings
from autoshop.logger_config import logger
from autoshop.models.money import Money

SMS_MAX_LENGTH = 918
PHONE_PATTERN = re.compile(r"^998\d{9}$")


class NotificationError(Exception):
    pass


def normalize_phone(phone: str) -> str:
    """Digits only, in the 998XXXXXXXXX form the gateway accepts."""
    if not phone or not isinstance(phone, str):
        raise NotificationError("Phone number must be a string")
    digits = re.sub(r"\D", "", phone)
    if not PHONE_PATTERN.match(digits):
        raise NotificationError(f"Phone number must be in 998XXXXXXXXX format, got {phone}")
    return digits


def validate_sms_text(text: str) -> str:
    if not text or not text.strip():
        raise NotificationError("SMS text cannot be empty")
    if len(text) > SMS_MAX_LENGTH:
        raise NotificationError(f"SMS text is too long ({len(text)} > {SMS_MAX_LENGTH} characters)")
    return text.strip()


class TokenCache:
    """Bearer token with an expiry. Thread-safe since background tasks run in a pool."""

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime] = None):
        self.ttl = ttl
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._lock = threading.Lock()

    def get(self) -> Optional[str]:
        with self._lock:
            if self._token and self._expires_at and self._clock() < self._expires_at:
                return self._token
            return None

    def set(self, token: str) -> None:
        with self._lock:
            self._token = token
            self._expires_at = self._clock() + self.ttl

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = None


class EskizSmsClient:

    def __init__(
        self,
        base_url: str = None,
        email: str = None,
        password: str = None,
        sender: str = None,
        token_cache: TokenCache = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None,
    ):
        self.base_url = (base_url or settings.ESKIZ_BASE_URL).rstrip("/")
        self.email = email if email is not None else settings.ESKIZ_EMAIL
        self.password = password if password is not None else settings.ESKIZ_PASSWORD
        self.sender = sender or settings.ESKIZ_FROM
        self.token_cache = token_cache or TokenCache(timedelta(days=settings.ESKIZ_TOKEN_TTL_DAYS))
        self.timeout = timeout or settings.PROVIDER_TIMEOUT
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def authenticate(self) -> str:
        if not self.email or not self.password:
            raise NotificationError("ESKIZ_EMAIL and ESKIZ_PASSWORD must be configured")

        with self._client() as client:
            response = client.post("/auth/login", data={"email": self.email, "password": self.password})
        response.raise_for_status()
        payload = response.json()
        if payload.get("message") != "token_generated":
            raise NotificationError(f"Eskiz authentication failed: {payload.get('message', 'unknown error')}")

        token = payload["data"]["token"]
        self.token_cache.set(token)
        logger.info("Eskiz SMS: authenticated")
        return token

    def _token(self) -> str:
        return self.token_cache.get() or self.authenticate()

    def send_sms(self, phone: str, text: str) -> dict:
        phone = normalize_phone(phone)
        text = validate_sms_text(text)
        form = {"mobile_phone": phone, "message": text, "from": self.sender}

        with self._client() as client:
            response = client.post(
                "/message/sms/send",
                data=form,
                headers={"Authorization": f"Bearer {self._token()}"},
            )
            if response.status_code == 401:
                logger.warning("Eskiz token rejected, re-authenticating")
                self.token_cache.invalidate()
                response = client.post(
                    "/message/sms/send",
                    data=form,
                    headers={"Authorization": f"Bearer {self.authenticate()}"},
                )

        response.raise_for_status()
        payload = response.json()
        if payload.get("message") not in ("Waiting for SMS", "Waiting for SMS provider"):
            raise NotificationError(f"Unexpected Eskiz response: {payload.get('message')}")

        logger.info(f"SMS queued for {phone}: id {payload.get('id')}")
        return {"message_id": payload.get("id"), "status": payload.get("status", "waiting"), "phone": phone}


class TelegramNotifier:

    def __init__(
        self,
        bot_token: str = None,
        chat_id: str = None,
        timeout: float = None,
        transport: httpx.BaseTransport = None,
    ):
        self.bot_token = bot_token if bot_token is not None else settings.TELEGRAM_BOT_TOKEN
        self.chat_id = chat_id if chat_id is not None else settings.TELEGRAM_CHAT_ID
        self.timeout = timeout or settings.PROVIDER_TIMEOUT
        self.transport = transport

    def send_message(self, text: str) -> dict:
        if not self.bot_token or not self.chat_id:
            raise NotificationError("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be configured")

        with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
            response = client.post(
                f"https://api.telegram.org/bot{self.bot_token}/sendMessage",
                json={"chat_id": self.chat_id, "text": text, "parse_mode": "HTML"},
            )
        response.raise_for_status()
        payload = response.json()
        if not payload.get("ok"):
            raise NotificationError(f"Telegram rejected message: {payload.get('description')}")
        return payload["result"]


class NotificationSink:
    """The two calls the rest of the app uses. Never raises."""

    def __init__(self, sms: EskizSmsClient = None, telegram: TelegramNotifier = None):
        self.sms = sms or EskizSmsClient()
        self.telegram = telegram or TelegramNotifier()

    def send_message(self, text: str) -> bool:
        try:
            self.telegram.send_message(text)
            return True
        except (NotificationError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Telegram notification failed: {str(e)}")
            return False

    def send_templated_sms(self, phone: str, text: str) -> bool:
        try:
            self.sms.send_sms(phone, text)
            return True
        except (NotificationError, httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"SMS to {phone} failed: {str(e)}")
            return False


# ================= MESSAGE TEMPLATES ===================

def order_created_sms(client_name: str, order_id: int, total: Money) -> str:
    return (
        f"Hurmatli {client_name}! Buyurtmangiz #{order_id} qabul qilindi. "
        f"Jami: {total.describe()}. Ma'lumot: {settings.SUPPORT_PHONE}"
    )


def debt_paid_sms(client_name: str) -> str:
    return (
        f"Hurmatli {client_name}! Qarzingiz to'liq to'landi. "
        f"Rahmat! Ma'lumot: {settings.SUPPORT_PHONE}"
    )


def order_created_message(order_id: int, client_name: str, branch_name: str, total: Money, paid: Money, debt: Money, status: str) -> str:
    lines = [
        f"🧾 <b>New order #{order_id}</b>",
        f"Client: {client_name}",
        f"Branch: {branch_name}",
        f"Total: {total.describe()}",
        f"Paid: {paid.describe()}",
    ]
    if not debt.is_zero():
        lines.append(f"Debt: {debt.describe()}")
    lines.append(f"Status: {status}")
    return "\n".join(lines)


def cash_movement_message(transaction_type: str, amount: Money, balance: Money, description: str = "") -> str:
    icon = "🟢" if transaction_type == "cash-in" else "🔴"
    lines = [
        f"{icon} <b>{transaction_type}</b>: {amount.describe()}",
        f"Balance: {balance.describe()}",
    ]
    if description:
        lines.append(description)
    return "\n".join(lines)


def debt_payment_message(client_name: str, amount: Money, remaining: Money) -> str:
    return (
        f"💵 <b>Debt payment</b> from {client_name}: {amount.describe()}\n"
        f"Remaining: {remaining.describe()}"
    )


_notifier: Optional[NotificationSink] = None


def get_notifier() -> NotificationSink:
    global _notifier
    if _notifier is None:
        _notifier = NotificationSink()
    return _notifier

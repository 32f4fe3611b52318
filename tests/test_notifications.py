import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs

import httpx
import pytest

from autoshop.models.money import Money
from autoshop.services.notifications import (
    EskizSmsClient,
    NotificationError,
    NotificationSink,
    TelegramNotifier,
    TokenCache,
    debt_payment_message,
    normalize_phone,
    order_created_message,
    validate_sms_text,
)


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 3, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


class EskizStub:
    """Records calls; answers the first ``reject`` sends with 401."""

    def __init__(self, reject=0):
        self.logins = 0
        self.sends = []
        self.reject = reject

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/auth/login"):
            self.logins += 1
            return httpx.Response(200, json={"message": "token_generated", "data": {"token": f"token-{self.logins}"}})
        if request.url.path.endswith("/message/sms/send"):
            self.sends.append((request.headers["Authorization"], parse_qs(request.content.decode())))
            if self.reject:
                self.reject -= 1
                return httpx.Response(401, json={"message": "Expired"})
            return httpx.Response(200, json={"id": "msg-1", "message": "Waiting for SMS", "status": "waiting"})
        return httpx.Response(404)


def make_sms_client(stub, clock=None):
    return EskizSmsClient(
        base_url="https://notify.test/api",
        email="ops@example.com",
        password="secret",
        sender="4546",
        token_cache=TokenCache(timedelta(days=29), clock=clock),
        transport=httpx.MockTransport(stub),
    )


@pytest.mark.parametrize("raw, expected", [
    ("998901234567", "998901234567"),
    ("+998 (90) 123-45-67", "998901234567"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["", "901234567", "7990123456789", None])
def test_normalize_phone_rejects_other_formats(raw):
    with pytest.raises(NotificationError):
        normalize_phone(raw)


def test_sms_text_limits():
    assert validate_sms_text("  Salom  ") == "Salom"
    with pytest.raises(NotificationError):
        validate_sms_text("   ")
    with pytest.raises(NotificationError):
        validate_sms_text("x" * 919)


def test_token_cache_expires():
    clock = FakeClock()
    cache = TokenCache(timedelta(hours=1), clock=clock)
    cache.set("abc")

    assert cache.get() == "abc"
    clock.now += timedelta(minutes=59)
    assert cache.get() == "abc"
    clock.now += timedelta(minutes=2)
    assert cache.get() is None


def test_sms_token_is_reused_until_it_expires():
    clock = FakeClock()
    stub = EskizStub()
    client = make_sms_client(stub, clock)

    result = client.send_sms("+998901234567", "Buyurtmangiz tayyor")
    client.send_sms("998901234567", "Rahmat")

    assert result == {"message_id": "msg-1", "status": "waiting", "phone": "998901234567"}
    assert stub.logins == 1
    assert stub.sends[0][0] == "Bearer token-1"
    assert stub.sends[0][1]["mobile_phone"] == ["998901234567"]
    assert stub.sends[0][1]["from"] == ["4546"]

    clock.now += timedelta(days=30)
    client.send_sms("998901234567", "Yana")
    assert stub.logins == 2


def test_rejected_token_triggers_one_reauthentication():
    stub = EskizStub(reject=1)
    client = make_sms_client(stub)

    client.send_sms("998901234567", "Salom")

    assert stub.logins == 2
    assert [auth for auth, _ in stub.sends] == ["Bearer token-1", "Bearer token-2"]


def test_sms_requires_credentials():
    client = EskizSmsClient(base_url="https://notify.test/api", email="", password="", transport=httpx.MockTransport(EskizStub()))

    with pytest.raises(NotificationError):
        client.send_sms("998901234567", "Salom")


def test_telegram_posts_html_message():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"ok": True, "result": {"message_id": 7}})

    notifier = TelegramNotifier(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(handler))

    assert notifier.send_message("<b>hi</b>") == {"message_id": 7}
    assert requests[0].url.path == "/bot123:abc/sendMessage"
    assert json.loads(requests[0].content) == {"chat_id": "-100", "text": "<b>hi</b>", "parse_mode": "HTML"}


def test_sink_swallows_provider_failures():
    def failing(request):
        return httpx.Response(500, json={"ok": False})

    sink = NotificationSink(
        sms=make_sms_client(lambda request: httpx.Response(503)),
        telegram=TelegramNotifier(bot_token="123:abc", chat_id="-100", transport=httpx.MockTransport(failing)),
    )

    assert sink.send_message("hello") is False
    assert sink.send_templated_sms("998901234567", "hello") is False
    assert sink.send_templated_sms("12345", "hello") is False


def test_sink_reports_success():
    sink = NotificationSink(
        sms=make_sms_client(EskizStub()),
        telegram=TelegramNotifier(
            bot_token="123:abc",
            chat_id="-100",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"ok": True, "result": {}})),
        ),
    )

    assert sink.send_message("hello") is True
    assert sink.send_templated_sms("998901234567", "hello") is True


def test_message_templates_describe_both_currencies():
    text = order_created_message(12, "Aziz Karimov", "Chilonzor", Money(5, 30000), Money(5, 20000), Money(0, 10000), "completed")

    assert "#12" in text
    assert "5.00 USD + 30,000 UZS" in text
    assert "Debt: 10,000 UZS" in text
    assert "Remaining: 0" in debt_payment_message("Aziz", Money(0, 10), Money.zero())

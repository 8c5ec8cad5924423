import pytest

from notifications.config import RelaySettings
from notifications.service import build_dispatcher


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class FakeHttp:
    """Stands in for the requests module: records posts, replays responses by URL fragment."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        for fragment, outcome in self.routes.items():
            if fragment in url:
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
        raise AssertionError(f"unexpected POST to {url}")

    def urls(self):
        return [url for url, _ in self.calls]


class FakeSMTP:
    instances = []
    fail_with = None
    fail_at = "send_message"

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sent = []
        self.logged_in = None
        self.tls = False
        self.closed = False
        FakeSMTP.instances.append(self)
        self._maybe_fail("connect")

    def _maybe_fail(self, step):
        if self.fail_with is not None and self.fail_at == step:
            raise self.fail_with

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        self._maybe_fail("login")
        self.logged_in = (user, password)

    def send_message(self, message):
        self._maybe_fail("send_message")
        self.sent.append(message)
        return {}

    def quit(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.quit()
        return False


@pytest.fixture
def fake_smtp():
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None
    FakeSMTP.fail_at = "send_message"
    yield FakeSMTP
    FakeSMTP.instances = []
    FakeSMTP.fail_with = None


@pytest.fixture
def settings():
    return RelaySettings(
        email_user="relay@example.com",
        email_password="app-password",
        twilio_account_sid="AC123",
        twilio_auth_token="twilio-token",
        twilio_whatsapp_from="whatsapp:+14155238886",
        telegram_bot_token="123:ABC",
    )


@pytest.fixture
def telegram_ok():
    return FakeResponse(200, {"ok": True, "result": {"message_id": 42}})


@pytest.fixture
def twilio_ok():
    return FakeResponse(201, {"sid": "SM0001", "status": "queued"})


@pytest.fixture
def make_dispatcher(fake_smtp):
    def _make(settings, routes=None):
        http = FakeHttp(routes)
        return build_dispatcher(settings, http=http, smtp_factory=fake_smtp), http

    return _make

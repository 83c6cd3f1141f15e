import pytest
from flask import g

from concierge import create_app
from concierge.errors import FunctionInvokeError
from concierge.extensions import db
from concierge.models import Member


class FakeFunctions:
    """Stands in for FunctionsClient; records every call."""

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.failures = {}
        self.users = {}

    def fail(self, name, message="boom", times=None):
        self.failures[name] = [message, times]

    def _hit(self, name, body):
        self.calls.append((name, body))
        if name in self.failures:
            message, times = self.failures[name]
            if times is None or times > 0:
                if times is not None:
                    self.failures[name][1] = times - 1
                raise FunctionInvokeError(name, message)
        resp = self.responses.get(name, {"success": True})
        return resp(body) if callable(resp) else dict(resp)

    def named(self, name):
        return [body for n, body in self.calls if n == name]

    def invoke(self, name, body=None, access_token=None):
        return self._hit(name, body or {})

    def get_user(self, access_token):
        self.calls.append(("auth", {"token": access_token}))
        if access_token not in self.users:
            raise FunctionInvokeError("auth", "invalid or expired token", status=401)
        return self.users[access_token]

    def generate_ambient_sfx(self, mood, duration):
        return self._hit("generate-ambient-sfx", {"mood": mood, "duration": duration})

    def purchase_credits(self, package_id, access_token=None):
        return self._hit("purchase-credits", {"packageId": package_id}).get("url")

    def send_email(self, to, subject, html):
        return self._hit("send-email", {"to": to, "subject": subject, "html": html})

    def partner_invite(self, payload):
        return self._hit("partner-invite", payload)

    def conversation_token(self, access_token=None):
        return self._hit("elevenlabs-conversation-token", {})

    def generate_site_content(self, prompt, tone, language, block_type=None):
        body = {"prompt": prompt, "tone": tone, "language": language, "blockType": block_type}
        return self._hit("generate-site-content", body).get("content") or ""

    def referral_email(self, payload):
        return self._hit("referral-email", payload)

    def check_subscription(self, access_token=None):
        return self._hit("check-subscription", {})

    def social_publish(self, payload):
        return self._hit("social-publish", payload)


@pytest.fixture
def functions():
    return FakeFunctions()


@pytest.fixture
def app(functions, request):
    marker = request.node.get_closest_marker("config")
    overrides = dict(marker.kwargs) if marker else {}
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "SESSION_PROTECTION": None,
        "PREFERRED_URL_SCHEME": "http",
        "APP_ERROR_LOG": "",
        "SCHEDULER_ENABLED": False,
        "REDIS_URL": "",
        "SENTRY_DSN": "",
        "STRIPE_SECRET_KEY": "",
        "STRIPE_WEBHOOK_SECRET": "whsec_test",
        "OUTREACH_SEND_DELAY": 0,
        "FUNCTIONS_BASE_URL": "",
        "CONTENT_AI_PROVIDER": "functions",
        "HEALTH_ENDPOINTS": (),
        **overrides,
    })
    app.extensions["functions_client"] = functions
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_member(app):
    def _make(email="member@example.com", tier="gold", status="active", role="member", full_name=None):
        m = Member(email=email, tier=tier, subscription_status=status if tier else None, role=role,
                   full_name=full_name)
        db.session.add(m)
        db.session.commit()
        return m
    return _make


@pytest.fixture
def member(make_member):
    return make_member()


@pytest.fixture
def admin(make_member):
    return make_member(email="admin@example.com", tier=None, role="admin")


@pytest.fixture
def login(client):
    def _login(m):
        # the app context (and g) outlives requests in these tests
        g.pop("_login_user", None)
        with client.session_transaction() as sess:
            sess["_user_id"] = m.id
            sess["_fresh"] = True
        return m
    return _login

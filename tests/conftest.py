import pytest

from license_server import create_app
from license_server.db import make_engine
from license_server.config import Settings
from license_server.reconciler import LicenseReconciler
from license_server.store import LicenseStore

WEBHOOK_SECRET = "whsec_test_secret"


def _overrides(**extra):
    base = {
        "DATABASE_URL": "sqlite:///:memory:",
        "RATELIMIT_ENABLED": False,
        "ENABLE_DEV_ROUTES": True,
        "STRIPE_SECRET_KEY": "",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "GENERATE_ALLOWED_REFERRERS": [],
    }
    base.update(extra)
    return base


@pytest.fixture
def make_app():
    """Factory for apps over a fresh in-memory database."""
    def _make(**extra):
        app = create_app(_overrides(**extra))
        app.config["TESTING"] = True
        return app
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["license_server"]


@pytest.fixture
def store():
    """A store over its own in-memory database, no app needed."""
    s = LicenseStore(make_engine(Settings(DATABASE_URL="sqlite:///:memory:")))
    s.create_schema()
    return s


@pytest.fixture
def file_store(tmp_path):
    """A store over an on-disk database, for tests that use several connections."""
    url = f"sqlite:///{tmp_path / 'licenses.db'}"
    s = LicenseStore(make_engine(Settings(DATABASE_URL=url)))
    s.create_schema()
    return s


@pytest.fixture
def reconciler(store):
    return LicenseReconciler(store)

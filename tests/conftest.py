import pytest

from hostel_ledger import create_app, db
from hostel_ledger.config import Config


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        # a file, not :memory:, so worker threads share the same database
        SQLALCHEMY_DATABASE_URI = "sqlite:///" + str(tmp_path / "ledger.db")
        NOTIFY_WEBHOOK_URL = ""

    app = create_app(TestConfig)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()

import pytest

from twofactor import create_app, db
from twofactor.models.user import User


@pytest.fixture()
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "SESSION_DIR": str(tmp_path / "sessions"),
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "TOTP_ISSUER": "EatLocal",
    })

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    def _make_user(username="alice", password="pass", role="customer", email=None):
        with app.app_context():
            user = User(username=username, email=email or f"{username}@example.com", role=role)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make_user


@pytest.fixture()
def login(client):
    def _login(username="alice", password="pass"):
        return client.post("/auth/login", json={"username": username, "password": password})
    return _login

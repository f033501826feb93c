import os
from typing import Callable, Dict, List, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

os.environ.setdefault("ENV", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("TEASHOP_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ALLOWED_ORIGINS", "http://localhost:5173")

from apps.teashop.app import db  # noqa: E402
from apps.teashop.app.events import hub  # noqa: E402


@pytest.fixture(scope="session")
def app():
    """
    Import the Tea Shop FastAPI app once per test session.
    """
    from apps.teashop.app.main import app as teashop_app

    return teashop_app


@pytest.fixture()
def engine():
    """
    Isolated in-memory SQLite engine per test.
    """
    eng = db.make_engine("sqlite+pysqlite:///:memory:")
    db.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture()
def client(app, engine):
    """
    Synchronous TestClient whose requests all hit the per-test engine.
    """

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[db.get_session] = _session
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class ShopAuth:
    """Owner (admin) credentials of a freshly signed-up shop."""

    def __init__(self, client: TestClient, shop_id: str, email: str, password: str, token: str, user: dict):
        self.client = client
        self.shop_id = shop_id
        self.email = email
        self.password = password
        self.token = token
        self.user = user

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def add_staff(self, email: str, permissions: List[dict], role: str = "staff", password: str = "staffpass") -> Dict[str, str]:
        r = self.client.post(
            "/api/staff",
            json={"name": email.split("@")[0], "email": email, "password": password, "role": role, "permissions": permissions},
            headers=self.headers(),
        )
        assert r.status_code == 201, r.text
        token = login(self.client, self.shop_id, email, password)
        return {"Authorization": f"Bearer {token}"}


def login(client: TestClient, shop_id: str, email: str, password: str) -> str:
    r = client.post("/api/auth/login", json={"shopId": shop_id, "email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


@pytest.fixture()
def make_shop(client) -> Callable[..., ShopAuth]:
    counter = {"n": 0}

    def _make(name: str = "Tea Hut", password: str = "ownerpass") -> ShopAuth:
        counter["n"] += 1
        email = f"owner{counter['n']}@example.com"
        r = client.post(
            "/api/auth/signup-shop",
            json={"shopName": name, "ownerName": "Owner", "ownerEmail": email, "ownerPassword": password},
        )
        assert r.status_code == 201, r.text
        shop_id = r.json()["shopId"]
        token = login(client, shop_id, email, password)
        return ShopAuth(client, shop_id, email, password, token, r.json()["user"])

    return _make


@pytest.fixture()
def shop(make_shop) -> ShopAuth:
    return make_shop()


@pytest.fixture()
def events() -> List[Tuple[str, str, dict]]:
    """
    Records every published event as (shop_id, event, data).
    """
    seen: List[Tuple[str, str, dict]] = []

    def _listener(shop_id, event, data):
        seen.append((shop_id, event, data))

    hub.add_listener(_listener)
    try:
        yield seen
    finally:
        hub.remove_listener(_listener)

"""
Order Hub test fixtures

Settings are read once (lru_cache), so the environment is prepared before
any orderhub module is imported.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["REALTIME_BACKEND"] = "memory"
os.environ["METRICS_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["JWT_ALGORITHM"] = "HS256"

from datetime import datetime, timedelta, timezone  # noqa: E402
from itertools import count  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from jose import jwt  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker  # noqa: E402

from orderhub.db.database import Base, build_engine, get_db  # noqa: E402
from orderhub.main import app  # noqa: E402
from orderhub.realtime.channel import InMemoryChannel, get_channel  # noqa: E402
from orderhub.realtime.events import ADMIN_ROOM  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
JWT_SECRET = "test-secret"


def make_token(sub: str = "operator-1", is_admin: bool = True) -> str:
    return jwt.encode({"sub": sub, "is_admin": is_admin}, JWT_SECRET, algorithm="HS256")


# ─── Database ──────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def db_engine():
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ─── Realtime ──────────────────────────────────────────────────────────────────
class EventRecorder:
    """Collects every envelope published to the rooms it listens on."""

    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def __call__(self, topic: str, payload: dict) -> None:
        self.events.append((topic, payload))

    def types(self, topic: str | None = None) -> list[str]:
        return [p["type"] for t, p in self.events if topic is None or t == topic]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def channel():
    return InMemoryChannel()


@pytest_asyncio.fixture
async def recorder(channel):
    rec = EventRecorder()
    await channel.subscribe(ADMIN_ROOM, rec)
    return rec


# ─── HTTP ──────────────────────────────────────────────────────────────────────
@pytest_asyncio.fixture
async def client(session_factory, channel):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_channel] = lambda: channel
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def order_payload():
    def _payload(delivery_type: str = "delivery", **overrides) -> dict:
        body = {
            "customer_name": "Ana Souza",
            "customer_phone": "11988887777",
            "customer_address": "Rua das Flores, 123" if delivery_type == "delivery" else None,
            "delivery_type": delivery_type,
            "payment_method": "pix",
            "items": [
                {"product_id": 1, "product_name": "Pizza Margherita", "quantity": 1, "unit_price": "39.90"},
                {"product_id": 2, "product_name": "Refrigerante", "quantity": 2, "unit_price": "6.00"},
            ],
        }
        body.update(overrides)
        return body

    return _payload


# ─── Console-side order records ────────────────────────────────────────────────
@pytest.fixture
def make_order():
    ids = count(1)
    base = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def _make(**overrides) -> dict:
        order_id = overrides.pop("id", None) or next(ids)
        minutes = overrides.pop("minutes", order_id)
        created = (base + timedelta(minutes=minutes)).isoformat()
        order = {
            "id": order_id,
            "customer_name": f"Cliente {order_id}",
            "customer_phone": f"1190000{order_id:04d}",
            "customer_address": "Rua A, 1",
            "customer_email": None,
            "delivery_type": "delivery",
            "order_status": "novo",
            "payment_status": "pendente",
            "payment_method": "pix",
            "total_amount": "45.50",
            "items_summary": "Pizza x1",
            "notes": None,
            "admin_notes": None,
            "confirmed_by": None,
            "confirmed_at": None,
            "created_at": created,
            "updated_at": created,
        }
        order.update(overrides)
        return order

    return _make

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from decimal import Decimal
from typing import AsyncGenerator, Dict, List
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from campus_fees.auth.dependencies import get_current_actor
from campus_fees.auth.schemas import CurrentActor
from campus_fees.core.exceptions import GatewayError
from campus_fees.db.session import Base, get_db
from campus_fees.fees.gateway import GatewayOrder, get_payment_gateway
from campus_fees.main import app

from tests.builders import structure_payload


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STAFF = CurrentActor(
    id=UUID("00000000-0000-0000-0000-0000000000a1"),
    name="Office Staff",
    email="office@college.test",
    role="ADMIN",
)


class FakeGateway:
    """In-memory gateway. A signature is valid when it equals ``sign(order_id, payment_id)``."""

    key_id = "rzp_test_key"

    def __init__(self) -> None:
        self.orders: List[Dict] = []
        self.fail_orders = False
        self.verify_calls = 0

    @staticmethod
    def sign(gateway_order_id: str, gateway_payment_id: str) -> str:
        return f"sig:{gateway_order_id}|{gateway_payment_id}"

    async def create_order(self, total_amount: Decimal, currency: str, metadata: Dict[str, str]) -> GatewayOrder:
        if self.fail_orders:
            raise GatewayError("Payment gateway rejected the order. Please try again.")
        order_id = f"order_{len(self.orders) + 1}"
        self.orders.append({"id": order_id, "amount": total_amount, "currency": currency, "notes": metadata})
        return GatewayOrder(gateway_order_id=order_id, amount=total_amount, currency=currency)

    async def verify(self, payment_id: str, gateway_payment_id: str, gateway_order_id: str, signature: str) -> bool:
        self.verify_calls += 1
        return signature == self.sign(gateway_order_id, gateway_payment_id)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh schema per test on a single shared in-memory connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
def gateway() -> FakeGateway:
    fake = FakeGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture()
def actor() -> CurrentActor:
    return STAFF


@pytest.fixture()
async def client(db_session: AsyncSession, gateway: FakeGateway, actor: CurrentActor) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app, authenticated as office staff."""
    app.dependency_overrides[get_current_actor] = lambda: actor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.pop(get_current_actor, None)


@pytest.fixture()
def student_id() -> UUID:
    return uuid4()


@pytest.fixture()
async def assignment(client: AsyncClient, student_id: UUID) -> dict:
    """An active assignment of the two-semester structure to ``student_id``."""
    created = await client.post("/api/v1/fee-structures", json=structure_payload())
    assert created.status_code == 201, created.text
    assigned = await client.post(
        f"/api/v1/fee-assignments/assign/{student_id}",
        json={"fee_structure_id": created.json()["id"]},
    )
    assert assigned.status_code == 201, assigned.text
    return assigned.json()

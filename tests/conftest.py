# tests/conftest.py

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict, Optional
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scripts.seed_initial_data import seed_all_data
from haggle.main import app
from haggle.core.config import settings
from haggle.core.context import AppContext
from haggle.core.security import create_access_token
from haggle.api.dependencies.authentication import AuthContext, CurrentUser
from haggle.api.dependencies.context import get_billing_gateway
from haggle.db.base import Base
from haggle.db.session import get_db, create_engine_for
from haggle.dao.membership.plan_dao import MembershipPlanDao
from haggle.dao.membership.membership_dao import UserMembershipDao
from haggle.models import (
    MembershipPlan, MembershipStatus, StoreConnection, StoreConnectionStatus, BargainingSetting,
    BargainingBehavior
)
from haggle.services.billing.gateway import BillingGateway, ChargeInitiation, ChargeDetails
from haggle.services.exceptions import GatewayError

# ==============================================================================
# 1. Database Fixtures
# ==============================================================================

@pytest.fixture(scope="function")
async def db_engine():
    """A fresh in-memory database per test, schema created from the models."""
    engine = create_engine_for(settings.DATABASE_URL_TEST)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()

@pytest.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    One session per test, inside an outer transaction that is rolled back
    at the end. Plans are seeded from seed_data/membership_plans.json.
    """
    session_factory = async_sessionmaker(
        bind=db_engine, class_=AsyncSession, autoflush=False, expire_on_commit=False
    )
    async with session_factory() as session:
        await session.begin()
        await seed_all_data(session)
        try:
            yield session
        finally:
            await session.rollback()

@pytest.fixture
async def plans(db_session: AsyncSession) -> Dict[str, MembershipPlan]:
    dao = MembershipPlanDao(db_session)
    return {plan.slug: plan for plan in await dao.list_plans()}

# ==============================================================================
# 2. Billing Gateway Fake
# ==============================================================================

class FakeBillingGateway(BillingGateway):
    """
    In-memory billing provider. Charge ids are sequential numeric strings
    starting at 1001. Tests flip the attributes to script provider behavior.
    """
    def __init__(self):
        self.charge_status = "active"
        self.fail_initiate = False
        self.fail_details = False
        self.initiated = []
        self.fetched = []
        self._next_id = 1000

    async def initiate_charge(self, plan: MembershipPlan, store: StoreConnection, return_url: str) -> ChargeInitiation:
        if self.fail_initiate:
            raise GatewayError("The billing provider is unreachable. Please try again later.")
        self._next_id += 1
        charge_id = str(self._next_id)
        self.initiated.append({
            "charge_id": charge_id,
            "plan_slug": plan.slug,
            "shop_domain": store.shop_domain,
            "return_url": return_url,
        })
        return ChargeInitiation(
            charge_id=charge_id,
            confirmation_url=f"https://{store.shop_domain}/admin/charges/{charge_id}/confirm_recurring_application_charge"
        )

    async def fetch_charge_details(self, charge_id: str, store: StoreConnection) -> ChargeDetails:
        self.fetched.append(charge_id)
        if self.fail_details:
            raise GatewayError("The billing provider is unreachable. Please try again later.")
        return ChargeDetails(
            status=self.charge_status,
            billing_on=datetime(2026, 11, 18),
            trial_ends_on=datetime(2026, 10, 26),
            raw={"id": charge_id, "status": self.charge_status},
        )

@pytest.fixture
def billing_gateway() -> FakeBillingGateway:
    return FakeBillingGateway()

# ==============================================================================
# 3. Context / Data Helpers
# ==============================================================================

@pytest.fixture
def make_context(db_session: AsyncSession, billing_gateway: FakeBillingGateway) -> Callable[..., AppContext]:
    """Builds an AppContext like the API dependencies do, optionally authenticated."""
    def _factory(user_id: Optional[int] = None, gateway: Optional[BillingGateway] = billing_gateway) -> AppContext:
        auth = AuthContext(user=CurrentUser(id=user_id)) if user_id is not None else None
        return AppContext(db=db_session, auth=auth, billing_gateway=gateway)
    return _factory

@pytest.fixture
def connect_store(db_session: AsyncSession):
    async def _connect(user_id: int, access_token: Optional[str] = "shpat_test_token", shop_domain: Optional[str] = None) -> StoreConnection:
        store = StoreConnection(
            user_id=user_id,
            shop_domain=shop_domain or f"merchant-{user_id}.myshopify.com",
            access_token=access_token,
            status=StoreConnectionStatus.ACTIVE,
        )
        db_session.add(store)
        await db_session.flush()
        return store
    return _connect

@pytest.fixture
def grant_plan(db_session: AsyncSession):
    """Puts a user directly on a plan with an active membership row."""
    async def _grant(user_id: int, plan: MembershipPlan, charge_id: Optional[str] = None):
        dao = UserMembershipDao(db_session)
        membership = await dao.create_membership(user_id, plan.id, MembershipStatus.ACTIVE)
        if charge_id:
            membership.external_charge_id = charge_id
            await db_session.flush()
        return membership
    return _grant

@pytest.fixture
def enable_products(db_session: AsyncSession):
    """Inserts enabled settings for products P1..Pn (one variant each) without going through the quota."""
    async def _enable(user_id: int, count: int, prefix: str = "P"):
        for i in range(1, count + 1):
            db_session.add(BargainingSetting(
                user_id=user_id,
                product_id=f"{prefix}{i}",
                variant_id="V1",
                enabled=True,
                min_price=Decimal("50.00"),
                original_price=Decimal("100.00"),
                behavior=BargainingBehavior.NORMAL,
            ))
        await db_session.flush()
    return _enable

# ==============================================================================
# 4. HTTP Client Fixtures
# ==============================================================================

@pytest.fixture
async def client(db_session: AsyncSession, billing_gateway: FakeBillingGateway) -> AsyncGenerator[AsyncClient, None]:
    """
    API client bound to the test session. Requests share the test's outer
    transaction, so their writes are visible to assertions and rolled back
    afterwards.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_billing_gateway] = lambda: billing_gateway

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()

@pytest.fixture
def auth_headers() -> Callable[[int], Dict[str, str]]:
    def _headers(user_id: int) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(subject=user_id)}"}
    return _headers

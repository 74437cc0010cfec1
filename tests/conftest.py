import os

# 설정 모듈이 import되기 전에 테스트용 환경 변수를 지정합니다.
os.environ.setdefault("PROMO_DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_ALGORITHM", "HS256")

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

from libs.common import KST_TIMEZONE

from services.promo.app.core.PromoCodeService import PromoCodeService
from services.promo.app.core.RedemptionService import RedemptionService
from services.promo.app.db.repositories.products import SQLAlchemyProductLookup
from services.promo.app.db.repositories.promo_codes import SQLAlchemyPromoCodeRepository
from services.promo.app.db.repositories.usages import SQLAlchemyUsageLedger
from services.promo.app.db.schema import create_schema, products
from services.promo.app.db.session import build_engine
from services.promo.app.db.stores.memory import InMemoryProductCatalog, InMemoryPromoCodeStore, InMemoryUsageLedger

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=KST_TIMEZONE)
PRODUCT_IDS = ("P1", "P2", "P3")


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class SlowReadLedger:
    """고객 사용 횟수를 읽은 뒤 잠시 대기하여 동시 요청들의 조회와 커밋 사이 구간이 겹치게 하는 원장 래퍼"""

    def __init__(self, ledger, delay: float = 0.05):
        self._ledger = ledger
        self.delay = delay

    async def count_for_customer(self, promo_code_id: str, customer_id: str) -> int:
        count = await self._ledger.count_for_customer(promo_code_id, customer_id)
        await asyncio.sleep(self.delay)
        return count

    def __getattr__(self, name):
        return getattr(self._ledger, name)


def make_definition(**overrides) -> dict:
    definition = {
        "code": "SAVE10",
        "description": "10% 할인",
        "discountType": "percentage",
        "discountValue": 10,
        "minimumOrderValue": 50,
        "usageLimit": 100,
        "usagePerCustomer": None,
        "startDate": NOW - timedelta(days=1),
        "endDate": NOW + timedelta(days=30),
        "isActive": True,
        "allProducts": True,
        "applicableProducts": [],
    }
    definition.update(overrides)
    return definition


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def memory_store() -> InMemoryPromoCodeStore:
    return InMemoryPromoCodeStore()


@pytest.fixture
def memory_ledger(memory_store) -> InMemoryUsageLedger:
    return InMemoryUsageLedger(memory_store)


@pytest.fixture
def product_catalog() -> InMemoryProductCatalog:
    return InMemoryProductCatalog(PRODUCT_IDS)


@pytest.fixture
def promo_code_service(memory_store, memory_ledger, product_catalog, clock) -> PromoCodeService:
    return PromoCodeService(
        promo_code_repository=memory_store,
        usage_ledger=memory_ledger,
        product_lookup=product_catalog,
        clock=clock,
    )


@pytest.fixture
def redemption_service(memory_store, memory_ledger, clock) -> RedemptionService:
    return RedemptionService(
        promo_code_repository=memory_store,
        usage_ledger=memory_ledger,
        clock=clock,
    )


@pytest.fixture
def sql_session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'promo.db'}")
    create_schema(engine)
    with engine.begin() as connection:
        connection.execute(products.insert(), [{"product_id": product_id, "name": product_id} for product_id in PRODUCT_IDS])
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def sql_repository(sql_session_factory) -> SQLAlchemyPromoCodeRepository:
    return SQLAlchemyPromoCodeRepository(session_factory=sql_session_factory)


@pytest.fixture
def sql_ledger(sql_session_factory) -> SQLAlchemyUsageLedger:
    return SQLAlchemyUsageLedger(session_factory=sql_session_factory)


@pytest.fixture
def sql_promo_code_service(sql_repository, sql_ledger, sql_session_factory, clock) -> PromoCodeService:
    return PromoCodeService(
        promo_code_repository=sql_repository,
        usage_ledger=sql_ledger,
        product_lookup=SQLAlchemyProductLookup(session_factory=sql_session_factory),
        clock=clock,
    )


@pytest.fixture
def sql_redemption_service(sql_repository, sql_ledger, clock) -> RedemptionService:
    return RedemptionService(
        promo_code_repository=sql_repository,
        usage_ledger=sql_ledger,
        clock=clock,
    )

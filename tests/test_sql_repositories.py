import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from libs.schemas import DiscountType, PromoCodeUsage

from conftest import NOW, SlowReadLedger, make_definition
from services.promo.app.core.PromoCodeErrors import (
    AlreadyRedeemedError,
    DuplicateCodeError,
    DuplicateOrderError,
    HasUsageHistoryError,
    InvalidProductsError,
    PromoCodeConflictError,
    PromoCodeIneligibleError,
    StaleRevisionError,
)
from services.promo.app.core.RedemptionService import RedemptionService
from services.promo.app.db.repositories.products import SQLAlchemyProductLookup
from services.promo.app.db.schema import promo_code_products


def create(service, **overrides):
    return asyncio.run(service.create_promo_code(make_definition(**overrides), created_by="admin-1"))


def build_usage(rule, order_id, customer_id="C1", order_value=100.0, used_at=NOW) -> PromoCodeUsage:
    return PromoCodeUsage(
        usageId=f"u-{order_id}",
        promoCodeId=rule.promoCodeId,
        customerId=customer_id,
        orderId=order_id,
        orderValue=order_value,
        discountAmount=order_value * rule.discountValue / 100,
        discountType=DiscountType.PERCENTAGE,
        discountValue=rule.discountValue,
        productIds=["P1"],
        usedAt=used_at,
    )


def test_round_trip(sql_promo_code_service, sql_repository):
    rule = create(sql_promo_code_service, allProducts=False, applicableProducts=["P3", "P1"], usagePerCustomer=2)

    stored = asyncio.run(sql_repository.find_by_code("SAVE10"))

    assert stored.promoCodeId == rule.promoCodeId
    assert stored.applicableProducts == ["P3", "P1"]
    assert stored.discountType == DiscountType.PERCENTAGE
    assert stored.discountValue == pytest.approx(10)
    assert stored.usagePerCustomer == 2
    assert stored.startDate == rule.startDate
    assert stored.endDate == rule.endDate
    assert stored.startDate.utcoffset() == timedelta(hours=9)
    assert asyncio.run(sql_repository.code_exists("SAVE10"))
    assert not asyncio.run(sql_repository.code_exists("SAVE10", exclude_id=rule.promoCodeId))


def test_unique_code_constraint(sql_promo_code_service, sql_repository):
    rule = create(sql_promo_code_service)

    clone = rule.model_copy(update={"promoCodeId": "another-id"})
    with pytest.raises(DuplicateCodeError):
        asyncio.run(sql_repository.insert(clone))


def test_unknown_products_are_rejected(sql_promo_code_service):
    with pytest.raises(InvalidProductsError):
        create(sql_promo_code_service, allProducts=False, applicableProducts=["P1", "NOPE"])


def test_product_lookup(sql_session_factory):
    lookup = SQLAlchemyProductLookup(session_factory=sql_session_factory)

    assert asyncio.run(lookup.find_missing(["P1", "X", "P2", "Y"])) == ["X", "Y"]
    assert asyncio.run(lookup.find_missing([])) == []


def test_update_with_stale_revision(sql_promo_code_service, sql_repository):
    rule = create(sql_promo_code_service)

    updated = asyncio.run(
        sql_repository.update(rule.promoCodeId, {"description": "v2"}, expected_revision=rule.revision)
    )
    assert updated.revision == rule.revision + 1

    with pytest.raises(StaleRevisionError):
        asyncio.run(sql_repository.update(rule.promoCodeId, {"description": "v3"}, expected_revision=rule.revision))
    assert asyncio.run(sql_repository.find_by_id(rule.promoCodeId)).description == "v2"


def test_update_replaces_products(sql_promo_code_service):
    rule = create(sql_promo_code_service, allProducts=False, applicableProducts=["P1"])

    updated = asyncio.run(sql_promo_code_service.update_promo_code(rule.promoCodeId, {"applicableProducts": ["P2", "P3"]}))

    assert updated.applicableProducts == ["P2", "P3"]


def test_save10_redemption(sql_promo_code_service, sql_redemption_service, sql_ledger):
    rule = create(sql_promo_code_service)

    result = asyncio.run(sql_redemption_service.redeem("SAVE10", "C1", "O1", 100, product_ids=["P1"]))

    assert result.discount_amount == pytest.approx(10)
    stored = asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 1
    (usage,), _ = asyncio.run(sql_ledger.list_for_promo_code(rule.promoCodeId, page=1, size=10))
    assert usage.discountAmount == pytest.approx(10)
    assert usage.productIds == ["P1"]
    assert usage.usedAt == NOW

    with pytest.raises(AlreadyRedeemedError):
        asyncio.run(sql_redemption_service.redeem("SAVE10", "C1", "O1", 100))


def test_duplicate_order_rolls_back_counter(sql_promo_code_service, sql_ledger):
    rule = create(sql_promo_code_service)
    asyncio.run(sql_ledger.record_usage(build_usage(rule, "O1")))

    with pytest.raises(DuplicateOrderError):
        asyncio.run(sql_ledger.record_usage(build_usage(rule, "O1").model_copy(update={"usageId": "u-other"})))

    stored = asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 1
    assert asyncio.run(sql_ledger.count_for_promo_code(rule.promoCodeId)) == 1


def test_stale_commit_writes_nothing(sql_promo_code_service, sql_ledger):
    rule = create(sql_promo_code_service)

    with pytest.raises(StaleRevisionError):
        asyncio.run(sql_ledger.record_usage(build_usage(rule, "O1"), expected_revision=rule.revision + 5))

    assert not asyncio.run(sql_ledger.exists_for_order("O1"))
    assert asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 0


def test_delete(sql_promo_code_service, sql_redemption_service, sql_session_factory):
    used = create(sql_promo_code_service)
    unused = create(sql_promo_code_service, code="UNUSED1", allProducts=False, applicableProducts=["P1"])
    asyncio.run(sql_redemption_service.redeem("SAVE10", "C1", "O1", 100))

    with pytest.raises(HasUsageHistoryError):
        asyncio.run(sql_promo_code_service.delete_promo_code(used.promoCodeId))

    asyncio.run(sql_promo_code_service.delete_promo_code(unused.promoCodeId))
    with sql_session_factory() as session:
        remaining = session.execute(
            select(func.count()).select_from(promo_code_products).where(
                promo_code_products.c.promo_code_id == unused.promoCodeId
            )
        ).scalar_one()
    assert remaining == 0


def test_statistics(sql_promo_code_service, sql_ledger):
    rule = create(sql_promo_code_service)
    asyncio.run(sql_ledger.record_usage(build_usage(rule, "O1", "C1", 100.0, NOW)))
    asyncio.run(sql_ledger.record_usage(build_usage(rule, "O2", "C1", 300.0, NOW + timedelta(hours=1))))
    asyncio.run(sql_ledger.record_usage(build_usage(rule, "O3", "C2", 200.0, NOW + timedelta(days=1))))

    stats = asyncio.run(sql_ledger.statistics(rule.promoCodeId))
    assert stats.totalUsage == 3
    assert stats.totalDiscountGiven == pytest.approx(60)
    assert stats.uniqueCustomerCount == 2
    assert stats.avgDiscountAmount == pytest.approx(20)

    windowed = asyncio.run(sql_ledger.statistics(rule.promoCodeId, end_date=NOW + timedelta(hours=2)))
    assert windowed.totalUsage == 2

    daily = asyncio.run(sql_ledger.usage_by_date(rule.promoCodeId, NOW - timedelta(days=1), NOW + timedelta(days=2)))
    assert [(day.day, day.count) for day in daily] == [(NOW.date(), 2), ((NOW + timedelta(days=1)).date(), 1)]
    assert daily[0].totalDiscount == pytest.approx(40)

    top = asyncio.run(sql_ledger.top_customers(rule.promoCodeId, limit=1))
    assert [(customer.customerId, customer.usageCount) for customer in top] == [("C1", 2)]
    assert top[0].lastUsed == NOW + timedelta(hours=1)

    items, total = asyncio.run(sql_ledger.list_for_promo_code(rule.promoCodeId, page=1, size=2))
    assert total == 3
    assert [item.orderId for item in items] == ["O3", "O2"]

    assert asyncio.run(sql_ledger.count_for_customer(rule.promoCodeId, "C1")) == 2


def concurrent_outcomes(service, attempts, customer_id=None):
    def attempt(index):
        try:
            asyncio.run(service.redeem("SAVE10", customer_id or f"C{index}", f"O{index}", 100))
            return "ok"
        except PromoCodeIneligibleError as e:
            return e.reason
        except PromoCodeConflictError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=attempts) as executor:
        return list(executor.map(attempt, range(attempts)))


def test_concurrent_redemptions_reach_limit_exactly(sql_promo_code_service, sql_repository, sql_ledger, clock):
    rule = create(sql_promo_code_service, usageLimit=5)
    service = RedemptionService(sql_repository, SlowReadLedger(sql_ledger), clock=clock)

    outcomes = concurrent_outcomes(service, 8)

    assert outcomes.count("ok") == 5
    assert outcomes.count("usage-limit-exceeded") == 3
    assert asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 5
    assert asyncio.run(sql_ledger.count_for_promo_code(rule.promoCodeId)) == 5


def test_concurrent_per_customer_cap(sql_promo_code_service, sql_repository, sql_ledger, clock):
    rule = create(sql_promo_code_service, usagePerCustomer=2)
    service = RedemptionService(sql_repository, SlowReadLedger(sql_ledger), clock=clock)

    outcomes = concurrent_outcomes(service, 8, customer_id="C1")

    assert outcomes.count("ok") == 2
    assert outcomes.count("customer-limit-exceeded") == 6
    assert asyncio.run(sql_ledger.count_for_customer(rule.promoCodeId, "C1")) == 2
    assert asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 2


def test_commit_rechecks_limits(sql_promo_code_service, sql_ledger):
    rule = create(sql_promo_code_service, usageLimit=1)
    asyncio.run(sql_ledger.record_usage(build_usage(rule, "O1", "C1"), expected_revision=rule.revision))

    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        asyncio.run(sql_ledger.record_usage(build_usage(rule, "O2", "C2"), expected_revision=rule.revision))

    assert exc_info.value.reason == "usage-limit-exceeded"
    stored = asyncio.run(sql_promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 1
    assert stored.revision == rule.revision
    assert not asyncio.run(sql_ledger.exists_for_order("O2"))

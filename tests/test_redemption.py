import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from conftest import SlowReadLedger, make_definition
from services.promo.app.core.DiscountPolicy import IneligibleReason
from services.promo.app.core.PromoCodeErrors import (
    AlreadyRedeemedError,
    PromoCodeConflictError,
    PromoCodeIneligibleError,
    PromoCodeNotFoundError,
    PromoCodeValidationError,
    StaleRevisionError,
)
from services.promo.app.core.RedemptionService import RedemptionService


def create(promo_code_service, **overrides):
    return asyncio.run(promo_code_service.create_promo_code(make_definition(**overrides), created_by="admin-1"))


def redeem(redemption_service, order_id, code="SAVE10", customer_id="C1", order_value=100, product_ids=None):
    return asyncio.run(
        redemption_service.redeem(
            code=code,
            customer_id=customer_id,
            order_id=order_id,
            order_value=order_value,
            product_ids=product_ids,
        )
    )


class FlakyLedger:
    """처음 stale_times 번은 StaleRevisionError를 던지는 원장 래퍼"""

    def __init__(self, ledger, stale_times):
        self._ledger = ledger
        self.stale_times = stale_times
        self.calls = 0

    async def record_usage(self, record, expected_revision=None):
        self.calls += 1
        if self.calls <= self.stale_times:
            raise StaleRevisionError(record.promoCodeId, expected_revision)
        return await self._ledger.record_usage(record, expected_revision=expected_revision)

    def __getattr__(self, name):
        return getattr(self._ledger, name)


def test_save10_scenario(promo_code_service, redemption_service, memory_ledger):
    rule = create(promo_code_service)

    result = redeem(redemption_service, "O1", code="save10", order_value=100)

    assert result.discount_amount == pytest.approx(10)
    assert result.usage.orderId == "O1"
    assert result.usage.discountType == rule.discountType
    assert result.promo_code.usageCount == 1

    stored = asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 1
    assert stored.revision == rule.revision
    assert asyncio.run(memory_ledger.exists_for_order("O1"))


def test_check_eligibility_has_no_side_effects(promo_code_service, redemption_service, memory_ledger):
    rule = create(promo_code_service)

    for _ in range(3):
        check = asyncio.run(redemption_service.check_eligibility("SAVE10", customer_id="C1", order_value=200))
        assert check.eligible
        assert check.discount_amount == pytest.approx(20)

    stored = asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 0
    assert asyncio.run(memory_ledger.count_for_promo_code(rule.promoCodeId)) == 0


def test_check_eligibility_reports_reason(promo_code_service, redemption_service):
    create(promo_code_service)

    check = asyncio.run(redemption_service.check_eligibility("SAVE10", order_value=10))

    assert not check.eligible
    assert check.reason == IneligibleReason.BELOW_MINIMUM_ORDER_VALUE
    assert check.discount_amount is None


def test_product_not_applicable(promo_code_service, redemption_service):
    create(promo_code_service, allProducts=False, applicableProducts=["P1", "P2"])

    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(redemption_service, "O1", product_ids=["P3"])
    assert exc_info.value.reason == "product-not-applicable"

    result = redeem(redemption_service, "O2", product_ids=["P3", "P1"])
    assert result.usage.productIds == ["P3", "P1"]


def test_exactly_once_per_order(promo_code_service, redemption_service):
    rule = create(promo_code_service)

    redeem(redemption_service, "O1")
    with pytest.raises(AlreadyRedeemedError):
        redeem(redemption_service, "O1")

    stored = asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.usageCount == 1


def test_order_cannot_be_redeemed_with_another_code(promo_code_service, redemption_service):
    create(promo_code_service)
    other = create(promo_code_service, code="FLAT5", discountType="fixed", discountValue=5)

    redeem(redemption_service, "O1")
    with pytest.raises(AlreadyRedeemedError):
        redeem(redemption_service, "O1", code="FLAT5")

    assert asyncio.run(promo_code_service.get_promo_code(other.promoCodeId)).usageCount == 0


def test_per_customer_limit(promo_code_service, redemption_service):
    create(promo_code_service, usagePerCustomer=2)

    redeem(redemption_service, "O1", customer_id="C1")
    redeem(redemption_service, "O2", customer_id="C1")
    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(redemption_service, "O3", customer_id="C1")
    assert exc_info.value.reason == "customer-limit-exceeded"

    redeem(redemption_service, "O4", customer_id="C2")


def test_usage_limit(promo_code_service, redemption_service):
    create(promo_code_service, usageLimit=1)

    redeem(redemption_service, "O1")
    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(redemption_service, "O2", customer_id="C2")
    assert exc_info.value.reason == "usage-limit-exceeded"


def test_expired_code(promo_code_service, redemption_service, clock):
    create(promo_code_service)
    clock.advance(days=31)

    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(redemption_service, "O1")
    assert exc_info.value.reason == "expired"


def test_unknown_code(redemption_service):
    with pytest.raises(PromoCodeNotFoundError):
        redeem(redemption_service, "O1", code="NOPE")


@pytest.mark.parametrize(
    "customer_id, order_id, order_value",
    [("", "O1", 100), ("C1", "  ", 100), ("C1", "O1", -1)],
)
def test_invalid_redeem_input(promo_code_service, redemption_service, customer_id, order_id, order_value):
    create(promo_code_service)

    with pytest.raises(PromoCodeValidationError):
        redeem(redemption_service, order_id, customer_id=customer_id, order_value=order_value)


def test_usage_keeps_discount_snapshot(promo_code_service, redemption_service, memory_ledger):
    rule = create(promo_code_service)
    redeem(redemption_service, "O1")

    asyncio.run(promo_code_service.update_promo_code(rule.promoCodeId, {"discountValue": 50}))

    (usage,), _ = asyncio.run(memory_ledger.list_for_promo_code(rule.promoCodeId, page=1, size=10))
    assert usage.discountValue == 10
    assert usage.discountAmount == pytest.approx(10)


def test_stale_revision_is_retried(promo_code_service, memory_store, memory_ledger, clock):
    rule = create(promo_code_service)
    ledger = FlakyLedger(memory_ledger, stale_times=2)
    service = RedemptionService(memory_store, ledger, clock=clock, max_attempts=3)

    result = redeem(service, "O1")

    assert ledger.calls == 3
    assert result.discount_amount == pytest.approx(10)
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 1


def test_conflict_after_retries_leaves_no_state(promo_code_service, memory_store, memory_ledger, clock):
    rule = create(promo_code_service)
    ledger = FlakyLedger(memory_ledger, stale_times=10)
    service = RedemptionService(memory_store, ledger, clock=clock, max_attempts=3)

    with pytest.raises(PromoCodeConflictError):
        redeem(service, "O1")

    assert ledger.calls == 3
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 0
    assert not asyncio.run(memory_ledger.exists_for_order("O1"))


def concurrent_outcomes(service, attempts, customer_id=None):
    def attempt(index):
        try:
            redeem(service, f"O{index}", customer_id=customer_id or f"C{index}")
            return "ok"
        except PromoCodeIneligibleError as e:
            return e.reason
        except PromoCodeConflictError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=attempts) as executor:
        return list(executor.map(attempt, range(attempts)))


def test_concurrent_redemptions_reach_limit_exactly(promo_code_service, memory_store, memory_ledger, clock):
    rule = create(promo_code_service, usageLimit=10)
    service = RedemptionService(memory_store, SlowReadLedger(memory_ledger), clock=clock)

    outcomes = concurrent_outcomes(service, 12)

    assert outcomes.count("ok") == 10
    assert outcomes.count("usage-limit-exceeded") == 2
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 10
    assert asyncio.run(memory_ledger.count_for_promo_code(rule.promoCodeId)) == 10


def test_concurrent_same_order_succeeds_once(promo_code_service, redemption_service, memory_ledger):
    rule = create(promo_code_service)

    def attempt(_):
        try:
            redeem(redemption_service, "O1")
            return "ok"
        except AlreadyRedeemedError:
            return "already"
        except PromoCodeConflictError:
            return "conflict"

    with ThreadPoolExecutor(max_workers=8) as executor:
        outcomes = list(executor.map(attempt, range(16)))

    assert outcomes.count("ok") == 1
    assert asyncio.run(memory_ledger.count_for_promo_code(rule.promoCodeId)) == 1
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 1


def test_sequential_redemptions_reach_limit_exactly(promo_code_service, redemption_service):
    rule = create(promo_code_service, usageLimit=3, endDate=make_definition()["startDate"] + timedelta(days=2))

    for index in range(3):
        redeem(redemption_service, f"O{index}", customer_id=f"C{index}")

    with pytest.raises(PromoCodeIneligibleError):
        redeem(redemption_service, "O9", customer_id="C9")
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 3


def test_save10_with_limit_two(promo_code_service, redemption_service):
    create(promo_code_service, usageLimit=2)

    assert redeem(redemption_service, "O1", customer_id="C1").discount_amount == pytest.approx(10)
    assert redeem(redemption_service, "O2", customer_id="C2").discount_amount == pytest.approx(10)
    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(redemption_service, "O3", customer_id="C3")
    assert exc_info.value.reason == "usage-limit-exceeded"


def test_concurrent_per_customer_cap(promo_code_service, memory_store, memory_ledger, clock):
    rule = create(promo_code_service, usagePerCustomer=2)
    service = RedemptionService(memory_store, SlowReadLedger(memory_ledger), clock=clock)

    outcomes = concurrent_outcomes(service, 12, customer_id="C1")

    assert outcomes.count("ok") == 2
    assert outcomes.count("customer-limit-exceeded") == 10
    assert asyncio.run(memory_ledger.count_for_customer(rule.promoCodeId, "C1")) == 2
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 2


def test_redemption_does_not_change_revision(promo_code_service, redemption_service):
    rule = create(promo_code_service)

    result = redeem(redemption_service, "O1")

    stored = asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId))
    assert stored.revision == rule.revision
    assert result.promo_code.revision == rule.revision
    assert result.promo_code.usageCount == 1


class DeactivatingLedger:
    """첫 고객 사용 횟수 조회 직후 규칙을 비활성화하는 원장 래퍼"""

    def __init__(self, ledger, promo_code_service, promo_code_id):
        self._ledger = ledger
        self._promo_code_service = promo_code_service
        self._promo_code_id = promo_code_id
        self.deactivated = False

    async def count_for_customer(self, promo_code_id, customer_id):
        count = await self._ledger.count_for_customer(promo_code_id, customer_id)
        if not self.deactivated:
            self.deactivated = True
            await self._promo_code_service.deactivate_promo_code(self._promo_code_id)
        return count

    def __getattr__(self, name):
        return getattr(self._ledger, name)


def test_rule_edit_during_redemption_is_re_evaluated(promo_code_service, memory_store, memory_ledger, clock):
    rule = create(promo_code_service)
    ledger = DeactivatingLedger(memory_ledger, promo_code_service, rule.promoCodeId)
    service = RedemptionService(memory_store, ledger, clock=clock)

    with pytest.raises(PromoCodeIneligibleError) as exc_info:
        redeem(service, "O1")

    assert exc_info.value.reason == "inactive"
    assert not asyncio.run(memory_ledger.exists_for_order("O1"))
    assert asyncio.run(promo_code_service.get_promo_code(rule.promoCodeId)).usageCount == 0

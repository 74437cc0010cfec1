"""
프로모션 코드 사용 처리 서비스 (Redemption Coordinator)

규칙의 usageCount가 변경되는 유일한 경로입니다.
조회/판정(읽기) 후 원장 커밋(쓰기)에서 사용 한도와 고객당 한도를 규칙을 잠근 채 다시 확인합니다.
커밋은 읽은 뒤 규칙이 수정된 경우(revision 변경)에만 stale이 되며, 그때는 처음부터 다시 판정합니다.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable
from uuid import uuid4

from libs.common import now_kst
from libs.schemas import PromoCode, PromoCodeUsage

from services.promo.app.core.DiscountPolicy import (
    EligibilityRequest,
    IneligibleReason,
    calculate_discount,
    evaluate,
    normalize_code,
    unique_ids,
)
from services.promo.app.core.PromoCodeErrors import (
    AlreadyRedeemedError,
    DuplicateOrderError,
    FieldError,
    PromoCodeConflictError,
    PromoCodeIneligibleError,
    PromoCodeNotFoundError,
    PromoCodeValidationError,
    StaleRevisionError,
)
from services.promo.app.core.PromoCodeService import PromoCodeRepositoryPort
from services.promo.app.core.UsageLedger import UsageLedgerPort

logger = logging.getLogger(__name__)


@dataclass
class EligibilityCheck:
    eligible: bool
    promo_code: PromoCode
    reason: IneligibleReason | None = None
    message: str | None = None
    discount_amount: float | None = None


@dataclass
class RedemptionResult:
    discount_amount: float
    usage: PromoCodeUsage
    promo_code: PromoCode


class RedemptionService:
    """프로모션 코드 검증/적용 서비스"""

    def __init__(
        self,
        promo_code_repository: PromoCodeRepositoryPort,
        usage_ledger: UsageLedgerPort,
        clock: Callable[[], datetime] = now_kst,
        max_attempts: int = 3,
    ):
        self.promo_code_repository = promo_code_repository
        self.usage_ledger = usage_ledger
        self._clock = clock
        self.max_attempts = max_attempts

    async def check_eligibility(
        self,
        code: str,
        customer_id: str | None = None,
        order_value: float = 0,
        product_ids: list[str] | None = None,
    ) -> EligibilityCheck:
        """
        적용 가능 여부만 확인합니다 (dry-run). 원장과 usageCount는 변경하지 않습니다.

        Raises:
            PromoCodeNotFoundError: 코드가 존재하지 않는 경우
        """
        promo_code = await self._find_by_code(code)

        customer_usage_count = 0
        if customer_id and promo_code.usagePerCustomer is not None:
            customer_usage_count = await self.usage_ledger.count_for_customer(promo_code.promoCodeId, customer_id)

        result = evaluate(
            promo_code,
            EligibilityRequest(
                order_value=order_value,
                customer_id=customer_id,
                product_ids=unique_ids(product_ids),
            ),
            now=self._clock(),
            customer_usage_count=customer_usage_count,
        )
        if not result.eligible:
            return EligibilityCheck(False, promo_code, result.reason, result.message)

        return EligibilityCheck(
            True,
            promo_code,
            discount_amount=calculate_discount(promo_code, order_value),
        )

    async def redeem(
        self,
        code: str,
        customer_id: str,
        order_id: str,
        order_value: float,
        product_ids: list[str] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> RedemptionResult:
        """
        프로모션 코드를 주문에 적용하고 사용 이력을 기록합니다.

        Raises:
            PromoCodeValidationError: 고객/주문 ID가 비어 있거나 주문 금액이 음수인 경우
            PromoCodeNotFoundError: 코드가 존재하지 않는 경우
            AlreadyRedeemedError: 이 주문에 이미 코드가 적용된 경우
            PromoCodeIneligibleError: 사용 조건을 만족하지 못한 경우 (커밋 시점 한도 재확인 포함)
            PromoCodeConflictError: 규칙 수정과 겹쳐 재시도 횟수를 모두 소진한 경우
        """
        customer_id = (customer_id or "").strip()
        order_id = (order_id or "").strip()
        self._validate_redeem_input(customer_id, order_id, order_value)
        product_ids = unique_ids(product_ids)

        for attempt in range(1, self.max_attempts + 1):
            promo_code = await self._find_by_code(code)

            # 사전 확인일 뿐이며, 최종 판단은 원장의 주문 ID 유일성 제약입니다.
            if await self.usage_ledger.exists_for_order(order_id):
                raise AlreadyRedeemedError(order_id)

            customer_usage_count = await self.usage_ledger.count_for_customer(promo_code.promoCodeId, customer_id)

            now = self._clock()
            result = evaluate(
                promo_code,
                EligibilityRequest(order_value=order_value, customer_id=customer_id, product_ids=product_ids),
                now=now,
                customer_usage_count=customer_usage_count,
            )
            if not result.eligible:
                raise PromoCodeIneligibleError(result.reason.value, result.message)

            usage = PromoCodeUsage(
                usageId=uuid4().hex,
                promoCodeId=promo_code.promoCodeId,
                customerId=customer_id,
                orderId=order_id,
                orderValue=order_value,
                discountAmount=calculate_discount(promo_code, order_value),
                discountType=promo_code.discountType,
                discountValue=promo_code.discountValue,
                productIds=product_ids,
                usedAt=now,
                ipAddress=ip_address,
                userAgent=user_agent,
            )

            try:
                recorded = await self.usage_ledger.record_usage(usage, expected_revision=promo_code.revision)
            except StaleRevisionError:
                logger.warning(
                    "Promo code %s changed during redemption of order %s, retrying (attempt %d/%d)",
                    promo_code.code,
                    order_id,
                    attempt,
                    self.max_attempts,
                )
                continue
            except DuplicateOrderError as exc:
                raise AlreadyRedeemedError(order_id) from exc

            promo_code = promo_code.model_copy(update={"usageCount": promo_code.usageCount + 1})
            logger.info(
                "Promo code redeemed: %s order=%s customer=%s discount=%.2f",
                promo_code.code,
                order_id,
                customer_id,
                recorded.discountAmount,
            )
            return RedemptionResult(
                discount_amount=recorded.discountAmount,
                usage=recorded,
                promo_code=promo_code,
            )

        logger.error("Promo code %s redemption for order %s gave up after %d attempts", code, order_id, self.max_attempts)
        raise PromoCodeConflictError(normalize_code(code), self.max_attempts)

    async def _find_by_code(self, code: str) -> PromoCode:
        normalized = normalize_code(code)
        promo_code = await self.promo_code_repository.find_by_code(normalized)
        if promo_code is None:
            raise PromoCodeNotFoundError(normalized)
        return promo_code

    @staticmethod
    def _validate_redeem_input(customer_id: str, order_id: str, order_value: float) -> None:
        errors: list[FieldError] = []
        if not customer_id:
            errors.append(FieldError("customerId", "고객 ID는 필수입니다."))
        if not order_id:
            errors.append(FieldError("orderId", "주문 ID는 필수입니다."))
        if order_value is None or order_value < 0:
            errors.append(FieldError("orderValue", "주문 금액은 음수일 수 없습니다."))
        if errors:
            raise PromoCodeValidationError(errors[0].message, errors)

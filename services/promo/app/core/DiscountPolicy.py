"""
할인 규칙의 순수 함수 모음

- 규칙 정의 검증 (생성/수정/복제 시 동일하게 사용)
- 사용 가능 여부 판정 (evaluate), 커밋 직전 한도 재확인 (check_redemption_limits)
- 할인 금액 계산 (calculate_discount)
- 사용 이력 검증 (verify_usage_record)

I/O가 없으므로 dry-run 검증에서 몇 번을 호출해도 상태가 바뀌지 않습니다.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable

from libs.schemas import DiscountType, PromoCode, PromoCodeUsage

from services.promo.app.core.PromoCodeErrors import FieldError, PromoCodeValidationError

CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")
CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 20
DESCRIPTION_MAX_LENGTH = 500
DISCOUNT_TOLERANCE = 0.01


class IneligibleReason(str, Enum):
    INACTIVE = "inactive"
    NOT_YET_VALID = "not-yet-valid"
    EXPIRED = "expired"
    USAGE_LIMIT_EXCEEDED = "usage-limit-exceeded"
    BELOW_MINIMUM_ORDER_VALUE = "below-minimum-order-value"
    PRODUCT_NOT_APPLICABLE = "product-not-applicable"
    CUSTOMER_LIMIT_EXCEEDED = "customer-limit-exceeded"


@dataclass
class EligibilityRequest:
    order_value: float
    customer_id: str | None = None
    product_ids: list[str] = field(default_factory=list)


@dataclass
class EligibilityResult:
    eligible: bool
    reason: IneligibleReason | None = None
    message: str | None = None

    @classmethod
    def ok(cls) -> "EligibilityResult":
        return cls(eligible=True)

    @classmethod
    def reject(cls, reason: IneligibleReason, message: str) -> "EligibilityResult":
        return cls(eligible=False, reason=reason, message=message)


@dataclass
class RuleValidationResult:
    errors: list[FieldError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        if self.errors:
            raise PromoCodeValidationError(self.errors[0].message, list(self.errors))


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def unique_ids(ids: Iterable[str] | None) -> list[str]:
    """순서를 유지하면서 중복/빈 값을 제거합니다."""
    seen: dict[str, None] = {}
    for value in ids or []:
        value = str(value).strip()
        if value:
            seen.setdefault(value, None)
    return list(seen)


def validate_promo_code(rule: PromoCode) -> RuleValidationResult:
    """
    규칙 정의의 불변식을 순서대로 검사합니다.

    생성, 수정(병합된 최종 상태), 복제 경로에서 동일하게 호출되며
    위반 사항을 발견 순서대로 모두 담아 반환합니다.
    """
    errors: list[FieldError] = []

    code = rule.code
    if not code:
        errors.append(FieldError("code", "프로모션 코드는 필수입니다."))
    elif not CODE_MIN_LENGTH <= len(code) <= CODE_MAX_LENGTH:
        errors.append(FieldError("code", f"프로모션 코드는 {CODE_MIN_LENGTH}~{CODE_MAX_LENGTH}자여야 합니다."))
    elif not CODE_PATTERN.match(code):
        errors.append(FieldError("code", "프로모션 코드는 영문 대문자와 숫자만 사용할 수 있습니다."))

    if rule.description is not None and len(rule.description) > DESCRIPTION_MAX_LENGTH:
        errors.append(FieldError("description", f"설명은 {DESCRIPTION_MAX_LENGTH}자를 넘을 수 없습니다."))

    if rule.discountValue <= 0:
        errors.append(FieldError("discountValue", "할인 값은 0보다 커야 합니다."))
    elif rule.discountType == DiscountType.PERCENTAGE and rule.discountValue > 100:
        errors.append(FieldError("discountValue", "퍼센트 할인은 100%를 넘을 수 없습니다."))

    if rule.minimumOrderValue < 0:
        errors.append(FieldError("minimumOrderValue", "최소 주문 금액은 음수일 수 없습니다."))

    if rule.usageLimit is not None and rule.usageLimit < 1:
        errors.append(FieldError("usageLimit", "전체 사용 한도는 1 이상이어야 합니다."))

    if rule.usagePerCustomer is not None:
        if rule.usagePerCustomer < 1:
            errors.append(FieldError("usagePerCustomer", "고객당 사용 한도는 1 이상이어야 합니다."))
        elif rule.usageLimit is not None and rule.usagePerCustomer > rule.usageLimit:
            errors.append(FieldError("usagePerCustomer", "고객당 사용 한도는 전체 사용 한도를 넘을 수 없습니다."))

    if rule.startDate >= rule.endDate:
        errors.append(FieldError("endDate", "종료 일시는 시작 일시 이후여야 합니다."))

    if rule.allProducts and rule.applicableProducts:
        errors.append(FieldError("applicableProducts", "전체 상품 적용과 특정 상품 지정을 동시에 할 수 없습니다."))
    elif not rule.allProducts and not rule.applicableProducts:
        errors.append(FieldError("applicableProducts", "전체 상품에 적용하거나 적용 상품을 지정해야 합니다."))

    return RuleValidationResult(errors)


def calculate_discount(rule: PromoCode | PromoCodeUsage, order_value: float) -> float:
    """
    주문 금액에 대한 할인 금액을 계산합니다.
    정액 할인은 주문 금액을 넘지 않습니다. 퍼센트 상한(100%)은 규칙 생성 시 검증합니다.
    """
    if order_value <= 0:
        return 0.0
    if rule.discountType == DiscountType.PERCENTAGE:
        return order_value * rule.discountValue / 100
    return min(rule.discountValue, order_value)


def evaluate(
    rule: PromoCode,
    request: EligibilityRequest,
    now: datetime,
    customer_usage_count: int = 0,
) -> EligibilityResult:
    """
    규칙과 요청을 현재 시각 기준으로 검사합니다.
    검사 순서가 고정되어 있으며 처음 실패한 사유를 반환합니다.
    """
    if not rule.isActive:
        return EligibilityResult.reject(IneligibleReason.INACTIVE, "비활성화된 프로모션 코드입니다.")

    if now < rule.startDate:
        return EligibilityResult.reject(IneligibleReason.NOT_YET_VALID, "아직 사용 기간이 시작되지 않았습니다.")
    if now > rule.endDate:
        return EligibilityResult.reject(IneligibleReason.EXPIRED, "사용 기간이 만료된 프로모션 코드입니다.")

    if _usage_limit_reached(rule):
        return _usage_limit_rejection()

    if request.order_value < rule.minimumOrderValue:
        return EligibilityResult.reject(
            IneligibleReason.BELOW_MINIMUM_ORDER_VALUE,
            f"최소 주문 금액 {rule.minimumOrderValue:g} 이상이어야 합니다.",
        )

    if not rule.allProducts and request.product_ids:
        applicable = set(rule.applicableProducts)
        if not any(product_id in applicable for product_id in request.product_ids):
            return EligibilityResult.reject(
                IneligibleReason.PRODUCT_NOT_APPLICABLE,
                "선택한 상품에는 적용할 수 없는 프로모션 코드입니다.",
            )

    if _customer_limit_reached(rule, request.customer_id, customer_usage_count):
        return _customer_limit_rejection()

    return EligibilityResult.ok()


def check_redemption_limits(
    rule: PromoCode,
    customer_id: str | None,
    customer_usage_count: int,
) -> EligibilityResult:
    """
    원장 커밋 직전의 한도 재확인 (전체 사용 한도, 고객당 사용 한도).
    원장이 규칙을 잠근 상태에서, 커밋 전 usageCount와 최신 고객 사용 횟수로 호출합니다.
    """
    if _usage_limit_reached(rule):
        return _usage_limit_rejection()
    if _customer_limit_reached(rule, customer_id, customer_usage_count):
        return _customer_limit_rejection()
    return EligibilityResult.ok()


def _usage_limit_rejection() -> EligibilityResult:
    return EligibilityResult.reject(IneligibleReason.USAGE_LIMIT_EXCEEDED, "프로모션 코드 사용 한도를 초과했습니다.")


def _customer_limit_rejection() -> EligibilityResult:
    return EligibilityResult.reject(IneligibleReason.CUSTOMER_LIMIT_EXCEEDED, "고객당 사용 한도를 초과했습니다.")


def _usage_limit_reached(rule: PromoCode) -> bool:
    return rule.usageLimit is not None and rule.usageCount >= rule.usageLimit


def _customer_limit_reached(rule: PromoCode, customer_id: str | None, customer_usage_count: int) -> bool:
    return rule.usagePerCustomer is not None and bool(customer_id) and customer_usage_count >= rule.usagePerCustomer


def verify_usage_record(record: PromoCodeUsage) -> None:
    """
    원장에 기록하기 전에 사용 이력의 할인 금액이 스냅샷 기준 계산값과 일치하는지 확인합니다.
    """
    if record.orderValue < 0:
        raise PromoCodeValidationError(
            "주문 금액은 음수일 수 없습니다.",
            [FieldError("orderValue", "주문 금액은 음수일 수 없습니다.")],
        )
    expected = calculate_discount(record, record.orderValue)
    if abs(record.discountAmount - expected) > DISCOUNT_TOLERANCE:
        raise PromoCodeValidationError(
            "할인 금액이 할인 정책 계산값과 일치하지 않습니다.",
            [FieldError("discountAmount", f"expected {expected:.2f}, got {record.discountAmount:.2f}")],
        )
    if record.discountAmount > record.orderValue:
        raise PromoCodeValidationError(
            "할인 금액은 주문 금액을 넘을 수 없습니다.",
            [FieldError("discountAmount", "할인 금액은 주문 금액을 넘을 수 없습니다.")],
        )


# 저장하지 않고 필요할 때 계산하는 파생 값들

def remaining_usage(rule: PromoCode) -> int | None:
    if rule.usageLimit is None:
        return None
    return max(0, rule.usageLimit - rule.usageCount)


def is_expired(rule: PromoCode, now: datetime) -> bool:
    return now > rule.endDate


def is_currently_valid(rule: PromoCode, now: datetime) -> bool:
    return rule.isActive and rule.startDate <= now <= rule.endDate

from fastapi import APIRouter, Depends, Request

from services.promo.app.api.v1.errors import to_http_exception
from services.promo.app.core.PromoCodeErrors import PromoCodeError, PromoCodeNotFoundError
from services.promo.app.core.RedemptionService import RedemptionService
from services.promo.app.dependencies import (
    apply_rate_limit,
    get_client_ip,
    get_redemption_service,
    validate_rate_limit,
)
from services.promo.app.schemas.request import PromoCodeApplySchema, PromoCodeValidateSchema
from services.promo.app.schemas.response import (
    ApplyResponse,
    EligibilityResponse,
    PromoCodeSummary,
    UsageRecordResponse,
)

# 프로모션 코드 검증/적용 라우터 (주문 서비스에서 호출)
router = APIRouter(prefix="/promo-codes", tags=["Promo Code Redemption"])


@router.post("/validate", response_model=EligibilityResponse, dependencies=[Depends(validate_rate_limit)])
async def validate_promo_code(
    body: PromoCodeValidateSchema,
    redemption_service: RedemptionService = Depends(get_redemption_service),
):
    """
    프로모션 코드를 주문에 적용할 수 있는지 확인합니다. 사용 이력은 기록하지 않습니다.

    **Response:**
    - HTTP 200 OK: `eligible`이 false면 `reason`에 사유가 담깁니다
      (not-found, inactive, not-yet-valid, expired, usage-limit-exceeded,
      below-minimum-order-value, product-not-applicable, customer-limit-exceeded)
    - HTTP 429 Too Many Requests: 요청 제한 초과 (ERR-RATE-LIMIT)
    """
    try:
        check = await redemption_service.check_eligibility(
            code=body.code,
            customer_id=body.customerId,
            order_value=body.orderValue,
            product_ids=body.productIds,
        )
    except PromoCodeNotFoundError as e:
        return EligibilityResponse(eligible=False, reason="not-found", message=e.message)
    except PromoCodeError as e:
        raise to_http_exception(e) from e

    summary = PromoCodeSummary.model_validate(check.promo_code, from_attributes=True)
    if not check.eligible:
        return EligibilityResponse(
            eligible=False,
            reason=check.reason.value,
            message=check.message,
            promoCode=summary,
        )

    return EligibilityResponse(
        eligible=True,
        discountAmount=check.discount_amount,
        finalAmount=body.orderValue - check.discount_amount,
        promoCode=summary,
    )


@router.post("/apply", response_model=ApplyResponse, dependencies=[Depends(apply_rate_limit)])
async def apply_promo_code(
    body: PromoCodeApplySchema,
    request: Request,
    redemption_service: RedemptionService = Depends(get_redemption_service),
):
    """
    프로모션 코드를 주문에 적용하고 사용 이력을 기록합니다. 주문당 한 번만 적용됩니다.

    **Response:**
    - HTTP 200 OK: 할인 금액과 기록된 사용 이력
    - HTTP 400 Bad Request: 요청 값 오류 (ERR-IVD-VALUE)
    - HTTP 404 Not Found: 프로모션 코드 없음 (ERR-NOT-FOUND)
    - HTTP 409 Conflict: 동시 요청 충돌, 잠시 후 재시도 (ERR-CONFLICT)
    - HTTP 422 Unprocessable Entity: 사용 조건 불충족 (ERR-INELIGIBLE, `reason` 포함),
      이미 코드가 적용된 주문 (ERR-ALREADY-USED)
    - HTTP 429 Too Many Requests: 요청 제한 초과 (ERR-RATE-LIMIT)
    """
    try:
        result = await redemption_service.redeem(
            code=body.code,
            customer_id=body.customerId,
            order_id=body.orderId,
            order_value=body.orderValue,
            product_ids=body.productIds,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except PromoCodeError as e:
        raise to_http_exception(e) from e

    return ApplyResponse(
        discountAmount=result.discount_amount,
        finalAmount=body.orderValue - result.discount_amount,
        promoCode=PromoCodeSummary.model_validate(result.promo_code, from_attributes=True),
        usage=UsageRecordResponse.model_validate(result.usage, from_attributes=True),
    )

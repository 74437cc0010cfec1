from pydantic import BaseModel, Field

from services.promo.app.schemas.response.PromoCodeResponse import PromoCodeSummary


class EligibilityResponse(BaseModel):
    """프로모션 코드 적용 가능 여부 응답"""
    eligible: bool = Field(..., description="적용 가능 여부")
    reason: str | None = Field(None, description="불가 사유 (inactive, expired, not-found, ...)")
    message: str | None = Field(None, description="불가 사유 메시지")
    discountAmount: float | None = Field(None, description="예상 할인 금액")
    finalAmount: float | None = Field(None, description="할인 적용 후 금액")
    promoCode: PromoCodeSummary | None = Field(None, description="프로모션 코드 요약")

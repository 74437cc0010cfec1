from pydantic import BaseModel, Field

from services.promo.app.schemas.response.PromoCodeResponse import PromoCodeSummary
from services.promo.app.schemas.response.UsageRecordResponse import UsageRecordResponse


class ApplyResponse(BaseModel):
    """프로모션 코드 적용 결과 응답"""
    discountAmount: float = Field(..., description="할인 금액")
    finalAmount: float = Field(..., description="할인 적용 후 금액")
    promoCode: PromoCodeSummary = Field(..., description="적용된 프로모션 코드 요약")
    usage: UsageRecordResponse = Field(..., description="기록된 사용 이력")

from datetime import datetime

from pydantic import BaseModel, Field

from libs.schemas import DiscountType, PromoCode

from services.promo.app.core.DiscountPolicy import is_currently_valid, is_expired, remaining_usage


class PromoCodeSummary(BaseModel):
    """검증/적용 응답에 포함되는 프로모션 코드 요약"""
    promoCodeId: str = Field(..., description="프로모션 코드 고유 식별자")
    code: str = Field(..., description="프로모션 코드")
    description: str | None = Field(None, description="설명")
    discountType: DiscountType = Field(..., description="할인 유형")
    discountValue: float = Field(..., description="할인 값")

    class Config:
        from_attributes = True


class PromoCodeResponse(BaseModel):
    """프로모션 코드 상세 응답"""
    promoCodeId: str = Field(..., description="프로모션 코드 고유 식별자")
    code: str = Field(..., description="프로모션 코드")
    description: str | None = Field(None, description="설명")
    discountType: DiscountType = Field(..., description="할인 유형")
    discountValue: float = Field(..., description="할인 값")
    minimumOrderValue: float = Field(..., description="최소 주문 금액")
    usageLimit: int | None = Field(None, description="전체 사용 한도")
    usagePerCustomer: int | None = Field(None, description="고객당 사용 한도")
    usageCount: int = Field(..., description="누적 사용 횟수")
    startDate: datetime = Field(..., description="사용 시작 일시")
    endDate: datetime = Field(..., description="사용 종료 일시")
    isActive: bool = Field(..., description="활성화 여부")
    allProducts: bool = Field(..., description="전체 상품 적용 여부")
    applicableProducts: list[str] = Field(default_factory=list, description="적용 대상 상품 ID 목록")
    createdBy: str = Field(..., description="생성한 관리자")
    createdAt: datetime = Field(..., description="생성 일시")
    updatedAt: datetime = Field(..., description="수정 일시")

    # 저장하지 않는 파생 값
    remainingUsage: int | None = Field(None, description="남은 사용 횟수 (무제한이면 null)")
    isExpired: bool = Field(..., description="만료 여부")
    isCurrentlyValid: bool = Field(..., description="현재 사용 가능 기간/상태 여부")

    class Config:
        from_attributes = True

    @classmethod
    def from_promo_code(cls, promo_code: PromoCode, now: datetime) -> "PromoCodeResponse":
        return cls(
            **promo_code.model_dump(exclude={"revision"}),
            remainingUsage=remaining_usage(promo_code),
            isExpired=is_expired(promo_code, now),
            isCurrentlyValid=is_currently_valid(promo_code, now),
        )

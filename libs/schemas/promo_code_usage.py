from datetime import datetime

from pydantic import BaseModel, Field

from libs.schemas.promo_code import DiscountType


class PromoCodeUsage(BaseModel):
    """
    프로모션 코드 사용 이력 엔티티.
    한 번 기록되면 변경되지 않으며, 주문 ID는 시스템 전체에서 유일합니다.
    """

    usageId: str = Field(..., description="사용 이력 식별자")
    promoCodeId: str = Field(..., description="연결된 프로모션 코드 ID")
    customerId: str = Field(..., description="고객 식별자")
    orderId: str = Field(..., description="주문 식별자")

    orderValue: float = Field(..., description="주문 금액")
    discountAmount: float = Field(..., description="할인 금액")

    # 사용 시점의 할인 정책 스냅샷
    discountType: DiscountType = Field(..., description="사용 시점 할인 유형")
    discountValue: float = Field(..., description="사용 시점 할인 값")

    productIds: list[str] = Field(default_factory=list, description="할인이 적용된 상품 ID 목록")
    usedAt: datetime = Field(..., description="사용 일시")

    ipAddress: str | None = Field(None, description="요청 IP")
    userAgent: str | None = Field(None, description="요청 User-Agent")

    class Config:
        from_attributes = True

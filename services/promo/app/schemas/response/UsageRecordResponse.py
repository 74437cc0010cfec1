from datetime import datetime

from pydantic import BaseModel, Field

from libs.schemas import DiscountType


class UsageRecordResponse(BaseModel):
    """사용 이력 응답"""
    usageId: str = Field(..., description="사용 이력 식별자")
    promoCodeId: str = Field(..., description="프로모션 코드 ID")
    customerId: str = Field(..., description="고객 식별자")
    orderId: str = Field(..., description="주문 식별자")
    orderValue: float = Field(..., description="주문 금액")
    discountAmount: float = Field(..., description="할인 금액")
    discountType: DiscountType = Field(..., description="사용 시점 할인 유형")
    discountValue: float = Field(..., description="사용 시점 할인 값")
    productIds: list[str] = Field(default_factory=list, description="상품 ID 목록")
    usedAt: datetime = Field(..., description="사용 일시")

    class Config:
        from_attributes = True

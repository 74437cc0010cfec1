from datetime import datetime

from pydantic import BaseModel, Field

from libs.schemas import DiscountType


class PromoCodeCreateSchema(BaseModel):
    """프로모션 코드 생성 요청 스키마"""
    code: str = Field(..., description="프로모션 코드 (3~20자, 영문 대문자/숫자)")
    description: str | None = Field(None, description="설명 (최대 500자)")
    discountType: DiscountType = Field(..., description="할인 유형 (percentage/fixed)")
    discountValue: float = Field(..., description="할인 값")
    minimumOrderValue: float = Field(0, description="최소 주문 금액")
    usageLimit: int | None = Field(None, description="전체 사용 한도")
    usagePerCustomer: int | None = Field(None, description="고객당 사용 한도")
    startDate: datetime = Field(..., description="사용 시작 일시")
    endDate: datetime = Field(..., description="사용 종료 일시")
    isActive: bool = Field(True, description="활성화 여부")
    allProducts: bool = Field(False, description="전체 상품 적용 여부")
    applicableProducts: list[str] = Field(default_factory=list, description="적용 대상 상품 ID 목록")

    class Config:
        from_attributes = True

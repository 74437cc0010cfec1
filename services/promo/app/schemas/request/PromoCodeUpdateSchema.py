from datetime import datetime

from pydantic import BaseModel, Field

from libs.schemas import DiscountType


class PromoCodeUpdateSchema(BaseModel):
    """
    프로모션 코드 수정 요청 스키마
    전달한 필드만 변경합니다. 사용 횟수는 변경할 수 없습니다.
    """
    code: str | None = Field(None, description="프로모션 코드")
    description: str | None = Field(None, description="설명")
    discountType: DiscountType | None = Field(None, description="할인 유형")
    discountValue: float | None = Field(None, description="할인 값")
    minimumOrderValue: float | None = Field(None, description="최소 주문 금액")
    usageLimit: int | None = Field(None, description="전체 사용 한도")
    usagePerCustomer: int | None = Field(None, description="고객당 사용 한도")
    startDate: datetime | None = Field(None, description="사용 시작 일시")
    endDate: datetime | None = Field(None, description="사용 종료 일시")
    isActive: bool | None = Field(None, description="활성화 여부")
    allProducts: bool | None = Field(None, description="전체 상품 적용 여부")
    applicableProducts: list[str] | None = Field(None, description="적용 대상 상품 ID 목록")

    class Config:
        from_attributes = True

from pydantic import BaseModel, Field


class PromoCodeValidateSchema(BaseModel):
    """프로모션 코드 적용 가능 여부 확인 요청 스키마 (기록하지 않음)"""
    code: str = Field(..., min_length=1, description="프로모션 코드")
    orderValue: float = Field(..., ge=0, description="주문 금액")
    customerId: str | None = Field(None, description="고객 식별자 (고객당 한도 확인용)")
    productIds: list[str] = Field(default_factory=list, description="주문 상품 ID 목록")

    class Config:
        from_attributes = True

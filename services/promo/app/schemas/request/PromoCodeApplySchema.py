from pydantic import BaseModel, Field


class PromoCodeApplySchema(BaseModel):
    """프로모션 코드 적용 요청 스키마"""
    code: str = Field(..., min_length=1, description="프로모션 코드")
    customerId: str = Field(..., min_length=1, description="고객 식별자")
    orderId: str = Field(..., min_length=1, description="주문 식별자 (주문당 1회 적용)")
    orderValue: float = Field(..., ge=0, description="주문 금액")
    productIds: list[str] = Field(default_factory=list, description="주문 상품 ID 목록")

    class Config:
        from_attributes = True

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class PromoCode(BaseModel):
    """
    프로모션 코드(할인 규칙) 엔티티.

    usageCount는 사용 원장(ledger)의 원자적 커밋에서만 증가하며,
    revision은 규칙 수정마다 증가하는 낙관적 동시성 토큰입니다 (사용 커밋은 증가시키지 않음).
    """

    promoCodeId: str = Field(..., description="프로모션 코드 고유 식별자")
    code: str = Field(..., description="프로모션 코드 문자열 (대문자/숫자)")
    description: str | None = Field(None, description="설명")

    discountType: DiscountType = Field(..., description="할인 유형 (percentage/fixed)")
    discountValue: float = Field(..., description="할인 값 (퍼센트 또는 금액)")
    minimumOrderValue: float = Field(0, description="최소 주문 금액")

    usageLimit: int | None = Field(None, description="전체 사용 한도 (None이면 무제한)")
    usagePerCustomer: int | None = Field(None, description="고객당 사용 한도")
    usageCount: int = Field(0, description="누적 사용 횟수")
    revision: int = Field(0, description="낙관적 동시성 제어용 리비전")

    startDate: datetime = Field(..., description="사용 시작 일시")
    endDate: datetime = Field(..., description="사용 종료 일시")
    isActive: bool = Field(True, description="활성화 여부")

    allProducts: bool = Field(False, description="전체 상품 적용 여부")
    applicableProducts: list[str] = Field(
        default_factory=list,
        description="적용 대상 상품 ID 목록 (allProducts가 False일 때만)",
    )

    createdBy: str = Field(..., description="생성한 관리자 식별자")
    createdAt: datetime = Field(..., description="생성 일시")
    updatedAt: datetime = Field(..., description="수정 일시")

    class Config:
        from_attributes = True

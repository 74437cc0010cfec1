from datetime import date, datetime

from pydantic import BaseModel, Field


class UsageStatistics(BaseModel):
    """
    프로모션 코드 사용 집계.
    """

    totalUsage: int = Field(0, description="전체 사용 횟수")
    totalDiscountGiven: float = Field(0, description="총 할인 금액")
    totalOrderValue: float = Field(0, description="총 주문 금액")
    uniqueCustomerCount: int = Field(0, description="사용한 고유 고객 수")
    avgDiscountAmount: float = Field(0, description="평균 할인 금액")
    avgOrderValue: float = Field(0, description="평균 주문 금액")

    class Config:
        from_attributes = True


class DailyUsage(BaseModel):
    """일자별 사용 집계"""

    day: date = Field(..., description="사용 일자 (KST)")
    count: int = Field(..., description="사용 횟수")
    totalDiscount: float = Field(..., description="총 할인 금액")


class CustomerUsageSummary(BaseModel):
    """고객별 사용 집계"""

    customerId: str = Field(..., description="고객 식별자")
    usageCount: int = Field(..., description="사용 횟수")
    totalDiscount: float = Field(..., description="총 할인 금액")
    totalOrderValue: float = Field(..., description="총 주문 금액")
    lastUsed: datetime | None = Field(None, description="마지막 사용 일시")

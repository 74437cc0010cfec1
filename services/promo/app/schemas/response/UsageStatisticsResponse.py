from pydantic import BaseModel, Field

from libs.schemas import CustomerUsageSummary, DailyUsage, UsageStatistics


class UsageStatisticsResponse(BaseModel):
    """프로모션 코드 사용 통계 응답"""
    promoCodeId: str = Field(..., description="프로모션 코드 ID")
    code: str = Field(..., description="프로모션 코드")
    usageCount: int = Field(..., description="누적 사용 횟수")
    usageLimit: int | None = Field(None, description="전체 사용 한도")
    remainingUsage: int | None = Field(None, description="남은 사용 횟수")
    statistics: UsageStatistics = Field(..., description="기간 내 집계")
    usageByDate: list[DailyUsage] = Field(default_factory=list, description="일자별 사용 (기간 지정 시)")
    topCustomers: list[CustomerUsageSummary] = Field(default_factory=list, description="상위 고객")

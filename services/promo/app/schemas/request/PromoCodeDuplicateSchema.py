from datetime import datetime

from pydantic import BaseModel, Field


class PromoCodeDuplicateSchema(BaseModel):
    """프로모션 코드 복제 요청 스키마"""
    newCode: str = Field(..., description="새 프로모션 코드")
    startDate: datetime | None = Field(None, description="새 사용 시작 일시 (없으면 기존 값)")
    endDate: datetime | None = Field(None, description="새 사용 종료 일시 (없으면 기존 값)")

    class Config:
        from_attributes = True

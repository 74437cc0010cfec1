from pydantic import BaseModel, Field


class PromoCodeGenerateSchema(BaseModel):
    """고유 프로모션 코드 생성 요청 스키마"""
    prefix: str = Field("PROMO", description="코드 접두사 (1~10자)")
    length: int = Field(8, description="접두사를 포함한 전체 코드 길이 (4~20)")

from pydantic import BaseModel, Field


class GeneratedCodeResponse(BaseModel):
    """생성된 프로모션 코드 응답"""
    code: str = Field(..., description="사용되지 않은 프로모션 코드")

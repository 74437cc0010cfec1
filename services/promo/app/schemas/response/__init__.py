from services.promo.app.schemas.response.ApplyResponse import ApplyResponse
from services.promo.app.schemas.response.EligibilityResponse import EligibilityResponse
from services.promo.app.schemas.response.GeneratedCodeResponse import GeneratedCodeResponse
from services.promo.app.schemas.response.PromoCodeResponse import PromoCodeResponse, PromoCodeSummary
from services.promo.app.schemas.response.UsageRecordResponse import UsageRecordResponse
from services.promo.app.schemas.response.UsageStatisticsResponse import UsageStatisticsResponse

__all__ = [
    "ApplyResponse",
    "EligibilityResponse",
    "GeneratedCodeResponse",
    "PromoCodeResponse",
    "PromoCodeSummary",
    "UsageRecordResponse",
    "UsageStatisticsResponse",
]

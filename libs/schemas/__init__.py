from libs.schemas.promo_code import DiscountType, PromoCode
from libs.schemas.promo_code_usage import PromoCodeUsage
from libs.schemas.usage_statistics import CustomerUsageSummary, DailyUsage, UsageStatistics

__all__ = [
    "CustomerUsageSummary",
    "DailyUsage",
    "DiscountType",
    "PromoCode",
    "PromoCodeUsage",
    "UsageStatistics",
]

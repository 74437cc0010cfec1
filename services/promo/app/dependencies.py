import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status

from services.promo.app.core.PromoCodeService import PromoCodeService
from services.promo.app.core.RedemptionService import RedemptionService
from services.promo.app.db.connection import settings
from services.promo.app.db.repositories.products import SQLAlchemyProductLookup
from services.promo.app.db.repositories.promo_codes import SQLAlchemyPromoCodeRepository
from services.promo.app.db.repositories.usages import SQLAlchemyUsageLedger
from services.promo.app.db.stores.rate_limit import InMemoryRateLimitStore, RateLimitStorePort

logger = logging.getLogger(__name__)


@lru_cache
def get_promo_code_repository() -> SQLAlchemyPromoCodeRepository:
    """프로모션 코드 Repository 의존성"""
    return SQLAlchemyPromoCodeRepository()


@lru_cache
def get_usage_ledger() -> SQLAlchemyUsageLedger:
    """사용 원장 의존성"""
    return SQLAlchemyUsageLedger()


@lru_cache
def get_product_lookup() -> SQLAlchemyProductLookup:
    return SQLAlchemyProductLookup()


@lru_cache
def get_promo_code_service() -> PromoCodeService:
    """프로모션 코드 관리 서비스 의존성"""
    return PromoCodeService(
        promo_code_repository=get_promo_code_repository(),
        usage_ledger=get_usage_ledger(),
        product_lookup=get_product_lookup(),
        generation_max_attempts=settings.PROMO_CODE_GENERATION_MAX_ATTEMPTS,
    )


@lru_cache
def get_redemption_service() -> RedemptionService:
    """프로모션 코드 사용 처리 서비스 의존성"""
    return RedemptionService(
        promo_code_repository=get_promo_code_repository(),
        usage_ledger=get_usage_ledger(),
        max_attempts=settings.PROMO_REDEEM_MAX_ATTEMPTS,
    )


@lru_cache
def get_rate_limit_store() -> RateLimitStorePort:
    """요청 제한 카운터 저장소 의존성"""
    return InMemoryRateLimitStore()


def get_client_ip(request: Request) -> str:
    """프록시 뒤에서는 X-Forwarded-For의 첫 번째 주소를 사용합니다."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


class RateLimiter:
    """
    엔드포인트별 IP 요청 제한 의존성

    Args:
        name: 카운터 키 접두사 (엔드포인트 이름)
        limit: 윈도우 내 허용 요청 수
        window_seconds: 윈도우 길이 (초)
    """

    def __init__(self, name: str, limit: int, window_seconds: int):
        self.name = name
        self.limit = limit
        self.window_seconds = window_seconds

    async def __call__(
        self,
        request: Request,
        store: RateLimitStorePort = Depends(get_rate_limit_store),
    ) -> None:
        client_ip = get_client_ip(request)
        window = await store.hit(f"{self.name}:{client_ip}", self.window_seconds)
        if window.count > self.limit:
            logger.warning("Rate limit exceeded: %s from %s (%d/%d)", self.name, client_ip, window.count, self.limit)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"code": "ERR-RATE-LIMIT"},
                headers={"Retry-After": str(window.retry_after(store.now()))},
            )


validate_rate_limit = RateLimiter(
    "promo-validate",
    settings.PROMO_RATE_LIMIT_VALIDATE,
    settings.PROMO_RATE_LIMIT_VALIDATE_WINDOW_SECONDS,
)
apply_rate_limit = RateLimiter(
    "promo-apply",
    settings.PROMO_RATE_LIMIT_APPLY,
    settings.PROMO_RATE_LIMIT_APPLY_WINDOW_SECONDS,
)
generate_rate_limit = RateLimiter(
    "promo-generate",
    settings.PROMO_RATE_LIMIT_GENERATE,
    settings.PROMO_RATE_LIMIT_GENERATE_WINDOW_SECONDS,
)

"""
서비스 에러 코드를 HTTP 응답으로 변환합니다.
"""
from fastapi import HTTPException, status

from services.promo.app.core.PromoCodeErrors import (
    PromoCodeError,
    PromoCodeIneligibleError,
    PromoCodeValidationError,
)

ERROR_STATUS = {
    "ERR-IVD-VALUE": status.HTTP_400_BAD_REQUEST,
    "ERR-IVD-PRODUCT": status.HTTP_400_BAD_REQUEST,
    "ERR-NOT-FOUND": status.HTTP_404_NOT_FOUND,
    "ERR-DUP-CODE": status.HTTP_409_CONFLICT,
    "ERR-DUP-ORDER": status.HTTP_409_CONFLICT,
    "ERR-CONFLICT": status.HTTP_409_CONFLICT,
    "ERR-STALE": status.HTTP_409_CONFLICT,
    "ERR-ALREADY-USED": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "ERR-INELIGIBLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "ERR-HAS-USAGE": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "ERR-GEN-EXHAUSTED": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: PromoCodeError) -> HTTPException:
    detail = {"code": error.code, "message": error.message}
    if isinstance(error, PromoCodeValidationError) and error.details:
        detail["details"] = [{"field": item.field, "message": item.message} for item in error.details]
    if isinstance(error, PromoCodeIneligibleError):
        detail["reason"] = error.reason
    return HTTPException(
        status_code=ERROR_STATUS.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=detail,
    )

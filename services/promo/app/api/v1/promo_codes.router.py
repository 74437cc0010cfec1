from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi_pagination import Page

from libs.common import AdminUser, now_kst

from services.promo.app.api.v1.errors import to_http_exception
from services.promo.app.core.PromoCodeErrors import PromoCodeError
from services.promo.app.core.PromoCodeService import PromoCodeService
from services.promo.app.dependencies import generate_rate_limit, get_promo_code_service
from services.promo.app.schemas.request import (
    PromoCodeCreateSchema,
    PromoCodeDuplicateSchema,
    PromoCodeGenerateSchema,
    PromoCodeUpdateSchema,
)
from services.promo.app.schemas.response import (
    GeneratedCodeResponse,
    PromoCodeResponse,
    UsageRecordResponse,
    UsageStatisticsResponse,
)

# 프로모션 코드 관리 라우터 (관리자 전용)
router = APIRouter(prefix="/promo-codes", tags=["Promo Codes"])


@router.post("", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_promo_code(
    body: PromoCodeCreateSchema,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    새 프로모션 코드를 생성합니다.

    **Headers:**
    - `Authorization`: Bearer {access_token} (관리자 토큰 필수)

    **Response:**
    - HTTP 201 Created: 생성된 프로모션 코드
    - HTTP 400 Bad Request: 규칙 정의 오류 (ERR-IVD-VALUE), 존재하지 않는 상품 (ERR-IVD-PRODUCT)
    - HTTP 409 Conflict: 이미 존재하는 코드 (ERR-DUP-CODE)
    """
    _, admin_id = admin_user
    try:
        promo_code = await promo_code_service.create_promo_code(body.model_dump(), created_by=admin_id)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())


@router.post("/generate-code", response_model=GeneratedCodeResponse, dependencies=[Depends(generate_rate_limit)])
async def generate_code(
    body: PromoCodeGenerateSchema,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    아직 사용되지 않은 무작위 프로모션 코드를 생성합니다. 저장하지는 않습니다.

    **Response:**
    - HTTP 200 OK: 생성된 코드
    - HTTP 400 Bad Request: prefix/length 오류 (ERR-IVD-VALUE)
    - HTTP 429 Too Many Requests: 요청 제한 초과 (ERR-RATE-LIMIT)
    - HTTP 503 Service Unavailable: 고유한 코드를 찾지 못함 (ERR-GEN-EXHAUSTED)
    """
    try:
        code = await promo_code_service.generate_unique_code(prefix=body.prefix, length=body.length)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return GeneratedCodeResponse(code=code)


@router.get("/{promo_code_id}", response_model=PromoCodeResponse)
async def get_promo_code(
    promo_code_id: str,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    try:
        promo_code = await promo_code_service.get_promo_code(promo_code_id)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())


@router.put("/{promo_code_id}", response_model=PromoCodeResponse)
async def update_promo_code(
    promo_code_id: str,
    body: PromoCodeUpdateSchema,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    프로모션 코드를 수정합니다. 요청에 포함된 필드만 변경하며,
    변경 후의 전체 규칙을 다시 검증합니다.

    **Response:**
    - HTTP 200 OK: 수정된 프로모션 코드
    - HTTP 400 Bad Request: 규칙 정의 오류 (ERR-IVD-VALUE)
    - HTTP 404 Not Found: 프로모션 코드 없음 (ERR-NOT-FOUND)
    - HTTP 409 Conflict: 이미 존재하는 코드 (ERR-DUP-CODE), 동시 수정 충돌 (ERR-CONFLICT)
    """
    try:
        promo_code = await promo_code_service.update_promo_code(
            promo_code_id,
            body.model_dump(exclude_unset=True),
        )
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())


@router.delete("/{promo_code_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_promo_code(
    promo_code_id: str,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    사용 이력이 없는 프로모션 코드를 삭제합니다.

    **Response:**
    - HTTP 204 No Content: 삭제 완료
    - HTTP 404 Not Found: 프로모션 코드 없음 (ERR-NOT-FOUND)
    - HTTP 422 Unprocessable Entity: 사용 이력 존재 (ERR-HAS-USAGE), 비활성화를 사용하세요
    """
    try:
        await promo_code_service.delete_promo_code(promo_code_id)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{promo_code_id}/toggle-status", response_model=PromoCodeResponse)
async def toggle_promo_code_status(
    promo_code_id: str,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    try:
        promo_code = await promo_code_service.toggle_promo_code_status(promo_code_id)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())


@router.patch("/{promo_code_id}/deactivate", response_model=PromoCodeResponse)
async def deactivate_promo_code(
    promo_code_id: str,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    try:
        promo_code = await promo_code_service.deactivate_promo_code(promo_code_id)
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())


@router.get("/{promo_code_id}/statistics", response_model=UsageStatisticsResponse)
async def get_usage_statistics(
    promo_code_id: str,
    admin_user: AdminUser,
    startDate: datetime | None = None,
    endDate: datetime | None = None,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    프로모션 코드 사용 통계를 조회합니다.

    **Query Parameters:**
    - `startDate`, `endDate`: 집계 기간 (선택). 둘 다 지정하면 일자별 사용량도 반환합니다.
    """
    try:
        report = await promo_code_service.usage_statistics(
            promo_code_id,
            start_date=startDate,
            end_date=endDate,
        )
    except PromoCodeError as e:
        raise to_http_exception(e) from e

    return UsageStatisticsResponse(
        promoCodeId=report.promo_code.promoCodeId,
        code=report.promo_code.code,
        usageCount=report.promo_code.usageCount,
        usageLimit=report.promo_code.usageLimit,
        remainingUsage=report.remaining_usage,
        statistics=report.statistics,
        usageByDate=report.usage_by_date,
        topCustomers=report.top_customers,
    )


@router.get("/{promo_code_id}/usages", response_model=Page[UsageRecordResponse])
async def get_usages(
    promo_code_id: str,
    admin_user: AdminUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    프로모션 코드 사용 이력을 최신순으로 조회합니다.

    **응답 형식:**
    - `items`: 사용 이력 목록
    - `total`: 전체 개수
    - `page`: 현재 페이지
    - `size`: 페이지 크기
    - `pages`: 전체 페이지 수
    """
    try:
        usages, total = await promo_code_service.list_usages(promo_code_id, page=page, size=size)
    except PromoCodeError as e:
        raise to_http_exception(e) from e

    # fastapi-pagination의 Page 형식으로 반환
    return Page(
        items=[UsageRecordResponse.model_validate(usage, from_attributes=True) for usage in usages],
        total=total,
        page=page,
        size=size,
        pages=(total + size - 1) // size if size > 0 else 0,
    )


@router.post("/{promo_code_id}/duplicate", response_model=PromoCodeResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_promo_code(
    promo_code_id: str,
    body: PromoCodeDuplicateSchema,
    admin_user: AdminUser,
    promo_code_service: PromoCodeService = Depends(get_promo_code_service),
):
    """
    기존 프로모션 코드를 새 코드로 복제합니다. 사용 횟수는 0으로 시작합니다.
    """
    _, admin_id = admin_user
    try:
        promo_code = await promo_code_service.duplicate_promo_code(
            promo_code_id,
            new_code=body.newCode,
            created_by=admin_id,
            start_date=body.startDate,
            end_date=body.endDate,
        )
    except PromoCodeError as e:
        raise to_http_exception(e) from e
    return PromoCodeResponse.from_promo_code(promo_code, now_kst())

"""
프로모션 코드 정의(Code Registry)를 관리하는 서비스
생성/수정/활성화 토글/삭제/복제/코드 생성과 사용 통계 조회를 담당합니다.
"""
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol
from uuid import uuid4

from pydantic import ValidationError

from libs.common import ensure_kst, now_kst
from libs.schemas import CustomerUsageSummary, DailyUsage, PromoCode, PromoCodeUsage, UsageStatistics

from services.promo.app.core.DiscountPolicy import (
    CODE_PATTERN,
    normalize_code,
    remaining_usage,
    unique_ids,
    validate_promo_code,
)
from services.promo.app.core.PromoCodeErrors import (
    DuplicateCodeError,
    FieldError,
    GenerationExhaustedError,
    HasUsageHistoryError,
    InvalidProductsError,
    PromoCodeConflictError,
    PromoCodeNotFoundError,
    PromoCodeValidationError,
    StaleRevisionError,
)
from services.promo.app.core.UsageLedger import UsageLedgerPort

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits

# 수정 요청에서 변경할 수 있는 필드 (usageCount는 원장만, revision은 저장소만 변경)
UPDATABLE_FIELDS = (
    "code",
    "description",
    "discountType",
    "discountValue",
    "minimumOrderValue",
    "usageLimit",
    "usagePerCustomer",
    "startDate",
    "endDate",
    "isActive",
    "allProducts",
    "applicableProducts",
)


class PromoCodeRepositoryPort(Protocol):
    """프로모션 코드 Repository 인터페이스"""

    async def find_by_id(self, promo_code_id: str) -> PromoCode | None: ...

    async def find_by_code(self, code: str) -> PromoCode | None: ...

    async def code_exists(self, code: str, exclude_id: str | None = None) -> bool: ...

    async def insert(self, promo_code: PromoCode) -> PromoCode:
        """
        Raises:
            DuplicateCodeError: 코드 유일성 제약 위반
        """
        ...

    async def update(
        self,
        promo_code_id: str,
        changes: dict[str, Any],
        expected_revision: int | None = None,
    ) -> PromoCode:
        """
        지정한 필드만 변경하고 revision을 1 증가시킵니다. usageCount는 건드리지 않습니다.

        Raises:
            PromoCodeNotFoundError: 규칙이 없는 경우
            StaleRevisionError: expected_revision이 현재 값과 다른 경우
            DuplicateCodeError: 변경한 코드가 이미 존재하는 경우
        """
        ...

    async def delete_unused(self, promo_code_id: str) -> bool:
        """usageCount가 0인 경우에만 삭제하고 삭제 여부를 반환합니다."""
        ...


class ProductLookupPort(Protocol):
    """상품 존재 여부 조회 인터페이스 (상품 카탈로그 서비스)"""

    async def find_missing(self, product_ids: list[str]) -> list[str]: ...


class NullProductLookup:
    """상품 카탈로그가 연결되지 않은 환경에서 모든 상품을 존재하는 것으로 간주합니다."""

    async def find_missing(self, product_ids: list[str]) -> list[str]:
        return []


@dataclass
class UsageReport:
    promo_code: PromoCode
    statistics: UsageStatistics
    remaining_usage: int | None
    usage_by_date: list[DailyUsage] = field(default_factory=list)
    top_customers: list[CustomerUsageSummary] = field(default_factory=list)


def _validation_error_from_pydantic(exc: ValidationError) -> PromoCodeValidationError:
    details = [
        FieldError(".".join(str(part) for part in error["loc"]) or "body", error["msg"])
        for error in exc.errors()
    ]
    message = details[0].message if details else "요청 값이 올바르지 않습니다."
    return PromoCodeValidationError(message, details)


def _normalize_changes(raw: dict[str, Any]) -> dict[str, Any]:
    """요청 값을 저장 형식으로 정규화합니다 (코드 대문자화, KST 부여, 상품 ID 중복 제거)."""
    changes = {key: value for key, value in raw.items() if key in UPDATABLE_FIELDS}
    if "code" in changes:
        changes["code"] = normalize_code(changes["code"])
    for key in ("startDate", "endDate"):
        if isinstance(changes.get(key), datetime):
            changes[key] = ensure_kst(changes[key])
    if "applicableProducts" in changes:
        changes["applicableProducts"] = unique_ids(changes["applicableProducts"])
    if changes.get("allProducts") is True:
        changes["applicableProducts"] = []
    return changes


class PromoCodeService:
    """프로모션 코드 관리 서비스"""

    def __init__(
        self,
        promo_code_repository: PromoCodeRepositoryPort,
        usage_ledger: UsageLedgerPort,
        product_lookup: ProductLookupPort | None = None,
        clock: Callable[[], datetime] = now_kst,
        max_update_attempts: int = 3,
        generation_max_attempts: int = 100,
        random_choice: Callable[[str], str] = secrets.choice,
    ):
        self.promo_code_repository = promo_code_repository
        self.usage_ledger = usage_ledger
        self.product_lookup = product_lookup or NullProductLookup()
        self._clock = clock
        self.max_update_attempts = max_update_attempts
        self.generation_max_attempts = generation_max_attempts
        self._random_choice = random_choice

    async def get_promo_code(self, promo_code_id: str) -> PromoCode:
        promo_code = await self.promo_code_repository.find_by_id(promo_code_id)
        if promo_code is None:
            raise PromoCodeNotFoundError(promo_code_id)
        return promo_code

    async def create_promo_code(self, definition: dict[str, Any], created_by: str) -> PromoCode:
        """
        새 프로모션 코드를 생성합니다.

        Args:
            definition: camelCase 키의 규칙 정의 (code, discountType, discountValue, ...)
            created_by: 생성한 관리자 식별자

        Raises:
            PromoCodeValidationError: 정의가 불변식을 위반한 경우
            InvalidProductsError: 존재하지 않는 상품이 포함된 경우
            DuplicateCodeError: 이미 존재하는 코드인 경우
        """
        now = self._clock()
        values = _normalize_changes(definition)
        values.setdefault("applicableProducts", [])
        for key, default in (("minimumOrderValue", 0), ("isActive", True), ("allProducts", False)):
            if values.get(key) is None:
                values[key] = default

        try:
            candidate = PromoCode(
                promoCodeId=uuid4().hex,
                usageCount=0,
                revision=0,
                createdBy=str(created_by),
                createdAt=now,
                updatedAt=now,
                **values,
            )
        except ValidationError as exc:
            raise _validation_error_from_pydantic(exc) from exc

        validate_promo_code(candidate).raise_for_errors()

        if await self.promo_code_repository.code_exists(candidate.code):
            raise DuplicateCodeError(candidate.code)

        await self._ensure_products_exist(candidate)

        created = await self.promo_code_repository.insert(candidate)
        logger.info("Promo code created: %s (%s) by %s", created.code, created.promoCodeId, created.createdBy)
        return created

    async def update_promo_code(self, promo_code_id: str, patch: dict[str, Any]) -> PromoCode:
        """
        프로모션 코드를 수정합니다.
        변경분만이 아니라 병합된 최종 상태 전체를 다시 검증합니다.
        """
        changes = _normalize_changes(patch)
        return await self._apply_changes(promo_code_id, lambda current: changes)

    async def deactivate_promo_code(self, promo_code_id: str) -> PromoCode:
        return await self._apply_changes(promo_code_id, lambda current: {"isActive": False})

    async def activate_promo_code(self, promo_code_id: str) -> PromoCode:
        return await self._apply_changes(promo_code_id, lambda current: {"isActive": True})

    async def toggle_promo_code_status(self, promo_code_id: str) -> PromoCode:
        return await self._apply_changes(
            promo_code_id,
            lambda current: {"isActive": not current.isActive},
        )

    async def delete_promo_code(self, promo_code_id: str) -> None:
        """
        사용 이력이 없는 프로모션 코드를 삭제합니다.

        Raises:
            PromoCodeNotFoundError: 규칙이 없는 경우
            HasUsageHistoryError: 사용 이력이 하나라도 있는 경우
        """
        await self.get_promo_code(promo_code_id)

        usage_count = await self.usage_ledger.count_for_promo_code(promo_code_id)
        if usage_count > 0:
            raise HasUsageHistoryError(usage_count)

        deleted = await self.promo_code_repository.delete_unused(promo_code_id)
        if not deleted:
            # 확인 이후 사용이 커밋되었거나 다른 요청이 먼저 삭제한 경우
            if await self.promo_code_repository.find_by_id(promo_code_id) is None:
                raise PromoCodeNotFoundError(promo_code_id)
            raise HasUsageHistoryError(await self.usage_ledger.count_for_promo_code(promo_code_id))

        logger.info("Promo code deleted: %s", promo_code_id)

    async def duplicate_promo_code(
        self,
        promo_code_id: str,
        new_code: str,
        created_by: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> PromoCode:
        """기존 규칙을 새 코드로 복제합니다. 사용 횟수는 0부터 시작합니다."""
        original = await self.get_promo_code(promo_code_id)
        definition = {key: getattr(original, key) for key in UPDATABLE_FIELDS}
        definition["code"] = new_code
        if start_date is not None:
            definition["startDate"] = start_date
        if end_date is not None:
            definition["endDate"] = end_date
        return await self.create_promo_code(definition, created_by=created_by)

    async def generate_unique_code(self, prefix: str = "PROMO", length: int = 8) -> str:
        """
        prefix 뒤에 무작위 영문 대문자/숫자를 붙여 전체 길이 length의 코드를 만듭니다.
        이미 존재하는 코드면 generation_max_attempts 회까지 다시 시도합니다.

        Raises:
            PromoCodeValidationError: prefix/length가 올바르지 않은 경우
            GenerationExhaustedError: 고유한 코드를 찾지 못한 경우
        """
        prefix = normalize_code(prefix)
        errors: list[FieldError] = []
        if not 1 <= len(prefix) <= 10 or not CODE_PATTERN.match(prefix):
            errors.append(FieldError("prefix", "prefix는 1~10자의 영문 대문자와 숫자여야 합니다."))
        if not 4 <= length <= 20:
            errors.append(FieldError("length", "코드 길이는 4~20자여야 합니다."))
        elif len(prefix) >= length:
            errors.append(FieldError("length", "prefix 길이는 전체 코드 길이보다 짧아야 합니다."))
        if errors:
            raise PromoCodeValidationError(errors[0].message, errors)

        for _ in range(self.generation_max_attempts):
            suffix = "".join(self._random_choice(CODE_ALPHABET) for _ in range(length - len(prefix)))
            candidate = prefix + suffix
            if not await self.promo_code_repository.code_exists(candidate):
                return candidate

        logger.error("Unable to generate unique promo code (prefix=%s, length=%d)", prefix, length)
        raise GenerationExhaustedError(self.generation_max_attempts)

    async def usage_statistics(
        self,
        promo_code_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        top_customer_limit: int = 10,
    ) -> UsageReport:
        """
        사용 통계를 조회합니다. 조회 전용이며 사용 처리 경로의 정합성과는 무관합니다.
        일자별 집계는 기간이 모두 주어진 경우에만 계산합니다.
        """
        start_date = ensure_kst(start_date)
        end_date = ensure_kst(end_date)
        if start_date and end_date and start_date > end_date:
            raise PromoCodeValidationError(
                "조회 종료 일시는 시작 일시 이후여야 합니다.",
                [FieldError("endDate", "조회 종료 일시는 시작 일시 이후여야 합니다.")],
            )

        promo_code = await self.get_promo_code(promo_code_id)
        statistics = await self.usage_ledger.statistics(promo_code_id, start_date, end_date)
        usage_by_date: list[DailyUsage] = []
        if start_date and end_date:
            usage_by_date = await self.usage_ledger.usage_by_date(promo_code_id, start_date, end_date)
        top_customers = await self.usage_ledger.top_customers(promo_code_id, limit=top_customer_limit)

        return UsageReport(
            promo_code=promo_code,
            statistics=statistics,
            remaining_usage=remaining_usage(promo_code),
            usage_by_date=usage_by_date,
            top_customers=top_customers,
        )

    async def list_usages(self, promo_code_id: str, page: int, size: int) -> tuple[list[PromoCodeUsage], int]:
        await self.get_promo_code(promo_code_id)
        return await self.usage_ledger.list_for_promo_code(promo_code_id, page=page, size=size)

    async def _apply_changes(
        self,
        promo_code_id: str,
        build_changes: Callable[[PromoCode], dict[str, Any]],
    ) -> PromoCode:
        """
        최신 상태를 읽어 변경분을 병합하고 검증한 뒤 revision 비교 후 저장합니다.
        다른 수정으로 revision이 바뀌었으면 최신 상태로 다시 시도합니다.
        """
        for attempt in range(1, self.max_update_attempts + 1):
            current = await self.get_promo_code(promo_code_id)
            changes = dict(build_changes(current))
            if not changes:
                return current

            try:
                candidate = PromoCode.model_validate({**current.model_dump(), **changes})
            except ValidationError as exc:
                raise _validation_error_from_pydantic(exc) from exc

            validate_promo_code(candidate).raise_for_errors()

            if candidate.code != current.code and await self.promo_code_repository.code_exists(
                candidate.code, exclude_id=promo_code_id
            ):
                raise DuplicateCodeError(candidate.code)

            if "applicableProducts" in changes:
                await self._ensure_products_exist(candidate)

            values = {key: getattr(candidate, key) for key in changes}
            values["updatedAt"] = self._clock()
            try:
                updated = await self.promo_code_repository.update(
                    promo_code_id,
                    values,
                    expected_revision=current.revision,
                )
            except StaleRevisionError:
                logger.warning(
                    "Promo code %s changed concurrently, retrying update (attempt %d/%d)",
                    promo_code_id,
                    attempt,
                    self.max_update_attempts,
                )
                continue

            logger.info("Promo code updated: %s fields=%s", promo_code_id, sorted(changes))
            return updated

        raise PromoCodeConflictError(promo_code_id, self.max_update_attempts)

    async def _ensure_products_exist(self, promo_code: PromoCode) -> None:
        if promo_code.allProducts or not promo_code.applicableProducts:
            return
        missing = await self.product_lookup.find_missing(promo_code.applicableProducts)
        if missing:
            raise InvalidProductsError(missing)

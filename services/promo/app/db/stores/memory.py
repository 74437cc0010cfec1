"""
메모리 기반 저장소 (로컬 실행/테스트용)

규칙 저장소와 사용 원장은 하나의 RLock을 공유하며,
원장 커밋(revision 비교 + 한도 재확인 + 이력 추가 + usageCount 증가)은 락 안에서 한 번에 처리합니다.
"""
import threading
from datetime import datetime
from typing import Any, Iterable

from libs.common import ensure_kst
from libs.schemas import CustomerUsageSummary, DailyUsage, PromoCode, PromoCodeUsage, UsageStatistics

from services.promo.app.core.DiscountPolicy import check_redemption_limits, verify_usage_record
from services.promo.app.core.PromoCodeErrors import (
    DuplicateCodeError,
    DuplicateOrderError,
    PromoCodeIneligibleError,
    PromoCodeNotFoundError,
    StaleRevisionError,
)
from services.promo.app.core.UsageLedger import rank_customers, summarize_daily, summarize_usages


class InMemoryPromoCodeStore:
    def __init__(self):
        self.lock = threading.RLock()
        self._by_id: dict[str, PromoCode] = {}

    async def find_by_id(self, promo_code_id: str) -> PromoCode | None:
        with self.lock:
            promo_code = self._by_id.get(promo_code_id)
            return promo_code.model_copy(deep=True) if promo_code else None

    async def find_by_code(self, code: str) -> PromoCode | None:
        with self.lock:
            for promo_code in self._by_id.values():
                if promo_code.code == code:
                    return promo_code.model_copy(deep=True)
            return None

    async def code_exists(self, code: str, exclude_id: str | None = None) -> bool:
        with self.lock:
            return self._code_taken(code, exclude_id)

    async def insert(self, promo_code: PromoCode) -> PromoCode:
        with self.lock:
            if self._code_taken(promo_code.code):
                raise DuplicateCodeError(promo_code.code)
            self._by_id[promo_code.promoCodeId] = promo_code.model_copy(deep=True)
            return promo_code.model_copy(deep=True)

    async def update(
        self,
        promo_code_id: str,
        changes: dict[str, Any],
        expected_revision: int | None = None,
    ) -> PromoCode:
        with self.lock:
            current = self._get_for_write(promo_code_id, expected_revision)
            if "code" in changes and self._code_taken(changes["code"], exclude_id=promo_code_id):
                raise DuplicateCodeError(changes["code"])
            changes = {key: value for key, value in changes.items() if key not in ("usageCount", "revision")}
            updated = current.model_copy(update={**changes, "revision": current.revision + 1}, deep=True)
            self._by_id[promo_code_id] = updated
            return updated.model_copy(deep=True)

    async def delete_unused(self, promo_code_id: str) -> bool:
        with self.lock:
            promo_code = self._by_id.get(promo_code_id)
            if promo_code is None or promo_code.usageCount > 0:
                return False
            del self._by_id[promo_code_id]
            return True

    def get_for_commit(self, promo_code_id: str, expected_revision: int | None) -> PromoCode:
        """원장 커밋 전용. 호출자가 lock을 잡고 있어야 합니다."""
        return self._get_for_write(promo_code_id, expected_revision)

    def increment_usage(self, promo_code_id: str) -> None:
        """원장 커밋 전용. 사용 커밋은 규칙 정책을 바꾸지 않으므로 revision은 그대로 둡니다."""
        current = self._by_id[promo_code_id]
        self._by_id[promo_code_id] = current.model_copy(update={"usageCount": current.usageCount + 1})

    def _get_for_write(self, promo_code_id: str, expected_revision: int | None) -> PromoCode:
        current = self._by_id.get(promo_code_id)
        if current is None:
            raise PromoCodeNotFoundError(promo_code_id)
        if expected_revision is not None and current.revision != expected_revision:
            raise StaleRevisionError(promo_code_id, expected_revision)
        return current

    def _code_taken(self, code: str, exclude_id: str | None = None) -> bool:
        return any(
            promo_code.code == code and promo_code_id != exclude_id
            for promo_code_id, promo_code in self._by_id.items()
        )


class InMemoryUsageLedger:
    def __init__(self, store: InMemoryPromoCodeStore):
        self._store = store
        self._by_order: dict[str, PromoCodeUsage] = {}

    async def record_usage(
        self,
        record: PromoCodeUsage,
        expected_revision: int | None = None,
    ) -> PromoCodeUsage:
        verify_usage_record(record)
        with self._store.lock:
            if record.orderId in self._by_order:
                raise DuplicateOrderError(record.orderId)
            rule = self._store.get_for_commit(record.promoCodeId, expected_revision)
            customer_usage_count = sum(
                1
                for usage in self._by_order.values()
                if usage.promoCodeId == record.promoCodeId and usage.customerId == record.customerId
            )
            limits = check_redemption_limits(rule, record.customerId, customer_usage_count)
            if not limits.eligible:
                raise PromoCodeIneligibleError(limits.reason.value, limits.message)

            self._store.increment_usage(record.promoCodeId)
            self._by_order[record.orderId] = record.model_copy(deep=True)
            return record

    async def exists_for_order(self, order_id: str) -> bool:
        with self._store.lock:
            return order_id in self._by_order

    async def count_for_customer(self, promo_code_id: str, customer_id: str) -> int:
        return sum(1 for record in self._records(promo_code_id) if record.customerId == customer_id)

    async def count_for_promo_code(self, promo_code_id: str) -> int:
        return len(self._records(promo_code_id))

    async def statistics(
        self,
        promo_code_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> UsageStatistics:
        return summarize_usages(self._in_period(self._records(promo_code_id), start_date, end_date))

    async def usage_by_date(
        self,
        promo_code_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> list[DailyUsage]:
        records = self._in_period(self._records(promo_code_id), start_date, end_date)
        return summarize_daily((record.usedAt, record.discountAmount) for record in records)

    async def top_customers(self, promo_code_id: str, limit: int = 10) -> list[CustomerUsageSummary]:
        return rank_customers(self._records(promo_code_id), limit)

    async def list_for_promo_code(
        self,
        promo_code_id: str,
        page: int,
        size: int,
    ) -> tuple[list[PromoCodeUsage], int]:
        records = sorted(self._records(promo_code_id), key=lambda record: ensure_kst(record.usedAt), reverse=True)
        offset = (page - 1) * size
        return records[offset:offset + size], len(records)

    def _records(self, promo_code_id: str) -> list[PromoCodeUsage]:
        with self._store.lock:
            return [record for record in self._by_order.values() if record.promoCodeId == promo_code_id]

    @staticmethod
    def _in_period(
        records: Iterable[PromoCodeUsage],
        start_date: datetime | None,
        end_date: datetime | None,
    ) -> list[PromoCodeUsage]:
        start_date = ensure_kst(start_date)
        end_date = ensure_kst(end_date)
        return [
            record
            for record in records
            if (start_date is None or ensure_kst(record.usedAt) >= start_date)
            and (end_date is None or ensure_kst(record.usedAt) <= end_date)
        ]


class InMemoryProductCatalog:
    def __init__(self, product_ids: Iterable[str] = ()):
        self._product_ids = set(product_ids)

    def add(self, *product_ids: str) -> None:
        self._product_ids.update(product_ids)

    async def find_missing(self, product_ids: list[str]) -> list[str]:
        return [product_id for product_id in product_ids if product_id not in self._product_ids]

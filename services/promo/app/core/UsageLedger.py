"""
프로모션 코드 사용 원장(ledger) 인터페이스

원장은 성공한 사용 이력을 영구 기록하며, record_usage는
이력 추가와 규칙 usageCount 증가를 하나의 원자적 작업으로 수행합니다.
"""
from datetime import date, datetime
from typing import Iterable, Protocol

from libs.common import ensure_kst
from libs.schemas import CustomerUsageSummary, DailyUsage, PromoCodeUsage, UsageStatistics


class UsageLedgerPort(Protocol):
    """사용 원장 인터페이스"""

    async def record_usage(
        self,
        record: PromoCodeUsage,
        expected_revision: int | None = None,
    ) -> PromoCodeUsage:
        """
        규칙을 잠근 채 한도를 다시 확인하고, 사용 이력 추가와 usageCount 1 증가를 함께 수행합니다 (all-or-nothing).
        revision은 증가시키지 않습니다.

        Raises:
            DuplicateOrderError: 같은 주문 ID의 이력이 이미 있는 경우
            StaleRevisionError: expected_revision이 현재 규칙 revision과 다른 경우 (읽은 뒤 규칙이 수정됨)
            PromoCodeIneligibleError: 커밋 시점에 사용 한도 또는 고객당 한도에 도달한 경우
            PromoCodeNotFoundError: 규칙이 없는 경우
        """
        ...

    async def exists_for_order(self, order_id: str) -> bool: ...

    async def count_for_customer(self, promo_code_id: str, customer_id: str) -> int: ...

    async def count_for_promo_code(self, promo_code_id: str) -> int: ...

    async def statistics(
        self,
        promo_code_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> UsageStatistics: ...

    async def usage_by_date(
        self,
        promo_code_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> list[DailyUsage]: ...

    async def top_customers(self, promo_code_id: str, limit: int = 10) -> list[CustomerUsageSummary]: ...

    async def list_for_promo_code(
        self,
        promo_code_id: str,
        page: int,
        size: int,
    ) -> tuple[list[PromoCodeUsage], int]: ...


def summarize_daily(rows: Iterable[tuple[datetime, float]]) -> list[DailyUsage]:
    """(사용 일시, 할인 금액) 목록을 KST 일자별로 묶어 날짜 오름차순으로 반환합니다."""
    buckets: dict[date, list[float]] = {}
    for used_at, discount_amount in sorted(rows, key=lambda row: ensure_kst(row[0])):
        day = ensure_kst(used_at).date()
        buckets.setdefault(day, []).append(float(discount_amount))
    return [
        DailyUsage(day=day, count=len(amounts), totalDiscount=sum(amounts))
        for day, amounts in buckets.items()
    ]


def summarize_usages(records: Iterable[PromoCodeUsage]) -> UsageStatistics:
    """메모리 상의 이력 목록으로 집계를 계산합니다."""
    records = list(records)
    if not records:
        return UsageStatistics()
    total_discount = sum(record.discountAmount for record in records)
    total_order_value = sum(record.orderValue for record in records)
    return UsageStatistics(
        totalUsage=len(records),
        totalDiscountGiven=total_discount,
        totalOrderValue=total_order_value,
        uniqueCustomerCount=len({record.customerId for record in records}),
        avgDiscountAmount=total_discount / len(records),
        avgOrderValue=total_order_value / len(records),
    )


def rank_customers(records: Iterable[PromoCodeUsage], limit: int = 10) -> list[CustomerUsageSummary]:
    """고객별 사용 횟수 내림차순, 같으면 총 주문 금액 내림차순으로 정렬합니다."""
    summaries: dict[str, CustomerUsageSummary] = {}
    for record in records:
        summary = summaries.get(record.customerId)
        if summary is None:
            summaries[record.customerId] = CustomerUsageSummary(
                customerId=record.customerId,
                usageCount=1,
                totalDiscount=record.discountAmount,
                totalOrderValue=record.orderValue,
                lastUsed=record.usedAt,
            )
            continue
        summary.usageCount += 1
        summary.totalDiscount += record.discountAmount
        summary.totalOrderValue += record.orderValue
        if summary.lastUsed is None or record.usedAt > summary.lastUsed:
            summary.lastUsed = record.usedAt
    ranked = sorted(summaries.values(), key=lambda s: (-s.usageCount, -s.totalOrderValue))
    return ranked[:limit]

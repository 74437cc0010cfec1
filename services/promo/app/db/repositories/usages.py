"""
프로모션 코드 사용 원장 Repository 구현

record_usage는 하나의 트랜잭션에서
1) promo_codes의 usage_count를 사용 한도와 revision(규칙 수정 여부)을 조건으로 증가시키고
2) 규칙 행이 잠긴 상태에서 고객별 사용 횟수를 다시 확인한 뒤
3) promo_code_usages에 이력을 추가합니다.
주문 ID 중복은 order_id 유일성 제약으로 최종 판단합니다.
"""
from datetime import datetime

from sqlalchemy import distinct, func, insert, select, text
from sqlalchemy.exc import IntegrityError

from libs.common import ensure_kst, to_storage
from libs.schemas import CustomerUsageSummary, DailyUsage, DiscountType, PromoCodeUsage, UsageStatistics

from services.promo.app.core.DiscountPolicy import check_redemption_limits, verify_usage_record
from services.promo.app.core.PromoCodeErrors import (
    DuplicateOrderError,
    PromoCodeError,
    PromoCodeIneligibleError,
    PromoCodeNotFoundError,
    StaleRevisionError,
)
from services.promo.app.core.UsageLedger import summarize_daily
from services.promo.app.db.repositories.promo_codes import _SQLRepositoryBase, _find_one
from services.promo.app.db.schema import promo_code_usages, promo_codes


def _row_to_usage(row) -> PromoCodeUsage:
    return PromoCodeUsage(
        usageId=row["usage_id"],
        promoCodeId=row["promo_code_id"],
        customerId=row["customer_id"],
        orderId=row["order_id"],
        orderValue=float(row["order_value"]),
        discountAmount=float(row["discount_amount"]),
        discountType=DiscountType(row["discount_type"]),
        discountValue=float(row["discount_value"]),
        productIds=list(row["product_ids"] or []),
        usedAt=ensure_kst(row["used_at"]),
        ipAddress=row["ip_address"],
        userAgent=row["user_agent"],
    )


def _period_conditions(promo_code_id: str, start_date: datetime | None, end_date: datetime | None) -> list:
    conditions = [promo_code_usages.c.promo_code_id == promo_code_id]
    if start_date is not None:
        conditions.append(promo_code_usages.c.used_at >= to_storage(start_date))
    if end_date is not None:
        conditions.append(promo_code_usages.c.used_at <= to_storage(end_date))
    return conditions


def _count_for_customer(session, promo_code_id: str, customer_id: str) -> int:
    return session.execute(
        text(
            """
            SELECT COUNT(*)
            FROM promo_code_usages
            WHERE promo_code_id = :promo_code_id
              AND customer_id = :customer_id
            """
        ),
        {"promo_code_id": promo_code_id, "customer_id": customer_id},
    ).scalar_one()


def _commit_rejection(session, promo_code_id: str, expected_revision: int | None) -> PromoCodeError:
    """조건부 증가가 0건일 때 원인을 판별합니다."""
    rule = _find_one(session, promo_codes.c.promo_code_id == promo_code_id)
    if rule is None:
        return PromoCodeNotFoundError(promo_code_id)
    if expected_revision is not None and rule.revision != expected_revision:
        return StaleRevisionError(promo_code_id, expected_revision)
    limits = check_redemption_limits(rule, None, 0)
    if not limits.eligible:
        return PromoCodeIneligibleError(limits.reason.value, limits.message)
    # 판별 사이에 규칙이 다시 바뀐 경우
    return StaleRevisionError(promo_code_id, expected_revision)


class SQLAlchemyUsageLedger(_SQLRepositoryBase):
    """promo_code_usages 테이블 기반 사용 원장"""

    async def record_usage(
        self,
        record: PromoCodeUsage,
        expected_revision: int | None = None,
    ) -> PromoCodeUsage:
        verify_usage_record(record)

        def _record():
            with self._session_factory() as session:
                params = {"promo_code_id": record.promoCodeId}
                condition = ""
                if expected_revision is not None:
                    condition = " AND revision = :expected_revision"
                    params["expected_revision"] = expected_revision

                # 조건부 증가가 규칙 행을 잠그므로 같은 규칙의 커밋은 여기서 직렬화됩니다.
                result = session.execute(
                    text(
                        """
                        UPDATE promo_codes
                        SET usage_count = usage_count + 1
                        WHERE promo_code_id = :promo_code_id
                          AND (usage_limit IS NULL OR usage_count < usage_limit)
                        """
                        + condition
                    ),
                    params,
                )
                if result.rowcount == 0:
                    session.rollback()
                    raise _commit_rejection(session, record.promoCodeId, expected_revision)

                rule = _find_one(session, promo_codes.c.promo_code_id == record.promoCodeId)
                if rule.usagePerCustomer is not None:
                    customer_usage_count = _count_for_customer(session, record.promoCodeId, record.customerId)
                    limits = check_redemption_limits(
                        rule.model_copy(update={"usageCount": rule.usageCount - 1}),
                        record.customerId,
                        customer_usage_count,
                    )
                    if not limits.eligible:
                        session.rollback()
                        raise PromoCodeIneligibleError(limits.reason.value, limits.message)

                try:
                    session.execute(
                        insert(promo_code_usages).values(
                            usage_id=record.usageId,
                            promo_code_id=record.promoCodeId,
                            customer_id=record.customerId,
                            order_id=record.orderId,
                            order_value=record.orderValue,
                            discount_amount=record.discountAmount,
                            discount_type=record.discountType.value,
                            discount_value=record.discountValue,
                            product_ids=list(record.productIds),
                            used_at=to_storage(record.usedAt),
                            ip_address=record.ipAddress,
                            user_agent=record.userAgent,
                        )
                    )
                    session.commit()
                except IntegrityError as exc:
                    # 카운터 증가까지 함께 롤백됩니다.
                    session.rollback()
                    raise DuplicateOrderError(record.orderId) from exc
                return record

        return await self._run_in_thread(_record)

    async def exists_for_order(self, order_id: str) -> bool:
        def _query():
            with self._session_factory() as session:
                row = session.execute(
                    text("SELECT 1 FROM promo_code_usages WHERE order_id = :order_id LIMIT 1"),
                    {"order_id": order_id},
                ).first()
                return row is not None

        return await self._run_in_thread(_query)

    async def count_for_customer(self, promo_code_id: str, customer_id: str) -> int:
        def _query():
            with self._session_factory() as session:
                return _count_for_customer(session, promo_code_id, customer_id)

        return await self._run_in_thread(_query)

    async def count_for_promo_code(self, promo_code_id: str) -> int:
        def _query():
            with self._session_factory() as session:
                return session.execute(
                    text("SELECT COUNT(*) FROM promo_code_usages WHERE promo_code_id = :promo_code_id"),
                    {"promo_code_id": promo_code_id},
                ).scalar_one()

        return await self._run_in_thread(_query)

    async def statistics(
        self,
        promo_code_id: str,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> UsageStatistics:
        def _query():
            with self._session_factory() as session:
                row = session.execute(
                    select(
                        func.count(promo_code_usages.c.usage_id).label("total_usage"),
                        func.sum(promo_code_usages.c.discount_amount).label("total_discount"),
                        func.sum(promo_code_usages.c.order_value).label("total_order_value"),
                        func.count(distinct(promo_code_usages.c.customer_id)).label("unique_customers"),
                    ).where(*_period_conditions(promo_code_id, start_date, end_date))
                ).mappings().one()

            total_usage = row["total_usage"] or 0
            if total_usage == 0:
                return UsageStatistics()
            total_discount = float(row["total_discount"] or 0)
            total_order_value = float(row["total_order_value"] or 0)
            return UsageStatistics(
                totalUsage=total_usage,
                totalDiscountGiven=total_discount,
                totalOrderValue=total_order_value,
                uniqueCustomerCount=row["unique_customers"] or 0,
                avgDiscountAmount=total_discount / total_usage,
                avgOrderValue=total_order_value / total_usage,
            )

        return await self._run_in_thread(_query)

    async def usage_by_date(
        self,
        promo_code_id: str,
        start_date: datetime,
        end_date: datetime,
    ) -> list[DailyUsage]:
        def _query():
            with self._session_factory() as session:
                rows = session.execute(
                    select(promo_code_usages.c.used_at, promo_code_usages.c.discount_amount)
                    .where(*_period_conditions(promo_code_id, start_date, end_date))
                    .order_by(promo_code_usages.c.used_at)
                ).fetchall()
            # DB마다 날짜 함수가 다르므로 일자 집계는 애플리케이션에서 수행
            return summarize_daily((row[0], row[1]) for row in rows)

        return await self._run_in_thread(_query)

    async def top_customers(self, promo_code_id: str, limit: int = 10) -> list[CustomerUsageSummary]:
        def _query():
            usage_count = func.count(promo_code_usages.c.usage_id).label("usage_count")
            total_order_value = func.sum(promo_code_usages.c.order_value).label("total_order_value")
            with self._session_factory() as session:
                rows = session.execute(
                    select(
                        promo_code_usages.c.customer_id,
                        usage_count,
                        func.sum(promo_code_usages.c.discount_amount).label("total_discount"),
                        total_order_value,
                        func.max(promo_code_usages.c.used_at).label("last_used"),
                    )
                    .where(promo_code_usages.c.promo_code_id == promo_code_id)
                    .group_by(promo_code_usages.c.customer_id)
                    .order_by(usage_count.desc(), total_order_value.desc())
                    .limit(limit)
                ).mappings().all()
            return [
                CustomerUsageSummary(
                    customerId=row["customer_id"],
                    usageCount=row["usage_count"],
                    totalDiscount=float(row["total_discount"] or 0),
                    totalOrderValue=float(row["total_order_value"] or 0),
                    lastUsed=ensure_kst(row["last_used"]),
                )
                for row in rows
            ]

        return await self._run_in_thread(_query)

    async def list_for_promo_code(
        self,
        promo_code_id: str,
        page: int,
        size: int,
    ) -> tuple[list[PromoCodeUsage], int]:
        def _query():
            offset = (page - 1) * size
            with self._session_factory() as session:
                total = session.execute(
                    select(func.count()).select_from(promo_code_usages).where(
                        promo_code_usages.c.promo_code_id == promo_code_id
                    )
                ).scalar_one()
                rows = session.execute(
                    select(promo_code_usages)
                    .where(promo_code_usages.c.promo_code_id == promo_code_id)
                    .order_by(promo_code_usages.c.used_at.desc(), promo_code_usages.c.usage_id)
                    .offset(offset)
                    .limit(size)
                ).mappings().all()
            return [_row_to_usage(row) for row in rows], total

        return await self._run_in_thread(_query)

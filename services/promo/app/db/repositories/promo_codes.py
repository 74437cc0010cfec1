"""
프로모션 코드 Repository 구현
"""
import asyncio
from typing import Any, Callable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError

from libs.common import ensure_kst, to_storage
from libs.schemas import DiscountType, PromoCode

from services.promo.app.core.PromoCodeErrors import DuplicateCodeError, PromoCodeNotFoundError, StaleRevisionError
from services.promo.app.db.schema import promo_code_products, promo_codes
from services.promo.app.db.session import session_scope

# PromoCode 필드 -> promo_codes 컬럼
FIELD_COLUMNS = {
    "code": "code",
    "description": "description",
    "discountType": "discount_type",
    "discountValue": "discount_value",
    "minimumOrderValue": "minimum_order_value",
    "usageLimit": "usage_limit",
    "usagePerCustomer": "usage_per_customer",
    "startDate": "start_date",
    "endDate": "end_date",
    "isActive": "is_active",
    "allProducts": "all_products",
    "updatedAt": "updated_at",
}

DATETIME_FIELDS = ("startDate", "endDate", "createdAt", "updatedAt")


def _to_column_value(field: str, value: Any) -> Any:
    if field in DATETIME_FIELDS:
        return to_storage(value)
    if isinstance(value, DiscountType):
        return value.value
    return value


def _row_to_promo_code(row, product_ids: list[str]) -> PromoCode:
    return PromoCode(
        promoCodeId=row["promo_code_id"],
        code=row["code"],
        description=row["description"],
        discountType=DiscountType(row["discount_type"]),
        discountValue=float(row["discount_value"]),
        minimumOrderValue=float(row["minimum_order_value"] or 0),
        usageLimit=row["usage_limit"],
        usagePerCustomer=row["usage_per_customer"],
        usageCount=row["usage_count"],
        revision=row["revision"],
        startDate=ensure_kst(row["start_date"]),
        endDate=ensure_kst(row["end_date"]),
        isActive=bool(row["is_active"]),
        allProducts=bool(row["all_products"]),
        applicableProducts=product_ids,
        createdBy=row["created_by"],
        createdAt=ensure_kst(row["created_at"]),
        updatedAt=ensure_kst(row["updated_at"]),
    )


def _load_product_ids(session, promo_code_id: str) -> list[str]:
    rows = session.execute(
        select(promo_code_products.c.product_id)
        .where(promo_code_products.c.promo_code_id == promo_code_id)
        .order_by(promo_code_products.c.sort_order)
    ).fetchall()
    return [row[0] for row in rows]


def _replace_product_ids(session, promo_code_id: str, product_ids: list[str]) -> None:
    session.execute(delete(promo_code_products).where(promo_code_products.c.promo_code_id == promo_code_id))
    if product_ids:
        session.execute(
            insert(promo_code_products),
            [
                {"promo_code_id": promo_code_id, "product_id": product_id, "sort_order": index}
                for index, product_id in enumerate(product_ids)
            ],
        )


def _find_one(session, condition) -> PromoCode | None:
    row = session.execute(select(promo_codes).where(condition)).mappings().first()
    if row is None:
        return None
    return _row_to_promo_code(row, _load_product_ids(session, row["promo_code_id"]))


class _SQLRepositoryBase:
    """SQL Repository 기본 클래스"""
    def __init__(self, session_factory: Callable = session_scope):
        self._session_factory = session_factory

    async def _run_in_thread(self, func: Callable):
        """동기 함수를 비동기로 실행"""
        return await asyncio.to_thread(func)


class SQLAlchemyPromoCodeRepository(_SQLRepositoryBase):
    """promo_codes / promo_code_products 테이블 기반 프로모션 코드 Repository"""

    async def find_by_id(self, promo_code_id: str) -> PromoCode | None:
        def _query():
            with self._session_factory() as session:
                return _find_one(session, promo_codes.c.promo_code_id == promo_code_id)

        return await self._run_in_thread(_query)

    async def find_by_code(self, code: str) -> PromoCode | None:
        def _query():
            with self._session_factory() as session:
                return _find_one(session, promo_codes.c.code == code)

        return await self._run_in_thread(_query)

    async def code_exists(self, code: str, exclude_id: str | None = None) -> bool:
        def _query():
            with self._session_factory() as session:
                stmt = select(promo_codes.c.promo_code_id).where(promo_codes.c.code == code)
                if exclude_id is not None:
                    stmt = stmt.where(promo_codes.c.promo_code_id != exclude_id)
                return session.execute(stmt.limit(1)).first() is not None

        return await self._run_in_thread(_query)

    async def insert(self, promo_code: PromoCode) -> PromoCode:
        def _insert():
            values = {
                column: _to_column_value(field, getattr(promo_code, field))
                for field, column in FIELD_COLUMNS.items()
            }
            values.update(
                promo_code_id=promo_code.promoCodeId,
                usage_count=promo_code.usageCount,
                revision=promo_code.revision,
                created_by=promo_code.createdBy,
                created_at=to_storage(promo_code.createdAt),
            )
            with self._session_factory() as session:
                try:
                    session.execute(insert(promo_codes).values(**values))
                    _replace_product_ids(session, promo_code.promoCodeId, promo_code.applicableProducts)
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise DuplicateCodeError(promo_code.code) from exc
                return _find_one(session, promo_codes.c.promo_code_id == promo_code.promoCodeId)

        return await self._run_in_thread(_insert)

    async def update(
        self,
        promo_code_id: str,
        changes: dict[str, Any],
        expected_revision: int | None = None,
    ) -> PromoCode:
        def _update():
            values = {
                FIELD_COLUMNS[field]: _to_column_value(field, value)
                for field, value in changes.items()
                if field in FIELD_COLUMNS
            }
            values["revision"] = promo_codes.c.revision + 1

            stmt = update(promo_codes).where(promo_codes.c.promo_code_id == promo_code_id)
            if expected_revision is not None:
                stmt = stmt.where(promo_codes.c.revision == expected_revision)

            with self._session_factory() as session:
                try:
                    result = session.execute(stmt.values(**values))
                    if result.rowcount == 0:
                        session.rollback()
                        if _find_one(session, promo_codes.c.promo_code_id == promo_code_id) is None:
                            raise PromoCodeNotFoundError(promo_code_id)
                        raise StaleRevisionError(promo_code_id, expected_revision)
                    if "applicableProducts" in changes:
                        _replace_product_ids(session, promo_code_id, changes["applicableProducts"])
                    session.commit()
                except IntegrityError as exc:
                    session.rollback()
                    raise DuplicateCodeError(changes.get("code", "")) from exc
                return _find_one(session, promo_codes.c.promo_code_id == promo_code_id)

        return await self._run_in_thread(_update)

    async def delete_unused(self, promo_code_id: str) -> bool:
        def _delete():
            with self._session_factory() as session:
                # 사용 이력이 커밋되면 usage_count가 증가하므로 조건부 삭제로 경쟁을 막습니다.
                result = session.execute(
                    delete(promo_codes).where(
                        promo_codes.c.promo_code_id == promo_code_id,
                        promo_codes.c.usage_count == 0,
                    )
                )
                if result.rowcount == 0:
                    session.rollback()
                    return False
                # SQLite는 기본적으로 FK CASCADE를 적용하지 않으므로 직접 정리
                session.execute(
                    delete(promo_code_products).where(promo_code_products.c.promo_code_id == promo_code_id)
                )
                session.commit()
                return True

        return await self._run_in_thread(_delete)

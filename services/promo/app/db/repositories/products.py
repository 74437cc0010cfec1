"""
상품 카탈로그 조회 구현
적용 상품 지정 시 존재하지 않는 상품 ID를 찾는 용도로만 사용합니다.
"""
from sqlalchemy import select

from services.promo.app.db.repositories.promo_codes import _SQLRepositoryBase
from services.promo.app.db.schema import products


class SQLAlchemyProductLookup(_SQLRepositoryBase):
    async def find_missing(self, product_ids: list[str]) -> list[str]:
        if not product_ids:
            return []

        def _query():
            with self._session_factory() as session:
                rows = session.execute(
                    select(products.c.product_id).where(products.c.product_id.in_(product_ids))
                ).fetchall()
            found = {row[0] for row in rows}
            return [product_id for product_id in product_ids if product_id not in found]

        return await self._run_in_thread(_query)

"""
프로모션 코드 서비스 테이블 정의 (SQLAlchemy Core)

DATETIME 컬럼에는 KST 벽시계 시간(naive)을 저장합니다.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

# 금액은 float로 다룹니다 (허용 오차 0.01)
Money = Numeric(12, 2, asdecimal=False)

promo_codes = Table(
    "promo_codes",
    metadata,
    Column("promo_code_id", String(32), primary_key=True),
    Column("code", String(20), nullable=False, unique=True),
    Column("description", String(500), nullable=True),
    Column("discount_type", String(16), nullable=False),
    Column("discount_value", Money, nullable=False),
    Column("minimum_order_value", Money, nullable=False, default=0),
    Column("usage_limit", Integer, nullable=True),
    Column("usage_per_customer", Integer, nullable=True),
    Column("usage_count", Integer, nullable=False, default=0),
    Column("revision", Integer, nullable=False, default=0),
    Column("start_date", DateTime, nullable=False),
    Column("end_date", DateTime, nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("all_products", Boolean, nullable=False, default=False),
    Column("created_by", String(64), nullable=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Index("ix_promo_codes_active_window", "is_active", "start_date", "end_date"),
)

promo_code_products = Table(
    "promo_code_products",
    metadata,
    Column("promo_code_id", String(32), ForeignKey("promo_codes.promo_code_id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", String(64), primary_key=True),
    Column("sort_order", Integer, nullable=False, default=0),
)

promo_code_usages = Table(
    "promo_code_usages",
    metadata,
    Column("usage_id", String(32), primary_key=True),
    Column("promo_code_id", String(32), ForeignKey("promo_codes.promo_code_id"), nullable=False),
    Column("customer_id", String(64), nullable=False),
    # 주문당 최대 한 번만 적용 (시스템 전체 유일)
    Column("order_id", String(64), nullable=False, unique=True),
    Column("order_value", Money, nullable=False),
    Column("discount_amount", Money, nullable=False),
    Column("discount_type", String(16), nullable=False),
    Column("discount_value", Money, nullable=False),
    Column("product_ids", JSON, nullable=False),
    Column("used_at", DateTime, nullable=False),
    Column("ip_address", String(45), nullable=True),
    Column("user_agent", String(500), nullable=True),
    Index("ix_promo_code_usages_customer", "promo_code_id", "customer_id"),
    Index("ix_promo_code_usages_used_at", "promo_code_id", "used_at"),
)

# 상품 카탈로그 서비스 소유 테이블. 존재 여부 조회에만 사용합니다.
products = Table(
    "products",
    metadata,
    Column("product_id", String(64), primary_key=True),
    Column("name", String(200), nullable=True),
)


def create_schema(engine) -> None:
    metadata.create_all(engine)

from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from services.promo.app.db.connection import settings


def build_engine(database_url: str):
    connect_args = {}
    if database_url.startswith("sqlite"):
        # 요청 스레드(asyncio.to_thread)마다 커넥션을 공유하므로 스레드 검사 해제
        connect_args["check_same_thread"] = False
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        future=True,
        connect_args=connect_args,
    )


engine = build_engine(settings.PROMO_DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

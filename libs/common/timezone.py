"""
한국표준시(KST) 관련 유틸리티
모든 서버에서 일관된 시간 처리를 위해 사용합니다.
DB에는 KST 벽시계 시간(naive)으로 저장하고, 읽을 때 다시 KST를 부여합니다.
"""
from datetime import datetime, timedelta, timezone

# 한국표준시 (KST = UTC+9)
KST_TIMEZONE = timezone(timedelta(hours=9))


def now_kst() -> datetime:
    """현재 시간을 KST로 반환합니다."""
    return datetime.now(KST_TIMEZONE)


def ensure_kst(dt: datetime | None) -> datetime | None:
    """
    datetime 객체가 KST 시간대를 가지도록 보장합니다.
    시간대가 없으면 KST로 간주하고, 다른 시간대면 KST로 변환합니다.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=KST_TIMEZONE)
    return dt.astimezone(KST_TIMEZONE)


def to_storage(dt: datetime | None) -> datetime | None:
    """
    DB 저장용으로 KST 벽시계 시간(naive datetime)으로 변환합니다.
    """
    if dt is None:
        return None
    return ensure_kst(dt).replace(tzinfo=None)

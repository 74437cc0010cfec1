"""
공통 인증 모듈
JWT access token을 검증하여 요청 주체(subject)를 추출합니다.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Tuple

import jwt

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """인증 관련 에러"""
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
        logger.info("AuthError: %s %s", code, message)


def get_jwt_config() -> Tuple[str, str]:
    """
    환경 변수에서 JWT 설정을 읽어옵니다.

    Returns:
        (secret_key, algorithm) 튜플
    """
    secret_key = os.getenv("JWT_SECRET_KEY") or os.getenv("PROMO_JWT_SECRET_KEY")
    algorithm = os.getenv("JWT_ALGORITHM", "HS256")

    if not secret_key:
        # 개발용 기본값 (프로덕션에서는 반드시 환경 변수로 설정)
        secret_key = "change-me-in-production"

    return (secret_key, algorithm)


def verify_access_token(access_token: str, secret_key: str | None = None, algorithm: str | None = None) -> Tuple[str, str]:
    """
    Access token을 검증하고 (subject_type, subject_id)를 반환합니다.
    DB 조회 없이 토큰 자체에서 정보를 추출합니다.

    Args:
        access_token: 검증할 access token (JWT)
        secret_key: JWT 서명 키 (None이면 환경 변수에서 읽음)
        algorithm: JWT 알고리즘 (None이면 환경 변수 또는 HS256)

    Returns:
        (subject_type, subject_id) 튜플. subject_id는 감사(audit) 필드에 그대로 기록되는 문자열입니다.

    Raises:
        AuthError: 토큰이 유효하지 않은 경우
    """
    if not secret_key or not algorithm:
        secret_key, algorithm = get_jwt_config()

    try:
        payload = jwt.decode(
            access_token,
            secret_key,
            algorithms=[algorithm]
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthError("ERR-IVD-PARAM", "access token이 만료되었습니다.") from e
    except jwt.InvalidTokenError as e:
        raise AuthError("ERR-IVD-PARAM", "access token이 유효하지 않습니다.") from e

    subject_type = payload.get("sub_type")
    subject_id = payload.get("sub_id")

    if not subject_type or subject_id is None or subject_id == "":
        raise AuthError("ERR-IVD-PARAM", "access token에 필수 정보가 없습니다.")

    return (str(subject_type), str(subject_id))


def issue_access_token(subject_type: str, subject_id: str, expires_in_seconds: int = 1800) -> str:
    """
    관리 도구/테스트에서 사용할 access token을 발급합니다.
    """
    secret_key, algorithm = get_jwt_config()
    payload = {
        "sub_type": subject_type,
        "sub_id": str(subject_id),
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds),
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)

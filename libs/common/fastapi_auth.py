"""
FastAPI에서 사용할 수 있는 인증 Dependency 헬퍼
"""
import os
from typing import Annotated, Tuple

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from libs.common.auth import AuthError, verify_access_token

# Swagger UI에서 Bearer token을 입력할 수 있도록 HTTPBearer 설정
security = HTTPBearer(description="Access Token (Bearer)", auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(security),
) -> Tuple[str, str]:
    """
    Bearer token에서 (subject_type, subject_id)를 추출합니다.

    Raises:
        HTTPException: 인증 실패 시 HTTP 401 반환
    """
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="",
        )

    try:
        return verify_access_token(credentials.credentials)
    except AuthError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="",
        ) from e


async def get_admin_user(current_user: Tuple[str, str] = Depends(get_current_user)) -> Tuple[str, str]:
    """
    관리자 토큰만 통과시킵니다.
    관리자 subject_type은 ADMIN_SUBJECT_TYPE 환경 변수로 바꿀 수 있습니다 (기본값: admin).
    """
    subject_type, _ = current_user
    if subject_type != os.getenv("ADMIN_SUBJECT_TYPE", "admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="관리자만 프로모션 코드를 관리할 수 있습니다.",
        )
    return current_user


# Type alias for dependency injection
CurrentUser = Annotated[Tuple[str, str], Depends(get_current_user)]
AdminUser = Annotated[Tuple[str, str], Depends(get_admin_user)]

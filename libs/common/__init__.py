"""
프로모션 서비스 공통 라이브러리
인증, 시간대 처리 등 서비스 공통 기능을 제공합니다.
"""

from libs.common.auth import AuthError, get_jwt_config, issue_access_token, verify_access_token
from libs.common.fastapi_auth import AdminUser, CurrentUser, get_admin_user, get_current_user, security
from libs.common.timezone import KST_TIMEZONE, ensure_kst, now_kst, to_storage

__all__ = [
    "AuthError",
    "verify_access_token",
    "issue_access_token",
    "get_jwt_config",
    "get_current_user",
    "get_admin_user",
    "CurrentUser",
    "AdminUser",
    "security",
    "KST_TIMEZONE",
    "now_kst",
    "ensure_kst",
    "to_storage",
]

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.promo.app.api.v1.router import router
from services.promo.app.db.connection import settings

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

# JWT 설정을 환경 변수로 설정 (libs/common/auth.py가 os.getenv()로 읽을 수 있도록)
# Settings에서 읽은 값을 환경 변수로 설정 (이미 환경 변수가 있으면 덮어쓰지 않음)
os.environ.setdefault("JWT_SECRET_KEY", settings.JWT_SECRET_KEY)
os.environ.setdefault("JWT_ALGORITHM", settings.JWT_ALGORITHM)
os.environ.setdefault("ADMIN_SUBJECT_TYPE", settings.ADMIN_SUBJECT_TYPE)

if settings.PROMO_AUTO_CREATE_SCHEMA:
    from services.promo.app.db.schema import create_schema
    from services.promo.app.db.session import engine

    create_schema(engine)

app = FastAPI(
    title="Promo Code Service (프로모션 코드 서비스)",
    description="Promo code validation, redemption and management server"
)

# CORS 설정
# 환경 변수 ALLOWED_ORIGINS가 설정되어 있으면 우선 사용
# 없으면 개발 환경일 때 기본 localhost 리스트 사용
if settings.ALLOWED_ORIGINS:
    allowed_origins = settings.allowed_origins
elif settings.is_development:
    allowed_origins = [
        "http://localhost:3000",
        "http://localhost:5173",  # Vite 기본 포트
        "http://localhost:8003",  # Promo 서비스 포트
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:8003",
    ]
else:
    # 프로덕션 환경: 환경 변수가 없으면 빈 리스트 (모든 오리진 차단)
    allowed_origins = []

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,  # 쿠키를 포함한 요청 허용
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

# 서비스가 살아있는지 확인하는 헬스 체크 엔드포인트
@app.get("/")
def read_root():
    return {"service": "Promo Code Service", "status": "running"}

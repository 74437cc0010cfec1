import logging
import sys
from importlib.util import module_from_spec, spec_from_file_location
from pathlib import Path

from fastapi import APIRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Promo Code"])


def load_sub_routers(directory: Path) -> list[APIRouter]:
    """
    directory의 *.router.py 파일을 이름순으로 import하여 모듈의 `router` 객체를 모읍니다.
    파일명에 점이 들어가 일반 import가 불가능하므로 파일 경로로 직접 로드합니다.
    """
    sub_routers: list[APIRouter] = []
    for router_file in sorted(directory.glob("*.router.py")):
        module_name = f"promo_api_v1_{router_file.name.removesuffix('.router.py')}"
        spec = spec_from_file_location(module_name, router_file)
        if spec is None or spec.loader is None:
            logger.warning("Skipping router file %s", router_file.name)
            continue
        module = module_from_spec(spec)
        # pydantic이 Page[...] 같은 제네릭 모델을 만들 때 sys.modules에서 모듈을 찾습니다.
        sys.modules[module_name] = module
        spec.loader.exec_module(module)

        sub_router = getattr(module, "router", None)
        if isinstance(sub_router, APIRouter):
            sub_routers.append(sub_router)
    return sub_routers


for sub_router in load_sub_routers(Path(__file__).resolve().parent):
    router.include_router(sub_router)

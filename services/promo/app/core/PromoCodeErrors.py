"""
프로모션 코드 서비스 에러 정의
모든 에러는 라우터에서 HTTP 응답으로 변환할 수 있도록 문자열 code를 가집니다.
"""
from dataclasses import dataclass


class PromoCodeError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class FieldError:
    field: str
    message: str


class PromoCodeValidationError(PromoCodeError):
    """규칙 정의가 형식 또는 불변식을 위반한 경우"""
    CODE = "ERR-IVD-VALUE"

    def __init__(self, message: str, details: list[FieldError] | None = None):
        super().__init__(self.CODE, message)
        self.details = details or []


class InvalidProductsError(PromoCodeValidationError):
    CODE = "ERR-IVD-PRODUCT"

    def __init__(self, missing_product_ids: list[str]):
        super().__init__(
            "존재하지 않는 상품이 포함되어 있습니다.",
            [FieldError("applicableProducts", f"존재하지 않는 상품: {product_id}") for product_id in missing_product_ids],
        )
        self.missing_product_ids = missing_product_ids


class PromoCodeNotFoundError(PromoCodeError):
    def __init__(self, key: str):
        super().__init__("ERR-NOT-FOUND", f"프로모션 코드를 찾을 수 없습니다: {key}")


class DuplicateCodeError(PromoCodeError):
    def __init__(self, code: str):
        super().__init__("ERR-DUP-CODE", f"이미 존재하는 프로모션 코드입니다: {code}")


class DuplicateOrderError(PromoCodeError):
    """원장에 같은 주문 ID의 사용 이력이 이미 있는 경우 (유일성 제약 위반)"""
    def __init__(self, order_id: str):
        super().__init__("ERR-DUP-ORDER", f"이미 사용 이력이 있는 주문입니다: {order_id}")
        self.order_id = order_id


class AlreadyRedeemedError(PromoCodeError):
    def __init__(self, order_id: str):
        super().__init__("ERR-ALREADY-USED", "이 주문에는 이미 프로모션 코드가 적용되었습니다.")
        self.order_id = order_id


class PromoCodeIneligibleError(PromoCodeError):
    """사용 조건을 만족하지 못해 적용이 거절된 경우"""
    def __init__(self, reason: str, message: str):
        super().__init__("ERR-INELIGIBLE", message)
        self.reason = reason


class StaleRevisionError(PromoCodeError):
    """커밋 시점에 규칙의 revision이 읽은 값과 달라진 경우 (내부 재시도용)"""
    def __init__(self, promo_code_id: str, expected_revision: int):
        super().__init__("ERR-STALE", f"규칙이 동시에 변경되었습니다: {promo_code_id} (revision {expected_revision})")
        self.promo_code_id = promo_code_id
        self.expected_revision = expected_revision


class PromoCodeConflictError(PromoCodeError):
    """동시 변경 충돌로 제한 횟수만큼 재시도했지만 커밋하지 못한 경우"""
    def __init__(self, key: str, attempts: int):
        super().__init__("ERR-CONFLICT", "동시 요청이 많아 처리하지 못했습니다. 잠시 후 다시 시도해 주세요.")
        self.key = key
        self.attempts = attempts


class HasUsageHistoryError(PromoCodeError):
    def __init__(self, usage_count: int):
        super().__init__(
            "ERR-HAS-USAGE",
            "사용 이력이 있는 프로모션 코드는 삭제할 수 없습니다. 비활성화를 사용하세요.",
        )
        self.usage_count = usage_count


class GenerationExhaustedError(PromoCodeError):
    def __init__(self, attempts: int):
        super().__init__("ERR-GEN-EXHAUSTED", f"{attempts}회 시도했지만 고유한 코드를 생성하지 못했습니다.")
        self.attempts = attempts

from services.promo.app.schemas.request.PromoCodeApplySchema import PromoCodeApplySchema
from services.promo.app.schemas.request.PromoCodeCreateSchema import PromoCodeCreateSchema
from services.promo.app.schemas.request.PromoCodeDuplicateSchema import PromoCodeDuplicateSchema
from services.promo.app.schemas.request.PromoCodeGenerateSchema import PromoCodeGenerateSchema
from services.promo.app.schemas.request.PromoCodeUpdateSchema import PromoCodeUpdateSchema
from services.promo.app.schemas.request.PromoCodeValidateSchema import PromoCodeValidateSchema

__all__ = [
    "PromoCodeApplySchema",
    "PromoCodeCreateSchema",
    "PromoCodeDuplicateSchema",
    "PromoCodeGenerateSchema",
    "PromoCodeUpdateSchema",
    "PromoCodeValidateSchema",
]

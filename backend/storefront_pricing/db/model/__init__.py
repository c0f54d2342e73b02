# 聚合导入所有模型，供 Alembic 发现

from .pricing_schema import (
    PricingSchema,
    PricingSchemaRule,
    CustomerPricingSchema,
)
from .user import AdminUser

__all__ = [
    # pricing
    "PricingSchema", "PricingSchemaRule", "CustomerPricingSchema",
    # others
    "AdminUser",
]

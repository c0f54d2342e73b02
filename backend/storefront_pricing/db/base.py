# 统一的 ORM 基类 + 命名规范

from __future__ import annotations
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import MetaData

# 约束/索引名字稳定可预期，Alembic 迁移里直接按名字 drop
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


# 所有表模型（PricingSchema / PricingSchemaRule / CustomerPricingSchema / AdminUser）都继承它
class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)

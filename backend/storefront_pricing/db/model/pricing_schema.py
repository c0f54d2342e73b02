from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from storefront_pricing.db.base import Base
from storefront_pricing.utils.clock import new_id, now_utc


"""
  pricing_schemas 表：一组可复用、可分配给客户的折扣规则
  - 删除 schema 级联删除 rules 与所有客户分配
"""
class PricingSchema(Base):

    __tablename__ = "pricing_schemas"

    id:          Mapped[str]           = mapped_column(String(36), primary_key=True, default=new_id)
    name:        Mapped[str]           = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    rules: Mapped[List["PricingSchemaRule"]] = relationship(
        back_populates="schema",
        cascade="all, delete-orphan",
    )
    assignments: Mapped[List["CustomerPricingSchema"]] = relationship(
        back_populates="schema",
        cascade="all, delete-orphan",
    )


"""
  pricing_schema_rules 表
  - scope_type: product / subcategory / category / global；scope_value 对 global 为空
  - scope_key : scope 的规范化字符串（global 或 "<type>:<value>"），用于唯一索引
  - discount_type: percentage / fixed_price / fixed_discount
  - 同一 schema 内 active 规则的 scope 不可重复（校验器 + 部分唯一索引）
"""
class PricingSchemaRule(Base):

    __tablename__ = "pricing_schema_rules"

    id:        Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    schema_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pricing_schemas.id", ondelete="CASCADE"), nullable=False, index=True
    )

    scope_type:  Mapped[str]           = mapped_column(String(16), nullable=False)
    scope_value: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)   # product_id / 类目名 / 子类目名
    scope_key:   Mapped[str]           = mapped_column(String(300), nullable=False)

    discount_type:  Mapped[str]     = mapped_column(String(16), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)   # 百分比 或 EUR 金额

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc, onupdate=now_utc)

    schema: Mapped["PricingSchema"] = relationship(back_populates="rules")

    __table_args__ = (
        CheckConstraint("scope_type IN ('product','subcategory','category','global')", name="scope_type"),
        CheckConstraint("discount_type IN ('percentage','fixed_price','fixed_discount')", name="discount_type"),
        CheckConstraint("discount_value >= 0", name="discount_value_non_negative"),
        Index(
            "ux_pricing_schema_rules_active_scope",
            "schema_id", "scope_key",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )


"""
  customer_pricing_schemas 表：客户 <-> schema 多对多，带 priority（越大越先解析）
"""
class CustomerPricingSchema(Base):

    __tablename__ = "customer_pricing_schemas"

    customer_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    schema_id:   Mapped[str] = mapped_column(
        String(36), ForeignKey("pricing_schemas.id", ondelete="CASCADE"), primary_key=True
    )
    priority:    Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_utc)

    schema: Mapped["PricingSchema"] = relationship(back_populates="assignments")

    __table_args__ = (
        Index("ix_customer_pricing_schemas_customer_priority", "customer_id", "priority"),
    )

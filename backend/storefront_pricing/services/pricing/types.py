# 定价领域类型：Scope / Discount 两个 tagged union + 输入输出模型

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union


_Q_CENTS = Decimal("0.01")


def to_decimal(val) -> Decimal:
    # float 先转 str，避免 0.1 之类的二进制误差带进金额
    if isinstance(val, Decimal):
        return val
    return Decimal(str(val))


def quantize_eur(val: Decimal) -> Decimal:
    """金额统一：2 位小数，四舍五入（half-up）。"""
    return val.quantize(_Q_CENTS, rounding=ROUND_HALF_UP)


# --------- Scope ----------
@dataclass(frozen=True, slots=True)
class ProductScope:
    product_id: str


@dataclass(frozen=True, slots=True)
class SubcategoryScope:
    name: str


@dataclass(frozen=True, slots=True)
class CategoryScope:
    name: str


@dataclass(frozen=True, slots=True)
class GlobalScope:
    pass


Scope = Union[ProductScope, SubcategoryScope, CategoryScope, GlobalScope]


# 越小越具体；pricing_schema_repo 的排序和引擎的分层都用这个
SPECIFICITY_RANK = {
    "product": 0,
    "subcategory": 1,
    "category": 2,
    "global": 3,
}


def scope_type(scope: Scope) -> str:
    if isinstance(scope, ProductScope):
        return "product"
    if isinstance(scope, SubcategoryScope):
        return "subcategory"
    if isinstance(scope, CategoryScope):
        return "category"
    if isinstance(scope, GlobalScope):
        return "global"
    raise TypeError(f"unsupported scope: {scope!r}")


def scope_value(scope: Scope) -> Optional[str]:
    if isinstance(scope, ProductScope):
        return scope.product_id
    if isinstance(scope, (SubcategoryScope, CategoryScope)):
        return scope.name
    if isinstance(scope, GlobalScope):
        return None
    raise TypeError(f"unsupported scope: {scope!r}")


def scope_key(scope: Scope) -> str:
    """规范化 key：global 或 '<type>:<value>'，唯一索引按它判重。"""
    kind = scope_type(scope)
    if kind == "global":
        return kind
    return f"{kind}:{scope_value(scope)}"


def scope_from_columns(kind: str, value: Optional[str]) -> Scope:
    if kind == "product":
        return ProductScope(product_id=value or "")
    if kind == "subcategory":
        return SubcategoryScope(name=value or "")
    if kind == "category":
        return CategoryScope(name=value or "")
    if kind == "global":
        return GlobalScope()
    raise ValueError(f"unknown scope_type: {kind!r}")


# --------- Discount ----------
@dataclass(frozen=True, slots=True)
class Percentage:
    value: Decimal


@dataclass(frozen=True, slots=True)
class FixedPrice:
    value: Decimal


@dataclass(frozen=True, slots=True)
class FixedDiscount:
    value: Decimal


Discount = Union[Percentage, FixedPrice, FixedDiscount]


def discount_type(discount: Discount) -> str:
    if isinstance(discount, Percentage):
        return "percentage"
    if isinstance(discount, FixedPrice):
        return "fixed_price"
    if isinstance(discount, FixedDiscount):
        return "fixed_discount"
    raise TypeError(f"unsupported discount: {discount!r}")


def discount_from_columns(kind: str, value) -> Discount:
    amount = to_decimal(value)
    if kind == "percentage":
        return Percentage(amount)
    if kind == "fixed_price":
        return FixedPrice(amount)
    if kind == "fixed_discount":
        return FixedDiscount(amount)
    raise ValueError(f"unknown discount_type: {kind!r}")


# --------- 规则 / 商品 / 结果 ----------
@dataclass(frozen=True, slots=True)
class RuleSpec:
    """后台提交的待写入规则（尚未持久化）。"""
    scope: Scope
    discount: Discount
    active: bool = True


@dataclass(frozen=True, slots=True)
class PricingRule:
    """已持久化规则的只读快照，引擎和校验器都只看这个，不碰 ORM 行。"""
    id: str
    schema_id: str
    scope: Scope
    discount: Discount
    active: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "PricingRule":
        return cls(
            id=row.id,
            schema_id=row.schema_id,
            scope=scope_from_columns(row.scope_type, row.scope_value),
            discount=discount_from_columns(row.discount_type, row.discount_value),
            active=bool(row.active),
            created_at=row.created_at,
        )


@dataclass(frozen=True, slots=True)
class CatalogProduct:
    """
    商品目录传进来的最小商品记录（catalog 属外部系统）。
    price_eur 为净价（不含 VAT）。
    """
    id: str
    category: Optional[str]
    subcategory: Optional[str]
    price_eur: Decimal

    def __post_init__(self):
        price = to_decimal(self.price_eur)
        if price < 0:
            raise ValueError(f"price_eur must be non-negative for product {self.id}")
        object.__setattr__(self, "price_eur", price)


@dataclass(frozen=True, slots=True)
class CatalogCostRecord:
    """毛利校验需要的商品成本快照（由 CatalogReader 提供）。"""
    id: str
    name: str
    category: Optional[str]
    price_eur: Decimal
    cost_eur: Optional[Decimal] = None


@dataclass(frozen=True, slots=True)
class EffectivePrice:
    original_price: Decimal
    discounted_price: Decimal
    is_discounted: bool
    applied_schema_name: Optional[str] = None
    applied_rule_id: Optional[str] = None

    @classmethod
    def undiscounted(cls, price_eur: Decimal) -> "EffectivePrice":
        price = quantize_eur(price_eur)
        return cls(original_price=price, discounted_price=price, is_discounted=False)

# 规则写入前的校验（纯函数，不做 IO）

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Iterable, Mapping, Optional, Protocol

from storefront_pricing.services.pricing.types import (
    CatalogCostRecord,
    FixedDiscount,
    FixedPrice,
    GlobalScope,
    Percentage,
    PricingRule,
    RuleSpec,
    Scope,
    quantize_eur,
    scope_key,
    scope_type,
    scope_value,
)


_HUNDRED = Decimal("100")

# 与 pricing_schema_rules.discount_value 的 Numeric(12, 4) 一致
_VALUE_SCALE = Decimal("0.0001")
_VALUE_LIMIT = Decimal("100000000")


@dataclass(frozen=True, slots=True)
class RuleValidationResult:
    valid: bool
    message: Optional[str] = None
    max_discount_percentage: Optional[Decimal] = None
    max_discount_eur: Optional[Decimal] = None
    affected_product_count: Optional[int] = None

    @classmethod
    def ok(cls, affected_product_count: Optional[int] = None) -> "RuleValidationResult":
        return cls(valid=True, affected_product_count=affected_product_count)

    @classmethod
    def err(cls, message: str, **extra) -> "RuleValidationResult":
        return cls(valid=False, message=message, **extra)


class CatalogReader(Protocol):
    """商品目录的只读接口（外部系统）；只在毛利校验时用。"""

    def products_in_scope(self, scope: Scope) -> Iterable[CatalogCostRecord]:
        ...


"""
校验一条待写入规则：
    1) scope 除 Global 外必须带值；
    2) Percentage 必须在 (0, 100]；FixedPrice / FixedDiscount 不能为负；
       数值最多 4 位小数、绝对值小于 1e8（落库列精度）；
    3) 同一 schema 内不能有另一条 active 规则使用完全相同的 scope。
exclude_rule_id：重新激活已有规则时，把它自己排除在重复检查之外。
"""
def validate_rule(
    rule: RuleSpec,
    existing_rules: Iterable[PricingRule],
    *,
    exclude_rule_id: Optional[str] = None,
) -> RuleValidationResult:

    kind = scope_type(rule.scope)
    if not isinstance(rule.scope, GlobalScope):
        value = scope_value(rule.scope)
        if value is None or not value.strip():
            return RuleValidationResult.err(f"A {kind} rule needs a {_scope_label(kind)}.")

    discount = rule.discount
    amount = discount.value
    if not isinstance(amount, Decimal) or not amount.is_finite():
        return RuleValidationResult.err("Discount value must be a finite number.")
    if abs(amount) >= _VALUE_LIMIT:
        return RuleValidationResult.err("Discount value must be less than 100000000.")
    if amount != amount.quantize(_VALUE_SCALE):
        return RuleValidationResult.err("Discount value must have at most 4 decimal places.")

    if isinstance(discount, Percentage):
        if not (Decimal("0") < amount <= _HUNDRED):
            return RuleValidationResult.err("Percentage discount must be greater than 0 and at most 100.")
    elif isinstance(discount, FixedPrice):
        if amount < 0:
            return RuleValidationResult.err("Fixed price must not be negative.")
    elif isinstance(discount, FixedDiscount):
        if amount < 0:
            return RuleValidationResult.err("Fixed discount must not be negative.")
    else:
        raise TypeError(f"unsupported discount: {discount!r}")

    # inactive 规则不占 scope
    if not rule.active:
        return RuleValidationResult.ok()

    key = scope_key(rule.scope)
    for other in existing_rules:
        if other.id == exclude_rule_id or not other.active:
            continue
        if scope_key(other.scope) == key:
            return RuleValidationResult.err(
                f"An active rule for {_describe_scope(rule.scope)} already exists in this schema."
            )

    return RuleValidationResult.ok()


"""
毛利校验：规则覆盖到的每个商品，折后价不能低于 cost_eur + 类目阈值
    - FixedPrice：直接比对最低价，遇到第一个违规商品就返回
    - Percentage / FixedDiscount：找出最严格的商品，报告本组允许的最大折扣
thresholds: {category: EUR}，未配置的类目按 0
"""
def check_margin(
    rule: RuleSpec,
    products: Iterable[CatalogCostRecord],
    thresholds: Mapping[str, Decimal],
) -> RuleValidationResult:

    discount = rule.discount
    count = 0

    most_restrictive_pct = _HUNDRED
    most_restrictive_eur: Optional[Decimal] = None
    invalid_product: Optional[CatalogCostRecord] = None

    for product in products:
        count += 1
        threshold = Decimal(str(thresholds.get(product.category or "", 0)))
        cost = product.cost_eur if product.cost_eur is not None else Decimal("0")
        min_price = cost + threshold
        max_discount_eur = max(Decimal("0"), product.price_eur - min_price)
        if product.price_eur > 0:
            max_discount_pct = max_discount_eur / product.price_eur * _HUNDRED
        else:
            max_discount_pct = Decimal("0")

        if isinstance(discount, FixedPrice):
            if discount.value < min_price:
                return RuleValidationResult.err(
                    f'Price too low for "{product.name}". Minimum allowed: {quantize_eur(min_price)} EUR '
                    f"(Cost + {threshold} EUR margin).",
                    max_discount_eur=quantize_eur(max_discount_eur),
                )
            continue

        if isinstance(discount, Percentage):
            too_much = product.price_eur * discount.value / _HUNDRED > max_discount_eur
        elif isinstance(discount, FixedDiscount):
            too_much = discount.value > max_discount_eur
        else:
            raise TypeError(f"unsupported discount: {discount!r}")

        if too_much and (invalid_product is None or max_discount_pct < most_restrictive_pct):
            most_restrictive_pct = max_discount_pct
            most_restrictive_eur = max_discount_eur
            invalid_product = product

    if invalid_product is not None:
        allowed_pct = most_restrictive_pct.quantize(Decimal("0.1"), rounding=ROUND_FLOOR)
        shown_pct = most_restrictive_pct.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        allowed_eur = quantize_eur(most_restrictive_eur or Decimal("0"))
        if isinstance(discount, Percentage):
            message = (
                f'Discount too high for some products (e.g., "{invalid_product.name}"). '
                f"Max allowed discount for this group is {shown_pct}%."
            )
        else:
            message = (
                f'Discount too high for some products (e.g., "{invalid_product.name}"). '
                f"Max allowed discount for this group is {allowed_eur} EUR."
            )
        return RuleValidationResult.err(
            message,
            max_discount_percentage=allowed_pct,
            max_discount_eur=allowed_eur,
        )

    return RuleValidationResult.ok(affected_product_count=count)


def _scope_label(kind: str) -> str:
    return {
        "product": "product id",
        "subcategory": "subcategory name",
        "category": "category name",
    }.get(kind, "value")


def _describe_scope(scope: Scope) -> str:
    kind = scope_type(scope)
    if kind == "global":
        return "all products"
    return f'{kind} "{scope_value(scope)}"'

# 客户专属价格解析引擎

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront_pricing.repository.customer_pricing_repo import list_for_customer
from storefront_pricing.repository.pricing_schema_repo import load_rules_for_schemas
from storefront_pricing.services.pricing.errors import ConsistencyWarning, RetrievalError
from storefront_pricing.services.pricing.types import (
    SPECIFICITY_RANK,
    CatalogProduct,
    CategoryScope,
    Discount,
    EffectivePrice,
    FixedDiscount,
    FixedPrice,
    GlobalScope,
    Percentage,
    PricingRule,
    ProductScope,
    Scope,
    SubcategoryScope,
    quantize_eur,
    scope_type,
)


logger = logging.getLogger(__name__)

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")


# --------- 结果类型：批量解析显式返回 Ok / Err，由调用方决定怎么降级 ----------
@dataclass(frozen=True, slots=True)
class Ok:
    value: Dict[str, EffectivePrice]


@dataclass(frozen=True, slots=True)
class Err:
    error: RetrievalError


PriceResult = Union[Ok, Err]


@dataclass(frozen=True, slots=True)
class SchemaRules:
    """某客户的一个 schema 及其 active 规则（已按具体度排好序）。"""
    schema_id: str
    schema_name: str
    priority: int
    rules: Tuple[PricingRule, ...]


CustomerPricingData = Tuple[SchemaRules, ...]


# --------- 纯计算部分（不碰 DB） ----------
def scope_matches(scope: Scope, product: CatalogProduct) -> bool:
    if isinstance(scope, ProductScope):
        return scope.product_id == product.id
    if isinstance(scope, SubcategoryScope):
        return product.subcategory is not None and scope.name == product.subcategory
    if isinstance(scope, CategoryScope):
        return product.category is not None and scope.name == product.category
    if isinstance(scope, GlobalScope):
        return True
    raise TypeError(f"unsupported scope: {scope!r}")


def match_rule(schema: SchemaRules, product: CatalogProduct) -> Optional[PricingRule]:
    """
    在一个 schema 内找第一条命中的规则：Product -> Subcategory -> Category -> Global。
    规则已由 store 按具体度 + created_at 降序排好，所以同层第一条就是最新的。
    同层命中多条（唯一约束本应挡住，脏数据兜底）：用最新那条，记 ConsistencyWarning。
    """
    chosen: Optional[PricingRule] = None
    duplicates: List[PricingRule] = []

    for rule in schema.rules:
        if not rule.active or not scope_matches(rule.scope, product):
            continue
        if chosen is None:
            chosen = rule
            continue
        if SPECIFICITY_RANK[scope_type(rule.scope)] != SPECIFICITY_RANK[scope_type(chosen.scope)]:
            break
        duplicates.append(rule)

    if chosen is not None and duplicates:
        _report(
            ConsistencyWarning(
                "duplicate_scope_match",
                f"{len(duplicates) + 1} active {scope_type(chosen.scope)} rules match; using the most recent one",
                schema_id=schema.schema_id,
                rule_ids=[chosen.id, *(r.id for r in duplicates)],
                product_id=product.id,
            )
        )
    return chosen


def apply_discount(
    price_eur: Decimal,
    discount: Discount,
    *,
    rule: Optional[PricingRule] = None,
    product_id: Optional[str] = None,
) -> Decimal:
    """按折扣计算净价，结果 2 位小数 half-up，且永远不高于原价、不低于 0。"""
    if isinstance(discount, Percentage):
        discounted = price_eur * (1 - discount.value / _HUNDRED)
    elif isinstance(discount, FixedPrice):
        discounted = min(discount.value, price_eur)
        if discount.value > price_eur:
            _report(
                ConsistencyWarning(
                    "fixed_price_above_original",
                    f"fixed price {discount.value} exceeds list price {price_eur}; clamped to list price",
                    schema_id=rule.schema_id if rule else None,
                    rule_ids=[rule.id] if rule else (),
                    product_id=product_id,
                )
            )
    elif isinstance(discount, FixedDiscount):
        discounted = max(_ZERO, price_eur - discount.value)
    else:
        raise TypeError(f"unsupported discount: {discount!r}")

    # 百分比 > 100 的脏数据也不能把价格打成负数
    return quantize_eur(max(_ZERO, min(discounted, price_eur)))


def calculate_effective_price(product: CatalogProduct, pricing_data: CustomerPricingData) -> EffectivePrice:
    """
    用预先取好的客户定价数据计算单个商品的价格。
    schema 已按 priority 排好：第一个能命中规则的 schema 决定结果，之后的不再看。
    """
    original = quantize_eur(product.price_eur)
    if not pricing_data:
        return EffectivePrice.undiscounted(product.price_eur)

    for schema in pricing_data:
        rule = match_rule(schema, product)
        if rule is None:
            continue

        discounted = apply_discount(product.price_eur, rule.discount, rule=rule, product_id=product.id)
        return EffectivePrice(
            original_price=original,
            discounted_price=discounted,
            is_discounted=discounted < original,
            applied_schema_name=schema.schema_name,
            applied_rule_id=rule.id,
        )

    return EffectivePrice.undiscounted(product.price_eur)


def _report(warning: ConsistencyWarning) -> None:
    logger.warning("pricing consistency warning %s", warning)


# --------- 带 DB 的解析入口 ----------
class PricingResolver:
    """
    每个请求构造一个（持有该请求的 Session），无跨请求状态。
    批量入口对一个客户最多两次顺序查询：分配（含 schema 名） -> 这些 schema 的全部 active 规则。
    """

    def __init__(self, db: Session):
        self.db = db

    def load_customer_pricing_data(self, customer_id: Optional[str]) -> CustomerPricingData:
        if not customer_id:
            return ()

        try:
            assignments = list_for_customer(self.db, customer_id)
            if not assignments:
                return ()
            rules_by_schema = load_rules_for_schemas(self.db, [a.schema_id for a in assignments])
        except (SQLAlchemyError, ValueError) as exc:
            self._rollback_quietly()
            raise RetrievalError(f"could not load pricing data for customer {customer_id}") from exc

        return tuple(
            SchemaRules(
                schema_id=a.schema_id,
                schema_name=a.schema_name,
                priority=a.priority,
                rules=tuple(rules_by_schema.get(a.schema_id, ())),
            )
            for a in assignments
        )

    def try_resolve_prices(
        self,
        products: Iterable[CatalogProduct],
        customer_id: Optional[str],
    ) -> PriceResult:
        items: Sequence[CatalogProduct] = list(products)
        if not items:
            return Ok({})

        try:
            pricing_data = self.load_customer_pricing_data(_normalise_customer(customer_id))
        except RetrievalError as exc:
            return Err(exc)

        return Ok({p.id: calculate_effective_price(p, pricing_data) for p in items})

    def get_effective_prices(
        self,
        products: Iterable[CatalogProduct],
        customer_id: Optional[str],
    ) -> Dict[str, EffectivePrice]:
        """店面批量入口：读失败时不抛，全部按原价返回，并给运维记 error 日志。"""
        items = list(products)
        result = self.try_resolve_prices(items, customer_id)
        if isinstance(result, Ok):
            return result.value

        logger.error(
            "pricing retrieval failed, falling back to list prices customer=%s products=%d: %s",
            customer_id, len(items), result.error,
            exc_info=result.error,
        )
        return {p.id: EffectivePrice.undiscounted(p.price_eur) for p in items}

    def get_effective_price(self, product: CatalogProduct, customer_id: Optional[str]) -> EffectivePrice:
        return self.get_effective_prices([product], customer_id)[product.id]

    def _rollback_quietly(self) -> None:
        # 连接已坏时 rollback 也可能失败；这里只需保证会话可以被关闭
        try:
            self.db.rollback()
        except SQLAlchemyError as exc:
            logger.warning("rollback after pricing retrieval failure also failed: %s", exc)


def _normalise_customer(customer_id: Optional[str]) -> Optional[str]:
    if customer_id is None:
        return None
    cleaned = customer_id.strip()
    return cleaned or None

# pricing schema / rule database repository

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Sequence

from sqlalchemy import case, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from storefront_pricing.core.config import settings
from storefront_pricing.db.model.pricing_schema import PricingSchema, PricingSchemaRule
from storefront_pricing.services.pricing.errors import (
    RuleNotFoundError,
    SchemaNotFoundError,
    ValidationError,
)
from storefront_pricing.services.pricing.rule_validator import (
    CatalogReader,
    check_margin,
    validate_rule,
)
from storefront_pricing.services.pricing.types import (
    SPECIFICITY_RANK,
    PricingRule,
    RuleSpec,
    discount_type,
    scope_key,
    scope_type,
    scope_value,
)


logger = logging.getLogger(__name__)


'''
  规则的“具体度”排序：Product > Subcategory > Category > Global
  同层内 created_at 新的在前，再按 id 定序。
  这是 store 对外的契约：resolution 直接按这个顺序扫描，不自己再排。
'''
_SPECIFICITY = case(SPECIFICITY_RANK, value=PricingSchemaRule.scope_type, else_=len(SPECIFICITY_RANK))
_RULE_ORDER = (_SPECIFICITY.asc(), PricingSchemaRule.created_at.desc(), PricingSchemaRule.id.asc())


# ---------- Schema ----------
def create_schema(db: Session, name: str, description: Optional[str] = None) -> PricingSchema:
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("Schema name must not be empty.")

    row = PricingSchema(name=clean_name, description=description)
    db.add(row)
    db.commit()
    db.refresh(row)
    logger.info("pricing schema created id=%s name=%s", row.id, row.name)
    return row


def get_schema(db: Session, schema_id: str) -> Optional[PricingSchema]:
    return db.get(PricingSchema, schema_id)


def delete_schema(db: Session, schema_id: str) -> None:
    """删除 schema；rules 与客户分配随之级联删除。"""
    row = get_schema(db, schema_id)
    if row is None:
        raise SchemaNotFoundError(f"pricing schema {schema_id} not found")

    # ORM cascade 负责子表；DB 侧的 ON DELETE CASCADE 兜底
    db.delete(row)
    db.commit()
    logger.info("pricing schema deleted id=%s", schema_id)


def list_schemas(db: Session) -> List[PricingSchema]:
    """后台列表：新建的在前，rules 预加载（同一请求里不再逐个 lazy load）。"""
    stmt = (
        select(PricingSchema)
        .options(selectinload(PricingSchema.rules))
        .order_by(PricingSchema.created_at.desc(), PricingSchema.id.asc())
    )
    return list(db.scalars(stmt))


def sort_rules(rules: Sequence[PricingSchemaRule]) -> List[PricingSchemaRule]:
    """已加载的规则按 store 契约排序（与 _RULE_ORDER 一致）。"""
    by_id = sorted(rules, key=lambda r: r.id)
    by_created = sorted(by_id, key=lambda r: r.created_at, reverse=True)
    return sorted(by_created, key=lambda r: SPECIFICITY_RANK.get(r.scope_type, len(SPECIFICITY_RANK)))


# ---------- Rule: Query ----------
def list_rules(db: Session, schema_id: str, active_only: bool = False) -> List[PricingSchemaRule]:
    if get_schema(db, schema_id) is None:
        raise SchemaNotFoundError(f"pricing schema {schema_id} not found")

    stmt = select(PricingSchemaRule).where(PricingSchemaRule.schema_id == schema_id)
    if active_only:
        stmt = stmt.where(PricingSchemaRule.active.is_(True))
    stmt = stmt.order_by(*_RULE_ORDER)
    return list(db.scalars(stmt))


def load_rules_for_schemas(db: Session, schema_ids: Sequence[str]) -> Dict[str, List[PricingRule]]:
    """
    一次查询取回多个 schema 的 active 规则，按 schema 分组，组内保持 store 排序。
    resolution 的批量入口靠它把 N 个商品压成一次规则查询。
    """
    if not schema_ids:
        return {}

    stmt = (
        select(PricingSchemaRule)
        .where(
            PricingSchemaRule.schema_id.in_(list(schema_ids)),
            PricingSchemaRule.active.is_(True),
        )
        .order_by(*_RULE_ORDER)
    )
    grouped: Dict[str, List[PricingRule]] = defaultdict(list)
    for row in db.scalars(stmt):
        grouped[row.schema_id].append(PricingRule.from_row(row))
    return dict(grouped)


def get_rule(db: Session, rule_id: str) -> Optional[PricingSchemaRule]:
    return db.get(PricingSchemaRule, rule_id)


# ---------- Rule: Mutations ----------
"""
新增规则：
    1) validate_rule 校验（含同 schema 内 active scope 去重）；
    2) 接了 catalog 时再做毛利校验；
    3) 写库；并发下两条相同 scope 同时插入，由部分唯一索引拦下，同样按 ValidationError 返回。
"""
def add_rule(
    db: Session,
    schema_id: str,
    spec: RuleSpec,
    catalog: Optional[CatalogReader] = None,
) -> PricingSchemaRule:

    existing = [PricingRule.from_row(r) for r in list_rules(db, schema_id)]

    result = validate_rule(spec, existing)
    if not result.valid:
        raise ValidationError(result.message or "Invalid pricing rule.")

    _check_margin_or_raise(spec, catalog)

    row = PricingSchemaRule(
        schema_id=schema_id,
        scope_type=scope_type(spec.scope),
        scope_value=scope_value(spec.scope),
        scope_key=scope_key(spec.scope),
        discount_type=discount_type(spec.discount),
        discount_value=spec.discount.value,
        active=spec.active,
    )
    try:
        db.add(row)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("add_rule rejected by unique index: schema=%s scope=%s", schema_id, row.scope_key)
        raise ValidationError("An active rule with the same scope already exists in this schema.") from exc

    db.refresh(row)
    logger.info(
        "pricing rule created id=%s schema=%s scope=%s discount=%s:%s",
        row.id, schema_id, row.scope_key, row.discount_type, row.discount_value,
    )
    return row


def remove_rule(db: Session, rule_id: str) -> None:
    res = db.execute(delete(PricingSchemaRule).where(PricingSchemaRule.id == rule_id))
    if not res.rowcount:
        db.rollback()
        raise RuleNotFoundError(f"pricing rule {rule_id} not found")
    db.commit()
    logger.info("pricing rule deleted id=%s", rule_id)


def set_rule_active(
    db: Session,
    rule_id: str,
    active: bool,
    catalog: Optional[CatalogReader] = None,
) -> PricingSchemaRule:
    """启用/停用规则；启用等同一次更新写入，要重新过校验。"""
    row = get_rule(db, rule_id)
    if row is None:
        raise RuleNotFoundError(f"pricing rule {rule_id} not found")

    if active and not row.active:
        current = PricingRule.from_row(row)
        spec = RuleSpec(scope=current.scope, discount=current.discount, active=True)
        siblings = [PricingRule.from_row(r) for r in list_rules(db, row.schema_id)]
        result = validate_rule(spec, siblings, exclude_rule_id=row.id)
        if not result.valid:
            raise ValidationError(result.message or "Invalid pricing rule.")
        _check_margin_or_raise(spec, catalog)

    row.active = active
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ValidationError("An active rule with the same scope already exists in this schema.") from exc

    db.refresh(row)
    return row


def _check_margin_or_raise(spec: RuleSpec, catalog: Optional[CatalogReader]) -> None:
    if catalog is None or not spec.active or not settings.PRICING_ENFORCE_MARGIN:
        return
    margin = check_margin(
        spec,
        catalog.products_in_scope(spec.scope),
        settings.PRICING_MARGIN_THRESHOLDS,
    )
    if not margin.valid:
        raise ValidationError(
            margin.message or "Discount violates the margin policy.",
            max_discount_percentage=margin.max_discount_percentage,
            max_discount_eur=margin.max_discount_eur,
        )

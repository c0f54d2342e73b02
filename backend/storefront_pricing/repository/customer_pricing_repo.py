# customer <-> pricing schema assignment repository

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront_pricing.core.config import settings
from storefront_pricing.db.model.pricing_schema import CustomerPricingSchema, PricingSchema
from storefront_pricing.services.pricing.errors import ConflictError, SchemaNotFoundError
from storefront_pricing.utils.clock import now_utc


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CustomerSchemaAssignment:
    customer_id: str
    schema_id: str
    schema_name: str
    priority: int
    assigned_at: datetime


# ---------- Query ----------
def get_assignment(db: Session, customer_id: str, schema_id: str) -> Optional[CustomerPricingSchema]:
    stmt = (
        select(CustomerPricingSchema)
        .where(
            CustomerPricingSchema.customer_id == customer_id,
            CustomerPricingSchema.schema_id == schema_id,
        )
        .execution_options(populate_existing=True)
    )
    return db.scalars(stmt).first()


def list_for_customer(db: Session, customer_id: str) -> List[CustomerSchemaAssignment]:
    """
    客户已分配的 schema（带名称），一次 join 查询。
    顺序 = 解析顺序：priority 降序 -> assigned_at 降序（后分配的赢）-> schema_id 升序，保证全序。
    """
    stmt = (
        select(CustomerPricingSchema, PricingSchema.name)
        .join(PricingSchema, PricingSchema.id == CustomerPricingSchema.schema_id)
        .where(CustomerPricingSchema.customer_id == customer_id)
        .order_by(
            CustomerPricingSchema.priority.desc(),
            CustomerPricingSchema.assigned_at.desc(),
            CustomerPricingSchema.schema_id.asc(),
        )
        .execution_options(populate_existing=True)
    )
    return [
        CustomerSchemaAssignment(
            customer_id=row.customer_id,
            schema_id=row.schema_id,
            schema_name=name,
            priority=row.priority,
            assigned_at=row.assigned_at,
        )
        for row, name in db.execute(stmt).all()
    ]


# ---------- Mutations ----------
def assign(db: Session, customer_id: str, schema_id: str, priority: Optional[int] = None) -> CustomerPricingSchema:
    """
    有则更新 priority（assigned_at 保持不变），无则插入。
    插入时撞上并发写/并发删除（IntegrityError）会重试 PRICING_ASSIGN_RETRIES 次，仍失败则抛 ConflictError。
    """
    if priority is None:
        priority = settings.PRICING_DEFAULT_PRIORITY

    attempts = 0
    while True:
        if db.get(PricingSchema, schema_id) is None:
            raise SchemaNotFoundError(f"pricing schema {schema_id} not found")

        upd = (
            update(CustomerPricingSchema)
            .where(
                CustomerPricingSchema.customer_id == customer_id,
                CustomerPricingSchema.schema_id == schema_id,
            )
            .values(priority=priority)
        )
        res = db.execute(upd)
        if res.rowcount:
            db.commit()
            row = get_assignment(db, customer_id, schema_id)
            if row is not None:
                logger.info("pricing schema re-prioritised customer=%s schema=%s priority=%s", customer_id, schema_id, priority)
                return row
        else:
            try:
                db.execute(
                    insert(CustomerPricingSchema).values(
                        customer_id=customer_id,
                        schema_id=schema_id,
                        priority=priority,
                        assigned_at=now_utc(),
                    )
                )
                db.commit()
                row = get_assignment(db, customer_id, schema_id)
                if row is not None:
                    logger.info("pricing schema assigned customer=%s schema=%s priority=%s", customer_id, schema_id, priority)
                    return row
            except IntegrityError:
                db.rollback()

        # 走到这里说明写入与并发的插入/删除撞车了
        if attempts >= settings.PRICING_ASSIGN_RETRIES:
            logger.error("assign conflict after %d attempts customer=%s schema=%s", attempts + 1, customer_id, schema_id)
            raise ConflictError(
                "The assignment changed while it was being saved. Please try again."
            )
        attempts += 1
        logger.warning("assign raced with a concurrent change, retrying customer=%s schema=%s", customer_id, schema_id)


def unassign(db: Session, customer_id: str, schema_id: str) -> bool:
    """删除分配；返回是否真的删掉了一行。"""
    stmt = delete(CustomerPricingSchema).where(
        CustomerPricingSchema.customer_id == customer_id,
        CustomerPricingSchema.schema_id == schema_id,
    )
    res = db.execute(stmt)
    db.commit()
    removed = bool(res.rowcount)
    if removed:
        logger.info("pricing schema unassigned customer=%s schema=%s", customer_id, schema_id)
    return removed

# 定价后台接口 -> 管理端 schema / rule / 客户分配

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront_pricing.core.config import settings
from storefront_pricing.db.session import get_db
from storefront_pricing.repository import customer_pricing_repo, pricing_schema_repo
from storefront_pricing.services.pricing.errors import (
    ConflictError,
    PricingError,
    RuleNotFoundError,
    SchemaNotFoundError,
    ValidationError,
)
from storefront_pricing.services.pricing.rule_validator import CatalogReader
from storefront_pricing.services.pricing.types import (
    RuleSpec,
    discount_from_columns,
    scope_from_columns,
)


# 登录校验在 api_v1 的 protected 路由上统一挂
router = APIRouter(prefix="/pricing", tags=["pricing-admin"])


ScopeType = Literal["product", "subcategory", "category", "global"]
DiscountType = Literal["percentage", "fixed_price", "fixed_discount"]


# ---------- Pydantic 模型 ----------
class ScopeIn(BaseModel):
    type: ScopeType
    value: Optional[str] = Field(None, description="product id / 子类目名 / 类目名；global 不填")


class DiscountIn(BaseModel):
    type: DiscountType
    value: Decimal


class RuleCreate(BaseModel):
    scope: ScopeIn
    discount: DiscountIn
    active: bool = True


class RulePatch(BaseModel):
    active: bool


class RuleOut(BaseModel):
    id: str
    schema_id: str
    scope: ScopeIn
    discount: DiscountIn
    active: bool
    created_at: Optional[datetime] = None


class SchemaCreate(BaseModel):
    name: str
    description: Optional[str] = None


class SchemaOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    rules: List[RuleOut] = Field(default_factory=list)


class AssignmentIn(BaseModel):
    priority: int = Field(default_factory=lambda: settings.PRICING_DEFAULT_PRIORITY)


class AssignmentOut(BaseModel):
    customer_id: str
    schema_id: str
    schema_name: str
    priority: int
    assigned_at: Optional[datetime] = None


# ---------- 依赖 ----------
def get_catalog_reader() -> Optional[CatalogReader]:
    """
    商品目录由店面系统提供；部署时通过 app.dependency_overrides 注入实现。
    未注入时跳过毛利校验。
    """
    return None


# ---------- Schema ----------
@router.get("/schemas", response_model=List[SchemaOut])
def list_schemas(response: Response, db: Session = Depends(get_db)):
    response.headers["Cache-Control"] = "no-store"
    return [_schema_out(row) for row in pricing_schema_repo.list_schemas(db)]


@router.post("/schemas", response_model=SchemaOut, status_code=status.HTTP_201_CREATED)
def create_schema(body: SchemaCreate, db: Session = Depends(get_db)):
    try:
        row = pricing_schema_repo.create_schema(db, body.name, body.description)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return SchemaOut(id=row.id, name=row.name, description=row.description, created_at=row.created_at)


@router.delete("/schemas/{schema_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schema(schema_id: str = Path(...), db: Session = Depends(get_db)):
    try:
        pricing_schema_repo.delete_schema(db, schema_id)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- Rule ----------
@router.get("/schemas/{schema_id}/rules", response_model=List[RuleOut])
def list_rules(schema_id: str, db: Session = Depends(get_db)):
    try:
        rows = pricing_schema_repo.list_rules(db, schema_id)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return [_rule_out(r) for r in rows]


@router.post("/schemas/{schema_id}/rules", response_model=RuleOut, status_code=status.HTTP_201_CREATED)
def add_rule(
    schema_id: str,
    body: RuleCreate,
    db: Session = Depends(get_db),
    catalog: Optional[CatalogReader] = Depends(get_catalog_reader),
):
    spec = RuleSpec(
        scope=scope_from_columns(body.scope.type, body.scope.value),
        discount=discount_from_columns(body.discount.type, body.discount.value),
        active=body.active,
    )
    try:
        row = pricing_schema_repo.add_rule(db, schema_id, spec, catalog=catalog)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return _rule_out(row)


@router.patch("/rules/{rule_id}", response_model=RuleOut)
def patch_rule(
    rule_id: str,
    body: RulePatch,
    db: Session = Depends(get_db),
    catalog: Optional[CatalogReader] = Depends(get_catalog_reader),
):
    try:
        row = pricing_schema_repo.set_rule_active(db, rule_id, body.active, catalog=catalog)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return _rule_out(row)


@router.delete("/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_rule(rule_id: str, db: Session = Depends(get_db)):
    try:
        pricing_schema_repo.remove_rule(db, rule_id)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- 客户分配 ----------
@router.get("/customers/{customer_id}/schemas", response_model=List[AssignmentOut])
def list_customer_schemas(customer_id: str, response: Response, db: Session = Depends(get_db)):
    response.headers["Cache-Control"] = "no-store"
    return [
        AssignmentOut(
            customer_id=a.customer_id,
            schema_id=a.schema_id,
            schema_name=a.schema_name,
            priority=a.priority,
            assigned_at=a.assigned_at,
        )
        for a in customer_pricing_repo.list_for_customer(db, customer_id)
    ]


@router.put("/customers/{customer_id}/schemas/{schema_id}", response_model=AssignmentOut)
def assign_schema(
    customer_id: str,
    schema_id: str,
    body: AssignmentIn,
    db: Session = Depends(get_db),
):
    try:
        row = customer_pricing_repo.assign(db, customer_id, schema_id, body.priority)
    except PricingError as exc:
        raise _http_error(exc) from exc
    return AssignmentOut(
        customer_id=row.customer_id,
        schema_id=row.schema_id,
        schema_name=row.schema.name,
        priority=row.priority,
        assigned_at=row.assigned_at,
    )


@router.delete("/customers/{customer_id}/schemas/{schema_id}", status_code=status.HTTP_204_NO_CONTENT)
def unassign_schema(customer_id: str, schema_id: str, db: Session = Depends(get_db)):
    if not customer_pricing_repo.unassign(db, customer_id, schema_id):
        raise HTTPException(status_code=404, detail="assignment not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- helpers ----------
def _http_error(exc: PricingError) -> HTTPException:
    # 写路径错误原样给到管理员
    if isinstance(exc, ValidationError):
        if exc.max_discount_percentage is None and exc.max_discount_eur is None:
            return HTTPException(status_code=422, detail=exc.reason)
        # 毛利校验：上限随 reason 一起返回，金额按字符串给
        return HTTPException(
            status_code=422,
            detail={
                "message": exc.reason,
                "max_discount_percentage": _str_or_none(exc.max_discount_percentage),
                "max_discount_eur": _str_or_none(exc.max_discount_eur),
            },
        )
    if isinstance(exc, (SchemaNotFoundError, RuleNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail="pricing write failed")


def _rule_out(row) -> RuleOut:
    return RuleOut(
        id=row.id,
        schema_id=row.schema_id,
        scope=ScopeIn(type=row.scope_type, value=row.scope_value),
        discount=DiscountIn(type=row.discount_type, value=row.discount_value),
        active=row.active,
        created_at=row.created_at,
    )


def _schema_out(row) -> SchemaOut:
    return SchemaOut(
        id=row.id,
        name=row.name,
        description=row.description,
        created_at=row.created_at,
        rules=[_rule_out(r) for r in pricing_schema_repo.sort_rules(row.rules)],
    )


def _str_or_none(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)

# 店面价格接口 -> 商品详情页 / 列表页 / 搜索建议 每次渲染批量调用

from __future__ import annotations
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from storefront_pricing.db.session import get_db
from storefront_pricing.services.pricing.resolution import PricingResolver
from storefront_pricing.services.pricing.types import CatalogProduct, EffectivePrice


router = APIRouter(prefix="/storefront", tags=["storefront-pricing"])


# 单次渲染的商品上限（列表页一页 + 余量）
MAX_PRODUCTS_PER_REQUEST = 500


# ---------- Pydantic 模型 ----------
class ProductIn(BaseModel):
    id: str
    category: Optional[str] = None
    subcategory: Optional[str] = None
    # 与商品目录金额列同精度；超出的直接 422，不进引擎
    price_eur: Decimal = Field(ge=0, max_digits=14, decimal_places=4, description="净价 EUR（不含 VAT）")


class PricesRequest(BaseModel):
    customer_id: Optional[str] = Field(None, description="匿名/游客为空")
    products: List[ProductIn] = Field(default_factory=list, max_length=MAX_PRODUCTS_PER_REQUEST)


class PriceRequest(BaseModel):
    customer_id: Optional[str] = None
    product: ProductIn


class PriceOut(BaseModel):
    original_price: Decimal
    discounted_price: Decimal
    is_discounted: bool
    applied_schema_name: Optional[str] = None
    applied_rule_id: Optional[str] = None


class PricesResponse(BaseModel):
    prices: Dict[str, PriceOut]


# ---------- 依赖 ----------
def get_resolver(db: Session = Depends(get_db)) -> PricingResolver:
    return PricingResolver(db)


@router.post("/prices", response_model=PricesResponse)
def get_effective_prices(
    body: PricesRequest,
    response: Response,
    resolver: PricingResolver = Depends(get_resolver),
):
    response.headers["Cache-Control"] = "no-store"   # 价格因客户而异，禁止共享缓存
    prices = resolver.get_effective_prices([_to_product(p) for p in body.products], body.customer_id)
    return PricesResponse(prices={pid: _to_out(price) for pid, price in prices.items()})


@router.post("/price", response_model=PriceOut)
def get_effective_price(
    body: PriceRequest,
    response: Response,
    resolver: PricingResolver = Depends(get_resolver),
):
    response.headers["Cache-Control"] = "no-store"
    return _to_out(resolver.get_effective_price(_to_product(body.product), body.customer_id))


def _to_product(p: ProductIn) -> CatalogProduct:
    return CatalogProduct(id=p.id, category=p.category, subcategory=p.subcategory, price_eur=p.price_eur)


def _to_out(price: EffectivePrice) -> PriceOut:
    return PriceOut(
        original_price=price.original_price,
        discounted_price=price.discounted_price,
        is_discounted=price.is_discounted,
        applied_schema_name=price.applied_schema_name,
        applied_rule_id=price.applied_rule_id,
    )

"""
   定价引擎的异常/告警类型。
   写路径（后台）的错误直接抛给管理员；读路径（店面）的错误在 resolution 里吸收并记日志。
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Sequence


class PricingError(Exception):
    """Base for all pricing errors."""


class ValidationError(PricingError):
    """A proposed schema/rule violates a write-time invariant; nothing was persisted."""

    def __init__(
        self,
        reason: str,
        *,
        max_discount_percentage: Optional[Decimal] = None,
        max_discount_eur: Optional[Decimal] = None,
    ):
        super().__init__(reason)
        self.reason = reason
        # 毛利校验失败时带上本组允许的上限，后台表单直接回填
        self.max_discount_percentage = max_discount_percentage
        self.max_discount_eur = max_discount_eur


class SchemaNotFoundError(PricingError):
    """Referenced pricing schema does not exist (anymore)."""


class RuleNotFoundError(PricingError):
    """Referenced pricing rule does not exist (anymore)."""


class ConflictError(PricingError):
    """Assignment upsert kept racing with a concurrent delete of the same pair."""


class RetrievalError(PricingError):
    """Pricing data could not be read while resolving; callers fall back to list price."""


class ConsistencyWarning(UserWarning):
    """
    Non-fatal anomaly found while resolving (duplicate match in one specificity tier,
    fixed price above the list price). Resolution continues with the documented fallback.
    """

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        schema_id: Optional[str] = None,
        rule_ids: Sequence[str] = (),
        product_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.schema_id = schema_id
        self.rule_ids = tuple(rule_ids)
        self.product_id = product_id

    def __str__(self) -> str:
        return (
            f"{self.kind}: {self.args[0]} "
            f"(schema={self.schema_id} rules={','.join(self.rule_ids)} product={self.product_id})"
        )

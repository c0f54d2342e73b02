"""Resolver against a real (in-memory) database."""

import logging
from decimal import Decimal

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from storefront_pricing.repository import customer_pricing_repo, pricing_schema_repo
from storefront_pricing.services.pricing import resolution
from storefront_pricing.services.pricing.errors import RetrievalError
from storefront_pricing.services.pricing.resolution import Err, Ok, PricingResolver
from storefront_pricing.services.pricing.types import (
    CatalogProduct,
    CategoryScope,
    EffectivePrice,
    FixedDiscount,
    FixedPrice,
    GlobalScope,
    Percentage,
    ProductScope,
    RuleSpec,
)


SKU = "SKU-485-00252-22"
INVERTER = CatalogProduct(id=SKU, category="EI RESIDENTIAL SOLUTION", subcategory="INVERTERS", price_eur=Decimal("1000"))
GATEWAY = CatalogProduct(id="SKU-GW", category="COMMUNICATIONS", subcategory=None, price_eur=Decimal("200"))


def _schema_with(db, name, *specs):
    schema = pricing_schema_repo.create_schema(db, name)
    for spec in specs:
        pricing_schema_repo.add_rule(db, schema.id, spec)
    return schema


def test_customer_without_schemas_sees_list_price(db):
    price = PricingResolver(db).get_effective_price(INVERTER, "cust-1")
    assert price.discounted_price == Decimal("1000.00")
    assert price.is_discounted is False
    assert price.applied_schema_name is None


def test_anonymous_and_blank_customers_see_list_price(db):
    schema = _schema_with(db, "All", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    resolver = PricingResolver(db)
    assert resolver.get_effective_price(INVERTER, None).is_discounted is False
    assert resolver.get_effective_price(INVERTER, "   ").is_discounted is False


def test_percentage_schema_applies(db):
    schema = _schema_with(db, "VIP-10", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    price = PricingResolver(db).get_effective_price(INVERTER, "cust-1")
    assert price.discounted_price == Decimal("900.00")
    assert price.is_discounted is True
    assert price.applied_schema_name == "VIP-10"


@pytest.mark.parametrize("order", [("high", "low"), ("low", "high")])
def test_priority_dominates_regardless_of_assignment_order(db, order):
    schemas = {
        "high": (_schema_with(db, "High", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("5")))), 10),
        "low": (_schema_with(db, "Low", RuleSpec(scope=ProductScope(SKU), discount=Percentage(Decimal("50")))), 1),
    }
    for key in order:
        schema, priority = schemas[key]
        customer_pricing_repo.assign(db, "cust-1", schema.id, priority)

    price = PricingResolver(db).get_effective_price(INVERTER, "cust-1")
    assert price.applied_schema_name == "High"
    assert price.discounted_price == Decimal("950.00")


def test_lower_priority_schema_used_when_higher_has_no_match(db):
    high = _schema_with(db, "High", RuleSpec(scope=CategoryScope("COMMUNICATIONS"), discount=Percentage(Decimal("5"))))
    low = _schema_with(db, "Low", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("20"))))
    customer_pricing_repo.assign(db, "cust-1", high.id, 10)
    customer_pricing_repo.assign(db, "cust-1", low.id, 1)

    price = PricingResolver(db).get_effective_price(INVERTER, "cust-1")
    assert price.applied_schema_name == "Low"
    assert price.discounted_price == Decimal("800.00")


def test_specificity_within_schema(db):
    schema = _schema_with(
        db, "Mixed",
        RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("5"))),
        RuleSpec(scope=ProductScope(SKU), discount=FixedPrice(Decimal("700"))),
    )
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    prices = PricingResolver(db).get_effective_prices([INVERTER, GATEWAY], "cust-1")
    assert prices[SKU].discounted_price == Decimal("700.00")
    assert prices["SKU-GW"].discounted_price == Decimal("190.00")


def test_fixed_price_above_list_is_clamped_and_logged(db, caplog):
    schema = _schema_with(db, "Flat", RuleSpec(scope=ProductScope(SKU), discount=FixedPrice(Decimal("1200"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    with caplog.at_level(logging.WARNING):
        price = PricingResolver(db).get_effective_price(INVERTER, "cust-1")

    assert price.discounted_price == Decimal("1000.00")
    assert price.is_discounted is False
    assert "fixed_price_above_original" in caplog.text


def test_resolution_is_idempotent(db):
    schema = _schema_with(db, "VIP-10", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    resolver = PricingResolver(db)
    assert resolver.get_effective_prices([INVERTER, GATEWAY], "cust-1") == resolver.get_effective_prices(
        [INVERTER, GATEWAY], "cust-1"
    )


def test_unassign_restores_list_price(db):
    schema = _schema_with(db, "VIP-10", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)
    customer_pricing_repo.unassign(db, "cust-1", schema.id)

    assert PricingResolver(db).get_effective_price(INVERTER, "cust-1").is_discounted is False


def test_inactive_rules_are_ignored(db):
    schema = _schema_with(
        db, "Paused",
        RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10")), active=False),
    )
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)

    assert PricingResolver(db).get_effective_price(INVERTER, "cust-1").is_discounted is False


def test_installer_flat_scenario(db):
    installer = _schema_with(
        db, "Installer-Flat", RuleSpec(scope=ProductScope(SKU), discount=FixedDiscount(Decimal("50")))
    )
    vip = _schema_with(
        db, "VIP-10", RuleSpec(scope=CategoryScope("EI RESIDENTIAL SOLUTION"), discount=Percentage(Decimal("10")))
    )
    customer_pricing_repo.assign(db, "installer-42", vip.id, 1)
    customer_pricing_repo.assign(db, "installer-42", installer.id, 5)

    price = PricingResolver(db).get_effective_price(INVERTER, "installer-42")
    rule_id = pricing_schema_repo.list_rules(db, installer.id)[0].id
    assert price == EffectivePrice(
        original_price=Decimal("1000.00"),
        discounted_price=Decimal("950.00"),
        is_discounted=True,
        applied_schema_name="Installer-Flat",
        applied_rule_id=rule_id,
    )

    # 高优先级 schema 不覆盖的商品落到 VIP-10
    other = CatalogProduct(id="SKU-OTHER", category="EI RESIDENTIAL SOLUTION", subcategory=None, price_eur=Decimal("500"))
    assert PricingResolver(db).get_effective_price(other, "installer-42").applied_schema_name == "VIP-10"


# ---------- 批量 / 失败降级 ----------
def test_batch_uses_at_most_two_queries(db, engine):
    schema = _schema_with(db, "VIP-10", RuleSpec(scope=GlobalScope(), discount=Percentage(Decimal("10"))))
    customer_pricing_repo.assign(db, "cust-1", schema.id, 1)
    products = [
        CatalogProduct(id=f"SKU-{i}", category="COMMUNICATIONS", subcategory=None, price_eur=Decimal("10"))
        for i in range(50)
    ]

    statements = []

    def _count(conn, cursor, statement, parameters, context, executemany):
        if statement.lstrip().upper().startswith("SELECT"):
            statements.append(statement)

    event.listen(engine, "before_cursor_execute", _count)
    try:
        prices = PricingResolver(db).get_effective_prices(products, "cust-1")
    finally:
        event.remove(engine, "before_cursor_execute", _count)

    assert len(prices) == 50
    assert len(statements) <= 2


def test_empty_batch_does_not_touch_database(db, monkeypatch):
    def boom(*_args, **_kwargs):
        raise AssertionError("should not query")

    monkeypatch.setattr(resolution, "list_for_customer", boom)
    result = PricingResolver(db).try_resolve_prices([], "cust-1")
    assert isinstance(result, Ok)
    assert result.value == {}


def test_retrieval_failure_returns_err_and_falls_back(db, monkeypatch, caplog):
    def broken(*_args, **_kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr(resolution, "list_for_customer", broken)
    resolver = PricingResolver(db)

    result = resolver.try_resolve_prices([INVERTER], "cust-1")
    assert isinstance(result, Err)
    assert isinstance(result.error, RetrievalError)

    with caplog.at_level(logging.ERROR):
        prices = resolver.get_effective_prices([INVERTER, GATEWAY], "cust-1")

    assert prices[SKU].discounted_price == Decimal("1000.00")
    assert prices["SKU-GW"].is_discounted is False
    assert any(r.levelno == logging.ERROR and "falling back" in r.getMessage() for r in caplog.records)

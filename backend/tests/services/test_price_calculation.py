"""Pure resolution logic: no database, pricing data built by hand."""

import logging
from datetime import datetime
from decimal import Decimal

import pytest

from storefront_pricing.services.pricing.resolution import (
    SchemaRules,
    apply_discount,
    calculate_effective_price,
    match_rule,
)
from storefront_pricing.services.pricing.types import (
    CatalogProduct,
    CategoryScope,
    EffectivePrice,
    FixedDiscount,
    FixedPrice,
    GlobalScope,
    Percentage,
    PricingRule,
    ProductScope,
    SubcategoryScope,
)


SKU = "SKU-485-00252-22"
PRODUCT = CatalogProduct(id=SKU, category="EI RESIDENTIAL SOLUTION", subcategory="INVERTERS", price_eur=Decimal("1000"))


def _rule(rule_id, scope, discount, created=datetime(2026, 1, 1), schema_id="s1"):
    return PricingRule(
        id=rule_id, schema_id=schema_id, scope=scope, discount=discount, active=True, created_at=created,
    )


def _schema(schema_id, name, *rules, priority=0):
    return SchemaRules(schema_id=schema_id, schema_name=name, priority=priority, rules=tuple(rules))


# ---------- apply_discount ----------
@pytest.mark.parametrize(
    "price, discount, expected",
    [
        ("100", Percentage(Decimal("10")), "90.00"),
        ("19.99", Percentage(Decimal("15")), "16.99"),     # 16.9915 -> 16.99
        ("0.05", Percentage(Decimal("50")), "0.03"),       # 0.025 -> half-up 0.03
        ("100", Percentage(Decimal("100")), "0.00"),
        ("300", FixedPrice(Decimal("249.5")), "249.50"),
        ("100", FixedDiscount(Decimal("30")), "70.00"),
        ("20", FixedDiscount(Decimal("30")), "0.00"),
    ],
)
def test_apply_discount(price, discount, expected):
    assert apply_discount(Decimal(price), discount) == Decimal(expected)


def test_fixed_price_above_original_is_clamped_with_warning(caplog):
    caplog.set_level(logging.WARNING)
    rule = _rule("r-fp", ProductScope("p1"), FixedPrice(Decimal("500")))
    assert apply_discount(Decimal("300"), rule.discount, rule=rule, product_id="p1") == Decimal("300.00")
    assert any("fixed_price_above_original" in r.getMessage() for r in caplog.records)


# ---------- match_rule ----------
def test_specificity_product_beats_global_within_schema():
    schema = _schema(
        "s1", "Mixed",
        _rule("r-prod", ProductScope(SKU), Percentage(Decimal("20"))),
        _rule("r-glob", GlobalScope(), Percentage(Decimal("10"))),
    )
    assert match_rule(schema, PRODUCT).id == "r-prod"


def test_subcategory_beats_category():
    schema = _schema(
        "s1", "Mixed",
        _rule("r-sub", SubcategoryScope("INVERTERS"), Percentage(Decimal("7"))),
        _rule("r-cat", CategoryScope("EI RESIDENTIAL SOLUTION"), Percentage(Decimal("5"))),
    )
    assert match_rule(schema, PRODUCT).id == "r-sub"


def test_no_matching_scope_returns_none():
    schema = _schema("s1", "Other", _rule("r", CategoryScope("COMMUNICATIONS"), Percentage(Decimal("5"))))
    assert match_rule(schema, PRODUCT) is None


def test_product_without_subcategory_never_matches_subcategory_rule():
    product = CatalogProduct(id="p2", category="COMMUNICATIONS", subcategory=None, price_eur=Decimal("10"))
    schema = _schema("s1", "Sub", _rule("r", SubcategoryScope("INVERTERS"), Percentage(Decimal("5"))))
    assert match_rule(schema, product) is None


def test_duplicate_tier_match_uses_first_in_store_order_and_warns(caplog):
    caplog.set_level(logging.WARNING)
    # store 顺序：同层 created_at 新的在前
    schema = _schema(
        "s1", "Corrupt",
        _rule("r-new", CategoryScope("EI RESIDENTIAL SOLUTION"), Percentage(Decimal("12")), created=datetime(2026, 3, 1)),
        _rule("r-old", CategoryScope("EI RESIDENTIAL SOLUTION"), Percentage(Decimal("8")), created=datetime(2026, 1, 1)),
        _rule("r-glob", GlobalScope(), Percentage(Decimal("1"))),
    )
    chosen = match_rule(schema, PRODUCT)
    assert chosen.id == "r-new"
    warnings = [r.getMessage() for r in caplog.records if "duplicate_scope_match" in r.getMessage()]
    assert len(warnings) == 1
    assert "r-new,r-old" in warnings[0]


# ---------- calculate_effective_price ----------
def test_no_pricing_data_returns_list_price():
    assert calculate_effective_price(PRODUCT, ()) == EffectivePrice(
        original_price=Decimal("1000.00"), discounted_price=Decimal("1000.00"), is_discounted=False,
    )


def test_first_schema_with_a_match_wins_even_if_less_specific():
    # priority 先于具体度：高优先级 schema 的 Global 规则胜过低优先级 schema 的 Product 规则
    high = _schema("s-high", "Global-5", _rule("r-g", GlobalScope(), Percentage(Decimal("5")), schema_id="s-high"), priority=10)
    low = _schema("s-low", "Product-50", _rule("r-p", ProductScope(SKU), Percentage(Decimal("50")), schema_id="s-low"), priority=1)
    price = calculate_effective_price(PRODUCT, (high, low))
    assert price.discounted_price == Decimal("950.00")
    assert price.applied_schema_name == "Global-5"
    assert price.applied_rule_id == "r-g"


def test_schema_without_match_falls_through_to_next():
    first = _schema("s1", "Comms", _rule("r1", CategoryScope("COMMUNICATIONS"), Percentage(Decimal("40"))))
    second = _schema("s2", "VIP-10", _rule("r2", CategoryScope("EI RESIDENTIAL SOLUTION"), Percentage(Decimal("10"))))
    price = calculate_effective_price(PRODUCT, (first, second))
    assert price.discounted_price == Decimal("900.00")
    assert price.applied_schema_name == "VIP-10"


def test_installer_flat_scenario():
    installer = _schema(
        "s-inst", "Installer-Flat",
        _rule("r-inst", ProductScope(SKU), FixedDiscount(Decimal("50")), schema_id="s-inst"),
        priority=5,
    )
    vip = _schema(
        "s-vip", "VIP-10",
        _rule("r-vip", CategoryScope("EI RESIDENTIAL SOLUTION"), Percentage(Decimal("10")), schema_id="s-vip"),
        priority=1,
    )
    price = calculate_effective_price(PRODUCT, (installer, vip))
    assert price == EffectivePrice(
        original_price=Decimal("1000.00"),
        discounted_price=Decimal("950.00"),
        is_discounted=True,
        applied_schema_name="Installer-Flat",
        applied_rule_id="r-inst",
    )


def test_clamped_fixed_price_keeps_provenance_but_is_not_discounted():
    schema = _schema("s1", "Override", _rule("r", ProductScope("p1"), FixedPrice(Decimal("500"))))
    product = CatalogProduct(id="p1", category=None, subcategory=None, price_eur=Decimal("300"))
    price = calculate_effective_price(product, (schema,))
    assert price.discounted_price == Decimal("300.00")
    assert price.is_discounted is False
    assert price.applied_rule_id == "r"


def test_negative_list_price_is_rejected_at_the_boundary():
    with pytest.raises(ValueError):
        CatalogProduct(id="bad", category=None, subcategory=None, price_eur=Decimal("-1"))

"""Tests unitaires pour le compte de résultat (DRE)."""

from __future__ import annotations

import datetime
from decimal import Decimal

import pytest

from lucro_ecom.engine.dre import calculate_dre, default_periods, filter_by_period
from lucro_ecom.models import FeeSettings, FixedCost, MarketplaceOrder, ReportPeriod
from lucro_ecom.storage.fetcher import settlement_from_row

JANUARY = ReportPeriod(datetime.date(2024, 1, 1), datetime.date(2024, 1, 31), "Janvier")


def _settings(**overrides: object) -> FeeSettings:
    defaults: dict[str, object] = {
        "name": "Test",
        "commission_rate": Decimal("0.06"),
        "affiliate_rate": Decimal("0"),
        "per_item_fee": Decimal("2"),
        "tax_rate": Decimal("0.06"),
        "entry_invoice_percent": Decimal("0.05"),
        "ad_spend": Decimal("30"),
    }
    defaults.update(overrides)
    return FeeSettings(**defaults)  # type: ignore[arg-type]


def _order(
    order_id: str, day: datetime.datetime | None, gross: str, quantity: int = 1, cost: str = "0"
) -> MarketplaceOrder:
    return MarketplaceOrder(
        order_id=order_id,
        sku="A1",
        product_name="Camiseta",
        variation=None,
        quantity=quantity,
        gross_amount=Decimal(gross),
        platform_discount=Decimal("0"),
        seller_discount=Decimal("0"),
        unit_cost=Decimal(cost),
        order_date=day,
        status="Concluído",
    )


ORDERS = [
    _order("1", datetime.datetime(2024, 1, 10, 9, 0), "100", quantity=2, cost="10"),
    _order("2", datetime.datetime(2024, 1, 20), "50", cost="20"),
    _order("3", datetime.datetime(2024, 2, 5), "999", cost="1"),
    _order("4", None, "500"),
]

SETTLEMENTS = [
    settlement_from_row({
        "order_id": "1",
        "type": "Order",
        "statement_date": "2024-01-15",
        "icms_difal": -3,
        "icms_penalty": -1,
        "platform_commission_fee": -9,
        "affiliate_commission": -5,
        "affiliate_partner_commission": -1,
        "sfp_service_fee": -2,
        "fee_per_item": -4,
        "platform_shipping_fee": -12,
        "customer_shipping_fee": 5,
        "shipping_subsidy": 2,
    }),
    settlement_from_row({"order_id": "2", "type": "Refund", "statement_date": "2024-01-25", "refund_subtotal": -20}),
    settlement_from_row({"order_id": "3", "type": "Order", "statement_date": "2024-03-01", "icms_difal": -100}),
]

FIXED_COSTS = [
    FixedCost(category="Software", name="ERP", amount=Decimal("10")),
    FixedCost(category="Software", name="Planilhas", amount=Decimal("5")),
    FixedCost(category="Aluguel", name="Depósito", amount=Decimal("3")),
]


class TestCalculateDre:
    def test_section_cascade(self) -> None:
        statement = calculate_dre(ORDERS, SETTLEMENTS, FIXED_COSTS, _settings(), JANUARY)

        assert statement.gross_revenue == Decimal("150")
        assert statement.icms == Decimal("4")
        assert statement.simples_tax == Decimal("9")
        assert statement.sales_taxes_total == Decimal("13")
        assert statement.returns == Decimal("20")
        assert statement.deductions_total == Decimal("20")
        assert statement.net_revenue == Decimal("117")

        assert statement.product_cost == Decimal("40")
        assert statement.shipping_cost == Decimal("5")
        assert statement.entry_invoice_cost == Decimal("2")
        assert statement.cogs_total == Decimal("47")
        assert statement.gross_profit == Decimal("70")

        assert statement.marketplace_commissions == Decimal("9")
        assert statement.affiliate_commissions == Decimal("6")
        assert statement.service_fees == Decimal("6")
        assert statement.ad_spend == Decimal("30")
        assert statement.variable_costs_total == Decimal("51")
        assert statement.contribution_margin == Decimal("19")

        assert statement.fixed_costs_by_category == {"Software": Decimal("15"), "Aluguel": Decimal("3")}
        assert statement.fixed_costs_prorated == Decimal("18")
        assert statement.operating_profit == Decimal("1")
        assert statement.net_profit == Decimal("1")
        assert statement.period_days == 31
        assert statement.alerts == []

    def test_margins_on_net_revenue(self) -> None:
        statement = calculate_dre(ORDERS, SETTLEMENTS, FIXED_COSTS, _settings(), JANUARY)
        assert float(statement.gross_margin) == pytest.approx(70 / 117 * 100)
        assert float(statement.net_margin) == pytest.approx(1 / 117 * 100)

    def test_fixed_costs_prorated_on_short_period(self) -> None:
        period = ReportPeriod(datetime.date(2024, 1, 1), datetime.date(2024, 1, 15))
        costs = [FixedCost(category="Aluguel", name="Depósito", amount=Decimal("300"))]
        statement = calculate_dre([], [], costs, _settings(), period)
        assert statement.fixed_costs_total == Decimal("300")
        assert statement.fixed_costs_prorated == Decimal("150")

    def test_fixed_costs_not_multiplied_on_long_period(self) -> None:
        period = ReportPeriod(datetime.date(2024, 1, 1), datetime.date(2024, 3, 31))
        costs = [FixedCost(category="Aluguel", name="Depósito", amount=Decimal("300"))]
        statement = calculate_dre([], [], costs, _settings(), period)
        assert statement.fixed_costs_prorated == Decimal("300")

    def test_order_without_quantity_counts_once(self) -> None:
        orders = [_order("1", datetime.datetime(2024, 1, 5), "80", quantity=0, cost="25")]
        statement = calculate_dre(orders, [], [], _settings(), JANUARY)
        assert statement.product_cost == Decimal("25")

    def test_seller_shipping_never_negative(self) -> None:
        settlement = settlement_from_row({
            "order_id": "1",
            "type": "Order",
            "statement_date": "2024-01-15",
            "platform_shipping_fee": -5,
            "customer_shipping_fee": 8,
        })
        statement = calculate_dre([], [settlement], [], _settings(), JANUARY)
        assert statement.shipping_cost == Decimal("0")

    def test_empty_period(self) -> None:
        statement = calculate_dre([], [], [], _settings(ad_spend=Decimal("0")), JANUARY)
        assert statement.net_revenue == Decimal("0")
        assert statement.gross_margin == Decimal("0")
        assert statement.net_margin == Decimal("0")
        assert statement.alerts == []


class TestAlerts:
    def test_missing_taxes_costs_and_fixed_costs(self) -> None:
        orders = [_order("1", datetime.datetime(2024, 1, 5), "100")]
        statement = calculate_dre(orders, [], [], _settings(tax_rate=Decimal("0"), ad_spend=Decimal("0")), JANUARY)
        assert [(a.level, a.field) for a in statement.alerts] == [
            ("warning", "sales_taxes_total"),
            ("error", "cogs_total"),
            ("info", "fixed_costs_total"),
        ]

    def test_negative_contribution_margin(self) -> None:
        orders = [_order("1", datetime.datetime(2024, 1, 5), "100", cost="10")]
        costs = [FixedCost(category="Aluguel", name="Depósito", amount=Decimal("10"))]
        statement = calculate_dre(orders, [], costs, _settings(ad_spend=Decimal("500")), JANUARY)
        fields = [a.field for a in statement.alerts]
        assert "contribution_margin" in fields
        assert "operating_profit" not in fields

    def test_fixed_costs_above_contribution(self) -> None:
        orders = [_order("1", datetime.datetime(2024, 1, 5), "100", cost="10")]
        costs = [FixedCost(category="Aluguel", name="Depósito", amount=Decimal("1000"))]
        statement = calculate_dre(orders, [], costs, _settings(ad_spend=Decimal("0")), JANUARY)
        assert [a.field for a in statement.alerts] == ["operating_profit"]


class TestPeriods:
    def test_filter_by_period_bounds_inclusive(self) -> None:
        orders = [
            _order("1", datetime.datetime(2024, 1, 1, 0, 0), "1"),
            _order("2", datetime.datetime(2024, 1, 31, 23, 59), "1"),
            _order("3", datetime.datetime(2024, 2, 1), "1"),
            _order("4", None, "1"),
        ]
        assert [o.order_id for o in filter_by_period(orders, JANUARY, "order_date")] == ["1", "2"]

    def test_default_periods(self) -> None:
        periods = default_periods(datetime.date(2024, 3, 15))
        assert [(p.start, p.end) for p in periods] == [
            (datetime.date(2024, 3, 1), datetime.date(2024, 3, 31)),
            (datetime.date(2024, 2, 1), datetime.date(2024, 2, 29)),
            (datetime.date(2024, 1, 1), datetime.date(2024, 3, 31)),
            (datetime.date(2023, 10, 1), datetime.date(2024, 3, 31)),
            (datetime.date(2024, 1, 1), datetime.date(2024, 12, 31)),
        ]
        assert periods[0].label == "Mois en cours"

    def test_previous_month_crosses_year(self) -> None:
        periods = default_periods(datetime.date(2024, 1, 10))
        assert (periods[1].start, periods[1].end) == (datetime.date(2023, 12, 1), datetime.date(2023, 12, 31))
        assert periods[3].start == datetime.date(2023, 8, 1)

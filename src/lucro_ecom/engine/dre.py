"""Compte de résultat (DRE) d'une période, à partir des commandes et des liquidations."""

from __future__ import annotations

import calendar
import dataclasses
import datetime
import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import TypeVar

from lucro_ecom.models import (
    DreAlert,
    FeeSettings,
    FixedCost,
    IncomeStatement,
    MarketplaceOrder,
    ReportPeriod,
    SettlementRow,
)
from lucro_ecom.normalizers import ZERO

logger = logging.getLogger(__name__)

HUNDRED = 100
MONTH_DAYS = 30
REFUND_TYPE = "refund"

ALERT_WARNING = "warning"
ALERT_ERROR = "error"
ALERT_INFO = "info"

SERVICE_FEE_FIELDS = ("sfp_service_fee", "fee_per_item", "voucher_xtra_fee", "live_specials_fee", "bonus_cashback_fee")
AFFILIATE_FIELDS = ("affiliate_commission", "affiliate_partner_commission", "affiliate_shop_ads_commission")

T = TypeVar("T")


def _month_start(day: datetime.date, months_back: int = 0) -> datetime.date:
    index = day.year * 12 + day.month - 1 - months_back
    return datetime.date(index // 12, index % 12 + 1, 1)


def _month_end(day: datetime.date) -> datetime.date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def default_periods(today: datetime.date | None = None) -> list[ReportPeriod]:
    """Périodes proposées par défaut : mois en cours, mois précédent, 3 et 6 derniers mois, année."""
    today = today or datetime.date.today()
    previous = _month_start(today, 1)
    return [
        ReportPeriod(_month_start(today), _month_end(today), "Mois en cours"),
        ReportPeriod(previous, _month_end(previous), "Mois précédent"),
        ReportPeriod(_month_start(today, 2), _month_end(today), "3 derniers mois"),
        ReportPeriod(_month_start(today, 5), _month_end(today), "6 derniers mois"),
        ReportPeriod(datetime.date(today.year, 1, 1), datetime.date(today.year, 12, 31), "Année en cours"),
    ]


def filter_by_period(records: Iterable[T], period: ReportPeriod, date_field: str) -> list[T]:
    """Conserve les enregistrements datés dans la période ; ceux sans date sont écartés."""
    kept: list[T] = []
    for record in records:
        value = getattr(record, date_field)
        if value is None:
            continue
        day = value.date() if isinstance(value, datetime.datetime) else value
        if period.start <= day <= period.end:
            kept.append(record)
    return kept


def _abs_sum(settlements: list[SettlementRow], *fields: str) -> Decimal:
    return sum((abs(getattr(s, name)) for s in settlements for name in fields), ZERO)


def _percent(value: Decimal, base: Decimal) -> Decimal:
    return value / base * HUNDRED if base > 0 else ZERO


def _seller_shipping(settlement: SettlementRow) -> Decimal:
    """Frais de port restant à la charge du vendeur (jamais négatif)."""
    paid = abs(settlement.platform_shipping_fee)
    covered = settlement.customer_shipping_fee + settlement.shipping_subsidy + settlement.shipping_incentive
    return max(ZERO, paid - covered)


def _refund_amount(settlement: SettlementRow) -> Decimal:
    return abs(settlement.refund_subtotal or settlement.customer_refund)


def build_alerts(statement: IncomeStatement) -> list[DreAlert]:
    """Règles de cohérence, évaluées sur un compte de résultat complet."""
    alerts: list[DreAlert] = []
    has_revenue = statement.gross_revenue > 0
    if has_revenue and statement.sales_taxes_total == 0:
        alerts.append(DreAlert(
            ALERT_WARNING,
            "Aucun impôt sur les ventes : vérifier le taux d'imposition (Simples Nacional / ISS)",
            "sales_taxes_total",
        ))
    if has_revenue and statement.cogs_total == 0:
        alerts.append(DreAlert(
            ALERT_ERROR, "Coût des produits nul : renseigner les coûts unitaires", "cogs_total"
        ))
    if statement.contribution_margin < 0:
        alerts.append(DreAlert(
            ALERT_ERROR, "Marge de contribution négative : l'activité n'est pas viable", "contribution_margin"
        ))
    if statement.operating_profit < 0 and statement.contribution_margin > 0:
        alerts.append(DreAlert(
            ALERT_WARNING,
            "Résultat opérationnel négatif : les coûts fixes dépassent la marge de contribution",
            "operating_profit",
        ))
    if has_revenue and statement.fixed_costs_total == 0:
        alerts.append(DreAlert(
            ALERT_INFO, "Aucun coût fixe saisi : compte de résultat incomplet", "fixed_costs_total"
        ))
    return alerts


def calculate_dre(
    orders: Iterable[MarketplaceOrder],
    settlements: Iterable[SettlementRow],
    fixed_costs: Iterable[FixedCost],
    settings: FeeSettings,
    period: ReportPeriod,
) -> IncomeStatement:
    """Calcule le compte de résultat d'une période.

    Les commandes (filtrées sur ``order_date``) portent le chiffre d'affaires et
    le coût des produits ; les liquidations (filtrées sur ``statement_date``)
    portent ICMS, retours, frais de port vendeur, commissions et frais de
    service. Le paramétrage fournit le taux d'imposition, le pourcentage de NF
    d'entrée et les dépenses publicitaires. Les coûts fixes, mensuels, sont
    proratisés sur la durée de la période (30 jours au plus).
    """
    period_orders = filter_by_period(orders, period, "order_date")
    period_settlements = filter_by_period(settlements, period, "statement_date")
    costs = list(fixed_costs)

    gross_revenue = sum((o.gross_amount for o in period_orders), ZERO)

    icms = _abs_sum(period_settlements, "icms_difal", "icms_penalty")
    simples_tax = gross_revenue * settings.tax_rate
    sales_taxes_total = icms + simples_tax

    cancellations = ZERO
    returns = sum(
        (_refund_amount(s) for s in period_settlements if (s.type or "").strip().lower() == REFUND_TYPE), ZERO
    )
    deductions_total = cancellations + returns

    net_revenue = gross_revenue - sales_taxes_total - deductions_total

    product_cost = sum((o.unit_cost * (o.quantity or 1) for o in period_orders), ZERO)
    packaging_cost = ZERO
    shipping_cost = sum((_seller_shipping(s) for s in period_settlements), ZERO)
    entry_invoice_cost = product_cost * settings.entry_invoice_percent
    cogs_total = product_cost + packaging_cost + shipping_cost + entry_invoice_cost

    gross_profit = net_revenue - cogs_total

    marketplace_commissions = _abs_sum(period_settlements, "platform_commission_fee")
    affiliate_commissions = _abs_sum(period_settlements, *AFFILIATE_FIELDS)
    ad_spend = settings.ad_spend
    gateway_fees = ZERO
    service_fees = _abs_sum(period_settlements, *SERVICE_FEE_FIELDS)
    variable_costs_total = marketplace_commissions + affiliate_commissions + ad_spend + gateway_fees + service_fees

    contribution_margin = gross_profit - variable_costs_total

    by_category: dict[str, Decimal] = {}
    for cost in costs:
        by_category[cost.category] = by_category.get(cost.category, ZERO) + cost.amount
    fixed_costs_total = sum(by_category.values(), ZERO)
    ratio = min(Decimal(period.days) / MONTH_DAYS, Decimal(1))
    fixed_costs_prorated = fixed_costs_total * ratio

    operating_profit = contribution_margin - fixed_costs_prorated

    interest_and_fines = ZERO
    income_taxes = ZERO
    financial_expenses_total = interest_and_fines + income_taxes

    net_profit = operating_profit - financial_expenses_total

    statement = IncomeStatement(
        period=period,
        gross_revenue=gross_revenue,
        icms=icms,
        simples_tax=simples_tax,
        sales_taxes_total=sales_taxes_total,
        cancellations=cancellations,
        returns=returns,
        deductions_total=deductions_total,
        net_revenue=net_revenue,
        product_cost=product_cost,
        packaging_cost=packaging_cost,
        shipping_cost=shipping_cost,
        entry_invoice_cost=entry_invoice_cost,
        cogs_total=cogs_total,
        gross_profit=gross_profit,
        gross_margin=_percent(gross_profit, net_revenue),
        marketplace_commissions=marketplace_commissions,
        affiliate_commissions=affiliate_commissions,
        ad_spend=ad_spend,
        gateway_fees=gateway_fees,
        service_fees=service_fees,
        variable_costs_total=variable_costs_total,
        contribution_margin=contribution_margin,
        contribution_margin_percent=_percent(contribution_margin, net_revenue),
        fixed_costs_by_category=by_category,
        fixed_costs_total=fixed_costs_total,
        fixed_costs_prorated=fixed_costs_prorated,
        period_days=period.days,
        operating_profit=operating_profit,
        operating_margin=_percent(operating_profit, net_revenue),
        interest_and_fines=interest_and_fines,
        income_taxes=income_taxes,
        financial_expenses_total=financial_expenses_total,
        net_profit=net_profit,
        net_margin=_percent(net_profit, net_revenue),
    )
    alerts = build_alerts(statement)
    logger.info(
        "DRE %s → %s : %d commande(s), %d liquidation(s), CA %s, résultat net %s, %d alerte(s)",
        period.start,
        period.end,
        len(period_orders),
        len(period_settlements),
        gross_revenue,
        net_profit,
        len(alerts),
    )
    return dataclasses.replace(statement, alerts=alerts)

"""Cascade de frais : du chiffre d'affaires brut au bénéfice, par groupe puis au total."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable
from decimal import Decimal

from lucro_ecom.engine.grouping import GROUP_BY_PRODUCT, group_orders
from lucro_ecom.models import CalculationResult, FeeSettings, GroupedResult, MarketplaceOrder, PortfolioTotals
from lucro_ecom.normalizers import ZERO

logger = logging.getLogger(__name__)

HUNDRED = 100


def apply_fee_cascade(group: GroupedResult, settings: FeeSettings) -> GroupedResult:
    """Applique la cascade de frais à un groupe, dans un ordre fixe.

    1. commission = CA × taux de commission
    2. affiliation = CA × taux d'affiliation
    3. frais par article = quantité × montant par article
    4. à recevoir = CA − commission − affiliation − frais par article
    5. coût des marchandises = quantité × coût unitaire moyen
    6. impôt = (CA − CA × remise avant impôt) × taux, ou CA × taux sans remise
    7. NF d'entrée = coût des marchandises × pourcentage
    8. bénéfice = à recevoir − coût − impôt − NF d'entrée
    9. marge % = bénéfice / à recevoir × 100 si à recevoir > 0, sinon 0

    L'avance sur paiement est calculée à titre indicatif et n'entre pas dans le bénéfice.
    """
    gross = group.gross_amount
    commission_fee = gross * settings.commission_rate
    affiliate_fee = gross * settings.affiliate_rate
    per_item_fee = group.quantity * settings.per_item_fee
    receivable = gross - commission_fee - affiliate_fee - per_item_fee
    cost_of_goods = group.quantity * group.average_unit_cost

    if settings.pre_tax_discount_rate > 0:
        tax = (gross - gross * settings.pre_tax_discount_rate) * settings.tax_rate
    else:
        tax = gross * settings.tax_rate

    entry_invoice_cost = cost_of_goods * settings.entry_invoice_percent
    profit = receivable - cost_of_goods - tax - entry_invoice_cost
    profit_percent = profit / receivable * HUNDRED if receivable > 0 else ZERO

    advance_amount = receivable * settings.advance_payment_percent
    advance_fee = advance_amount * settings.advance_payment_rate

    return dataclasses.replace(
        group,
        commission_fee=commission_fee,
        affiliate_fee=affiliate_fee,
        per_item_fee=per_item_fee,
        receivable=receivable,
        cost_of_goods=cost_of_goods,
        tax=tax,
        entry_invoice_cost=entry_invoice_cost,
        profit=profit,
        profit_percent=profit_percent,
        advance_amount=advance_amount,
        advance_fee=advance_fee,
    )


def compute_totals(groups: list[GroupedResult], settings: FeeSettings) -> PortfolioTotals:
    """Somme les groupes ; les dépenses publicitaires sont déduites une seule fois ici.

    La marge moyenne est pondérée : bénéfice total / total à recevoir.
    """

    def total(name: str) -> Decimal:
        return sum((getattr(g, name) for g in groups), ZERO)

    ad_spend = settings.ad_spend
    gross_profit = total("profit")
    profit = gross_profit - ad_spend
    receivable = total("receivable")

    return PortfolioTotals(
        quantity=sum(g.quantity for g in groups),
        gross_amount=total("gross_amount"),
        platform_discount=total("platform_discount"),
        seller_discount=total("seller_discount"),
        commission_fee=total("commission_fee"),
        affiliate_fee=total("affiliate_fee"),
        per_item_fee=total("per_item_fee"),
        receivable=receivable,
        cost_of_goods=total("cost_of_goods"),
        tax=total("tax"),
        entry_invoice_cost=total("entry_invoice_cost"),
        advance_amount=total("advance_amount"),
        advance_fee=total("advance_fee"),
        ad_spend=ad_spend,
        gross_profit=gross_profit,
        profit=profit,
        profit_percent_average=profit / receivable * HUNDRED if receivable > 0 else ZERO,
    )


def calculate_results(
    orders: Iterable[MarketplaceOrder], settings: FeeSettings, group_by: str = GROUP_BY_PRODUCT
) -> CalculationResult:
    """Regroupe les commandes, applique la cascade de frais et calcule les totaux."""
    groups = [apply_fee_cascade(g, settings) for g in group_orders(orders, group_by)]
    totals = compute_totals(groups, settings)
    logger.info(
        "Calcul '%s' : %d groupe(s), CA %s, bénéfice %s (publicité %s)",
        settings.name,
        len(groups),
        totals.gross_amount,
        totals.profit,
        totals.ad_spend,
    )
    return CalculationResult(groups=groups, totals=totals, group_by=group_by)

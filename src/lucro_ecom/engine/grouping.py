"""Regroupement des commandes par produit ou par produit + variation."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal

from lucro_ecom.models import GroupedResult, MarketplaceOrder

logger = logging.getLogger(__name__)

GROUP_BY_PRODUCT = "product"
GROUP_BY_VARIATION = "variation"
GROUP_BY_CHOICES = (GROUP_BY_PRODUCT, GROUP_BY_VARIATION)

UNNAMED = "Sem nome"
NO_VARIATION = "Sem variação"
NO_SKU = "-"

ZERO = Decimal("0")


def product_key(order: MarketplaceOrder) -> str:
    return order.sku or order.product_name or UNNAMED


def group_key(order: MarketplaceOrder, group_by: str) -> str:
    """Clé de regroupement : SKU (ou nom), suivie de ``_variation`` au niveau variation."""
    if group_by == GROUP_BY_VARIATION:
        return f"{product_key(order)}_{order.variation or NO_VARIATION}"
    return product_key(order)


def _average_unit_cost(orders: list[MarketplaceOrder]) -> Decimal:
    # Les commandes sans coût saisi ne tirent pas la moyenne vers zéro
    costs = [o.unit_cost for o in orders if o.unit_cost > 0]
    if not costs:
        return ZERO
    return sum(costs, ZERO) / len(costs)


def group_orders(orders: Iterable[MarketplaceOrder], group_by: str = GROUP_BY_PRODUCT) -> list[GroupedResult]:
    """Regroupe les commandes et somme quantités, chiffre d'affaires et remises.

    Args:
        orders: Commandes canoniques.
        group_by: ``"product"`` ou ``"variation"``.

    Returns:
        Un GroupedResult par clé (champs de la cascade à 0), trié par chiffre
        d'affaires décroissant ; à égalité l'ordre de première apparition est conservé.
    """
    if group_by not in GROUP_BY_CHOICES:
        raise ValueError(f"Regroupement inconnu : '{group_by}' (attendu : {', '.join(GROUP_BY_CHOICES)})")

    buckets: dict[str, list[MarketplaceOrder]] = {}
    for order in orders:
        buckets.setdefault(group_key(order, group_by), []).append(order)

    results: list[GroupedResult] = []
    for key, group in buckets.items():
        first = group[0]
        results.append(
            GroupedResult(
                key=key,
                product_name=first.product_name or UNNAMED,
                sku=first.sku or NO_SKU,
                variation=(first.variation or NO_VARIATION) if group_by == GROUP_BY_VARIATION else None,
                quantity=sum(o.quantity for o in group),
                gross_amount=sum((o.gross_amount for o in group), ZERO),
                platform_discount=sum((o.platform_discount for o in group), ZERO),
                seller_discount=sum((o.seller_discount for o in group), ZERO),
                average_unit_cost=_average_unit_cost(group),
            )
        )

    results.sort(key=lambda r: r.gross_amount, reverse=True)
    logger.debug("%d groupe(s) constitué(s) (%s)", len(results), group_by)
    return results


def apply_unit_costs(
    orders: Iterable[MarketplaceOrder], costs: Mapping[str, Decimal]
) -> list[MarketplaceOrder]:
    """Renseigne le coût unitaire saisi par l'utilisateur.

    La clé est cherchée dans l'ordre : identifiant de commande, SKU, nom du
    produit. Les commandes sans correspondance gardent leur coût actuel.
    """
    updated: list[MarketplaceOrder] = []
    for order in orders:
        for key in (order.order_id, order.sku, order.product_name):
            if key is not None and key in costs:
                order = dataclasses.replace(order, unit_cost=Decimal(costs[key]))
                break
        updated.append(order)
    return updated


def orders_missing_cost(orders: Iterable[MarketplaceOrder]) -> list[str]:
    """Produits (SKU ou nom) dont au moins une commande n'a pas de coût unitaire."""
    missing: list[str] = []
    for order in orders:
        key = product_key(order)
        if order.unit_cost <= 0 and key not in missing:
            missing.append(key)
    return missing

"""Moteur de calcul de rentabilité."""

from __future__ import annotations

from lucro_ecom.engine.dre import calculate_dre, default_periods, filter_by_period
from lucro_ecom.engine.fees import calculate_results
from lucro_ecom.engine.grouping import apply_unit_costs, group_orders, orders_missing_cost

__all__ = [
    "apply_unit_costs",
    "calculate_dre",
    "calculate_results",
    "default_periods",
    "filter_by_period",
    "group_orders",
    "orders_missing_cost",
]

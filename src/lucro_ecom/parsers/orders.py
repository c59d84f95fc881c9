"""Parser de l'export de commandes marketplace (une ligne par SKU commandé)."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from decimal import Decimal

from lucro_ecom.columns import MISSING, find_column_value
from lucro_ecom.config.loader import AppConfig
from lucro_ecom.controls.diagnostics import DiagnosticsCollector
from lucro_ecom.models import MarketplaceOrder, OrderImport, UnsupportedFormatError
from lucro_ecom.normalizers import clean_text, parse_currency, parse_datetime, parse_quantity
from lucro_ecom.parsers.base import ROW_INDEX_KEY, BaseParser, Source, detect_file_format

logger = logging.getLogger(__name__)

ORDER_COLUMNS: dict[str, list[str]] = {
    "order_id": ["Order ID", "ID do pedido"],
    "sku": ["Seller SKU", "SKU do vendedor"],
    "product_name": ["Product Name", "Nome do produto"],
    "variation": ["Variation", "Variação"],
    "quantity": ["Quantity", "Quantidade"],
    "gross_amount": ["SKU Subtotal After Discount", "Subtotal do SKU após desconto"],
    "platform_discount": ["SKU Platform Discount", "Desconto da plataforma do SKU"],
    "seller_discount": ["SKU Seller Discount", "Desconto do vendedor do SKU"],
    "order_date": ["Created Time", "Data de criação"],
    "status": ["Order Status", "Status do pedido"],
}

# Les exports contiennent des lignes parasites (adresses, téléphones) : un
# identifiant de commande valide est purement numérique.
_ORDER_ID = re.compile(r"^\d{15,}$")

REASON_EMPTY_ORDER_ID = "ID de commande vide ou absent"
REASON_INVALID_ORDER_ID = "ID de commande invalide (15 chiffres minimum)"
REASON_MISSING_PRODUCT = "Nom du produit absent"
_IGNORED_KEYS = frozenset({ROW_INDEX_KEY})


def excluded_status_reason(status: str) -> str:
    return f"Statut exclu : {status}"


def _value(cells: Mapping[str, object], field: str) -> object:
    value = find_column_value(cells, ORDER_COLUMNS[field])
    return None if value is MISSING else value


def parse_order_row(
    row: Mapping[str, object], excluded_statuses: list[str] | tuple[str, ...]
) -> tuple[MarketplaceOrder | None, str | None]:
    """Convertit une ligne d'export en commande, ou retourne le motif de rejet.

    Le coût unitaire est initialisé à 0 : il est saisi ensuite par l'utilisateur.
    """
    cells = {k: v for k, v in row.items() if k not in _IGNORED_KEYS}

    status = clean_text(_value(cells, "status"))
    if status is not None and status in excluded_statuses:
        return None, excluded_status_reason(status)

    order_id = clean_text(_value(cells, "order_id"))
    if not order_id:
        return None, REASON_EMPTY_ORDER_ID
    if not _ORDER_ID.match(order_id):
        return None, REASON_INVALID_ORDER_ID

    product_name = clean_text(_value(cells, "product_name"))
    if not product_name:
        return None, REASON_MISSING_PRODUCT

    order = MarketplaceOrder(
        order_id=order_id,
        sku=clean_text(_value(cells, "sku")),
        product_name=product_name,
        variation=clean_text(_value(cells, "variation")),
        quantity=parse_quantity(_value(cells, "quantity")),
        gross_amount=parse_currency(_value(cells, "gross_amount")),
        platform_discount=parse_currency(_value(cells, "platform_discount")),
        seller_discount=parse_currency(_value(cells, "seller_discount")),
        unit_cost=Decimal("0"),
        order_date=parse_datetime(_value(cells, "order_date")),
        status=status,
    )
    return order, None


class OrderExportParser(BaseParser):
    """Parser de l'export « Commandes » (CSV ou XLSX, premier onglet)."""

    def parse(self, source: Source, config: AppConfig, filename: str) -> OrderImport:
        """Parse l'export et retourne les commandes retenues avec le diagnostic."""
        fmt = detect_file_format(filename)
        if fmt == "ofx":
            raise UnsupportedFormatError(f"Un export de commandes ne peut pas être un fichier OFX : '{filename}'")

        rows = self.read_rows(source, fmt)
        collector = DiagnosticsCollector(ORDER_COLUMNS, _IGNORED_KEYS)
        if not rows:
            collector.warn(f"Aucune ligne de commande dans '{filename}'")

        orders: list[MarketplaceOrder] = []
        for row in rows:
            collector.observe(row)
            order, reason = parse_order_row(row, config.excluded_order_statuses)
            if order is None:
                collector.reject(reason or REASON_EMPTY_ORDER_ID)
                continue
            collector.accept()
            orders.append(order)

        return OrderImport(orders=orders, diagnostics=collector.build())


COST_COLUMNS: dict[str, list[str]] = {
    "key": ["Seller SKU", "SKU", "Order ID", "ID do pedido", "Product Name", "Nome do produto"],
    "unit_cost": ["Unit cost", "Custo unitário", "Custo", "Cost"],
}


class UnitCostParser(BaseParser):
    """Lit une table de coûts unitaires saisis par l'utilisateur (clé → coût).

    La clé peut être un SKU, un identifiant de commande ou un nom de produit.
    Les lignes sans clé ou sans coût positif sont ignorées.
    """

    def parse(self, source: Source, config: AppConfig, filename: str) -> dict[str, Decimal]:
        fmt = detect_file_format(filename)
        if fmt == "ofx":
            raise UnsupportedFormatError(f"Une table de coûts ne peut pas être un fichier OFX : '{filename}'")

        costs: dict[str, Decimal] = {}
        for row in self.read_rows(source, fmt):
            cells = {k: v for k, v in row.items() if k not in _IGNORED_KEYS}
            key = clean_text(find_column_value(cells, COST_COLUMNS["key"], default=None))
            cost = parse_currency(find_column_value(cells, COST_COLUMNS["unit_cost"], default=None))
            if key and cost > 0:
                costs[key] = cost
        logger.info("%d coût(s) unitaire(s) lu(s) depuis '%s'", len(costs), filename)
        return costs

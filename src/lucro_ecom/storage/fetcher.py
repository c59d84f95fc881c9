"""Lecture paginée des enregistrements persistés dans le stockage externe."""

from __future__ import annotations

import dataclasses
import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

from lucro_ecom.config.loader import DEFAULT_PAGE_SIZE
from lucro_ecom.models import FixedCost, MarketplaceOrder, SettlementRow
from lucro_ecom.normalizers import clean_text, parse_currency, parse_date, parse_datetime, parse_quantity
from lucro_ecom.parsers.settlement import AMOUNT_FIELDS, DATE_FIELDS, DEFAULT_CURRENCY, TEXT_FIELDS

logger = logging.getLogger(__name__)

OWNER_COLUMN = "owner_id"


@dataclass(frozen=True)
class PageQuery:
    """Requête d'une page : propriétaire, fenêtre, tri décroissant et filtres optionnels."""

    owner_id: str
    offset: int
    limit: int
    order_by: str = "date"
    start_date: datetime.date | None = None
    end_date: datetime.date | None = None
    type: str | None = None
    status: str | None = None
    category_id: str | None = None


class PageSource(Protocol):
    """Frontière du stockage externe : une page de lignes par appel."""

    async def fetch_page(self, table: str, query: PageQuery) -> list[dict[str, Any]]: ...


async def fetch_all(
    source: PageSource,
    table: str,
    owner_id: str,
    *,
    page_size: int = DEFAULT_PAGE_SIZE,
    order_by: str = "date",
    start_date: datetime.date | None = None,
    end_date: datetime.date | None = None,
    type: str | None = None,
    status: str | None = None,
    category_id: str | None = None,
) -> list[dict[str, Any]]:
    """Récupère toutes les lignes d'une table, page par page.

    Les pages sont demandées l'une après l'autre ; la lecture s'arrête dès
    qu'une page contient moins de ``page_size`` lignes. Aucune nouvelle
    tentative n'est faite : une erreur du stockage est propagée à l'appelant.
    """
    if page_size <= 0:
        raise ValueError(f"page_size doit être strictement positif (reçu : {page_size})")

    rows: list[dict[str, Any]] = []
    page = 0
    while True:
        query = PageQuery(
            owner_id=owner_id,
            offset=page * page_size,
            limit=page_size,
            order_by=order_by,
            start_date=start_date,
            end_date=end_date,
            type=type,
            status=status,
            category_id=category_id,
        )
        batch = await source.fetch_page(table, query)
        rows.extend(batch)
        logger.debug("%s : page %d, %d ligne(s)", table, page, len(batch))
        if len(batch) < page_size:
            break
        page += 1

    logger.info("%s : %d ligne(s) lue(s) en %d page(s)", table, len(rows), page + 1)
    return rows


class InMemoryPageSource:
    """Stockage en mémoire respectant le contrat de pagination (CLI et tests)."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[tuple[str, PageQuery]] = []

    def insert(self, table: str, rows: list[dict[str, Any]]) -> None:
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def _matches(self, row: dict[str, Any], query: PageQuery) -> bool:
        if row.get(OWNER_COLUMN) != query.owner_id:
            return False
        if query.start_date is not None or query.end_date is not None:
            day = parse_date(row.get(query.order_by))
            if day is None:
                return False
            if query.start_date is not None and day < query.start_date:
                return False
            if query.end_date is not None and day > query.end_date:
                return False
        for column in ("type", "status", "category_id"):
            wanted = getattr(query, column)
            if wanted is not None and row.get(column) != wanted:
                return False
        return True

    async def fetch_page(self, table: str, query: PageQuery) -> list[dict[str, Any]]:
        self.requests.append((table, query))
        matching = [r for r in self.tables.get(table, []) if self._matches(r, query)]
        # Tri décroissant, lignes sans valeur en dernier
        with_value = [r for r in matching if r.get(query.order_by) is not None]
        without_value = [r for r in matching if r.get(query.order_by) is None]
        with_value.sort(key=lambda r: r[query.order_by], reverse=True)
        ordered = with_value + without_value
        return [dict(r) for r in ordered[query.offset : query.offset + query.limit]]


def to_row(record: Any, owner_id: str) -> dict[str, Any]:
    """Sérialise un enregistrement canonique (dataclass) en ligne de stockage."""
    row = dataclasses.asdict(record)
    row[OWNER_COLUMN] = owner_id
    return row


def order_from_row(row: dict[str, Any]) -> MarketplaceOrder:
    """Reconstruit une commande à partir d'une ligne de stockage."""

    def text(key: str) -> str | None:
        value = row.get(key)
        return str(value) if value not in (None, "") else None

    return MarketplaceOrder(
        order_id=str(row["order_id"]),
        sku=text("sku"),
        product_name=text("product_name"),
        variation=text("variation"),
        quantity=int(row.get("quantity") or 0),
        gross_amount=parse_currency(row.get("gross_amount")),
        platform_discount=parse_currency(row.get("platform_discount")),
        seller_discount=parse_currency(row.get("seller_discount")),
        unit_cost=parse_currency(row.get("unit_cost", Decimal("0"))),
        order_date=parse_datetime(row.get("order_date")),
        status=text("status"),
    )


def settlement_from_row(row: dict[str, Any]) -> SettlementRow:
    """Reconstruit une ligne de liquidation ; les champs absents prennent leur valeur neutre."""
    values: dict[str, Any] = {name: clean_text(row.get(name)) for name in TEXT_FIELDS}
    values.update({name: parse_datetime(row.get(name)) for name in DATE_FIELDS})
    values.update({name: parse_currency(row.get(name)) for name in AMOUNT_FIELDS})
    return SettlementRow(
        order_id=str(row.get("order_id") or ""),
        currency=clean_text(row.get("currency")) or DEFAULT_CURRENCY,
        quantity=parse_quantity(row.get("quantity")),
        **values,
    )


def fixed_cost_from_row(row: dict[str, Any]) -> FixedCost:
    return FixedCost(
        category=clean_text(row.get("category")) or "Outros",
        name=clean_text(row.get("name")) or "",
        amount=parse_currency(row.get("amount")),
        is_recurring=bool(row.get("is_recurring", True)),
    )

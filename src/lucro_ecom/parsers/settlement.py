"""Parser des relevés de liquidation marketplace (onglets « Order details » et « Statements »)."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from decimal import Decimal

from lucro_ecom.columns import MISSING, find_column_value
from lucro_ecom.config.loader import AppConfig
from lucro_ecom.controls.diagnostics import DiagnosticsCollector
from lucro_ecom.models import (
    ImportDiagnostics,
    ParseError,
    SettlementImport,
    SettlementOutcome,
    SettlementRow,
    StatementRow,
    StatementsSummary,
    UnsupportedFormatError,
)
from lucro_ecom.normalizers import clean_text, parse_currency, parse_datetime, parse_quantity
from lucro_ecom.parsers.base import ROW_INDEX_KEY, BaseParser, Source, detect_file_format

logger = logging.getLogger(__name__)

ORDER_TYPE = "order"
DEFAULT_CURRENCY = "BRL"

ORDER_DETAILS_SHEETS = ("order details", "detalhes_pedido")
STATEMENTS_SHEET = "statements"

REASON_EMPTY_ORDER_ID = "ID de commande vide ou absent"
REASON_HEADER_ROW = "Ligne d'en-tête ignorée"
HEADER_ORDER_IDS = frozenset({"order/adjustment id", "order id", "id do pedido"})

SETTLEMENT_COLUMNS: dict[str, list[str]] = {
    "statement_date": ["Statement date", "Data do extrato"],
    "statement_id": ["Statement ID", "ID do extrato"],
    "payment_id": ["Payment ID", "ID do pagamento"],
    "status": ["Status"],
    "type": ["Type", "Tipo"],
    "currency": ["Currency", "Moeda"],
    "order_id": ["Order/adjustment ID", "Order ID", "ID do pedido", "ID do pedido/ajuste"],
    "related_order_id": ["Related order ID", "ID do pedido relacionado"],
    "sku_id": ["SKU ID", "ID do SKU"],
    "quantity": ["Quantity", "Quantidade", "Qty"],
    "product_name": ["Product name", "Nome do produto"],
    "variation": ["SKU name", "Nome do SKU", "Variation", "Variação"],
    "order_created_date": ["Order created date", "Data de criação do pedido", "Created date"],
    "delivery_date": ["Order delivery date", "Data de entrega", "Delivery date"],
    "delivery_option": ["Delivery option", "Opção de entrega"],
    "collection_method": ["Collection methods", "Collection method", "Método de coleta"],
    "chargeable_weight": ["Chargeable package weight", "Peso tarifável"],
    "total_settlement_amount": ["Total settlement amount", "Valor total de liquidação", "Settlement amount"],
    "customer_payment": ["Customer payment", "Pagamento do cliente"],
    "customer_refund": ["Customer refund", "Reembolso do cliente"],
    "net_sales": ["Net sales", "Vendas líquidas"],
    "subtotal_before_discounts": ["Subtotal before discounts", "Subtotal antes dos descontos"],
    "refund_subtotal": ["Refund subtotal before seller discounts", "Subtotal de reembolso"],
    "seller_discounts": ["Seller discounts", "Descontos do vendedor"],
    "seller_cofunded_discount": [
        "Seller co-funded voucher discount",
        "Desconto de voucher co-financiado pelo vendedor",
    ],
    "seller_cofunded_discount_refund": [
        "Seller co-funded voucher discount refund",
        "Reembolso de desconto co-financiado",
    ],
    "refund_seller_discounts": ["Refund of seller discounts", "Reembolso de descontos do vendedor"],
    "platform_discounts": ["Platform discounts", "Descontos da plataforma"],
    "platform_cofunded_discount": [
        "Platform co-funded voucher discounts",
        "Descontos co-financiados pela plataforma",
    ],
    "platform_discounts_refund": ["Platform discounts refund", "Reembolso de descontos da plataforma"],
    "shipping_total": ["Shipping", "Frete"],
    "platform_shipping_fee": ["TikTok Shop shipping fee", "Taxa de frete TikTok Shop"],
    "customer_shipping_fee": ["Customer shipping fee", "Frete do cliente"],
    "refunded_shipping": ["Refunded customer shipping fee", "Frete reembolsado"],
    "shipping_incentive": ["TikTok Shop shipping incentive", "Incentivo de frete TikTok Shop"],
    "shipping_incentive_refund": ["TikTok Shop shipping incentive refund", "Reembolso de incentivo de frete"],
    "shipping_subsidy": ["Shipping subsidy", "Subsídio de frete"],
    "actual_return_shipping_fee": ["Actual return shipping fee", "Taxa real de devolução de frete"],
    "total_fees": ["Fees", "Taxas"],
    "platform_commission_fee": [
        "TikTok Shop commission fee",
        "Taxa de comissão TikTok Shop",
        "Commission fee",
    ],
    "affiliate_commission": ["Affiliate commission", "Comissão de afiliado"],
    "affiliate_partner_commission": ["Affiliate partner commission", "Comissão de parceiro afiliado"],
    "affiliate_shop_ads_commission": ["Affiliate Shop Ads commission", "Comissão de anúncios de afiliados"],
    "sfp_service_fee": ["SFP service fee", "Taxa de serviço SFP"],
    "fee_per_item": ["Fee per item sold", "Taxa por item vendido", "Fee per item"],
    "live_specials_fee": ["LIVE Specials service fee", "Taxa de serviço LIVE Specials"],
    "voucher_xtra_fee": ["Voucher Xtra service fee", "Taxa de serviço Voucher Xtra"],
    "bonus_cashback_fee": ["Bonus cashback service fee", "Taxa de serviço de cashback"],
    "icms_difal": ["ICMS DIFAL"],
    "icms_penalty": ["ICMS penalty", "Penalidade ICMS"],
    "adjustment_amount": ["Adjustment amount", "Valor de ajuste"],
    "adjustment_reason": ["Adjustment reasons", "Adjustment reason", "Motivo do ajuste"],
}

TEXT_FIELDS = (
    "statement_id",
    "payment_id",
    "status",
    "type",
    "related_order_id",
    "sku_id",
    "product_name",
    "variation",
    "delivery_option",
    "collection_method",
    "adjustment_reason",
)
DATE_FIELDS = ("statement_date", "order_created_date", "delivery_date")
AMOUNT_FIELDS = (
    "chargeable_weight",
    "total_settlement_amount",
    "customer_payment",
    "customer_refund",
    "net_sales",
    "subtotal_before_discounts",
    "refund_subtotal",
    "seller_discounts",
    "seller_cofunded_discount",
    "seller_cofunded_discount_refund",
    "refund_seller_discounts",
    "platform_discounts",
    "platform_cofunded_discount",
    "platform_discounts_refund",
    "shipping_total",
    "platform_shipping_fee",
    "customer_shipping_fee",
    "refunded_shipping",
    "shipping_incentive",
    "shipping_incentive_refund",
    "shipping_subsidy",
    "actual_return_shipping_fee",
    "total_fees",
    "platform_commission_fee",
    "affiliate_commission",
    "affiliate_partner_commission",
    "affiliate_shop_ads_commission",
    "sfp_service_fee",
    "fee_per_item",
    "live_specials_fee",
    "voucher_xtra_fee",
    "bonus_cashback_fee",
    "icms_difal",
    "icms_penalty",
    "adjustment_amount",
)

STATEMENT_COLUMNS: dict[str, list[str]] = {
    "statement_id": ["Statement ID", "ID do extrato"],
    "statement_date": ["Statement date", "Data do extrato"],
    "payment_id": ["Payment ID", "ID do pagamento"],
    "status": ["Status"],
    "currency": ["Currency", "Moeda"],
    "total_settlement_amount": ["Total settlement amount", "Valor total de liquidação", "Settlement amount"],
    "net_sales": ["Net sales", "Vendas líquidas"],
    "total_fees": ["Fees", "Taxas", "Total fees"],
    "customer_payment": ["Customer payment", "Pagamento do cliente"],
    "seller_discounts": ["Seller discounts", "Descontos do vendedor"],
    "platform_discounts": ["Platform discounts", "Descontos da plataforma"],
    "shipping_total": ["Shipping", "Frete"],
    "refund_subtotal": ["Refund", "Reembolso", "Refund subtotal"],
    "adjustment_amount": ["Adjustment", "Ajuste", "Adjustment amount"],
}
STATEMENT_AMOUNT_FIELDS = (
    "total_settlement_amount",
    "net_sales",
    "total_fees",
    "customer_payment",
    "seller_discounts",
    "platform_discounts",
    "shipping_total",
    "refund_subtotal",
    "adjustment_amount",
)

_WHITESPACE = re.compile(r"\s+")
_IGNORED_KEYS = frozenset({ROW_INDEX_KEY})


def invalid_type_reason(raw_type: object) -> str:
    """Motif de rejet d'une ligne dont le type n'est pas une commande."""
    shown = clean_text(raw_type) if raw_type is not MISSING else None
    return f"Type invalide : {shown or 'vide'} (attendu : Order)"


def _cells(row: Mapping[str, object]) -> dict[str, object]:
    return {k: v for k, v in row.items() if k not in _IGNORED_KEYS}


def _value(cells: Mapping[str, object], aliases: list[str]) -> object:
    value = find_column_value(cells, aliases)
    return None if value is MISSING else value


def _is_header_like(order_id: str) -> bool:
    lowered = order_id.lower()
    return lowered in HEADER_ORDER_IDS or ("order" in lowered and "id" in lowered)


def classify_settlement_row(row: Mapping[str, object]) -> SettlementOutcome:
    """Accepte ou rejette une ligne brute de l'onglet « Order details ».

    Une ligne est acceptée si et seulement si son type normalisé vaut ``order``
    et son identifiant de commande est non vide et n'est pas un libellé
    d'en-tête. Aucun montant (nul ou négatif) ne motive un rejet.
    """
    cells = _cells(row)

    raw_type = find_column_value(cells, SETTLEMENT_COLUMNS["type"])
    type_text = "" if raw_type is MISSING or raw_type is None else str(raw_type)
    if _WHITESPACE.sub(" ", type_text).strip().lower() != ORDER_TYPE:
        return SettlementOutcome(accepted=False, row=None, rejection_reason=invalid_type_reason(raw_type))

    order_id = clean_text(_value(cells, SETTLEMENT_COLUMNS["order_id"]))
    if not order_id:
        return SettlementOutcome(accepted=False, row=None, rejection_reason=REASON_EMPTY_ORDER_ID)
    if _is_header_like(order_id):
        return SettlementOutcome(accepted=False, row=None, rejection_reason=REASON_HEADER_ROW)

    values: dict[str, object] = {}
    for name in TEXT_FIELDS:
        values[name] = clean_text(_value(cells, SETTLEMENT_COLUMNS[name]))
    for name in DATE_FIELDS:
        values[name] = parse_datetime(_value(cells, SETTLEMENT_COLUMNS[name]))
    for name in AMOUNT_FIELDS:
        values[name] = parse_currency(_value(cells, SETTLEMENT_COLUMNS[name]))

    source_row = row.get(ROW_INDEX_KEY)
    settlement = SettlementRow(
        order_id=order_id,
        currency=clean_text(_value(cells, SETTLEMENT_COLUMNS["currency"])) or DEFAULT_CURRENCY,
        quantity=parse_quantity(_value(cells, SETTLEMENT_COLUMNS["quantity"])),
        source_row=int(source_row) if isinstance(source_row, int) else None,
        **values,  # type: ignore[arg-type]
    )
    return SettlementOutcome(accepted=True, row=settlement, rejection_reason=None)


def parse_all_settlements(
    rows: list[dict[str, object]], collector: DiagnosticsCollector | None = None
) -> tuple[list[SettlementRow], ImportDiagnostics]:
    """Classe toutes les lignes et retourne les lignes acceptées avec le diagnostic."""
    collector = collector or DiagnosticsCollector(SETTLEMENT_COLUMNS, _IGNORED_KEYS)
    settlements: list[SettlementRow] = []
    for row in rows:
        collector.observe(row)
        outcome = classify_settlement_row(row)
        if outcome.accepted and outcome.row is not None:
            collector.accept()
            settlements.append(outcome.row)
        else:
            collector.reject(outcome.rejection_reason or REASON_EMPTY_ORDER_ID)
    return settlements, collector.build()


def parse_statements_sheet(rows: list[dict[str, object]]) -> tuple[list[StatementRow], StatementsSummary]:
    """Lit l'onglet « Statements » : une ligne par relevé de paiement.

    Les lignes sans identifiant, ou dont l'identifiant contient « statement »
    (en-tête répété), sont ignorées.
    """
    statements: list[StatementRow] = []
    total = Decimal("0")
    dates = []

    for row in rows:
        cells = _cells(row)
        statement_id = clean_text(_value(cells, STATEMENT_COLUMNS["statement_id"]))
        if not statement_id or "statement" in statement_id.lower():
            continue

        statement_date = parse_datetime(_value(cells, STATEMENT_COLUMNS["statement_date"]))
        amounts = {name: parse_currency(_value(cells, STATEMENT_COLUMNS[name])) for name in STATEMENT_AMOUNT_FIELDS}
        statements.append(
            StatementRow(
                statement_id=statement_id,
                statement_date=statement_date,
                payment_id=clean_text(_value(cells, STATEMENT_COLUMNS["payment_id"])),
                status=clean_text(_value(cells, STATEMENT_COLUMNS["status"])),
                currency=clean_text(_value(cells, STATEMENT_COLUMNS["currency"])) or DEFAULT_CURRENCY,
                **amounts,
            )
        )
        total += amounts["total_settlement_amount"]
        if statement_date is not None:
            dates.append(statement_date)

    summary = StatementsSummary(
        total_rows=len(rows),
        valid_records=len(statements),
        total_settlement_amount=total,
        start_date=min(dates) if dates else None,
        end_date=max(dates) if dates else None,
    )
    return statements, summary


def _find_sheet(names: list[str], wanted: tuple[str, ...]) -> str | None:
    for name in names:
        if name.strip().lower() in wanted:
            return name
    return None


class SettlementParser(BaseParser):
    """Parser du classeur de liquidation (XLSX) ou de son export CSV « Order details »."""

    def parse(self, source: Source, config: AppConfig, filename: str) -> SettlementImport:
        """Parse le fichier et retourne les lignes acceptées, les relevés et le diagnostic.

        Raises:
            UnsupportedFormatError: Format autre que CSV ou XLSX.
            ParseError: Onglet « Order details » absent du classeur.
        """
        fmt = detect_file_format(filename)
        if fmt == "ofx":
            raise UnsupportedFormatError(f"Un relevé de liquidation ne peut pas être un fichier OFX : '{filename}'")

        statements: list[StatementRow] = []
        summary: StatementsSummary | None = None

        if fmt == "csv":
            order_rows = self.read_rows(source, "csv")
        else:
            sheets = self.sheet_names(source)
            logger.debug("Onglets trouvés : %s", sheets)
            order_sheet = _find_sheet(sheets, ORDER_DETAILS_SHEETS)
            if order_sheet is None:
                raise ParseError(
                    f"Onglet « Order details » introuvable dans '{filename}' (onglets : {', '.join(sheets)})"
                )
            statements_sheet = _find_sheet(sheets, (STATEMENTS_SHEET,))
            if statements_sheet is not None:
                statements, summary = parse_statements_sheet(self.read_rows(source, "xlsx", statements_sheet))
                logger.info("Onglet Statements : %d relevé(s)", summary.valid_records)
            order_rows = self.read_rows(source, "xlsx", order_sheet)

        collector = DiagnosticsCollector(SETTLEMENT_COLUMNS, _IGNORED_KEYS)
        if not order_rows:
            collector.warn(f"Aucune ligne de détail dans '{filename}'")
        elif summary is not None:
            collector.check_limited_data(len(order_rows), summary.valid_records)

        settlements, diagnostics = parse_all_settlements(order_rows, collector)
        return SettlementImport(
            settlements=settlements,
            statements=statements,
            statements_summary=summary,
            diagnostics=diagnostics,
        )

"""Export Excel multi-onglets et résumé console."""

from __future__ import annotations

import dataclasses
import datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

import pandas as pd

from lucro_ecom.models import (
    BankStatement,
    CalculationResult,
    ImportDiagnostics,
    OrderImport,
    SettlementImport,
)

CENT = Decimal("0.01")

TRANSACTIONS_COLUMNS = ["date", "description", "amount", "direction", "counterpart", "balance", "fitid", "id"]

ORDER_COLUMNS = [
    "order_id",
    "order_date",
    "status",
    "sku",
    "product_name",
    "variation",
    "quantity",
    "gross_amount",
    "platform_discount",
    "seller_discount",
    "unit_cost",
]

RESULT_COLUMNS = [
    "key",
    "product_name",
    "sku",
    "variation",
    "quantity",
    "gross_amount",
    "platform_discount",
    "seller_discount",
    "average_unit_cost",
    "commission_fee",
    "affiliate_fee",
    "per_item_fee",
    "receivable",
    "cost_of_goods",
    "tax",
    "entry_invoice_cost",
    "profit",
    "profit_percent",
    "advance_amount",
    "advance_fee",
]

DIAGNOSTIC_COLUMNS = ["indicateur", "valeur"]

ImportResult = BankStatement | SettlementImport | OrderImport


def to_money(value: Decimal) -> float:
    """Arrondi de présentation : 2 décimales, demi-supérieur."""
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def _cell(value: object) -> object:
    if isinstance(value, Decimal):
        return to_money(value)
    return value


def _records_frame(records: list[Any], columns: list[str] | None = None) -> pd.DataFrame:
    rows = [{k: _cell(v) for k, v in dataclasses.asdict(r).items()} for r in records]
    if columns is None and records:
        columns = [f.name for f in dataclasses.fields(records[0])]
    return pd.DataFrame(rows, columns=columns)


def _diagnostics_frame(diagnostics: ImportDiagnostics) -> pd.DataFrame:
    rows: list[dict[str, object]] = [
        {"indicateur": "Lignes lues", "valeur": diagnostics.total_rows},
        {"indicateur": "Lignes valides", "valeur": diagnostics.valid_records},
        {"indicateur": "Lignes rejetées", "valeur": diagnostics.rejected_records},
    ]
    for reason, count in diagnostics.rejection_reasons.items():
        rows.append({"indicateur": f"Rejet — {reason}", "valeur": count})
    rows.append({"indicateur": "Colonnes reconnues", "valeur": ", ".join(diagnostics.found_columns)})
    rows.append({"indicateur": "Colonnes introuvables", "valeur": ", ".join(diagnostics.missing_columns)})
    for warning in diagnostics.warnings:
        rows.append({"indicateur": "Avertissement", "valeur": warning})
    return pd.DataFrame(rows, columns=DIAGNOSTIC_COLUMNS)


def _totals_frame(calculation: CalculationResult) -> pd.DataFrame:
    rows = [{"indicateur": k, "valeur": _cell(v)} for k, v in dataclasses.asdict(calculation.totals).items()]
    return pd.DataFrame(rows, columns=DIAGNOSTIC_COLUMNS)


def export(result: ImportResult, output_path: Path, calculation: CalculationResult | None = None) -> None:
    """Exporte le résultat d'un import (et le calcul de rentabilité) dans un classeur Excel."""
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        if isinstance(result, BankStatement):
            _records_frame(result.transactions, TRANSACTIONS_COLUMNS).to_excel(
                writer, sheet_name="Transactions", index=False
            )
            if result.diagnostics is not None:
                _diagnostics_frame(result.diagnostics).to_excel(writer, sheet_name="Diagnostic", index=False)
        elif isinstance(result, SettlementImport):
            _records_frame(result.settlements).to_excel(writer, sheet_name="Liquidations", index=False)
            if result.statements:
                _records_frame(result.statements).to_excel(writer, sheet_name="Relevés", index=False)
            _diagnostics_frame(result.diagnostics).to_excel(writer, sheet_name="Diagnostic", index=False)
        else:
            _records_frame(result.orders, ORDER_COLUMNS).to_excel(writer, sheet_name="Commandes", index=False)
            _diagnostics_frame(result.diagnostics).to_excel(writer, sheet_name="Diagnostic", index=False)

        if calculation is not None:
            _records_frame(calculation.groups, RESULT_COLUMNS).to_excel(writer, sheet_name="Résultats", index=False)
            _totals_frame(calculation).to_excel(writer, sheet_name="Totaux", index=False)


def _format_date(value: datetime.date | datetime.datetime | None) -> str:
    return value.strftime("%d/%m/%Y") if value is not None else "—"


def _print_diagnostics(diagnostics: ImportDiagnostics) -> None:
    print(f"Lignes lues : {diagnostics.total_rows}")
    print(f"Lignes valides : {diagnostics.valid_records}")
    print(f"Lignes rejetées : {diagnostics.rejected_records}")
    for reason, count in diagnostics.rejection_reasons.items():
        print(f"  {reason} : {count}")
    if diagnostics.missing_columns:
        print(f"Colonnes introuvables : {', '.join(diagnostics.missing_columns)}")
    for warning in diagnostics.warnings:
        print(f"AVERTISSEMENT : {warning}")


def print_summary(result: ImportResult, calculation: CalculationResult | None = None) -> None:
    """Affiche un résumé en console."""
    print("=== Résumé ===")
    if isinstance(result, BankStatement):
        income = sum((t.amount for t in result.transactions if t.direction == "income"), Decimal("0"))
        expense = sum((t.amount for t in result.transactions if t.direction == "expense"), Decimal("0"))
        print(f"Relevé {result.fmt.upper()} : {len(result.transactions)} transaction(s)")
        print(f"  Période : {_format_date(result.start_date)} → {_format_date(result.end_date)}")
        print(f"  Entrées : {to_money(income):.2f}")
        print(f"  Sorties : {to_money(expense):.2f}")
        if result.fmt != "ofx":
            print("  (les relevés CSV/XLSX ne sont pas dédoublonnés : évitez de réimporter un même fichier)")
        if result.diagnostics is not None:
            _print_diagnostics(result.diagnostics)
    elif isinstance(result, SettlementImport):
        _print_diagnostics(result.diagnostics)
        if result.statements_summary is not None:
            s = result.statements_summary
            print(f"Relevés de paiement : {s.valid_records}, total {to_money(s.total_settlement_amount):.2f}")
    else:
        _print_diagnostics(result.diagnostics)

    if calculation is not None:
        t = calculation.totals
        print(f"Groupes ({calculation.group_by}) : {len(calculation.groups)}")
        print(f"  Chiffre d'affaires : {to_money(t.gross_amount):.2f}")
        print(f"  À recevoir : {to_money(t.receivable):.2f}")
        print(f"  Publicité : {to_money(t.ad_spend):.2f}")
        print(f"  Bénéfice : {to_money(t.profit):.2f} ({to_money(t.profit_percent_average):.1f} %)")

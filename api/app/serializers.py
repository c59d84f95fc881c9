"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

import dataclasses
import datetime
from decimal import Decimal
from typing import Any

from lucro_ecom.exporters.excel import to_money
from lucro_ecom.models import (
    BankStatement,
    CalculationResult,
    ImportDiagnostics,
    IncomeStatement,
    OrderImport,
    ReportPeriod,
    SettlementImport,
    StatementsSummary,
)


def _json_value(value: object) -> object:
    if isinstance(value, Decimal):
        return to_money(value)
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


def serialize_record(record: Any) -> dict[str, object]:
    """Sérialise un enregistrement canonique (montants à 2 décimales, dates ISO)."""
    return {k: _json_value(v) for k, v in dataclasses.asdict(record).items()}


def serialize_diagnostics(diagnostics: ImportDiagnostics) -> dict[str, object]:
    """Sérialise le diagnostic d'import vers le format JSON de l'API."""
    return {
        "total_rows": diagnostics.total_rows,
        "valid_records": diagnostics.valid_records,
        "rejected_records": diagnostics.rejected_records,
        "rejection_reasons": dict(diagnostics.rejection_reasons),
        "found_columns": list(diagnostics.found_columns),
        "missing_columns": list(diagnostics.missing_columns),
        "file_columns": list(diagnostics.file_columns),
        "warnings": list(diagnostics.warnings),
    }


def serialize_statement(statement: BankStatement) -> dict[str, object]:
    return {
        "format": statement.fmt,
        "bank_name": statement.bank_name,
        "account_number": statement.account_number,
        "start_date": _json_value(statement.start_date),
        "end_date": _json_value(statement.end_date),
        "transactions": [serialize_record(t) for t in statement.transactions],
        "diagnostics": serialize_diagnostics(statement.diagnostics) if statement.diagnostics is not None else None,
    }


def _serialize_statements_summary(summary: StatementsSummary | None) -> dict[str, object] | None:
    if summary is None:
        return None
    return serialize_record(summary)


def serialize_settlements(result: SettlementImport) -> dict[str, object]:
    return {
        "settlements": [serialize_record(s) for s in result.settlements],
        "statements": [serialize_record(s) for s in result.statements],
        "statements_summary": _serialize_statements_summary(result.statements_summary),
        "diagnostics": serialize_diagnostics(result.diagnostics),
    }


def serialize_calculation(calculation: CalculationResult) -> dict[str, object]:
    return {
        "group_by": calculation.group_by,
        "groups": [serialize_record(g) for g in calculation.groups],
        "totals": serialize_record(calculation.totals),
    }


def serialize_orders(result: OrderImport, calculation: CalculationResult | None) -> dict[str, object]:
    response: dict[str, object] = {
        "orders": [serialize_record(o) for o in result.orders],
        "diagnostics": serialize_diagnostics(result.diagnostics),
    }
    if calculation is not None:
        response["results"] = serialize_calculation(calculation)
    return response


def serialize_period(period: ReportPeriod) -> dict[str, object]:
    return {"start": period.start.isoformat(), "end": period.end.isoformat(), "label": period.label, "days": period.days}


def serialize_income_statement(statement: IncomeStatement) -> dict[str, object]:
    """Sérialise le compte de résultat ; période, coûts fixes et alertes sont imbriqués."""
    data = {f.name: _json_value(getattr(statement, f.name)) for f in dataclasses.fields(statement)}
    data["period"] = serialize_period(statement.period)
    data["fixed_costs_by_category"] = {k: to_money(v) for k, v in statement.fixed_costs_by_category.items()}
    data["alerts"] = [serialize_record(a) for a in statement.alerts]
    return data

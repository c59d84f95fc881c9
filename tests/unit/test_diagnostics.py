"""Tests unitaires pour DiagnosticsCollector."""

from __future__ import annotations

import logging

import pytest

from lucro_ecom.controls.diagnostics import DiagnosticsCollector, analyze_columns

MAPPING = {
    "order_id": ["Order ID", "ID do pedido"],
    "status": ["Status"],
    "quantity": ["Quantity", "Quantidade"],
}


class TestAnalyzeColumns:
    def test_found_and_missing(self) -> None:
        found, missing, file_columns = analyze_columns({"ID do pedido": "1", "Status": None}, MAPPING)
        assert found == ["order_id", "status"]
        assert missing == ["quantity"]
        assert file_columns == ["ID do pedido", "Status"]

    def test_ignored_keys(self) -> None:
        _, _, file_columns = analyze_columns({"Status": "x", "__row_index": 2}, MAPPING, frozenset({"__row_index"}))
        assert file_columns == ["Status"]


class TestDiagnosticsCollector:
    def test_counts_and_histogram(self) -> None:
        collector = DiagnosticsCollector(MAPPING)
        for reason in (None, "motif A", "motif A", "motif B"):
            collector.observe({"Order ID": "1"})
            if reason is None:
                collector.accept()
            else:
                collector.reject(reason)

        diagnostics = collector.build()
        assert diagnostics.total_rows == 4
        assert diagnostics.valid_records == 1
        assert diagnostics.rejected_records == 3
        assert diagnostics.rejection_reasons == {"motif A": 2, "motif B": 1}

    def test_columns_from_first_row_only(self) -> None:
        collector = DiagnosticsCollector(MAPPING)
        collector.observe({"Order ID": "1"})
        collector.observe({"Order ID": "2", "Status": "ok", "Quantity": 1})
        diagnostics = collector.build()
        assert diagnostics.found_columns == ["order_id"]
        assert diagnostics.missing_columns == ["status", "quantity"]

    def test_empty(self) -> None:
        diagnostics = DiagnosticsCollector(MAPPING).build()
        assert diagnostics.total_rows == 0
        assert diagnostics.found_columns == []
        assert diagnostics.missing_columns == []

    @pytest.mark.parametrize(("detail_rows", "statements", "warned"), [(5, 2, True), (6, 2, False), (1, 0, False)])
    def test_limited_data(self, detail_rows: int, statements: int, warned: bool) -> None:
        collector = DiagnosticsCollector(MAPPING)
        collector.check_limited_data(detail_rows, statements)
        assert bool(collector.build().warnings) is warned

    def test_build_logs_summary(self, caplog: pytest.LogCaptureFixture) -> None:
        collector = DiagnosticsCollector(MAPPING)
        collector.observe({"Order ID": "1"})
        collector.reject("motif A")
        with caplog.at_level(logging.INFO):
            collector.build()
        assert "1 ligne(s), 0 valide(s), 1 rejetée(s)" in caplog.text
        assert "motif A : 1" in caplog.text

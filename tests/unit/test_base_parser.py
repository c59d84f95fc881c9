"""Tests unitaires pour BaseParser et la détection de format."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import openpyxl
import pytest

from lucro_ecom.config.loader import AppConfig
from lucro_ecom.models import ParseError, UnsupportedFormatError
from lucro_ecom.parsers.base import ROW_INDEX_KEY, BaseParser, Source, detect_file_format


class _ConcreteParser(BaseParser):
    """Stub pour tester BaseParser."""

    def parse(self, source: Source, config: AppConfig, filename: str) -> None:
        raise NotImplementedError


class TestDetectFileFormat:
    @pytest.mark.parametrize(
        ("filename", "expected"),
        [
            ("extrato.OFX", "ofx"),
            ("extrato.ofc", "ofx"),
            ("extrato.csv", "csv"),
            ("liquidacao.xlsx", "xlsx"),
            ("antigo.xls", "xlsx"),
        ],
    )
    def test_supported(self, filename: str, expected: str) -> None:
        assert detect_file_format(filename) == expected

    def test_pdf_recognised_but_unsupported(self) -> None:
        with pytest.raises(UnsupportedFormatError, match="PDF non pris en charge"):
            detect_file_format("extrato.pdf")

    @pytest.mark.parametrize("filename", ["notes.txt", "sans_extension"])
    def test_unknown(self, filename: str) -> None:
        with pytest.raises(UnsupportedFormatError, match="Extension non supportée"):
            detect_file_format(filename)


class TestDetectSeparator:
    def test_semicolon(self) -> None:
        assert BaseParser.detect_separator("A;B;C") == ";"

    def test_comma(self) -> None:
        assert BaseParser.detect_separator("A,B,C") == ","

    def test_semicolon_wins_when_both(self) -> None:
        assert BaseParser.detect_separator('"Valor, R$";Data') == ";"


class TestReadBytes:
    def test_bytesio_position_preserved(self) -> None:
        buf = BytesIO(b"abc")
        buf.seek(2)
        assert BaseParser.read_bytes(buf) == b"abc"
        assert buf.tell() == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ParseError, match="illisible"):
            BaseParser.read_bytes(tmp_path / "absent.csv")


class TestDecode:
    def test_utf8_bom(self) -> None:
        assert BaseParser.decode("\ufeffData".encode("utf-8")) == "Data"

    def test_latin1_fallback(self) -> None:
        assert BaseParser.decode("Descrição".encode("latin-1")) == "Descrição"


class TestReadCsvMatrix:
    def test_quoted_fields_and_blank_lines(self) -> None:
        content = b'Data,Valor,Descricao\n\n15/01/2024,"1.234,56","Loja, centro"\n16/01/2024,10\n'
        matrix = _ConcreteParser().read_csv_matrix(content)
        assert matrix[0][:3] == ["Data", "Valor", "Descricao"]
        assert matrix[1][:3] == ["15/01/2024", "1.234,56", "Loja, centro"]
        assert matrix[2][:3] == ["16/01/2024", "10", ""]

    def test_empty(self) -> None:
        assert _ConcreteParser().read_csv_matrix(b"\n\n") == []

    def test_quoted_newline_stays_in_field(self) -> None:
        content = "Order ID;Produto;Valor\n1;\"Camiseta\nAzul\";10\n2;Boné;5\n".encode("utf-8")
        matrix = _ConcreteParser().read_csv_matrix(content)
        assert len(matrix) == 3
        assert matrix[1] == ["1", "Camiseta\nAzul", "10"]
        assert matrix[2] == ["2", "Boné", "5"]

    def test_separator_only_lines_dropped(self) -> None:
        matrix = _ConcreteParser().read_csv_matrix(b"A;B\n;\n   \n1;2\n")
        assert matrix == [["A", "B"], ["1", "2"]]


class TestMatrixToRows:
    def test_unique_headers(self) -> None:
        assert BaseParser.make_headers_unique(["A", "A", None, "", "A"]) == ["A", "A__2", "Unnamed", "Unnamed__2", "A__3"]

    def test_rows_keep_source_index(self) -> None:
        rows = _ConcreteParser().matrix_to_rows([["A", "B"], ["1", "2"], [None, ""], ["3"]])
        assert rows == [
            {"A": "1", "B": "2", ROW_INDEX_KEY: 2},
            {"A": "3", "B": None, ROW_INDEX_KEY: 4},
        ]

    def test_header_only(self) -> None:
        assert _ConcreteParser().matrix_to_rows([["A", "B"]]) == []


class TestReadSheet:
    def test_sheet_by_name(self, tmp_path: Path) -> None:
        wb = openpyxl.Workbook()
        wb.active.title = "Resumo"
        ws = wb.create_sheet("Dados")
        ws.append(["A", "B"])
        ws.append([1, None])
        path = tmp_path / "x.xlsx"
        wb.save(path)

        parser = _ConcreteParser()
        assert parser.sheet_names(path) == ["Resumo", "Dados"]
        rows = parser.read_rows(path, "xlsx", "Dados")
        assert rows == [{"A": 1, "B": None, ROW_INDEX_KEY: 2}]

    def test_unreadable_workbook(self) -> None:
        with pytest.raises(ParseError, match="Classeur illisible"):
            _ConcreteParser().read_sheet(b"pas un classeur")

    def test_read_rows_rejects_ofx(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            _ConcreteParser().read_rows(b"", "ofx")

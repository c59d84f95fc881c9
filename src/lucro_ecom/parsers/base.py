"""Classe abstraite de base pour les parsers et lecture bas niveau des fichiers."""

from __future__ import annotations

import csv
import logging
import math
import zipfile
from abc import ABC, abstractmethod
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any

import pandas as pd

from lucro_ecom.config.loader import AppConfig
from lucro_ecom.models import ParseError, UnsupportedFormatError

logger = logging.getLogger(__name__)

Source = Path | BytesIO | bytes

FILE_FORMATS = {
    ".ofx": "ofx",
    ".ofc": "ofx",
    ".csv": "csv",
    ".xlsx": "xlsx",
    ".xls": "xlsx",
}
RECOGNIZED_UNSUPPORTED = {".pdf": "pdf"}

ROW_INDEX_KEY = "__row_index"
CSV_ENCODINGS = ("utf-8-sig", "latin-1")


def detect_file_format(filename: str) -> str:
    """Détermine le format d'après l'extension, avant tout parsing.

    Returns:
        ``"ofx"``, ``"csv"`` ou ``"xlsx"``.

    Raises:
        UnsupportedFormatError: Extension inconnue, ou format reconnu mais non pris en charge (PDF).
    """
    suffix = Path(filename).suffix.lower()
    if suffix in FILE_FORMATS:
        return FILE_FORMATS[suffix]
    if suffix in RECOGNIZED_UNSUPPORTED:
        raise UnsupportedFormatError(
            f"Format {RECOGNIZED_UNSUPPORTED[suffix].upper()} non pris en charge pour '{filename}'. "
            "Exportez le relevé en OFX, CSV ou XLSX."
        )
    raise UnsupportedFormatError(
        f"Extension non supportée pour '{filename}'. "
        f"Extensions acceptées : {', '.join(sorted(FILE_FORMATS))}"
    )


def _is_blank(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return str(value).strip() == ""


class BaseParser(ABC):
    """Classe abstraite définissant l'interface commune des parsers."""

    @abstractmethod
    def parse(self, source: Source, config: AppConfig, filename: str) -> Any:
        """Parse un fichier et retourne les enregistrements canoniques."""

    @staticmethod
    def read_bytes(source: Source) -> bytes:
        """Lit le contenu brut d'une source (chemin, buffer ou octets)."""
        if isinstance(source, bytes):
            return source
        if isinstance(source, BytesIO):
            pos = source.tell()
            source.seek(0)
            content = source.read()
            source.seek(pos)
            return content
        try:
            return source.read_bytes()
        except OSError as e:
            raise ParseError(f"Fichier illisible : {source} ({e})") from e

    @staticmethod
    def decode(content: bytes, encodings: tuple[str, ...] = CSV_ENCODINGS) -> str:
        """Décode le contenu avec le premier encodage qui réussit."""
        for encoding in encodings:
            try:
                return content.decode(encoding)
            except UnicodeDecodeError:
                continue
        logger.warning("Aucun encodage parmi %s ne convient — caractères invalides remplacés", encodings)
        return content.decode("utf-8", errors="replace")

    @staticmethod
    def detect_separator(header: str) -> str:
        """Point-virgule s'il apparaît dans la ligne d'en-tête, virgule sinon."""
        return ";" if ";" in header else ","

    def read_csv_matrix(self, source: Source) -> list[list[str]]:
        """Lit un fichier délimité en matrice de chaînes (en-tête compris).

        Les champs entre guillemets peuvent contenir des retours à la ligne.
        Les lignes vides sont ignorées ; les lignes courtes sont complétées par
        des chaînes vides.
        """
        text = self.decode(self.read_bytes(source))
        header = next((line for line in text.splitlines() if line.strip()), None)
        if header is None:
            return []

        sep = self.detect_separator(header)
        width = max((len(record) for record in csv.reader(StringIO(text), delimiter=sep)), default=1)
        df = pd.read_csv(
            StringIO(text),
            sep=sep,
            header=None,
            names=list(range(width)),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
        )
        df = df.fillna("")
        matrix = [[str(v).strip() for v in row] for row in df.itertuples(index=False, name=None)]
        return [row for row in matrix if any(row)]

    @staticmethod
    def sheet_names(source: Source) -> list[str]:
        """Liste les onglets d'un classeur."""
        try:
            with pd.ExcelFile(BytesIO(BaseParser.read_bytes(source)), engine="openpyxl") as xls:
                return [str(name) for name in xls.sheet_names]
        except (ValueError, OSError, KeyError, zipfile.BadZipFile) as e:
            raise ParseError(f"Classeur illisible : {e}") from e

    def read_sheet(self, source: Source, sheet_name: str | int = 0) -> list[list[object]]:
        """Lit un onglet en matrice de cellules natives (nombres, dates, textes).

        Les cellules vides valent ``None``.
        """
        try:
            df = pd.read_excel(
                BytesIO(self.read_bytes(source)),
                sheet_name=sheet_name,
                header=None,
                dtype=object,
                engine="openpyxl",
            )
        except (ValueError, OSError, KeyError, zipfile.BadZipFile) as e:
            raise ParseError(f"Classeur illisible : {e}") from e
        matrix: list[list[object]] = []
        for row in df.itertuples(index=False, name=None):
            matrix.append([None if _is_blank(v) and not isinstance(v, str) else v for v in row])
        return matrix

    @staticmethod
    def make_headers_unique(headers: list[object]) -> list[str]:
        """Rend les en-têtes uniques : doublons suffixés ``__2``, ``__3``… ; vide → ``Unnamed``."""
        seen: dict[str, int] = {}
        unique: list[str] = []
        for raw in headers:
            header = "" if _is_blank(raw) else str(raw).strip()
            key = header or "Unnamed"
            count = seen.get(key, 0) + 1
            seen[key] = count
            unique.append(key if count == 1 else f"{key}__{count}")
        return unique

    def matrix_to_rows(self, matrix: list[list[object]]) -> list[dict[str, object]]:
        """Convertit une matrice (en-tête en ligne 1) en lignes brutes ordonnées.

        Les lignes entièrement vides sont ignorées. Chaque ligne conserve son
        numéro d'origine (base 1) sous ``__row_index`` pour l'audit.
        """
        if len(matrix) < 2:
            return []
        headers = self.make_headers_unique(matrix[0])
        rows: list[dict[str, object]] = []
        for i, values in enumerate(matrix[1:], start=2):
            if all(_is_blank(v) for v in values):
                continue
            row: dict[str, object] = {}
            for j, header in enumerate(headers):
                row[header] = values[j] if j < len(values) else None
            row[ROW_INDEX_KEY] = i
            rows.append(row)
        return rows

    def read_rows(self, source: Source, fmt: str, sheet_name: str | int = 0) -> list[dict[str, object]]:
        """Lit un fichier CSV ou XLSX en lignes brutes (en-tête → valeur)."""
        if fmt == "csv":
            return self.matrix_to_rows(self.read_csv_matrix(source))  # type: ignore[arg-type]
        if fmt == "xlsx":
            return self.matrix_to_rows(self.read_sheet(source, sheet_name))
        raise UnsupportedFormatError(f"Format '{fmt}' non pris en charge par ce parser")

"""Normalisation des valeurs de cellules : montants, dates, quantités.

Contrat commun : aucune de ces fonctions ne lève d'exception. Une cellule
illisible donne ``Decimal(0)`` (montant), ``None`` (date) ou la valeur par
défaut (quantité), afin qu'une seule cellule malformée n'interrompe pas
l'import d'un fichier entier.
"""

from __future__ import annotations

import datetime
import logging
import math
import re
from decimal import Decimal, InvalidOperation

import pandas as pd

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

_CURRENCY_PREFIX = re.compile(r"^(?:BRL|R\$|US\$|\$)\s*", re.IGNORECASE)
_NUMERIC = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)$")

# Excel : jour 0 = 1899-12-30 (bug 1900 bissextile inclus)
EXCEL_EPOCH = datetime.date(1899, 12, 30)
MAX_EXCEL_SERIAL = 2958465  # 9999-12-31

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_SLASH_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})(?:\s+.*)?$")
_DASH_DATE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})(?:\s+.*)?$")
_COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:\d{0,6})?(?:\.\d+)?(?:\[.*\])?$")
_SERIAL = re.compile(r"^\d{1,7}(?:\.\d+)?$")


def _is_missing(value: object) -> bool:
    """Vérifie qu'une valeur scalaire est vide (None, NaN, NaT)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NaT


def parse_currency(value: object) -> Decimal:
    """Convertit un montant au format ambigu en Decimal.

    Gère « 1.234,56 » (format brésilien), « 1,234.56 » (format US), « BRL 35,91 »,
    « R$ -45,90 » et les nombres natifs. Le séparateur le plus à droite parmi
    la virgule et le point est le séparateur décimal ; toutes les occurrences
    de l'autre sont supprimées.

    Args:
        value: Cellule brute (str, int, float, Decimal ou None).

    Returns:
        Le montant signé, ou ``Decimal(0)`` si la valeur est vide ou illisible.
    """
    if _is_missing(value) or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isinf(value):
            return ZERO
        return Decimal(repr(value))

    cleaned = str(value).replace(" ", " ").strip()
    if not cleaned:
        return ZERO

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1].strip()

    # Le signe peut précéder le symbole monétaire : "-R$ 10,00"
    sign = ""
    if cleaned.startswith(("+", "-")):
        sign, cleaned = cleaned[0], cleaned[1:].strip()
    cleaned = _CURRENCY_PREFIX.sub("", cleaned).replace(" ", "")
    if not cleaned:
        return ZERO
    if cleaned.startswith(("+", "-")) and not sign:
        sign, cleaned = cleaned[0], cleaned[1:]

    last_comma = cleaned.rfind(",")
    last_dot = cleaned.rfind(".")
    if last_comma > last_dot:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif last_dot > last_comma:
        cleaned = cleaned.replace(",", "")

    if not _NUMERIC.match(cleaned):
        logger.debug("Montant illisible, 0 retenu : %r", value)
        return ZERO
    try:
        amount = Decimal(sign + cleaned)
    except InvalidOperation:
        return ZERO
    return -amount if negative else amount


def parse_quantity(value: object, default: int = 1) -> int:
    """Convertit une quantité ; retourne ``default`` si vide, nulle ou illisible."""
    if _is_missing(value) or isinstance(value, bool):
        return default
    if isinstance(value, (int, float, Decimal)):
        try:
            qty = int(value)
        except (ValueError, OverflowError, InvalidOperation):
            return default
        return qty or default
    match = re.match(r"^\s*([+-]?\d+)", str(value))
    if not match:
        return default
    return int(match.group(1)) or default


def _safe_date(year: int, month: int, day: int) -> datetime.date | None:
    try:
        return datetime.date(year, month, day)
    except ValueError:
        return None


def _from_excel_serial(serial: float) -> datetime.date | None:
    if serial < 1 or serial > MAX_EXCEL_SERIAL:
        return None
    return EXCEL_EPOCH + datetime.timedelta(days=int(serial))


def _parse_date_string(text: str) -> datetime.date | None:
    """Formats explicites d'abord, puis pandas en dernier recours."""
    m = _ISO_DATE.match(text)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    m = _SLASH_DATE.match(text)
    if m:
        first, second, year_raw = int(m.group(1)), int(m.group(2)), m.group(3)
        year = int(year_raw) if len(year_raw) == 4 else 2000 + int(year_raw)
        # Jour en premier (convention brésilienne) ; mois en premier seulement
        # si la lecture jour/mois est impossible (ex. 12/15/2025 9:30:33 AM).
        return _safe_date(year, second, first) or _safe_date(year, first, second)

    m = _DASH_DATE.match(text)
    if m:
        return _safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _COMPACT_DATE.match(text)
    if m and len(text) >= 8:
        parsed = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if parsed is not None:
            return parsed

    if _SERIAL.match(text):
        return _from_excel_serial(float(text))

    timestamp = pd.to_datetime(text, errors="coerce", dayfirst=True)
    if pd.isna(timestamp):
        return None
    return timestamp.date()


def parse_date(value: object) -> datetime.date | None:
    """Convertit une date hétérogène en ``datetime.date``.

    Formats acceptés : ISO (``YYYY-MM-DD``), ``DD/MM/YYYY`` et ``DD/MM/YY``,
    ``DD-MM-YYYY``, OFX compact (``YYYYMMDDHHMMSS``), numéro de série Excel
    (époque 1900), objets date/datetime natifs et dates-heures libres.

    Returns:
        La date, ou ``None`` si aucune interprétation n'est possible.
    """
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, (int, float, Decimal)):
        return _from_excel_serial(float(value))

    text = str(value).strip()
    if not text:
        return None
    try:
        return _parse_date_string(text)
    except (ValueError, OverflowError):
        logger.debug("Date illisible : %r", value)
        return None


def parse_datetime(value: object) -> datetime.datetime | None:
    """Comme :func:`parse_date` mais conserve l'heure lorsqu'elle est présente."""
    if _is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str) and (":" in value):
        text = value.strip()
        m = _SLASH_DATE.match(text)
        month_first = m is not None and int(m.group(1)) <= 12 < int(m.group(2))
        day_first = not month_first and _ISO_DATE.match(text) is None
        timestamp = pd.to_datetime(text, errors="coerce", dayfirst=day_first)
        if not pd.isna(timestamp):
            return timestamp.to_pydatetime().replace(tzinfo=None)
    parsed = parse_date(value)
    if parsed is None:
        return None
    return datetime.datetime(parsed.year, parsed.month, parsed.day)


def clean_text(value: object) -> str | None:
    """Retourne la chaîne nettoyée, ou ``None`` si vide."""
    if _is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None

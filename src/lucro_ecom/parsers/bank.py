"""Parser des relevés bancaires (OFX, CSV, XLSX) vers des transactions canoniques."""

from __future__ import annotations

import datetime
import logging
import re
import uuid
from collections.abc import Iterable
from decimal import Decimal

from lucro_ecom.columns import find_column_index
from lucro_ecom.controls.diagnostics import DiagnosticsCollector
from lucro_ecom.config.loader import AppConfig, BankProfile
from lucro_ecom.models import EXPENSE, INCOME, BankStatement, BankTransaction, ImportDiagnostics
from lucro_ecom.normalizers import parse_currency, parse_date
from lucro_ecom.parsers.base import BaseParser, Source, detect_file_format
from lucro_ecom.parsers.ofx import extract_ofx

logger = logging.getLogger(__name__)

OFX_DEFAULT_DESCRIPTION = "Transação sem descrição"
DEFAULT_DESCRIPTION = "Transação"
MAX_COUNTERPART_LENGTH = 100

REASON_MISSING_COLUMNS = "Colonnes date ou montant introuvables"
REASON_BAD_DATE = "Date illisible"
REASON_NO_AMOUNT = "Montant absent ou illisible"

OFX_COLUMNS = {
    "date": ["DTPOSTED"],
    "description": ["NAME", "MEMO"],
    "amount": ["TRNAMT"],
    "fitid": ["FITID"],
}

SUPPORTED_BANKS = {
    "generic": "Genérico (Detectar automaticamente)",
    "nubank": "Nubank",
    "inter": "Banco Inter",
    "bradesco": "Bradesco",
    "itau": "Itaú",
    "santander": "Santander",
    "caixa": "Caixa Econômica",
    "bb": "Banco do Brasil",
    "sicoob": "Sicoob",
    "sicredi": "Sicredi",
}

BANK_PROFILES: dict[str, BankProfile] = {
    "nubank": BankProfile(
        date=["data", "date"],
        description=["titulo", "descrição", "description", "title"],
        amount=["valor", "amount", "value"],
        balance=["saldo", "balance"],
    ),
    "inter": BankProfile(
        date=["data lançamento", "data", "date"],
        description=["descrição", "historico", "description"],
        amount=["valor", "amount"],
        balance=["saldo", "balance"],
    ),
    "generic": BankProfile(
        date=["data", "date", "data lançamento", "data lancamento", "dt"],
        description=["descrição", "descricao", "description", "historico", "histórico", "memo", "titulo"],
        amount=["valor", "amount", "value", "quantia"],
        balance=["saldo", "balance", "saldo final"],
    ),
}

# Ordre significatif : le premier motif qui capture l'emporte.
COUNTERPART_PATTERNS = [
    re.compile(r"PIX\s+(?:RECEBIDO|ENVIADO)\s*[-:]\s*(.+?)(?:\s*CPF|\s*CNPJ|$)", re.IGNORECASE),
    re.compile(r"TED\s*[-:]\s*(.+?)(?:\s*AG|\s*CC|$)", re.IGNORECASE),
    re.compile(r"DOC\s*[-:]\s*(.+?)(?:\s*AG|\s*CC|$)", re.IGNORECASE),
    re.compile(r"TRANSF\s*[-:]\s*(.+?)(?:\s*AG|\s*CC|$)", re.IGNORECASE),
    re.compile(r"PAG(?:TO|AMENTO)?\s*[-:]\s*(.+?)(?:\s*-|$)", re.IGNORECASE),
    re.compile(r"COMPRA\s+(?:CARTAO\s+)?(.+?)(?:\s*-|$)", re.IGNORECASE),
]

_DIGIT = re.compile(r"\d")


def generate_transaction_id() -> str:
    """Identifiant opaque, unique par transaction importée."""
    return f"txn_{uuid.uuid4().hex}"


def detect_direction(amount: Decimal) -> str:
    """``income`` si le montant signé est positif ou nul, ``expense`` sinon."""
    return INCOME if amount >= 0 else EXPENSE


def extract_counterpart(description: str) -> str | None:
    """Extrait la contrepartie (PIX, TED, DOC, virement, paiement, achat) d'un libellé.

    Returns:
        Le premier groupe capturé, tronqué à 100 caractères, ou None.
    """
    for pattern in COUNTERPART_PATTERNS:
        m = pattern.search(description)
        if m and m.group(1):
            counterpart = m.group(1).strip()[:MAX_COUNTERPART_LENGTH]
            if counterpart:
                return counterpart
    return None


def filter_new_transactions(
    transactions: Iterable[BankTransaction], known_fitids: Iterable[str]
) -> list[BankTransaction]:
    """Écarte les transactions dont le FITID est déjà connu.

    Seuls les relevés OFX portent un FITID : les transactions CSV/XLSX sont
    toujours conservées, un même fichier importé deux fois crée donc des doublons.
    """
    known = set(known_fitids)
    kept: list[BankTransaction] = []
    skipped = 0
    for txn in transactions:
        if txn.fitid is not None and txn.fitid in known:
            skipped += 1
            continue
        if txn.fitid is not None:
            known.add(txn.fitid)
        kept.append(txn)
    if skipped:
        logger.info("%d transaction(s) OFX déjà importée(s) ignorée(s)", skipped)
    return kept


def _has_amount(raw: object) -> bool:
    if raw is None:
        return False
    if isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
        return raw == raw  # NaN
    return bool(_DIGIT.search(str(raw)))


def _cell(values: list[object], idx: int) -> object:
    if idx < 0 or idx >= len(values):
        return None
    return values[idx]


def _statement(
    transactions: list[BankTransaction],
    bank_name: str | None,
    account: str | None,
    fmt: str,
    diagnostics: ImportDiagnostics,
) -> BankStatement:
    # Ordre du fichier conservé ; selon la banque il est croissant ou décroissant
    dates = [t.date for t in transactions]
    return BankStatement(
        transactions=transactions,
        bank_name=bank_name,
        account_number=account,
        start_date=min(dates) if dates else None,
        end_date=max(dates) if dates else None,
        fmt=fmt,
        diagnostics=diagnostics,
    )


class BankStatementParser(BaseParser):
    """Parser de relevés bancaires, piloté par un profil de colonnes."""

    def __init__(self, bank_profile: str | None = None) -> None:
        self.bank_profile = bank_profile

    def resolve_profile(self, config: AppConfig) -> tuple[str, BankProfile]:
        """Profil configuré en priorité, puis profil intégré, puis ``generic``."""
        profile_id = self.bank_profile or config.default_bank_profile
        if profile_id in config.bank_profiles:
            return profile_id, config.bank_profiles[profile_id]
        if profile_id in BANK_PROFILES:
            return profile_id, BANK_PROFILES[profile_id]
        if profile_id not in SUPPORTED_BANKS:
            logger.warning("Profil bancaire inconnu '%s' — colonnes génériques utilisées", profile_id)
        return profile_id, BANK_PROFILES["generic"]

    def parse(self, source: Source, config: AppConfig, filename: str) -> BankStatement:
        """Parse un relevé bancaire.

        Args:
            source: Chemin, buffer ou octets du fichier.
            config: Configuration (profils bancaires surchargés, profil par défaut).
            filename: Nom du fichier, dont l'extension détermine le format.

        Raises:
            UnsupportedFormatError: Extension non prise en charge.
            ParseError: Classeur illisible.
        """
        fmt = detect_file_format(filename)
        if fmt == "ofx":
            return self._parse_ofx(source)

        profile_id, profile = self.resolve_profile(config)
        if fmt == "csv":
            matrix: list[list[object]] = self.read_csv_matrix(source)  # type: ignore[assignment]
        else:
            matrix = self.read_sheet(source, 0)

        statement = self._parse_matrix(matrix, profile, fmt, None if profile_id == "generic" else profile_id)
        logger.info(
            "Relevé %s '%s' : %d transaction(s) (profil %s)",
            fmt.upper(),
            filename,
            len(statement.transactions),
            profile_id,
        )
        return statement

    def _parse_ofx(self, source: Source) -> BankStatement:
        document = extract_ofx(self.read_bytes(source))
        today = datetime.date.today()
        collector = DiagnosticsCollector(OFX_COLUMNS)

        transactions: list[BankTransaction] = []
        undated = 0
        for raw in document.rows:
            collector.observe(raw)
            amount = parse_currency(raw.get("TRNAMT"))
            description = " - ".join(part for part in (raw.get("NAME"), raw.get("MEMO")) if part)
            posted = parse_date(raw["DTPOSTED"]) if raw.get("DTPOSTED") else None
            if posted is None:
                undated += 1
                posted = today
            transactions.append(
                BankTransaction(
                    id=generate_transaction_id(),
                    date=posted,
                    description=description or OFX_DEFAULT_DESCRIPTION,
                    amount=abs(amount),
                    direction=detect_direction(amount),
                    counterpart=extract_counterpart(description),
                    balance=None,
                    fitid=raw.get("FITID") or None,
                )
            )
            collector.accept()

        if not document.rows:
            collector.warn("Aucune transaction dans le relevé OFX")
        if undated:
            collector.warn(f"{undated} transaction(s) OFX sans date exploitable : date du jour retenue")
        return _statement(transactions, document.bank_id, document.account_id, "ofx", collector.build())

    def _parse_matrix(
        self, matrix: list[list[object]], profile: BankProfile, fmt: str, bank_name: str | None
    ) -> BankStatement:
        collector = DiagnosticsCollector(profile.as_mapping())
        if len(matrix) < 2:
            collector.warn("Relevé vide ou sans ligne de données")
            return _statement([], None, None, fmt, collector.build())

        headers = [str(h).replace('"', "").strip().lower() if h is not None else "" for h in matrix[0]]
        indexes = {name: find_column_index(headers, names) for name, names in profile.as_mapping().items()}
        collector.record_columns(
            found=[name for name, idx in indexes.items() if idx != -1],
            missing=[name for name, idx in indexes.items() if idx == -1],
            file_columns=[h for h in headers if h],
        )
        logger.debug("Colonnes : %s", indexes)
        date_idx, desc_idx = indexes["date"], indexes["description"]
        amount_idx, balance_idx = indexes["amount"], indexes["balance"]

        if date_idx == -1 or amount_idx == -1:
            for _ in matrix[1:]:
                collector.observe()
                collector.reject(REASON_MISSING_COLUMNS)
            collector.warn(
                f"Colonnes obligatoires introuvables (date, montant) dans {headers} : aucune transaction importée"
            )
            return _statement([], None, None, fmt, collector.build())

        transactions: list[BankTransaction] = []
        for values in matrix[1:]:
            collector.observe()
            posted = parse_date(_cell(values, date_idx))
            if posted is None:
                collector.reject(REASON_BAD_DATE)
                continue
            amount_raw = _cell(values, amount_idx)
            if not _has_amount(amount_raw):
                collector.reject(REASON_NO_AMOUNT)
                continue

            amount = parse_currency(amount_raw)
            desc_raw = _cell(values, desc_idx)
            description = str(desc_raw).strip() if desc_raw is not None else ""
            description = description or DEFAULT_DESCRIPTION
            balance_raw = _cell(values, balance_idx)

            transactions.append(
                BankTransaction(
                    id=generate_transaction_id(),
                    date=posted,
                    description=description,
                    amount=abs(amount),
                    direction=detect_direction(amount),
                    counterpart=extract_counterpart(description),
                    balance=parse_currency(balance_raw) if _has_amount(balance_raw) else None,
                    fitid=None,
                )
            )
            collector.accept()

        return _statement(transactions, bank_name, None, fmt, collector.build())

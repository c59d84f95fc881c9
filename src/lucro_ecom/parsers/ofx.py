"""Extraction des transactions d'un relevé OFX (SGML, balises souvent non fermées)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

TRANSACTION_TAG = "STMTTRN"
TRANSACTION_FIELDS = ("DTPOSTED", "TRNAMT", "FITID", "NAME", "MEMO")
ACCOUNT_FIELDS = ("BANKID", "ACCTID")

CHARSET_MAP = {
    "1252": "cp1252",
    "WINDOWS-1252": "cp1252",
    "CP1252": "cp1252",
    "ISO-8859-1": "latin-1",
    "LATIN1": "latin-1",
    "UTF-8": "utf-8",
    "UTF8": "utf-8",
    "ASCII": "ascii",
    "USASCII": "ascii",
    "US-ASCII": "ascii",
}
FALLBACK_ENCODINGS = ("utf-8", "latin-1")

_XML_ENCODING = re.compile(r"""encoding\s*=\s*["']([\w-]+)["']""", re.IGNORECASE)


@dataclass
class OfxDocument:
    """Contenu brut d'un fichier OFX : une ligne par bloc ``<STMTTRN>``."""

    rows: list[dict[str, str]] = field(default_factory=list)
    bank_id: str | None = None
    account_id: str | None = None


def read_ofx_headers(text: str) -> dict[str, str]:
    """Lit l'en-tête ``CLE:VALEUR`` qui précède la première balise (OFX 1.x)."""
    headers: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if line.startswith("<"):
            break
        if ":" in line:
            key, value = line.split(":", 1)
            headers[key.strip().upper()] = value.strip()
    return headers


def detect_ofx_encoding(content: bytes) -> str | None:
    """Encodage annoncé par ``CHARSET``/``ENCODING`` ou la déclaration XML (OFX 2.x).

    Returns:
        Le nom d'encodage Python, ou None si l'en-tête n'annonce rien d'exploitable.
    """
    # latin-1 décode n'importe quel octet : suffisant pour lire un en-tête ASCII
    head = content[:2048].decode("latin-1")
    headers = read_ofx_headers(head)

    for key in ("CHARSET", "ENCODING"):
        declared = headers.get(key, "").upper()
        if declared in CHARSET_MAP:
            return CHARSET_MAP[declared]

    m = _XML_ENCODING.search(head)
    if m and m.group(1).upper() in CHARSET_MAP:
        return CHARSET_MAP[m.group(1).upper()]
    return None


def decode_ofx(content: bytes) -> str:
    """Décode un fichier OFX selon son en-tête, puis utf-8, puis latin-1."""
    declared = detect_ofx_encoding(content)
    candidates = ((declared,) if declared else ()) + FALLBACK_ENCODINGS
    for encoding in candidates:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            logger.debug("Décodage OFX en %s impossible, essai suivant", encoding)
    return content.decode("latin-1")


class OfxScanner:
    """Lecteur à états des balises OFX.

    Une valeur court de ``<TAG>`` jusqu'à la balise suivante ou la fin de ligne ;
    les balises fermantes (``</TAG>``) sont ignorées. Pour une même balise, la
    première valeur non vide l'emporte.
    """

    _OUTSIDE = 0
    _IN_TAG = 1
    _IN_VALUE = 2

    def __init__(self, text: str) -> None:
        self.text = text

    def blocks(self, tag: str = TRANSACTION_TAG) -> list[str]:
        """Retourne le contenu de chaque bloc ``<tag>…</tag>`` (casse ignorée)."""
        upper = self.text.upper()
        opening, closing = f"<{tag.upper()}>", f"</{tag.upper()}>"
        found: list[str] = []
        pos = 0
        while True:
            start = upper.find(opening, pos)
            if start == -1:
                break
            body_start = start + len(opening)
            end = upper.find(closing, body_start)
            if end == -1:
                logger.warning("Bloc <%s> non fermé ignoré (position %d)", tag, start)
                break
            found.append(self.text[body_start:end])
            pos = end + len(closing)
        return found

    @classmethod
    def read_tags(cls, block: str) -> dict[str, str]:
        """Lit toutes les paires balise → valeur d'un fragment OFX."""
        values: dict[str, str] = {}
        state = cls._OUTSIDE
        tag_chars: list[str] = []
        value_chars: list[str] = []
        current = ""

        def flush() -> None:
            value = "".join(value_chars).strip()
            if value and current not in values:
                values[current] = value

        for ch in block:
            if state == cls._OUTSIDE:
                if ch == "<":
                    state = cls._IN_TAG
                    tag_chars = []
            elif state == cls._IN_TAG:
                if ch == ">":
                    name = "".join(tag_chars).strip()
                    if name.startswith("/") or not name:
                        state = cls._OUTSIDE
                    else:
                        current = name.upper()
                        value_chars = []
                        state = cls._IN_VALUE
                elif ch in "\r\n":
                    state = cls._OUTSIDE
                else:
                    tag_chars.append(ch)
            else:
                if ch == "<" or ch in "\r\n":
                    flush()
                    if ch == "<":
                        state = cls._IN_TAG
                        tag_chars = []
                    else:
                        state = cls._OUTSIDE
                else:
                    value_chars.append(ch)

        if state == cls._IN_VALUE:
            flush()
        return values

    def first_value(self, tag: str) -> str | None:
        """Première valeur non vide d'une balise dans tout le document."""
        return self.read_tags(self.text).get(tag.upper())


def extract_ofx(content: bytes) -> OfxDocument:
    """Extrait les blocs de transaction et les identifiants de compte d'un OFX.

    Chaque ligne brute ne contient que les balises présentes parmi
    DTPOSTED, TRNAMT, FITID, NAME et MEMO.
    """
    scanner = OfxScanner(decode_ofx(content))

    rows: list[dict[str, str]] = []
    for block in scanner.blocks(TRANSACTION_TAG):
        tags = scanner.read_tags(block)
        rows.append({name: tags[name] for name in TRANSACTION_FIELDS if name in tags})

    document_tags = scanner.read_tags(scanner.text)
    document = OfxDocument(
        rows=rows,
        bank_id=document_tags.get("BANKID"),
        account_id=document_tags.get("ACCTID"),
    )
    logger.info("OFX : %d bloc(s) de transaction, banque %s", len(rows), document.bank_id or "inconnue")
    return document

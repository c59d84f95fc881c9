"""Résolution des colonnes : nom canonique → en-tête réel du fichier.

Chaque champ canonique possède une liste ordonnée d'alias (anglais et
portugais). La résolution suit un ordre strict, la première correspondance
l'emporte :

1. égalité exacte avec un alias ;
2. égalité après normalisation (casse, espaces, ponctuation) ;
3. inclusion dans un sens ou dans l'autre, seulement si les deux chaînes
   normalisées font plus de 3 caractères.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from typing import Final

MIN_SUBSTRING_LENGTH: Final = 3

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\s]")


class _Missing:
    """Sentinelle « colonne introuvable » (distincte d'une cellule vide)."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


def normalize_column_name(name: str) -> str:
    """Minuscules, espaces compactés, caractères non alphanumériques supprimés."""
    collapsed = _WHITESPACE.sub(" ", str(name).lower().strip())
    return _NON_WORD.sub("", collapsed)


def resolve_header(headers: Iterable[str], aliases: list[str]) -> str | None:
    """Retourne l'en-tête correspondant au premier critère satisfait, ou None."""
    header_list = [h for h in headers if isinstance(h, str)]
    header_set = set(header_list)

    for alias in aliases:
        if alias in header_set:
            return alias

    normalized_aliases = [normalize_column_name(a) for a in aliases]
    for header in header_list:
        if normalize_column_name(header) in normalized_aliases:
            return header

    for header in header_list:
        normalized_header = normalize_column_name(header)
        if len(normalized_header) <= MIN_SUBSTRING_LENGTH:
            continue
        for normalized_alias in normalized_aliases:
            if len(normalized_alias) <= MIN_SUBSTRING_LENGTH:
                continue
            if normalized_alias in normalized_header or normalized_header in normalized_alias:
                return header

    return None


def find_column_value(row: Mapping[str, object], aliases: list[str], default: object = MISSING) -> object:
    """Retourne la valeur de la cellule résolue, ou ``default`` si aucune colonne ne correspond."""
    header = resolve_header(row.keys(), aliases)
    if header is None:
        return default
    return row[header]


def resolve_columns(headers: Iterable[str], mapping: Mapping[str, list[str]]) -> dict[str, str | None]:
    """Résout en une passe tous les champs d'une table d'alias."""
    header_list = list(headers)
    return {field: resolve_header(header_list, aliases) for field, aliases in mapping.items()}


def find_column_index(headers: list[str], names: list[str]) -> int:
    """Index de la première colonne dont l'en-tête contient un des noms (ordre des noms).

    Règle des relevés bancaires : les en-têtes sont déjà en minuscules et la
    correspondance se fait par inclusion simple. Retourne -1 si rien ne correspond.
    """
    for name in names:
        for idx, header in enumerate(headers):
            if name in header:
                return idx
    return -1

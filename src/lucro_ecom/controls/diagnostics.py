"""Agrégation du diagnostic d'import : comptages, motifs de rejet, couverture des colonnes."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping

from lucro_ecom.columns import MISSING, find_column_value
from lucro_ecom.models import ImportDiagnostics

logger = logging.getLogger(__name__)

LIMITED_DATA_RATIO = 3


def analyze_columns(
    row: Mapping[str, object], mapping: Mapping[str, list[str]], ignored: frozenset[str] = frozenset()
) -> tuple[list[str], list[str], list[str]]:
    """Couverture des champs canoniques pour une ligne brute.

    Returns:
        (champs trouvés, champs manquants, colonnes du fichier), dans l'ordre de la table d'alias.
    """
    cells = {k: v for k, v in row.items() if k not in ignored}
    found: list[str] = []
    missing: list[str] = []
    for name, aliases in mapping.items():
        if find_column_value(cells, aliases) is MISSING:
            missing.append(name)
        else:
            found.append(name)
    return found, missing, list(cells)


class DiagnosticsCollector:
    """Collecte le diagnostic d'un lot de lignes.

    La couverture des colonnes est calculée sur la première ligne de données
    seulement (schéma supposé homogène) ; l'histogramme des rejets couvre
    toutes les lignes.
    """

    def __init__(self, mapping: Mapping[str, list[str]], ignored: frozenset[str] = frozenset()) -> None:
        self._mapping = mapping
        self._ignored = ignored
        self._total = 0
        self._valid = 0
        self._reasons: Counter[str] = Counter()
        self._found: list[str] = []
        self._missing: list[str] = []
        self._file_columns: list[str] = []
        self._warnings: list[str] = []
        self._analyzed = False

    def record_columns(self, found: list[str], missing: list[str], file_columns: list[str]) -> None:
        """Fixe la couverture des colonnes résolue par l'appelant (en-têtes positionnels)."""
        self._found, self._missing, self._file_columns = list(found), list(missing), list(file_columns)
        self._analyzed = True

    def observe(self, row: Mapping[str, object] | None = None) -> None:
        """Compte une ligne ; la première sert à l'analyse des colonnes."""
        if not self._analyzed and row is not None:
            self._found, self._missing, self._file_columns = analyze_columns(row, self._mapping, self._ignored)
            self._analyzed = True
            logger.debug("Colonnes du fichier : %s", self._file_columns)
            logger.debug("Colonnes reconnues : %s", self._found)
            if self._missing:
                logger.debug("Colonnes introuvables : %s", self._missing)
        self._total += 1

    def accept(self) -> None:
        self._valid += 1

    def reject(self, reason: str) -> None:
        self._reasons[reason] += 1

    def warn(self, message: str) -> None:
        logger.warning(message)
        self._warnings.append(message)

    def check_limited_data(self, detail_rows: int, statement_records: int) -> None:
        """Signale un onglet de détail nettement plus pauvre que l'onglet des relevés."""
        if statement_records and detail_rows < statement_records * LIMITED_DATA_RATIO:
            self.warn(
                f"Données partielles : {detail_rows} ligne(s) de détail pour "
                f"{statement_records} relevé(s) — l'export ne couvre sans doute que le dernier paiement"
            )

    def build(self) -> ImportDiagnostics:
        """Fige le diagnostic et le journalise."""
        diagnostics = ImportDiagnostics(
            total_rows=self._total,
            valid_records=self._valid,
            rejected_records=self._total - self._valid,
            rejection_reasons=dict(self._reasons),
            found_columns=list(self._found),
            missing_columns=list(self._missing),
            file_columns=list(self._file_columns),
            warnings=list(self._warnings),
        )
        logger.info(
            "Import : %d ligne(s), %d valide(s), %d rejetée(s)",
            diagnostics.total_rows,
            diagnostics.valid_records,
            diagnostics.rejected_records,
        )
        for reason, count in diagnostics.rejection_reasons.items():
            logger.info("  %s : %d", reason, count)
        return diagnostics

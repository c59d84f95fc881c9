"""Point d'entrée CLI de lucro-ecom."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from lucro_ecom.config.loader import load_config
from lucro_ecom.engine.grouping import GROUP_BY_CHOICES, GROUP_BY_PRODUCT
from lucro_ecom.models import ConfigError, ParseError, UnsupportedFormatError
from lucro_ecom.parsers.bank import SUPPORTED_BANKS
from lucro_ecom.parsers.orders import UnitCostParser
from lucro_ecom.pipeline import IMPORT_KINDS, PipelineOrchestrator

logger = logging.getLogger("lucro_ecom.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    parser = argparse.ArgumentParser(
        prog="lucro-ecom",
        description="Import de relevés bancaires et marketplace, calcul de rentabilité",
    )
    parser.add_argument("kind", choices=IMPORT_KINDS, help="Type de fichier : bank, settlements ou orders")
    parser.add_argument("input_file", help="Fichier à importer (OFX, CSV ou XLSX)")
    parser.add_argument("output_file", help="Fichier Excel de sortie")
    parser.add_argument(
        "--bank-profile",
        default=None,
        help=f"Profil de colonnes bancaire ({', '.join(SUPPORTED_BANKS)} ; défaut : configuration)",
    )
    parser.add_argument(
        "--group-by",
        default=GROUP_BY_PRODUCT,
        choices=GROUP_BY_CHOICES,
        help="Regroupement des commandes (défaut : product)",
    )
    parser.add_argument("--settings", default=None, help="Nom du paramétrage de frais (défaut : paramétrage par défaut)")
    parser.add_argument("--costs", default=None, help="Table des coûts unitaires (CSV ou XLSX)")
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire de configuration YAML (défaut : ./config/)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=VALID_LOG_LEVELS,
        help="Niveau de log (défaut : INFO)",
    )
    return parser.parse_args(args)


def main(args: list[str] | None = None) -> None:
    """Point d'entrée principal."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format=LOG_FORMAT,
    )

    config_dir = Path(parsed.config_dir)
    try:
        config = load_config(config_dir)
        config.get_settings(parsed.settings)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(2)

    try:
        costs = None
        if parsed.costs:
            costs_path = Path(parsed.costs)
            costs = UnitCostParser().parse(costs_path, config, costs_path.name)

        orchestrator = PipelineOrchestrator()
        orchestrator.run(
            parsed.kind,
            input_path=Path(parsed.input_file),
            output_path=Path(parsed.output_file),
            config=config,
            bank_profile=parsed.bank_profile,
            group_by=parsed.group_by,
            settings_name=parsed.settings,
            costs=costs,
        )
    except (UnsupportedFormatError, ParseError) as e:
        print(f"ERREUR : {e}")
        sys.exit(3)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)


if __name__ == "__main__":
    main()

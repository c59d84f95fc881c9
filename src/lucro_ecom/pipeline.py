"""Orchestrateur du pipeline : fichier → enregistrements canoniques → stockage → calcul."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from decimal import Decimal
from pathlib import Path

from lucro_ecom.config.loader import DEFAULT_PAGE_SIZE, AppConfig
from lucro_ecom.engine import apply_unit_costs, calculate_dre, calculate_results, orders_missing_cost
from lucro_ecom.engine.grouping import GROUP_BY_PRODUCT
from lucro_ecom.exporters.excel import ImportResult, export, print_summary
from lucro_ecom.models import (
    BankStatement,
    CalculationResult,
    FeeSettings,
    FixedCost,
    IncomeStatement,
    MarketplaceOrder,
    OrderImport,
    ReportPeriod,
    SettlementImport,
    SettlementRow,
)
from lucro_ecom.parsers import BankStatementParser, OrderExportParser, SettlementParser
from lucro_ecom.parsers.bank import filter_new_transactions
from lucro_ecom.parsers.base import BaseParser, Source
from lucro_ecom.storage.fetcher import (
    InMemoryPageSource,
    fetch_all,
    fixed_cost_from_row,
    order_from_row,
    settlement_from_row,
    to_row,
)
from lucro_ecom.storage.settings import SettingsRepository

logger = logging.getLogger(__name__)

PARSER_REGISTRY: dict[str, Callable[[str | None], BaseParser]] = {
    "bank": lambda profile: BankStatementParser(profile),
    "settlements": lambda _: SettlementParser(),
    "orders": lambda _: OrderExportParser(),
}
IMPORT_KINDS = tuple(PARSER_REGISTRY)

BANK_TABLE = "bank_transactions"
SETTLEMENTS_TABLE = "settlements"
STATEMENTS_TABLE = "statements"
ORDERS_TABLE = "orders"
FIXED_COSTS_TABLE = "fixed_costs"

DEFAULT_OWNER = "local"


class PipelineOrchestrator:
    """Orchestre le pipeline import → persistance → relecture paginée → calcul → Excel.

    Le stockage est externe ; par défaut un stockage en mémoire est utilisé.
    """

    def __init__(
        self,
        store: InMemoryPageSource | None = None,
        owner_id: str = DEFAULT_OWNER,
        settings_repository: SettingsRepository | None = None,
    ) -> None:
        self.store = store or InMemoryPageSource()
        self.owner_id = owner_id
        self.settings_repository = settings_repository

    def resolve_settings(self, config: AppConfig, settings_name: str | None = None) -> FeeSettings:
        """Paramétrage nommé, sinon le paramétrage par défaut du propriétaire.

        Raises:
            ConfigError: Paramétrage nommé introuvable.
        """
        if settings_name is not None:
            return config.get_settings(settings_name)
        if self.settings_repository is None:
            self.settings_repository = SettingsRepository.from_config(config, self.owner_id)
        default = self.settings_repository.get_default(self.owner_id)
        return default if default is not None else config.default_settings()

    def import_file(
        self,
        kind: str,
        source: Source,
        filename: str,
        config: AppConfig,
        *,
        bank_profile: str | None = None,
    ) -> ImportResult:
        """Parse un fichier sans le persister.

        Raises:
            ValueError: Type d'import inconnu.
            UnsupportedFormatError: Extension non prise en charge.
            ParseError: Fichier illisible ou onglet manquant.
        """
        factory = PARSER_REGISTRY.get(kind)
        if factory is None:
            raise ValueError(f"Type d'import inconnu : '{kind}' (attendu : {', '.join(IMPORT_KINDS)})")
        result: ImportResult = factory(bank_profile).parse(source, config, filename)
        return result

    async def persist(
        self,
        result: ImportResult,
        costs: Mapping[str, Decimal] | None = None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> int:
        """Enregistre les enregistrements canoniques d'un import ; retourne le nombre de lignes écrites.

        Les transactions OFX dont le FITID figure déjà parmi celles du propriétaire
        sont écartées ; les FITID connus sont relus page par page.
        """
        if isinstance(result, BankStatement):
            stored = await fetch_all(self.store, BANK_TABLE, self.owner_id, page_size=page_size)
            known = [r["fitid"] for r in stored if r.get("fitid")]
            transactions = filter_new_transactions(result.transactions, known)
            self.store.insert(BANK_TABLE, [to_row(t, self.owner_id) for t in transactions])
            return len(transactions)
        if isinstance(result, SettlementImport):
            self.store.insert(SETTLEMENTS_TABLE, [to_row(s, self.owner_id) for s in result.settlements])
            self.store.insert(STATEMENTS_TABLE, [to_row(s, self.owner_id) for s in result.statements])
            return len(result.settlements)

        orders = apply_unit_costs(result.orders, costs or {})
        self.store.insert(ORDERS_TABLE, [to_row(o, self.owner_id) for o in orders])
        return len(orders)

    async def load_orders(self, config: AppConfig) -> list[MarketplaceOrder]:
        """Relit toutes les commandes persistées, page par page."""
        rows = await fetch_all(
            self.store, ORDERS_TABLE, self.owner_id, page_size=config.page_size, order_by="order_date"
        )
        return [order_from_row(r) for r in rows]

    async def calculate(
        self, config: AppConfig, settings: FeeSettings, group_by: str = GROUP_BY_PRODUCT
    ) -> CalculationResult:
        """Calcule la rentabilité de toutes les commandes persistées."""
        orders = await self.load_orders(config)
        missing = orders_missing_cost(orders)
        if missing:
            logger.warning(
                "%d produit(s) sans coût unitaire (coût compté à 0) : %s",
                len(missing),
                ", ".join(missing[:10]) + (" …" if len(missing) > 10 else ""),
            )
        return calculate_results(orders, settings, group_by)

    def add_fixed_costs(self, costs: list[FixedCost]) -> int:
        """Enregistre des coûts fixes mensuels pour le propriétaire."""
        self.store.insert(FIXED_COSTS_TABLE, [to_row(c, self.owner_id) for c in costs])
        return len(costs)

    async def load_settlements(self, config: AppConfig, period: ReportPeriod) -> list[SettlementRow]:
        """Relit les liquidations de la période, page par page."""
        rows = await fetch_all(
            self.store,
            SETTLEMENTS_TABLE,
            self.owner_id,
            page_size=config.page_size,
            order_by="statement_date",
            start_date=period.start,
            end_date=period.end,
        )
        return [settlement_from_row(r) for r in rows]

    async def load_fixed_costs(self, config: AppConfig) -> list[FixedCost]:
        rows = await fetch_all(
            self.store, FIXED_COSTS_TABLE, self.owner_id, page_size=config.page_size, order_by="amount"
        )
        return [fixed_cost_from_row(r) for r in rows]

    async def calculate_dre(self, config: AppConfig, settings: FeeSettings, period: ReportPeriod) -> IncomeStatement:
        """Compte de résultat de la période à partir des enregistrements persistés."""
        orders = await self.load_orders(config)
        settlements = await self.load_settlements(config, period)
        fixed_costs = await self.load_fixed_costs(config)
        return calculate_dre(orders, settlements, fixed_costs, settings, period)

    def run(
        self,
        kind: str,
        input_path: Path,
        output_path: Path,
        config: AppConfig,
        *,
        bank_profile: str | None = None,
        group_by: str = GROUP_BY_PRODUCT,
        settings_name: str | None = None,
        costs: Mapping[str, Decimal] | None = None,
    ) -> None:
        """Exécute le pipeline complet sur un fichier et écrit le classeur de sortie."""
        settings = self.resolve_settings(config, settings_name)
        result = self.import_file(kind, input_path, input_path.name, config, bank_profile=bank_profile)
        stored = asyncio.run(self.persist(result, costs, page_size=config.page_size))
        logger.info("%s : %d enregistrement(s) persisté(s)", input_path.name, stored)

        calculation = None
        if isinstance(result, OrderImport):
            calculation = asyncio.run(self.calculate(config, settings, group_by))

        export(result, output_path, calculation)
        print_summary(result, calculation)

    async def run_from_buffers(
        self,
        kind: str,
        content: bytes,
        filename: str,
        config: AppConfig,
        *,
        bank_profile: str | None = None,
        group_by: str = GROUP_BY_PRODUCT,
        settings: FeeSettings | None = None,
    ) -> tuple[ImportResult, CalculationResult | None]:
        """Exécute le pipeline à partir d'un fichier en mémoire.

        Args:
            kind: ``bank``, ``settlements`` ou ``orders``.
            content: Contenu du fichier.
            filename: Nom du fichier (détermine le format).
            config: Configuration de l'application.
            settings: Paramétrage de frais (défaut de la configuration si None).

        Returns:
            Tuple (résultat d'import, calcul de rentabilité pour les commandes).
        """
        result = self.import_file(kind, content, filename, config, bank_profile=bank_profile)
        await self.persist(result, page_size=config.page_size)

        calculation = None
        if isinstance(result, OrderImport):
            calculation = await self.calculate(config, settings or self.resolve_settings(config), group_by)
        return result, calculation

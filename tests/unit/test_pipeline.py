"""Tests unitaires pour PipelineOrchestrator."""

from __future__ import annotations

import asyncio
import datetime
from decimal import Decimal

import pytest

from lucro_ecom.config.loader import AppConfig
from lucro_ecom.models import BankStatement, ConfigError, FixedCost, MarketplaceOrder, OrderImport, ReportPeriod
from lucro_ecom.pipeline import BANK_TABLE, ORDERS_TABLE, SETTLEMENTS_TABLE, PipelineOrchestrator
from lucro_ecom.storage.fetcher import InMemoryPageSource, settlement_from_row, to_row
from lucro_ecom.storage.settings import SettingsRepository

OFX = b"""\
OFXHEADER:100
DATA:OFXSGML

<OFX>
<STMTTRN>
<DTPOSTED>20240120
<TRNAMT>-89.90
<FITID>F2
<NAME>PAGAMENTO - ENERGIA
</STMTTRN>
<STMTTRN>
<DTPOSTED>20240118
<TRNAMT>250.00
<FITID>F1
<MEMO>PIX RECEBIDO - ANA
</STMTTRN>
</OFX>
"""

ORDERS_CSV = (
    "Order ID,Order Status,Seller SKU,Product Name,Variation,Quantity,SKU Subtotal After Discount\n"
    "578123456789012341,Concluído,A1,Camiseta,P,1,50.00\n"
    "578123456789012342,Concluído,A1,Camiseta,M,2,100.00\n"
    "578123456789012343,Enviado,B2,Boné,U,1,40.00\n"
    "578123456789012344,Concluído,C3,Meia,U,3,30.00\n"
    "578123456789012345,Cancelado,C3,Meia,U,1,10.00\n"
).encode("utf-8")


class TestImportFile:
    def test_unknown_kind(self, sample_config: AppConfig) -> None:
        with pytest.raises(ValueError, match="Type d'import inconnu"):
            PipelineOrchestrator().import_file("invoices", b"", "a.csv", sample_config)

    def test_bank(self, sample_config: AppConfig) -> None:
        result = PipelineOrchestrator().import_file("bank", OFX, "extrato.ofx", sample_config)
        assert isinstance(result, BankStatement)
        assert len(result.transactions) == 2


class TestPersist:
    def test_ofx_reimport_is_deduplicated(self, sample_config: AppConfig) -> None:
        orchestrator = PipelineOrchestrator()
        first = orchestrator.import_file("bank", OFX, "extrato.ofx", sample_config)
        second = orchestrator.import_file("bank", OFX, "extrato.ofx", sample_config)

        assert asyncio.run(orchestrator.persist(first)) == 2
        assert asyncio.run(orchestrator.persist(second)) == 0
        assert len(orchestrator.store.tables[BANK_TABLE]) == 2

    def test_same_ofx_for_two_owners(self, sample_config: AppConfig) -> None:
        store = InMemoryPageSource()
        alice = PipelineOrchestrator(store=store, owner_id="alice")
        bob = PipelineOrchestrator(store=store, owner_id="bob")

        assert asyncio.run(alice.persist(alice.import_file("bank", OFX, "extrato.ofx", sample_config))) == 2
        assert asyncio.run(bob.persist(bob.import_file("bank", OFX, "extrato.ofx", sample_config))) == 2
        owners = [r["owner_id"] for r in store.tables[BANK_TABLE]]
        assert owners.count("alice") == 2
        assert owners.count("bob") == 2

    def test_known_fitids_read_page_by_page(self, sample_config: AppConfig) -> None:
        orchestrator = PipelineOrchestrator()
        asyncio.run(orchestrator.persist(orchestrator.import_file("bank", OFX, "extrato.ofx", sample_config)))
        orchestrator.store.requests.clear()

        second = orchestrator.import_file("bank", OFX, "extrato.ofx", sample_config)
        assert asyncio.run(orchestrator.persist(second, page_size=1)) == 0
        assert len(orchestrator.store.requests) == 3

    def test_orders_get_costs_and_owner(self, sample_config: AppConfig) -> None:
        store = InMemoryPageSource()
        orchestrator = PipelineOrchestrator(store=store, owner_id="u1")
        result = orchestrator.import_file("orders", ORDERS_CSV, "pedidos.csv", sample_config)

        assert asyncio.run(orchestrator.persist(result, {"A1": Decimal("12")})) == 4
        rows = store.tables[ORDERS_TABLE]
        assert {r["owner_id"] for r in rows} == {"u1"}
        assert [r["unit_cost"] for r in rows if r["sku"] == "A1"] == [Decimal("12"), Decimal("12")]


class TestResolveSettings:
    def test_named(self, sample_config: AppConfig) -> None:
        assert PipelineOrchestrator().resolve_settings(sample_config, "Afiliados").name == "Afiliados"

    def test_unknown_name(self, sample_config: AppConfig) -> None:
        with pytest.raises(ConfigError):
            PipelineOrchestrator().resolve_settings(sample_config, "Inexistant")

    def test_default_from_configuration(self, sample_config: AppConfig) -> None:
        assert PipelineOrchestrator().resolve_settings(sample_config).name == "Padrão"

    def test_default_from_repository(self, sample_config: AppConfig) -> None:
        repository = SettingsRepository.from_config(sample_config, "u1")
        afiliados = next(s for s in repository.list("u1") if s.name == "Afiliados")
        repository.set_default(afiliados.id or "", "u1")

        orchestrator = PipelineOrchestrator(owner_id="u1", settings_repository=repository)
        assert orchestrator.resolve_settings(sample_config).name == "Afiliados"


class TestCalculate:
    def test_reads_every_page(self, sample_config: AppConfig) -> None:
        orchestrator = PipelineOrchestrator()
        asyncio.run(orchestrator.persist(orchestrator.import_file("orders", ORDERS_CSV, "pedidos.csv", sample_config)))

        calculation = asyncio.run(orchestrator.calculate(sample_config, sample_config.default_settings()))

        # page_size = 2 : 4 commandes → 3 pages
        assert len(orchestrator.store.requests) == 3
        assert calculation.totals.quantity == 7
        assert calculation.totals.gross_amount == Decimal("220.00")
        assert [g.key for g in calculation.groups] == ["A1", "B2", "C3"]

    def test_missing_costs_are_logged(self, sample_config: AppConfig, caplog: pytest.LogCaptureFixture) -> None:
        orchestrator = PipelineOrchestrator()
        asyncio.run(orchestrator.persist(orchestrator.import_file("orders", ORDERS_CSV, "pedidos.csv", sample_config)))
        with caplog.at_level("WARNING", logger="lucro_ecom.pipeline"):
            asyncio.run(orchestrator.calculate(sample_config, sample_config.default_settings()))
        assert "sans coût unitaire" in caplog.text


class TestCalculateDre:
    def test_reads_persisted_records_for_the_period(self, sample_config: AppConfig) -> None:
        orchestrator = PipelineOrchestrator(owner_id="u1")
        orders = [
            MarketplaceOrder(
                order_id=order_id,
                sku="A1",
                product_name="Camiseta",
                variation=None,
                quantity=1,
                gross_amount=Decimal(gross),
                platform_discount=Decimal("0"),
                seller_discount=Decimal("0"),
                unit_cost=Decimal("10"),
                order_date=day,
                status="Concluído",
            )
            for order_id, gross, day in [
                ("1", "100", datetime.datetime(2024, 1, 10)),
                ("2", "60", datetime.datetime(2024, 1, 28)),
                ("3", "999", datetime.datetime(2024, 2, 2)),
            ]
        ]
        orchestrator.store.insert(ORDERS_TABLE, [to_row(o, "u1") for o in orders])
        settlements = [
            settlement_from_row({"order_id": "1", "type": "Order", "statement_date": "2024-01-12", "icms_difal": -4}),
            settlement_from_row({"order_id": "3", "type": "Order", "statement_date": "2024-02-03", "icms_difal": -50}),
        ]
        orchestrator.store.insert(SETTLEMENTS_TABLE, [to_row(s, "u1") for s in settlements])
        orchestrator.add_fixed_costs([FixedCost(category="Software", name="ERP", amount=Decimal("60"))])

        period = ReportPeriod(datetime.date(2024, 1, 1), datetime.date(2024, 1, 15))
        statement = asyncio.run(
            orchestrator.calculate_dre(sample_config, sample_config.default_settings(), period)
        )

        assert statement.gross_revenue == Decimal("100")
        assert statement.icms == Decimal("4")
        assert statement.simples_tax == Decimal("6.00")
        assert statement.product_cost == Decimal("10")
        assert statement.fixed_costs_prorated == Decimal("30")
        tables = {table for table, _ in orchestrator.store.requests}
        assert tables == {ORDERS_TABLE, SETTLEMENTS_TABLE, "fixed_costs"}

    def test_other_owner_records_ignored(self, sample_config: AppConfig) -> None:
        store = InMemoryPageSource()
        PipelineOrchestrator(store=store, owner_id="alice").add_fixed_costs(
            [FixedCost(category="Aluguel", name="Depósito", amount=Decimal("900"))]
        )
        period = ReportPeriod(datetime.date(2024, 1, 1), datetime.date(2024, 1, 31))
        statement = asyncio.run(
            PipelineOrchestrator(store=store, owner_id="bob").calculate_dre(
                sample_config, sample_config.default_settings(), period
            )
        )
        assert statement.fixed_costs_total == Decimal("0")


class TestRunFromBuffers:
    def test_orders(self, sample_config: AppConfig) -> None:
        result, calculation = asyncio.run(
            PipelineOrchestrator().run_from_buffers(
                "orders", ORDERS_CSV, "pedidos.csv", sample_config, group_by="variation"
            )
        )
        assert isinstance(result, OrderImport)
        assert result.diagnostics.rejection_reasons == {"Statut exclu : Cancelado": 1}
        assert calculation is not None
        assert calculation.group_by == "variation"
        assert len(calculation.groups) == 4

    def test_bank_has_no_calculation(self, sample_config: AppConfig) -> None:
        result, calculation = asyncio.run(
            PipelineOrchestrator().run_from_buffers("bank", OFX, "extrato.ofx", sample_config)
        )
        assert isinstance(result, BankStatement)
        assert calculation is None

"""Modèles de données métier et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal


# --- Exceptions métier ---


class LucroEcomError(Exception):
    """Erreur de base pour l'application lucro-ecom."""


class ConfigError(LucroEcomError):
    """YAML malformé, clé manquante, valeur invalide."""


class ParseError(LucroEcomError):
    """Onglet absent, fichier illisible."""


class UnsupportedFormatError(LucroEcomError):
    """Type de fichier non pris en charge (détecté avant tout parsing)."""


class StorageError(LucroEcomError):
    """Échec d'entrée/sortie côté stockage externe (pagination, écriture)."""


# --- Dataclasses métier (frozen) ---

INCOME = "income"
EXPENSE = "expense"


@dataclass(frozen=True)
class BankTransaction:
    """Transaction bancaire canonique.

    ``amount`` est toujours positif ou nul ; le sens est porté par ``direction``.
    ``fitid`` n'est renseigné que pour les relevés OFX (dédoublonnage).
    """

    id: str
    date: datetime.date
    description: str
    amount: Decimal
    direction: str  # "income" ou "expense"
    counterpart: str | None
    balance: Decimal | None
    fitid: str | None


@dataclass(frozen=True)
class BankStatement:
    """Résultat du parsing d'un relevé bancaire (OFX, CSV ou XLSX)."""

    transactions: list[BankTransaction]
    bank_name: str | None
    account_number: str | None
    start_date: datetime.date | None
    end_date: datetime.date | None
    fmt: str
    diagnostics: ImportDiagnostics | None = None


@dataclass(frozen=True)
class SettlementRow:
    """Ligne de liquidation marketplace (onglet « Order details »)."""

    # Informations de base
    statement_date: datetime.datetime | None
    statement_id: str | None
    payment_id: str | None
    status: str | None
    type: str | None
    currency: str

    # Commande
    order_id: str
    related_order_id: str | None
    sku_id: str | None
    quantity: int
    product_name: str | None
    variation: str | None

    # Dates
    order_created_date: datetime.datetime | None
    delivery_date: datetime.datetime | None

    # Livraison
    delivery_option: str | None
    collection_method: str | None
    chargeable_weight: Decimal

    # Montants principaux
    total_settlement_amount: Decimal
    customer_payment: Decimal
    customer_refund: Decimal
    net_sales: Decimal
    subtotal_before_discounts: Decimal
    refund_subtotal: Decimal

    # Remises vendeur
    seller_discounts: Decimal
    seller_cofunded_discount: Decimal
    seller_cofunded_discount_refund: Decimal
    refund_seller_discounts: Decimal

    # Remises plateforme
    platform_discounts: Decimal
    platform_cofunded_discount: Decimal
    platform_discounts_refund: Decimal

    # Frais de port
    shipping_total: Decimal
    platform_shipping_fee: Decimal
    customer_shipping_fee: Decimal
    refunded_shipping: Decimal
    shipping_incentive: Decimal
    shipping_incentive_refund: Decimal
    shipping_subsidy: Decimal
    actual_return_shipping_fee: Decimal

    # Frais
    total_fees: Decimal
    platform_commission_fee: Decimal
    affiliate_commission: Decimal
    affiliate_partner_commission: Decimal
    affiliate_shop_ads_commission: Decimal
    sfp_service_fee: Decimal
    fee_per_item: Decimal
    live_specials_fee: Decimal
    voucher_xtra_fee: Decimal
    bonus_cashback_fee: Decimal

    # Taxes
    icms_difal: Decimal
    icms_penalty: Decimal

    # Ajustements
    adjustment_amount: Decimal
    adjustment_reason: str | None

    source_row: int | None = None


@dataclass(frozen=True)
class SettlementOutcome:
    """Décision de classification d'une ligne de liquidation."""

    accepted: bool
    row: SettlementRow | None
    rejection_reason: str | None


@dataclass(frozen=True)
class StatementRow:
    """Ligne agrégée de l'onglet « Statements » (un relevé de paiement)."""

    statement_id: str
    statement_date: datetime.datetime | None
    payment_id: str | None
    status: str | None
    currency: str
    total_settlement_amount: Decimal
    net_sales: Decimal
    total_fees: Decimal
    customer_payment: Decimal
    seller_discounts: Decimal
    platform_discounts: Decimal
    shipping_total: Decimal
    refund_subtotal: Decimal
    adjustment_amount: Decimal


@dataclass(frozen=True)
class StatementsSummary:
    """Résumé de l'onglet « Statements »."""

    total_rows: int
    valid_records: int
    total_settlement_amount: Decimal
    start_date: datetime.datetime | None
    end_date: datetime.datetime | None


@dataclass(frozen=True)
class ImportDiagnostics:
    """Diagnostic d'un import : comptages, motifs de rejet, couverture des colonnes.

    Recalculé à chaque import, jamais persisté.
    """

    total_rows: int
    valid_records: int
    rejected_records: int
    rejection_reasons: dict[str, int]
    found_columns: list[str]
    missing_columns: list[str]
    file_columns: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SettlementImport:
    """Résultat de l'import d'un classeur de liquidation."""

    settlements: list[SettlementRow]
    statements: list[StatementRow]
    statements_summary: StatementsSummary | None
    diagnostics: ImportDiagnostics


@dataclass(frozen=True)
class MarketplaceOrder:
    """Commande marketplace persistée (base du calcul de rentabilité).

    ``unit_cost`` est renseigné après coup par l'utilisateur (0 = non saisi).
    """

    order_id: str
    sku: str | None
    product_name: str | None
    variation: str | None
    quantity: int
    gross_amount: Decimal
    platform_discount: Decimal
    seller_discount: Decimal
    unit_cost: Decimal
    order_date: datetime.datetime | None
    status: str | None


@dataclass(frozen=True)
class OrderImport:
    """Résultat de l'import d'un export de commandes."""

    orders: list[MarketplaceOrder]
    diagnostics: ImportDiagnostics


@dataclass(frozen=True)
class FeeSettings:
    """Paramétrage nommé de la cascade de frais.

    Les taux sont des fractions (0.06 = 6 %). Un seul paramétrage par
    utilisateur peut être marqué ``is_default``.
    """

    name: str
    commission_rate: Decimal
    affiliate_rate: Decimal
    per_item_fee: Decimal
    tax_rate: Decimal
    entry_invoice_percent: Decimal
    pre_tax_discount_rate: Decimal = Decimal("0")
    advance_payment_percent: Decimal = Decimal("0")
    advance_payment_rate: Decimal = Decimal("0")
    ad_spend: Decimal = Decimal("0")
    is_default: bool = False
    id: str | None = None
    owner_id: str | None = None


@dataclass(frozen=True)
class GroupedResult:
    """Agrégat de commandes pour une clé produit (ou produit + variation)."""

    key: str
    product_name: str
    sku: str
    variation: str | None
    quantity: int
    gross_amount: Decimal
    platform_discount: Decimal
    seller_discount: Decimal
    average_unit_cost: Decimal
    commission_fee: Decimal = Decimal("0")
    affiliate_fee: Decimal = Decimal("0")
    per_item_fee: Decimal = Decimal("0")
    receivable: Decimal = Decimal("0")
    cost_of_goods: Decimal = Decimal("0")
    tax: Decimal = Decimal("0")
    entry_invoice_cost: Decimal = Decimal("0")
    profit: Decimal = Decimal("0")
    profit_percent: Decimal = Decimal("0")
    advance_amount: Decimal = Decimal("0")
    advance_fee: Decimal = Decimal("0")


@dataclass(frozen=True)
class PortfolioTotals:
    """Totaux du portefeuille ; les dépenses publicitaires ne sont déduites qu'ici."""

    quantity: int
    gross_amount: Decimal
    platform_discount: Decimal
    seller_discount: Decimal
    commission_fee: Decimal
    affiliate_fee: Decimal
    per_item_fee: Decimal
    receivable: Decimal
    cost_of_goods: Decimal
    tax: Decimal
    entry_invoice_cost: Decimal
    advance_amount: Decimal
    advance_fee: Decimal
    ad_spend: Decimal
    gross_profit: Decimal
    profit: Decimal
    profit_percent_average: Decimal


@dataclass(frozen=True)
class CalculationResult:
    """Résultat complet du calcul de rentabilité."""

    groups: list[GroupedResult]
    totals: PortfolioTotals
    group_by: str


# --- Compte de résultat (DRE) ---


@dataclass(frozen=True)
class ReportPeriod:
    """Période d'un compte de résultat, bornes incluses."""

    start: datetime.date
    end: datetime.date
    label: str = ""

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


@dataclass(frozen=True)
class FixedCost:
    """Coût fixe mensuel (loyer, logiciels, salaires…) rattaché à une catégorie."""

    category: str
    name: str
    amount: Decimal
    is_recurring: bool = True


@dataclass(frozen=True)
class DreAlert:
    """Alerte de cohérence d'un compte de résultat."""

    level: str  # "warning", "error" ou "info"
    message: str
    field: str


@dataclass(frozen=True)
class IncomeStatement:
    """Compte de résultat (DRE) d'une période.

    Les sections s'enchaînent du chiffre d'affaires brut au résultat net ; les
    marges sont exprimées en pourcentage du chiffre d'affaires net.
    """

    period: ReportPeriod

    # 1. Chiffre d'affaires brut
    gross_revenue: Decimal

    # 2. Impôts sur les ventes
    icms: Decimal
    simples_tax: Decimal
    sales_taxes_total: Decimal

    # 3. Annulations et retours
    cancellations: Decimal
    returns: Decimal
    deductions_total: Decimal

    # 4. Chiffre d'affaires net
    net_revenue: Decimal

    # 5. Coût des produits vendus
    product_cost: Decimal
    packaging_cost: Decimal
    shipping_cost: Decimal
    entry_invoice_cost: Decimal
    cogs_total: Decimal

    # 6. Marge brute
    gross_profit: Decimal
    gross_margin: Decimal

    # 7. Coûts variables
    marketplace_commissions: Decimal
    affiliate_commissions: Decimal
    ad_spend: Decimal
    gateway_fees: Decimal
    service_fees: Decimal
    variable_costs_total: Decimal

    # 8. Marge de contribution
    contribution_margin: Decimal
    contribution_margin_percent: Decimal

    # 9. Coûts fixes
    fixed_costs_by_category: dict[str, Decimal]
    fixed_costs_total: Decimal
    fixed_costs_prorated: Decimal
    period_days: int

    # 10. Résultat opérationnel
    operating_profit: Decimal
    operating_margin: Decimal

    # 11. Charges financières
    interest_and_fines: Decimal
    income_taxes: Decimal
    financial_expenses_total: Decimal

    # 12. Résultat net
    net_profit: Decimal
    net_margin: Decimal

    alerts: list[DreAlert] = field(default_factory=list)

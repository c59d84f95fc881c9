"""Validation des paramètres de calcul transmis à l'API (surcharges de frais, commandes)."""

from __future__ import annotations

import dataclasses
import datetime
from decimal import Decimal
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

from lucro_ecom.config.loader import AppConfig
from lucro_ecom.engine.grouping import GROUP_BY_CHOICES, GROUP_BY_PRODUCT
from lucro_ecom.models import FeeSettings, FixedCost, MarketplaceOrder, ReportPeriod


Rate = Annotated[Decimal, Field(ge=0, le=1)]
Amount = Annotated[Decimal, Field(ge=0)]


class FeeOverridesSchema(BaseModel):
    """Surcharge partielle d'un paramétrage de frais.

    ``settings_name`` choisit le paramétrage de base (défaut de la configuration
    sinon) ; les autres champs remplacent ses valeurs.
    """

    settings_name: str | None = None
    commission_rate: Rate | None = None
    affiliate_rate: Rate | None = None
    tax_rate: Rate | None = None
    entry_invoice_percent: Rate | None = None
    pre_tax_discount_rate: Rate | None = None
    advance_payment_percent: Rate | None = None
    advance_payment_rate: Rate | None = None
    per_item_fee: Amount | None = None
    ad_spend: Amount | None = None


class OrderPayload(BaseModel):
    """Commande persistée, telle que relue depuis le stockage externe."""

    order_id: str
    sku: str | None = None
    product_name: str | None = None
    variation: str | None = None
    quantity: int = Field(1, ge=0)
    gross_amount: Decimal = Decimal("0")
    platform_discount: Decimal = Decimal("0")
    seller_discount: Decimal = Decimal("0")
    unit_cost: Decimal = Field(Decimal("0"), ge=0)
    order_date: datetime.datetime | None = None
    status: str | None = None

    def to_order(self) -> MarketplaceOrder:
        return MarketplaceOrder(**self.model_dump())


class ResultsRequest(BaseModel):
    """Corps de ``POST /api/results``."""

    orders: list[OrderPayload]
    group_by: str = GROUP_BY_PRODUCT
    overrides: FeeOverridesSchema | None = None

    @field_validator("group_by")
    @classmethod
    def validate_group_by(cls, v: str) -> str:
        if v not in GROUP_BY_CHOICES:
            raise ValueError(f"Regroupement inconnu : '{v}' (attendu : {', '.join(GROUP_BY_CHOICES)})")
        return v


def apply_fee_overrides(
    config: AppConfig,
    overrides: dict[str, Any] | FeeOverridesSchema | None,
    default: FeeSettings | None = None,
) -> FeeSettings:
    """Retourne le paramétrage de base, surchargé par les valeurs fournies.

    Sans ``settings_name``, la base est ``default`` (paramétrage par défaut du
    dépôt) ou, à défaut, celui de la configuration.

    Raises:
        pydantic.ValidationError: Valeur hors bornes.
        ConfigError: Paramétrage de base inconnu.
    """
    fallback = default if default is not None else config.default_settings()
    if overrides is None:
        return fallback
    schema = (
        overrides if isinstance(overrides, FeeOverridesSchema) else FeeOverridesSchema.model_validate(overrides)
    )
    base = config.get_settings(schema.settings_name) if schema.settings_name is not None else fallback

    replacements = {k: v for k, v in schema.model_dump(exclude={"settings_name"}).items() if v is not None}
    if not replacements:
        return base
    return dataclasses.replace(base, **replacements)


class PeriodPayload(BaseModel):
    """Période du compte de résultat, bornes incluses."""

    start: datetime.date
    end: datetime.date
    label: str = ""

    @model_validator(mode="after")
    def check_bounds(self) -> PeriodPayload:
        if self.end < self.start:
            raise ValueError(f"Période invalide : fin {self.end} antérieure au début {self.start}")
        return self

    def to_period(self) -> ReportPeriod:
        return ReportPeriod(start=self.start, end=self.end, label=self.label)


class FixedCostPayload(BaseModel):
    category: str
    name: str = ""
    amount: Amount
    is_recurring: bool = True

    def to_fixed_cost(self) -> FixedCost:
        return FixedCost(**self.model_dump())


class DreRequest(BaseModel):
    """Corps de ``POST /api/dre``.

    Les liquidations sont transmises telles que persistées (une ligne par
    commande liquidée) ; sans période, le mois en cours est retenu.
    """

    orders: list[OrderPayload] = Field(default_factory=list)
    settlements: list[dict[str, Any]] = Field(default_factory=list)
    fixed_costs: list[FixedCostPayload] = Field(default_factory=list)
    period: PeriodPayload | None = None
    overrides: FeeOverridesSchema | None = None

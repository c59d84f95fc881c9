from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from lucro_ecom.config.loader import AppConfig, load_config
from lucro_ecom.models import FeeSettings

CONFIG_DIR = Path(__file__).parent.parent / "config"


@pytest.fixture
def config_dir() -> Path:
    """Répertoire de configuration livré avec le projet."""
    return CONFIG_DIR


@pytest.fixture
def repo_config(config_dir: Path) -> AppConfig:
    """Configuration chargée depuis ``config/``."""
    return load_config(config_dir)


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig valide minimale pour les tests (pagination courte)."""
    return AppConfig(
        fee_settings=[
            FeeSettings(
                name="Padrão",
                commission_rate=Decimal("0.06"),
                affiliate_rate=Decimal("0"),
                per_item_fee=Decimal("2"),
                tax_rate=Decimal("0.06"),
                entry_invoice_percent=Decimal("0"),
                is_default=True,
            ),
            FeeSettings(
                name="Afiliados",
                commission_rate=Decimal("0.06"),
                affiliate_rate=Decimal("0.10"),
                per_item_fee=Decimal("2"),
                tax_rate=Decimal("0.06"),
                entry_invoice_percent=Decimal("0.05"),
            ),
        ],
        page_size=2,
    )

"""Fixtures pour les tests d'intégration API."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def client() -> TestClient:
    """TestClient FastAPI avec la configuration du projet."""
    config_dir = str(Path(__file__).parent.parent.parent / "config")
    os.environ["CONFIG_DIR"] = config_dir

    from api.app.main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def bank_csv() -> tuple[str, bytes, str]:
    """Relevé CSV pour upload multipart."""
    return ("extrato.csv", (FIXTURES / "bank" / "extrato.csv").read_bytes(), "text/csv")


@pytest.fixture
def orders_csv() -> tuple[str, bytes, str]:
    """Export de commandes pour upload multipart."""
    return ("pedidos.csv", (FIXTURES / "orders" / "pedidos.csv").read_bytes(), "text/csv")

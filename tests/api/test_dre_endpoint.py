"""Tests d'intégration — POST /api/dre."""

from __future__ import annotations

import pytest

JANUARY = {"start": "2024-01-01", "end": "2024-01-31", "label": "Janvier"}

ORDERS = [
    {
        "order_id": "1",
        "sku": "A1",
        "quantity": 2,
        "gross_amount": 200,
        "unit_cost": 30,
        "order_date": "2024-01-10T09:00:00",
        "status": "Concluído",
    },
    {"order_id": "2", "sku": "A1", "quantity": 1, "gross_amount": 500, "order_date": "2024-02-10T09:00:00"},
]

SETTLEMENTS = [
    {
        "order_id": "1",
        "type": "Order",
        "statement_date": "2024-01-12",
        "icms_difal": -4,
        "platform_commission_fee": -12,
        "platform_shipping_fee": -10,
        "customer_shipping_fee": 10,
    },
    {"order_id": "1", "type": "Refund", "statement_date": "2024-01-20", "refund_subtotal": -20},
]

FIXED_COSTS = [
    {"category": "Software", "name": "ERP", "amount": 50},
    {"category": "Software", "name": "Planilhas", "amount": 12},
]

OVERRIDES = {"tax_rate": 0.05, "entry_invoice_percent": 0.10, "ad_spend": 8}


def test_dre_cascade(client):
    body = {
        "orders": ORDERS,
        "settlements": SETTLEMENTS,
        "fixed_costs": FIXED_COSTS,
        "period": JANUARY,
        "overrides": OVERRIDES,
    }
    response = client.post("/api/dre", json=body)
    assert response.status_code == 200
    data = response.json()

    assert data["period"] == {"start": "2024-01-01", "end": "2024-01-31", "label": "Janvier", "days": 31}
    assert data["gross_revenue"] == 200.0
    assert data["sales_taxes_total"] == 14.0
    assert data["returns"] == 20.0
    assert data["net_revenue"] == 166.0
    assert data["cogs_total"] == 66.0
    assert data["gross_profit"] == 100.0
    assert data["variable_costs_total"] == 20.0
    assert data["contribution_margin"] == 80.0
    assert data["fixed_costs_by_category"] == {"Software": 62.0}
    assert data["fixed_costs_prorated"] == 62.0
    assert data["net_profit"] == 18.0
    assert data["net_margin"] == pytest.approx(18 / 166 * 100, abs=0.01)
    assert data["alerts"] == []


def test_dre_alerts_serialized(client):
    body = {"orders": ORDERS, "period": JANUARY, "overrides": {"tax_rate": 0}}
    response = client.post("/api/dre", json=body)
    assert response.status_code == 200
    alerts = response.json()["alerts"]
    assert [a["field"] for a in alerts] == ["sales_taxes_total", "fixed_costs_total"]
    assert alerts[0]["level"] == "warning"


def test_dre_period_end_before_start(client):
    body = {"orders": ORDERS, "period": {"start": "2024-02-01", "end": "2024-01-01"}}
    response = client.post("/api/dre", json=body)
    assert response.status_code == 422


def test_dre_default_period_is_current_month(client):
    response = client.post("/api/dre", json={})
    assert response.status_code == 200
    data = response.json()
    expected = client.get("/api/defaults").json()["dre_periods"][0]
    assert data["period"] == expected
    assert data["gross_revenue"] == 0.0


def test_dre_negative_fixed_cost_rejected(client):
    body = {"fixed_costs": [{"category": "Aluguel", "amount": -10}]}
    response = client.post("/api/dre", json=body)
    assert response.status_code == 422


def test_defaults_list_dre_periods(client):
    periods = client.get("/api/defaults").json()["dre_periods"]
    assert [p["label"] for p in periods] == [
        "Mois en cours",
        "Mois précédent",
        "3 derniers mois",
        "6 derniers mois",
        "Année en cours",
    ]
    assert all(p["start"] <= p["end"] for p in periods)

"""
Integration Test: Application Entry Point

Python 3.8 Compatible

The lifespan is not entered (TestClient used without a context manager),
so no database engine or price feed is wired.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

import tradeaudit.main as main_module
from tradeaudit import __version__


@pytest.fixture
def client():
    return TestClient(main_module.app)


class TestSystemEndpoints:

    def test_health_when_database_answers(self, client, monkeypatch) -> None:
        monkeypatch.setattr(main_module, "check_database_connection", lambda: True)

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "database": "connected",
            "version": __version__,
        }

    def test_health_when_database_is_down(self, client, monkeypatch) -> None:
        def fail():
            raise Exception("Database connection failed: refused")

        monkeypatch.setattr(main_module, "check_database_connection", fail)

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"

    def test_metrics_exposes_audit_counters(self, client) -> None:
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "audit_overall_score" in response.text

    def test_audit_routes_are_mounted(self) -> None:
        paths = {route.path for route in main_module.app.routes}

        assert "/api/audit/comprehensive" in paths
        assert "/api/audit/portfolio/{user_id}" in paths

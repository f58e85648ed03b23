"""
Tests for Health Endpoints
==========================

Tests the root and detailed health checks.
"""

import pytest
from unittest.mock import patch
from fastapi import status
from fastapi.testclient import TestClient

from database import DatabaseHealthCheck


class TestHealth:

    @pytest.mark.api
    def test_root(self, client: TestClient):
        response = client.get("/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name"] == "DoseKeeper"

    @pytest.mark.api
    def test_health_reports_database(self, client: TestClient):
        response = client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "up"

    @pytest.mark.api
    def test_health_degraded_without_database(self, client: TestClient):
        with patch.object(DatabaseHealthCheck, "is_connected", return_value=False):
            data = client.get("/health").json()

        assert data["status"] == "degraded"
        assert data["checks"]["database"]["status"] == "down"

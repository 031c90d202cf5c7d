# -*- coding: utf-8 -*-
"""
Test suite for health and readiness endpoints.
"""
from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from detailers import __version__


class TestHealthEndpoint:

    def test_health_endpoint_response_format(self, client):
        for path in ("/health", "/healthz"):
            response = client.get(path)
            assert response.status_code == 200
            data = response.get_json()
            assert data["status"] == "healthy"
            assert data["service"] == "detailers-purchases"
            assert data["version"] == __version__
            assert isinstance(data["timestamp"], float)

    def test_health_head_request(self, client):
        assert client.head("/healthz").status_code == 200


class TestReadinessEndpoint:

    def test_ready_when_database_answers(self, client):
        response = client.get("/readyz")
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": True}

    def test_not_ready_when_database_fails(self, client):
        from detailers.database import db

        with patch.object(db.session, "execute",
                          side_effect=OperationalError("SELECT 1", {}, Exception("down"))):
            response = client.get("/readyz")

        assert response.status_code == 503
        data = response.get_json()
        assert data["status"] == "not_ready"
        assert data["checks"]["database"] is False

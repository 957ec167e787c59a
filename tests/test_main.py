"""Tests for main.py application startup and configuration."""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest
from fastapi import FastAPI

from main import app, lifespan


class TestMainApplication:
    """Test main application functionality."""

    def test_app_creation(self):
        """Test that the FastAPI app is created correctly."""
        assert isinstance(app, FastAPI)
        assert app.title == "Identity service"

    def test_app_middleware(self):
        """Test that CORS and rate limit middleware are configured."""
        middleware_names = [str(middleware.cls) for middleware in app.user_middleware]

        assert any("CORSMiddleware" in name for name in middleware_names)
        assert any("SlowAPIMiddleware" in name for name in middleware_names)

    def test_app_routes(self):
        """Test that all expected routes are registered."""
        route_paths = {route.path for route in app.routes}

        expected = {
            "/health",
            "/api/v1/registration/email-availability",
            "/api/v1/registration/start",
            "/api/v1/registration/resend-email",
            "/api/v1/registration/verify-email",
            "/api/v1/registration/profile",
            "/api/v1/registration/password-policy",
            "/api/v1/registration/limits",
            "/api/v1/registration/password/forgot",
            "/api/v1/registration/password/reset",
            "/api/v1/registration/status",
            "/api/v1/auth/login",
            "/api/v1/auth/refresh",
            "/api/v1/auth/logout",
            "/api/v1/auth/logout-all",
            "/api/v1/auth/me",
            "/api/v1/auth/sessions",
            "/api/v1/auth/sessions/{session_id}",
            "/api/v1/auth/password/change",
            "/api/v1/auth/email/change",
            "/api/v1/auth/email/confirm",
        }
        missing = expected - route_paths
        assert not missing, f"Routes not registered: {sorted(missing)}"

    @pytest.mark.asyncio
    async def test_lifespan_startup_success(self):
        """Test successful application startup."""
        mock_app = Mock(spec=FastAPI)
        mock_app.state = Mock()

        with patch("main.verify_connection") as mock_verify, \
             patch("main.run_migrations") as mock_migrations:

            async with lifespan(mock_app):
                pass

            mock_verify.assert_called_once()
            mock_migrations.assert_called_once()
            assert mock_app.state.database_url is not None

    @pytest.mark.asyncio
    async def test_lifespan_startup_database_error(self):
        """Test application startup with database connection error."""
        mock_app = Mock(spec=FastAPI)
        mock_app.state = Mock()

        with patch("main.verify_connection") as mock_verify, \
             patch("main.run_migrations") as mock_migrations:

            mock_verify.side_effect = Exception("Database connection failed")

            with pytest.raises(Exception, match="Database connection failed"):
                async with lifespan(mock_app):
                    pass

            mock_migrations.assert_not_called()

    @pytest.mark.asyncio
    async def test_lifespan_startup_migration_error(self):
        """Test application startup with migration error."""
        mock_app = Mock(spec=FastAPI)
        mock_app.state = Mock()

        with patch("main.verify_connection"), \
             patch("main.run_migrations") as mock_migrations:

            mock_migrations.side_effect = Exception("Migration failed")

            with pytest.raises(Exception, match="Migration failed"):
                async with lifespan(mock_app):
                    pass

    def test_health_check_endpoint(self, client):
        """Test the health check endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_cors_headers(self, client):
        """Test that CORS headers are properly set."""
        response = client.request(
            "OPTIONS",
            "/api/v1/auth/login",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )

        assert response.status_code in [200, 204]
        assert "access-control-allow-origin" in response.headers

"""Unit tests for configuration and settings."""
from common.config import get_settings, reset_settings_cache


class TestSettings:
    """Test configuration management."""

    def test_get_settings_returns_same_instance(self):
        assert get_settings() is get_settings()

    def test_reset_settings_cache(self):
        settings1 = get_settings()
        reset_settings_cache()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_default_database_url(self):
        settings = get_settings()

        assert isinstance(settings.database_url, str)

    def test_jwt_configuration(self):
        settings = get_settings()

        assert settings.jwt_secret is not None
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expire_minutes > 0

    def test_booking_rules_configuration(self):
        settings = get_settings()

        assert settings.minimum_gap_minutes == 60
        assert settings.booking_events_enabled is False
        assert settings.bookings_queue == "bookings"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MINIMUM_GAP_MINUTES", "30")
        reset_settings_cache()
        try:
            assert get_settings().minimum_gap_minutes == 30
        finally:
            monkeypatch.delenv("MINIMUM_GAP_MINUTES")
            reset_settings_cache()

    def test_service_ports_configuration(self):
        settings = get_settings()

        assert settings.users_service_port == 8001
        assert settings.rooms_service_port == 8002
        assert settings.bookings_service_port == 8003

    def test_cors_origins_configuration(self):
        settings = get_settings()

        assert isinstance(settings.cors_origins, list)
        assert len(settings.cors_origins) > 0

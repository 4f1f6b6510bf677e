"""
Tests for centralized configuration.
"""
import pytest
import os
from insight_weaver.core.config import Settings, get_settings, reload_settings


def test_settings_defaults():
    """Test that settings have sensible defaults."""
    settings = Settings()

    assert settings.max_dataset_rows == 50000
    assert settings.rate_limit_per_minute == 10
    assert settings.grouped_sample_cap == 500
    assert settings.relationship_sample_cap == 1000
    assert settings.max_groups == 10
    assert settings.min_dashboard_views == 4
    assert settings.log_level == "INFO"
    assert settings.log_format == "text"


def test_settings_from_env():
    """Test loading settings from environment variables."""
    # Save original values
    original_rows = os.environ.get("MAX_DATASET_ROWS")
    original_groups = os.environ.get("MAX_GROUPS")

    try:
        os.environ["MAX_DATASET_ROWS"] = "1200"
        os.environ["MAX_GROUPS"] = "7"

        # Reload to pick up new env vars
        settings = reload_settings()

        assert settings.max_dataset_rows == 1200
        assert settings.max_groups == 7
        assert get_settings() is settings
    finally:
        # Cleanup - restore original or remove
        if original_rows:
            os.environ["MAX_DATASET_ROWS"] = original_rows
        else:
            os.environ.pop("MAX_DATASET_ROWS", None)

        if original_groups:
            os.environ["MAX_GROUPS"] = original_groups
        else:
            os.environ.pop("MAX_GROUPS", None)

        reload_settings()


def test_settings_validation():
    """Test that settings validate input ranges."""
    with pytest.raises(ValueError):
        Settings(max_groups=1)  # Below minimum

    with pytest.raises(ValueError):
        Settings(skewness_threshold=0)  # Must be positive

    with pytest.raises(ValueError):
        Settings(log_level="INVALID")  # Invalid log level

    with pytest.raises(ValueError):
        Settings(log_format="xml")


def test_settings_normalization():
    settings = Settings(log_level="debug", log_format="JSON")

    assert settings.log_level == "DEBUG"
    assert settings.log_format == "json"
    assert settings.allowed_origins_list == ["http://localhost:3000", "http://localhost:3001"]


def test_settings_singleton():
    """Test that get_settings returns singleton."""
    settings1 = get_settings()
    settings2 = get_settings()

    assert settings1 is settings2

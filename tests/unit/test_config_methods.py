"""Tests for Settings methods and provisioning settings."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from fleetprov.config import Settings


def test_get_cors_allowed_methods_wildcard():
    """Test CORS methods returns wildcard list when set to '*'."""
    with patch.dict("os.environ", {"CORS_ALLOWED_METHODS": "*"}):
        settings = Settings()
        assert settings.get_cors_allowed_methods() == ["*"]


def test_get_cors_allowed_methods_list():
    """Test CORS methods returns parsed list."""
    with patch.dict("os.environ", {"CORS_ALLOWED_METHODS": "GET, POST, PUT"}):
        settings = Settings()
        assert settings.get_cors_allowed_methods() == ["GET", "POST", "PUT"]


def test_get_cors_allowed_headers_wildcard():
    """Test CORS headers returns wildcard list when set to '*'."""
    with patch.dict("os.environ", {"CORS_ALLOWED_HEADERS": "*"}):
        settings = Settings()
        assert settings.get_cors_allowed_headers() == ["*"]


def test_default_cors_headers_allow_account_header():
    """Test the account header is allowed cross-origin by default."""
    settings = Settings(_env_file=None)
    assert "X-Account-ID" in settings.get_cors_allowed_headers()


def test_get_allowed_origins_list():
    """Test origins are split and stripped."""
    with patch.dict(
        "os.environ", {"ALLOWED_ORIGINS": "http://a.example, http://b.example"}
    ):
        settings = Settings()
        assert settings.get_allowed_origins() == ["http://a.example", "http://b.example"]


def test_provisioning_defaults():
    """Test enrollment and registry defaults."""
    settings = Settings(_env_file=None, gateway_delete_policy="reject")

    assert settings.token_retention_days == 30
    assert settings.store_max_retries == 3
    assert settings.ca_signing_timeout_seconds == 30.0
    assert settings.certificate_validity_days == 365


def test_gateway_delete_policy_from_env():
    """Test the delete policy is read from the environment."""
    with patch.dict("os.environ", {"GATEWAY_DELETE_POLICY": "cascade"}):
        assert Settings().gateway_delete_policy == "cascade"


def test_invalid_gateway_delete_policy_rejected():
    """Test unknown delete policies fail validation."""
    with patch.dict("os.environ", {"GATEWAY_DELETE_POLICY": "orphan"}):
        with pytest.raises(ValidationError):
            Settings()


def test_invalid_infrastructure_provider_rejected():
    """Test unknown infrastructure providers fail validation."""
    with patch.dict("os.environ", {"INFRASTRUCTURE_PROVIDER": "azure"}):
        with pytest.raises(ValidationError):
            Settings()

"""
Tests for configuration settings.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from fpl_infra.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        """Defaults reproduce the fixed project/environment/region."""
        monkeypatch.delenv("FPL_REGION", raising=False)
        settings = Settings(_env_file=None)

        assert settings.project_name == "fpl-assistant"
        assert settings.environment == "dev"
        assert settings.region == "us-east-1"
        assert settings.image_id is None
        assert settings.template_file is None

    def test_derived_names(self):
        """Stack, key and table names derive from project and environment."""
        settings = Settings(project_name="fpl-assistant", environment="staging", key_dir=Path("/keys"))

        assert settings.stack_name == "fpl-assistant-staging-infrastructure"
        assert settings.key_name == "fpl-assistant-staging-key"
        assert settings.key_file == Path("/keys/fpl-assistant-staging-key.pem")
        assert settings.table_names() == [
            "fpl-assistant-staging-players",
            "fpl-assistant-staging-fixtures",
            "fpl-assistant-staging-teams",
        ]

    def test_environment_from_env_var(self, monkeypatch):
        """FPL_-prefixed environment variables are read."""
        monkeypatch.setenv("FPL_ENVIRONMENT", "prod")
        monkeypatch.setenv("FPL_PROJECT_NAME", "fpl-test")

        settings = Settings()

        assert settings.environment == "prod"
        assert settings.stack_name == "fpl-test-prod-infrastructure"

    def test_rejects_unknown_environment(self):
        """Environment is limited to the template's allowed values."""
        with pytest.raises(ValidationError):
            Settings(environment="qa")

    @pytest.mark.parametrize("name", ["FPL-Assistant", "fpl_assistant", "-fpl", "x"])
    def test_rejects_invalid_project_name(self, name):
        """Project names must be usable in bucket names."""
        with pytest.raises(ValidationError):
            Settings(project_name=name)

    def test_rejects_non_positive_timeout(self):
        """IP lookup timeout must be positive."""
        with pytest.raises(ValidationError):
            Settings(ip_lookup_timeout=0)

    def test_log_level_is_normalized(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    def test_rejects_unknown_log_level(self):
        """Only stdlib logging level names are accepted."""
        with pytest.raises(ValidationError):
            Settings(log_level="verbose")

"""
Tests for the EC2 service.
"""

import stat

import pytest

from conftest import client_error
from fpl_infra.exceptions import DeploymentError


class TestKeyPair:
    """Tests for key pair management."""

    def test_key_pair_exists(self, ec2_service, mock_ec2_client):
        assert ec2_service.key_pair_exists("fpl-assistant-dev-key") is True
        mock_ec2_client.describe_key_pairs.assert_called_once_with(KeyNames=["fpl-assistant-dev-key"])

    def test_key_pair_missing(self, ec2_service, mock_ec2_client):
        mock_ec2_client.describe_key_pairs.side_effect = client_error("InvalidKeyPair.NotFound")

        assert ec2_service.key_pair_exists("fpl-assistant-dev-key") is False

    def test_key_pair_lookup_error_propagates(self, ec2_service, mock_ec2_client):
        mock_ec2_client.describe_key_pairs.side_effect = client_error("UnauthorizedOperation")

        with pytest.raises(Exception, match="UnauthorizedOperation"):
            ec2_service.key_pair_exists("fpl-assistant-dev-key")

    def test_create_writes_owner_read_only_file(self, ec2_service, mock_ec2_client, settings):
        """Private key is saved with mode 0400."""
        key_file = ec2_service.create_key_pair(settings.key_name, settings.key_file)

        assert key_file == settings.key_file
        assert "BEGIN RSA PRIVATE KEY" in key_file.read_text()
        assert stat.S_IMODE(key_file.stat().st_mode) == 0o400
        mock_ec2_client.create_key_pair.assert_called_once_with(KeyName=settings.key_name)

    def test_create_refuses_to_overwrite(self, ec2_service, mock_ec2_client, settings):
        settings.key_file.write_text("old key")

        with pytest.raises(DeploymentError):
            ec2_service.create_key_pair(settings.key_name, settings.key_file)

        mock_ec2_client.create_key_pair.assert_not_called()

    def test_ensure_reuses_existing_key_pair(self, ec2_service, mock_ec2_client, settings):
        """An existing key pair is never re-created."""
        created = ec2_service.ensure_key_pair(settings.key_name, settings.key_file)

        assert created is False
        mock_ec2_client.create_key_pair.assert_not_called()
        assert not settings.key_file.exists()

    def test_ensure_creates_missing_key_pair(self, ec2_service, mock_ec2_client, settings):
        mock_ec2_client.describe_key_pairs.side_effect = client_error("InvalidKeyPair.NotFound")

        created = ec2_service.ensure_key_pair(settings.key_name, settings.key_file)

        assert created is True
        assert settings.key_file.exists()

    def test_delete_removes_key_file(self, ec2_service, mock_ec2_client, settings):
        ec2_service.create_key_pair(settings.key_name, settings.key_file)

        ec2_service.delete_key_pair(settings.key_name, settings.key_file)

        mock_ec2_client.delete_key_pair.assert_called_once_with(KeyName=settings.key_name)
        assert not settings.key_file.exists()

    def test_delete_without_local_file(self, ec2_service, mock_ec2_client, settings):
        ec2_service.delete_key_pair(settings.key_name, settings.key_file)

        mock_ec2_client.delete_key_pair.assert_called_once()


class TestImageResolution:
    """Tests for machine image lookup."""

    def test_configured_image_wins(self, ec2_service):
        assert ec2_service.resolve_image_id() == "ami-0123456789abcdef0"
        ec2_service.ssm_client.get_parameter.assert_not_called()

    def test_latest_image_from_ssm(self, ec2_service, settings):
        settings.image_id = None
        ec2_service.ssm_client.get_parameter.return_value = {
            "Parameter": {"Value": "ami-0fedcba9876543210"}
        }

        assert ec2_service.resolve_image_id() == "ami-0fedcba9876543210"
        ec2_service.ssm_client.get_parameter.assert_called_once_with(Name=settings.ami_parameter)

    def test_missing_ssm_parameter(self, ec2_service, settings):
        settings.image_id = None
        ec2_service.ssm_client.get_parameter.side_effect = client_error("ParameterNotFound")

        with pytest.raises(DeploymentError):
            ec2_service.resolve_image_id()

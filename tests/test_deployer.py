"""
Tests for deployment orchestration.
"""

from unittest.mock import MagicMock, patch

import pytest

from conftest import client_error
from fpl_infra.deployer import InfrastructureDeployer
from fpl_infra.exceptions import DeploymentError, PreflightError
from fpl_infra.models import ChangeSetType, DeploymentResult


@pytest.fixture
def deploy_result():
    return DeploymentResult(
        stack_name="fpl-assistant-dev-infrastructure",
        change_set_type=ChangeSetType.CREATE,
        outputs={"WebServerPublicIP": "203.0.113.10"},
    )


class TestDeploy:
    """Tests for the deploy operation."""

    @pytest.mark.asyncio
    async def test_deploy_passes_parameters_and_tags(self, deployer, settings, deploy_result):
        deployer.cloudformation.deploy = MagicMock(return_value=deploy_result)

        result = await deployer.deploy()

        assert result is deploy_result
        kwargs = deployer.cloudformation.deploy.call_args.kwargs
        assert kwargs["stack_name"] == "fpl-assistant-dev-infrastructure"
        assert kwargs["template_body"] == '{"Resources": {}}'
        assert kwargs["parameters"] == {
            "ProjectName": "fpl-assistant",
            "Environment": "dev",
            "KeyPairName": "fpl-assistant-dev-key",
            "AllowedSSHCIDR": "198.51.100.7/32",
            "ImageId": "ami-0123456789abcdef0",
        }
        assert kwargs["tags"] == {
            "Project": "fpl-assistant",
            "Environment": "dev",
            "Owner": "arn:aws:iam::123456789012:user/deployer",
        }

    @pytest.mark.asyncio
    async def test_existing_key_pair_is_not_recreated(self, deployer, mock_ec2_client, deploy_result):
        deployer.cloudformation.deploy = MagicMock(return_value=deploy_result)

        await deployer.deploy()

        mock_ec2_client.create_key_pair.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_key_pair_is_created(self, deployer, mock_ec2_client, settings, deploy_result):
        mock_ec2_client.describe_key_pairs.side_effect = client_error("InvalidKeyPair.NotFound")
        deployer.cloudformation.deploy = MagicMock(return_value=deploy_result)

        await deployer.deploy()

        mock_ec2_client.create_key_pair.assert_called_once_with(KeyName="fpl-assistant-dev-key")
        assert settings.key_file.exists()

    @pytest.mark.asyncio
    async def test_invalid_credentials_stop_before_changes(self, deployer, mock_sts_client, mock_ec2_client):
        mock_sts_client.get_caller_identity.side_effect = client_error("ExpiredToken")
        deployer.cloudformation.deploy = MagicMock()

        with pytest.raises(PreflightError):
            await deployer.deploy()

        mock_ec2_client.create_key_pair.assert_not_called()
        deployer.cloudformation.deploy.assert_not_called()


class TestLoadTemplate:
    """Tests for template loading."""

    def test_template_file_is_used_verbatim(self, settings, tmp_path):
        template = tmp_path / "template.json"
        template.write_text('{"Resources": {"VPC": {}}}')
        settings.template_file = template
        deployer = InfrastructureDeployer(settings, MagicMock(), MagicMock(), MagicMock())

        assert deployer.load_template() == '{"Resources": {"VPC": {}}}'

    def test_missing_template_file(self, settings, tmp_path):
        settings.template_file = tmp_path / "missing.json"
        deployer = InfrastructureDeployer(settings, MagicMock(), MagicMock(), MagicMock())

        with pytest.raises(DeploymentError):
            deployer.load_template()

    def test_synthesis_requires_node(self, settings):
        deployer = InfrastructureDeployer(settings, MagicMock(), MagicMock(), MagicMock())

        with patch("fpl_infra.deployer.shutil.which", return_value=None):
            with pytest.raises(PreflightError, match="Node.js"):
                deployer.load_template()


class TestDestroy:
    """Tests for stack removal."""

    def test_empties_buckets_before_delete(self, deployer, mock_cfn_client, stack_description):
        mock_cfn_client.describe_stacks.side_effect = None
        mock_cfn_client.describe_stacks.return_value = {"Stacks": [stack_description]}
        mock_cfn_client.get_paginator.return_value.paginate.return_value = [
            {
                "StackResourceSummaries": [
                    {"ResourceType": "AWS::S3::Bucket", "PhysicalResourceId": "data-bucket"},
                    {"ResourceType": "AWS::S3::Bucket", "PhysicalResourceId": "assets-bucket"},
                ]
            }
        ]

        emptied = deployer.destroy()

        assert emptied == ["data-bucket", "assets-bucket"]
        mock_cfn_client.delete_stack.assert_called_once_with(StackName="fpl-assistant-dev-infrastructure")

    def test_skip_bucket_cleanup(self, deployer, mock_cfn_client):
        emptied = deployer.destroy(empty_buckets=False)

        assert emptied == []
        mock_cfn_client.get_paginator.assert_not_called()
        mock_cfn_client.delete_stack.assert_called_once()

    def test_missing_stack_skips_bucket_listing(self, deployer, mock_cfn_client):
        deployer.destroy()

        mock_cfn_client.get_paginator.assert_not_called()
        mock_cfn_client.delete_stack.assert_called_once()

    def test_delete_key_pair(self, deployer, mock_ec2_client):
        deployer.delete_key_pair()

        mock_ec2_client.delete_key_pair.assert_called_once_with(KeyName="fpl-assistant-dev-key")


class TestStatus:
    def test_status(self, deployer, mock_cfn_client, stack_description):
        mock_cfn_client.describe_stacks.side_effect = None
        mock_cfn_client.describe_stacks.return_value = {"Stacks": [stack_description]}

        summary = deployer.status()

        assert summary.stack_status == "CREATE_COMPLETE"

"""
Deployment orchestration for the FPL Assistant stack.

Ties the AWS services together into the deploy, cleanup and status
operations. Every step runs in order and the first failure aborts the
operation; rollback of a failed stack is left to CloudFormation.
"""

import json
import shutil

import structlog

from fpl_infra.config import Settings, get_settings
from fpl_infra.exceptions import DeploymentError, PreflightError
from fpl_infra.models import DeploymentResult, StackSummary
from fpl_infra.services.cloudformation import CloudFormationService
from fpl_infra.services.ec2 import EC2Service
from fpl_infra.services.identity import IdentityService
from fpl_infra.services.session import create_session

logger = structlog.get_logger(__name__)


class InfrastructureDeployer:
    """
    Deploys, inspects and removes the infrastructure stack.

    Services can be injected for testing; by default they share one
    boto3 session built from the settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        cloudformation: CloudFormationService | None = None,
        ec2: EC2Service | None = None,
        identity: IdentityService | None = None,
    ):
        self.settings = settings or get_settings()
        session = None
        if cloudformation is None or ec2 is None or identity is None:
            session = create_session(self.settings)
        self.cloudformation = cloudformation or CloudFormationService(self.settings, session)
        self.ec2 = ec2 or EC2Service(self.settings, session)
        self.identity = identity or IdentityService(self.settings, session)
        self._caller_identity: dict | None = None

    def preflight(self) -> dict:
        """Validate credentials once per run and return the caller identity."""
        if self._caller_identity is None:
            self._caller_identity = self.identity.get_caller_identity()
        return self._caller_identity

    def load_template(self) -> str:
        """
        Return the template body to deploy.

        A configured template file is used as-is; otherwise the CDK stack
        is synthesized, which needs Node.js on PATH.
        """
        template_file = self.settings.template_file
        if template_file is not None:
            try:
                return template_file.read_text(encoding="utf-8")
            except OSError as e:
                raise DeploymentError(f"Cannot read template file {template_file}: {e}") from e

        if shutil.which("node") is None:
            raise PreflightError(
                "Node.js is not installed. It is required to synthesize the template; "
                "install it or pass --template-file."
            )

        from fpl_infra.stack import synthesize_template

        logger.info("Synthesizing template", stack=self.settings.stack_name)
        return json.dumps(synthesize_template())

    async def deploy(self) -> DeploymentResult:
        """
        Create or update the stack.

        Scopes SSH to the caller's public IP, makes sure the key pair
        exists, resolves the machine image and applies the template.
        """
        settings = self.settings
        logger.info("Starting infrastructure deployment", stack=settings.stack_name, region=settings.region)

        template_body = self.load_template()
        identity = self.preflight()

        ssh_cidr = await self.identity.get_public_cidr()
        logger.info("Detected public IP address", cidr=ssh_cidr)

        self.ec2.ensure_key_pair(settings.key_name, settings.key_file)
        image_id = self.ec2.resolve_image_id()

        parameters = {
            "ProjectName": settings.project_name,
            "Environment": settings.environment,
            "KeyPairName": settings.key_name,
            "AllowedSSHCIDR": ssh_cidr,
            "ImageId": image_id,
        }
        tags = {
            "Project": settings.project_name,
            "Environment": settings.environment,
            "Owner": identity["arn"],
        }

        logger.info("Deploying CloudFormation stack", stack=settings.stack_name)
        return self.cloudformation.deploy(
            stack_name=settings.stack_name,
            template_body=template_body,
            parameters=parameters,
            tags=tags,
        )

    def destroy(self, empty_buckets: bool = True) -> list[str]:
        """
        Delete the stack and wait for completion.

        Args:
            empty_buckets: Empty the stack's buckets first so their
                deletion does not fail

        Returns:
            Names of the buckets that were emptied
        """
        stack_name = self.settings.stack_name
        emptied = []
        if empty_buckets and self.cloudformation.describe_stack(stack_name) is not None:
            for bucket in self.cloudformation.list_buckets(stack_name):
                if self.cloudformation.empty_bucket(bucket):
                    emptied.append(bucket)

        self.cloudformation.delete(stack_name)
        logger.info("Stack deleted successfully", stack=stack_name)
        return emptied

    def delete_key_pair(self) -> None:
        self.ec2.delete_key_pair(self.settings.key_name, self.settings.key_file)

    def status(self) -> StackSummary:
        logger.info("Checking stack status", stack=self.settings.stack_name)
        return self.cloudformation.get_stack_summary(self.settings.stack_name)

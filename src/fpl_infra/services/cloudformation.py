"""
CloudFormation stack management.

Applies templates through change sets, reads stack state and outputs,
and tears stacks down, emptying their buckets first when asked.
"""

import time
from typing import Any

import boto3
import structlog
from botocore.exceptions import ClientError, WaiterError

from fpl_infra.config import Settings, get_settings
from fpl_infra.exceptions import StackNotFoundError, StackOperationError
from fpl_infra.models import (
    ChangeSetType,
    DeploymentResult,
    ResourceFailure,
    StackSummary,
)
from fpl_infra.services.session import create_session

logger = structlog.get_logger(__name__)

CAPABILITIES = ["CAPABILITY_NAMED_IAM"]

# Reasons CloudFormation gives for a change set with nothing to do
_EMPTY_CHANGE_SET_REASONS = (
    "The submitted information didn't contain changes",
    "No updates are to be performed",
)

CHANGE_SET_WAITER_CONFIG = {"Delay": 5, "MaxAttempts": 120}
STACK_WAITER_CONFIG = {"Delay": 15, "MaxAttempts": 240}


class CloudFormationService:
    """
    Service for managing the infrastructure stack.

    Mirrors ``aws cloudformation deploy``: a change set is created,
    waited on and executed, and an empty change set counts as success.
    """

    def __init__(self, settings: Settings | None = None, session: boto3.Session | None = None):
        """Initialize CloudFormation Service."""
        self.settings = settings or get_settings()
        self._session = session
        self._cfn_client = None
        self._s3 = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = create_session(self.settings)
        return self._session

    @property
    def cfn_client(self):
        """Lazy initialization of CloudFormation client."""
        if self._cfn_client is None:
            self._cfn_client = self.session.client("cloudformation")
        return self._cfn_client

    @property
    def s3(self):
        """Lazy initialization of S3 resource."""
        if self._s3 is None:
            self._s3 = self.session.resource("s3")
        return self._s3

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def describe_stack(self, stack_name: str) -> dict[str, Any] | None:
        """Return the raw stack description, or None if it does not exist."""
        try:
            response = self.cfn_client.describe_stacks(StackName=stack_name)
        except ClientError as e:
            error = e.response["Error"]
            if error["Code"] == "ValidationError" and "does not exist" in error.get("Message", ""):
                return None
            raise
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    def get_stack_summary(self, stack_name: str) -> StackSummary:
        stack = self.describe_stack(stack_name)
        if stack is None:
            raise StackNotFoundError(stack_name)
        return StackSummary.from_response(stack)

    def get_outputs(self, stack_name: str) -> dict[str, str]:
        """Return the stack outputs keyed by OutputKey."""
        stack = self.describe_stack(stack_name)
        if stack is None:
            raise StackNotFoundError(stack_name)
        return {
            output["OutputKey"]: output["OutputValue"]
            for output in stack.get("Outputs", [])
        }

    def get_failed_resources(self, stack_name: str) -> list[ResourceFailure]:
        """
        Collect failed resource events, most recent first.

        Only the events of the latest operation are relevant, so the scan
        stops at the stack's own previous "in progress" marker.
        """
        paginator = self.cfn_client.get_paginator("describe_stack_events")
        failures = []
        try:
            for i, event in enumerate(self._iter_events(paginator, stack_name)):
                status = event["ResourceStatus"]
                if event.get("ResourceType") == "AWS::CloudFormation::Stack":
                    if i > 0 and status.endswith("_IN_PROGRESS") and "ROLLBACK" not in status:
                        break
                elif status.endswith("_FAILED"):
                    failures.append(ResourceFailure.from_event(event))
        except ClientError as e:
            logger.warning("Could not read stack events", stack=stack_name, error=str(e))
        return failures

    @staticmethod
    def _iter_events(paginator, stack_name: str):
        for page in paginator.paginate(StackName=stack_name):
            yield from page["StackEvents"]

    def list_buckets(self, stack_name: str) -> list[str]:
        """Physical names of the S3 buckets the stack owns."""
        paginator = self.cfn_client.get_paginator("list_stack_resources")
        buckets = []
        for page in paginator.paginate(StackName=stack_name):
            for resource in page["StackResourceSummaries"]:
                if resource["ResourceType"] == "AWS::S3::Bucket" and resource.get("PhysicalResourceId"):
                    buckets.append(resource["PhysicalResourceId"])
        return buckets

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def deploy(
        self,
        stack_name: str,
        template_body: str,
        parameters: dict[str, str],
        tags: dict[str, str],
    ) -> DeploymentResult:
        """
        Create or update the stack from a template.

        Args:
            stack_name: Name of the stack
            template_body: Template JSON or YAML
            parameters: Parameter overrides
            tags: Stack tags, propagated to supporting resources

        Returns:
            DeploymentResult with the stack outputs

        Raises:
            StackOperationError: If the change set or the stack operation fails
        """
        existing = self.describe_stack(stack_name)
        if existing is None or existing["StackStatus"] == "REVIEW_IN_PROGRESS":
            change_set_type = ChangeSetType.CREATE
        else:
            change_set_type = ChangeSetType.UPDATE

        change_set_name = f"{stack_name}-{int(time.time())}"
        logger.info(
            "Creating change set",
            stack=stack_name,
            change_set=change_set_name,
            type=change_set_type.value,
        )
        response = self.cfn_client.create_change_set(
            StackName=stack_name,
            TemplateBody=template_body,
            ChangeSetName=change_set_name,
            ChangeSetType=change_set_type.value,
            Capabilities=CAPABILITIES,
            Parameters=[
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in parameters.items()
            ],
            Tags=[{"Key": key, "Value": value} for key, value in tags.items()],
        )
        change_set_id = response["Id"]

        try:
            self.cfn_client.get_waiter("change_set_create_complete").wait(
                ChangeSetName=change_set_id,
                StackName=stack_name,
                WaiterConfig=CHANGE_SET_WAITER_CONFIG,
            )
        except WaiterError as e:
            description = self.cfn_client.describe_change_set(
                ChangeSetName=change_set_id,
                StackName=stack_name,
            )
            reason = description.get("StatusReason", "")
            if description.get("Status") == "FAILED" and _is_empty_change_set(reason):
                logger.info("No changes to deploy, stack is up to date", stack=stack_name)
                self.cfn_client.delete_change_set(ChangeSetName=change_set_id, StackName=stack_name)
                return DeploymentResult(
                    stack_name=stack_name,
                    change_set_type=change_set_type,
                    changed=False,
                    outputs=self.get_outputs(stack_name),
                )
            raise StackOperationError(
                f"Change set for {stack_name} failed: {reason or e}",
                stack_name=stack_name,
                status=description.get("Status"),
                reason=reason,
            ) from e

        logger.info("Executing change set", stack=stack_name, change_set=change_set_name)
        self.cfn_client.execute_change_set(ChangeSetName=change_set_id, StackName=stack_name)

        waiter_name = (
            "stack_create_complete"
            if change_set_type is ChangeSetType.CREATE
            else "stack_update_complete"
        )
        self._wait_for_stack(stack_name, waiter_name, "deployment")

        logger.info("Stack operation complete", stack=stack_name, type=change_set_type.value)
        return DeploymentResult(
            stack_name=stack_name,
            change_set_type=change_set_type,
            changed=True,
            outputs=self.get_outputs(stack_name),
        )

    def delete(self, stack_name: str) -> None:
        """Delete the stack and block until CloudFormation reports completion."""
        logger.info("Deleting stack", stack=stack_name)
        self.cfn_client.delete_stack(StackName=stack_name)
        logger.info("Waiting for stack deletion to complete", stack=stack_name)
        self._wait_for_stack(stack_name, "stack_delete_complete", "deletion")

    def empty_bucket(self, bucket_name: str) -> bool:
        """
        Delete every object version and delete marker in a bucket.

        Returns:
            False if the bucket no longer exists
        """
        try:
            self.s3.Bucket(bucket_name).object_versions.delete()
        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchBucket":
                logger.info("Bucket already removed", bucket=bucket_name)
                return False
            raise
        logger.info("Emptied bucket", bucket=bucket_name)
        return True

    def _wait_for_stack(self, stack_name: str, waiter_name: str, operation: str) -> None:
        try:
            self.cfn_client.get_waiter(waiter_name).wait(
                StackName=stack_name,
                WaiterConfig=STACK_WAITER_CONFIG,
            )
        except WaiterError as e:
            stack = self.describe_stack(stack_name)
            status = stack["StackStatus"] if stack else None
            reason = stack.get("StackStatusReason") if stack else None
            failures = self.get_failed_resources(stack_name) if stack else []
            raise StackOperationError(
                f"Stack {operation} failed for {stack_name} (status: {status or 'unknown'})",
                stack_name=stack_name,
                status=status,
                reason=reason or str(e),
                failures=failures,
            ) from e


def _is_empty_change_set(reason: str) -> bool:
    return any(marker in reason for marker in _EMPTY_CHANGE_SET_REASONS)

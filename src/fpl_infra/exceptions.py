"""
Errors raised by the deployment tooling.

Services translate botocore errors into these types at the boto3
boundary; the CLI turns them into a logged error and a non-zero exit.
"""

from fpl_infra.models import ResourceFailure


class DeploymentError(Exception):
    """Base class for every failure the CLI reports."""


class PreflightError(DeploymentError):
    """A required tool or credential is missing."""


class StackNotFoundError(DeploymentError):
    """The stack does not exist in the target region."""

    def __init__(self, stack_name: str):
        super().__init__(f"Stack {stack_name} does not exist")
        self.stack_name = stack_name


class StackOperationError(DeploymentError):
    """A change set or stack operation finished in a failed state."""

    def __init__(
        self,
        message: str,
        stack_name: str,
        status: str | None = None,
        reason: str | None = None,
        failures: list[ResourceFailure] | None = None,
    ):
        super().__init__(message)
        self.stack_name = stack_name
        self.status = status
        self.reason = reason
        self.failures = failures or []

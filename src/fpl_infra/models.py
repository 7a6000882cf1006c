"""
Data models for the infrastructure tooling.

Defines Pydantic models for stack summaries, failed resources and the
results of the deploy and cleanup operations.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ChangeSetType(str, Enum):
    """How a change set applies to its stack."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"


class StackSummary(BaseModel):
    """Current state of a CloudFormation stack."""

    stack_name: str
    stack_status: str
    creation_time: datetime | None = None
    last_updated_time: datetime | None = None
    status_reason: str | None = None

    @classmethod
    def from_response(cls, stack: dict[str, Any]) -> "StackSummary":
        """Build from one entry of ``DescribeStacks['Stacks']``."""
        return cls(
            stack_name=stack["StackName"],
            stack_status=stack["StackStatus"],
            creation_time=stack.get("CreationTime"),
            last_updated_time=stack.get("LastUpdatedTime"),
            status_reason=stack.get("StackStatusReason"),
        )


class ResourceFailure(BaseModel):
    """A stack event describing a resource that failed to provision."""

    logical_resource_id: str
    resource_type: str
    resource_status: str
    physical_resource_id: str | None = None
    status_reason: str | None = None
    timestamp: datetime | None = None

    @classmethod
    def from_event(cls, event: dict[str, Any]) -> "ResourceFailure":
        return cls(
            logical_resource_id=event["LogicalResourceId"],
            resource_type=event.get("ResourceType", "N/A"),
            resource_status=event["ResourceStatus"],
            physical_resource_id=event.get("PhysicalResourceId") or None,
            status_reason=event.get("ResourceStatusReason"),
            timestamp=event.get("Timestamp"),
        )


class DeploymentResult(BaseModel):
    """Outcome of applying the template."""

    stack_name: str
    change_set_type: ChangeSetType
    changed: bool = True
    outputs: dict[str, str] = Field(default_factory=dict)


class CleanupResult(BaseModel):
    """Outcome of tearing the stack down."""

    stack_name: str
    cancelled: bool = False
    emptied_buckets: list[str] = Field(default_factory=list)
    key_pair_deleted: bool = False

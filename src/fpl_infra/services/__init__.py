"""
Services module for the infrastructure tooling.

Contains the AWS service integrations used by the deployer.
"""

from fpl_infra.services.cloudformation import CloudFormationService
from fpl_infra.services.ec2 import EC2Service
from fpl_infra.services.identity import IdentityService

__all__ = [
    "CloudFormationService",
    "EC2Service",
    "IdentityService",
]

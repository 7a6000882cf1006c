"""
FPL Assistant Infrastructure - AWS resources for the Fantasy Premier League assistant.

Declares the VPC, web server, storage and IAM resources as a CDK stack and
provides a CLI that deploys, inspects and tears down that stack.
"""

__version__ = "0.1.0"
__author__ = "Developer"

from fpl_infra.config import Settings
from fpl_infra.deployer import InfrastructureDeployer

__all__ = ["Settings", "InfrastructureDeployer", "__version__"]

"""
boto3 session factory shared by the AWS services.
"""

import boto3

from fpl_infra.config import Settings


def create_session(settings: Settings) -> boto3.Session:
    """Create a boto3 session for the configured region and profile."""
    # Only pass the profile if explicitly set, otherwise let boto3 resolve
    # credentials from the environment or instance metadata
    kwargs = {"region_name": settings.region}
    if settings.aws_profile:
        kwargs["profile_name"] = settings.aws_profile
    return boto3.Session(**kwargs)

"""
EC2 key pair and machine image lookups.
"""

import os
from pathlib import Path

import boto3
import structlog
from botocore.exceptions import ClientError

from fpl_infra.config import Settings, get_settings
from fpl_infra.exceptions import DeploymentError
from fpl_infra.services.session import create_session

logger = structlog.get_logger(__name__)

# Owner read only
KEY_FILE_MODE = 0o400


class EC2Service:
    """
    Service for the SSH key pair used by the web server.

    Key material is only returned by AWS at creation time, so it is
    written to disk immediately.
    """

    def __init__(self, settings: Settings | None = None, session: boto3.Session | None = None):
        """Initialize EC2 Service."""
        self.settings = settings or get_settings()
        self._session = session
        self._ec2_client = None
        self._ssm_client = None

    @property
    def session(self) -> boto3.Session:
        if self._session is None:
            self._session = create_session(self.settings)
        return self._session

    @property
    def ec2_client(self):
        """Lazy initialization of EC2 client."""
        if self._ec2_client is None:
            self._ec2_client = self.session.client("ec2")
        return self._ec2_client

    @property
    def ssm_client(self):
        """Lazy initialization of SSM client."""
        if self._ssm_client is None:
            self._ssm_client = self.session.client("ssm")
        return self._ssm_client

    def key_pair_exists(self, key_name: str) -> bool:
        """Check whether the named key pair is registered in the region."""
        try:
            self.ec2_client.describe_key_pairs(KeyNames=[key_name])
            return True
        except ClientError as e:
            if e.response["Error"]["Code"] == "InvalidKeyPair.NotFound":
                return False
            raise

    def create_key_pair(self, key_name: str, key_file: Path) -> Path:
        """
        Create a key pair and save its private key.

        Args:
            key_name: Name of the key pair to create
            key_file: Destination of the private key

        Returns:
            Path of the written key file
        """
        if key_file.exists():
            raise DeploymentError(
                f"Refusing to overwrite existing key file {key_file}; "
                "remove it or choose another key directory"
            )

        logger.info("Creating EC2 key pair", key_name=key_name)
        response = self.ec2_client.create_key_pair(KeyName=key_name)

        key_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(key_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w") as fh:
            fh.write(response["KeyMaterial"])
        os.chmod(key_file, KEY_FILE_MODE)

        logger.info("Key pair created", key_name=key_name, key_file=str(key_file))
        return key_file

    def ensure_key_pair(self, key_name: str, key_file: Path) -> bool:
        """
        Create the key pair unless it already exists.

        Returns:
            True if a key pair was created
        """
        if self.key_pair_exists(key_name):
            logger.info("Key pair already exists", key_name=key_name)
            return False
        self.create_key_pair(key_name, key_file)
        return True

    def delete_key_pair(self, key_name: str, key_file: Path) -> None:
        """Delete the key pair and its local private key."""
        self.ec2_client.delete_key_pair(KeyName=key_name)
        if key_file.exists():
            # Read-only files can still be unlinked by their owner
            key_file.unlink()
        logger.info("Key pair deleted", key_name=key_name)

    def resolve_image_id(self) -> str:
        """
        Return the configured AMI, or the latest Amazon Linux AMI published
        under the public SSM parameter.
        """
        if self.settings.image_id:
            return self.settings.image_id

        name = self.settings.ami_parameter
        try:
            response = self.ssm_client.get_parameter(Name=name)
        except ClientError as e:
            if e.response["Error"]["Code"] == "ParameterNotFound":
                raise DeploymentError(f"AMI parameter {name} not found in {self.settings.region}") from e
            raise

        image_id = response["Parameter"]["Value"]
        logger.info("Resolved machine image", image_id=image_id, parameter=name)
        return image_id

"""
Caller identity and public address lookups.

Validates AWS credentials before anything is mutated and derives the
operator's public IP so SSH ingress can be scoped to a single host.
"""

import ipaddress
from typing import Any

import aiohttp
import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from fpl_infra.config import Settings, get_settings
from fpl_infra.exceptions import DeploymentError, PreflightError
from fpl_infra.services.session import create_session

logger = structlog.get_logger(__name__)


class IdentityService:
    """Service for the STS identity check and the public IP lookup."""

    def __init__(self, settings: Settings | None = None, session: boto3.Session | None = None):
        """Initialize Identity Service."""
        self.settings = settings or get_settings()
        self._session = session
        self._sts_client = None

    @property
    def sts_client(self):
        """Lazy initialization of STS client."""
        if self._sts_client is None:
            if self._session is None:
                self._session = create_session(self.settings)
            self._sts_client = self._session.client("sts")
        return self._sts_client

    def get_caller_identity(self) -> dict[str, Any]:
        """
        Validate credentials and return the calling principal.

        Returns:
            Dict with account, arn and user_id

        Raises:
            PreflightError: If no credentials are configured or AWS rejects them
        """
        try:
            response = self.sts_client.get_caller_identity()
        except NoCredentialsError as e:
            raise PreflightError(
                "AWS credentials are not configured. Run 'aws configure' or set a profile."
            ) from e
        except ClientError as e:
            code = e.response["Error"]["Code"]
            raise PreflightError(f"AWS credentials are invalid ({code})") from e
        except BotoCoreError as e:
            raise PreflightError(f"Unable to validate AWS credentials: {e}") from e

        identity = {
            "account": response["Account"],
            "arn": response["Arn"],
            "user_id": response["UserId"],
        }
        logger.debug("Validated AWS credentials", account=identity["account"], arn=identity["arn"])
        return identity

    async def get_public_cidr(self) -> str:
        """
        Look up the caller's public IPv4 address as a /32 CIDR.

        Raises:
            DeploymentError: If the lookup fails or returns something that
                is not an IPv4 address
        """
        url = self.settings.ip_lookup_url
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url,
                    timeout=aiohttp.ClientTimeout(total=self.settings.ip_lookup_timeout),
                ) as response:
                    if response.status != 200:
                        raise DeploymentError(
                            f"Public IP lookup failed: HTTP {response.status} from {url}"
                        )
                    body = await response.text()
        except aiohttp.ClientError as e:
            raise DeploymentError(f"Public IP lookup failed: {e}") from e
        except TimeoutError as e:
            raise DeploymentError(f"Public IP lookup timed out after {self.settings.ip_lookup_timeout}s") from e

        return parse_ipv4_cidr(body)


def parse_ipv4_cidr(body: str) -> str:
    """Turn a checkip-style response body into a single-host CIDR."""
    text = body.strip()
    try:
        address = ipaddress.IPv4Address(text)
    except ipaddress.AddressValueError as e:
        raise DeploymentError(f"Public IP lookup returned an invalid address: {text!r}") from e
    return f"{address}/32"

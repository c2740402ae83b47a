"""SSM Parameter Store access for payment processor secrets.

Secrets are SecureStrings named ``/quote-booking/{environment}/{service}/{key}``
and are cached in-process after the first read.
"""

from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import ClientError

from quote_booking.utils.logging import get_logger

logger = get_logger(__name__)

PARAMETER_ROOT = "/quote-booking"

_CLIENT_ERROR_MESSAGES: dict[str, str] = {
    "ParameterNotFound": "SSM parameter not found: {name}",
    "AccessDeniedException": (
        "Access denied to SSM parameter: {name}. Check IAM permissions for ssm:GetParameter."
    ),
}


def parameter_name(environment: str, service: str, key: str) -> str:
    """Full parameter path, e.g. ``/quote-booking/dev/stripe/secret_key``."""
    return f"{PARAMETER_ROOT}/{environment}/{service}/{key}"


class SSMServiceError(Exception):
    """Raised when SSM parameter retrieval fails."""


class SSMService:
    """Cached reader for SSM SecureString parameters.

    Usage:
        ssm = get_ssm_service()
        secret_key = ssm.get_parameter(parameter_name("dev", "stripe", "secret_key"))
    """

    _instance: ClassVar["SSMService | None"] = None
    _cache: ClassVar[dict[str, str]] = {}

    def __init__(self) -> None:
        self._client = boto3.client("ssm")

    @classmethod
    def get_instance(cls) -> "SSMService":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared instance and cache (for testing only)."""
        cls._instance = None
        cls._cache.clear()

    def get_parameter(self, name: str, *, use_cache: bool = True) -> str:
        """Retrieve a decrypted parameter value.

        Args:
            name: Full parameter path
            use_cache: Return a previously fetched value if present

        Raises:
            SSMServiceError: If the parameter cannot be retrieved.
        """
        if use_cache and name in self._cache:
            return self._cache[name]

        logger.info("Fetching SSM parameter: %s", name)
        try:
            response = self._client.get_parameter(Name=name, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            template = _CLIENT_ERROR_MESSAGES.get(code)
            message = (
                template.format(name=name)
                if template
                else f"Failed to retrieve SSM parameter {name}: {e}"
            )
            raise SSMServiceError(message) from e

        value: str = response["Parameter"]["Value"]
        self._cache[name] = value
        return value

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("SSM parameter cache cleared")


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    return SSMService.get_instance()

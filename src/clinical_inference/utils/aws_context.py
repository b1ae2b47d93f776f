# ============================================================================
# src/clinical_inference/utils/aws_context.py
# ============================================================================
"""
AWS execution context for log records.

Probes EC2 instance metadata (IMDSv2) and Lambda / ECS / EKS environment
variables once, then stamps every log record with what was found.
"""

import logging
import os
from typing import Dict, Mapping, Optional

import requests

logger = logging.getLogger(__name__)

IMDS_BASE_URL = "http://169.254.169.254/latest"
IMDS_TOKEN_TTL_SECONDS = 21600

# Record attribute names, in the order they are attached
CONTEXT_FIELDS = (
    "ec2_instance_id",
    "ec2_instance_type",
    "availability_zone",
    "aws_region",
    "lambda_function_name",
    "lambda_function_version",
    "execution_environment",
)


class Ec2MetadataClient:
    """Minimal IMDSv2 client."""

    def __init__(
        self,
        base_url: str = IMDS_BASE_URL,
        timeout: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Lazy load HTTP session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def _token(self) -> str:
        response = self.session.put(
            f"{self.base_url}/api/token",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(IMDS_TOKEN_TTL_SECONDS)},
            timeout=self.timeout
        )
        response.raise_for_status()
        return response.text

    def _get(self, path: str, token: str) -> Optional[str]:
        response = self.session.get(
            f"{self.base_url}/meta-data/{path}",
            headers={"X-aws-ec2-metadata-token": token},
            timeout=self.timeout
        )
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.text.strip() or None

    def fetch(self) -> Dict[str, Optional[str]]:
        """
        Read instance metadata.

        Returns:
            Dict with instance_id, instance_type, availability_zone, region;
            empty when the metadata service is unreachable (not on EC2)
        """
        try:
            token = self._token()
            metadata = {
                "instance_id": self._get("instance-id", token),
                "instance_type": self._get("instance-type", token),
                "availability_zone": self._get("placement/availability-zone", token),
                "region": self._get("placement/region", token),
            }
        except requests.RequestException as e:
            logger.debug(f"EC2 instance metadata unavailable: {e}")
            return {}

        if not metadata["region"] and metadata["availability_zone"]:
            # us-east-1a -> us-east-1
            metadata["region"] = metadata["availability_zone"][:-1]
        return metadata


def determine_execution_environment(
    lambda_function_name: Optional[str],
    ec2_instance_id: Optional[str],
    environ: Mapping[str, str]
) -> str:
    if lambda_function_name:
        return "Lambda"
    if ec2_instance_id:
        return "EC2"
    if environ.get("ECS_CONTAINER_METADATA_URI"):
        return "ECS"
    if environ.get("KUBERNETES_SERVICE_HOST"):
        return "EKS"
    return "Local"


class AwsContextFilter(logging.Filter):
    """
    Logging filter that attaches AWS execution context to every record.

    Attributes already present on a record (e.g. passed via extra=) are
    left untouched. The filter never drops records.
    """

    def __init__(
        self,
        name: str = "",
        metadata_client: Optional[Ec2MetadataClient] = None,
        environ: Optional[Mapping[str, str]] = None,
        probe_metadata: bool = True
    ):
        super().__init__(name)
        environ = os.environ if environ is None else environ

        metadata = {}
        if probe_metadata:
            metadata = (metadata_client or Ec2MetadataClient()).fetch()

        lambda_name = environ.get("AWS_LAMBDA_FUNCTION_NAME")
        instance_id = metadata.get("instance_id")

        context = {
            "ec2_instance_id": instance_id,
            "ec2_instance_type": metadata.get("instance_type"),
            "availability_zone": metadata.get("availability_zone"),
            "aws_region": (
                metadata.get("region")
                or environ.get("AWS_REGION")
                or environ.get("AWS_DEFAULT_REGION")
            ),
            "lambda_function_name": lambda_name,
            "lambda_function_version": environ.get("AWS_LAMBDA_FUNCTION_VERSION"),
            "execution_environment": determine_execution_environment(
                lambda_name, instance_id, environ
            ),
        }
        self._context = {key: value for key, value in context.items() if value}

    def properties(self) -> Dict[str, str]:
        return dict(self._context)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self._context.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True

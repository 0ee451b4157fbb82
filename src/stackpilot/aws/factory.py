"""Region-aware CloudFormation client construction."""

import boto3

from stackpilot.aws.client import CloudFormationClient
from stackpilot.errors import ConfigurationError


class ClientFactory:
    """Hands out one CloudFormationClient per region, sharing a boto3 session."""

    def __init__(self, session: boto3.Session | None = None):
        self._session = session or boto3.Session()
        self._clients: dict[str, CloudFormationClient] = {}

    @property
    def default_region(self) -> str | None:
        return self._session.region_name

    def for_region(self, region: str | None) -> CloudFormationClient:
        """Return the client for ``region``, or the session default when empty."""
        region = region or self.default_region
        if not region:
            raise ConfigurationError("no AWS region given and no default region configured")

        if region not in self._clients:
            self._clients[region] = CloudFormationClient(region=region, session=self._session)
        return self._clients[region]

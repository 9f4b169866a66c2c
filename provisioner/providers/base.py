"""
Provider capability interface.
Everything the workflow needs to know about one cloud provider lives behind
this interface, so the engine never branches on the provider id.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple
import logging

from provisioner.domain.account_models import CloudAccount, ConnectResult, CredentialCheck
from provisioner.domain.providers import Provider, PROVIDER_DISPLAY_NAMES, PROVIDER_REGIONS
from provisioner.services.platform_client import PlatformAPIError, PlatformClient


logger = logging.getLogger(__name__)


REDACTED = "*** sensitive ***"


def mask_identifier(value: Optional[str]) -> str:
    """Mask an account identifier for logging, keeping the last 4 characters."""
    if not value:
        return "<none>"
    value = str(value)
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


class ProviderCapability(ABC):
    """Per-provider connection, account and deployment facts."""

    provider: Provider
    # Raw credential fields that must be filled in (region is checked separately)
    credential_fields: Tuple[str, ...] = ()
    # Fields never logged, persisted or rendered
    secret_fields: Tuple[str, ...] = ()
    deploy_endpoint: str = ""
    accounts_path: str = ""

    def __init__(self, platform_client: Optional[PlatformClient] = None):
        self.platform_client = platform_client or PlatformClient()

    @property
    def display_name(self) -> str:
        return PROVIDER_DISPLAY_NAMES[self.provider]

    @property
    def regions(self) -> List[str]:
        return list(PROVIDER_REGIONS[self.provider])

    def missing_credential_fields(self, credentials: Dict[str, str], region: str) -> List[str]:
        """
        List the required credential fields that are still empty.

        Args:
            credentials: Raw credential values keyed by field name
            region: Currently chosen region

        Returns:
            Names of missing fields, 'region' included when no region is set
        """
        missing = [
            name for name in self.credential_fields
            if not str(credentials.get(name) or "").strip()
        ]
        if not region:
            missing.append("region")
        return missing

    def redact(self, credentials: Dict[str, str]) -> Dict[str, str]:
        """Return a copy of the credentials with secret fields replaced by the redaction token."""
        return {
            name: (REDACTED if name in self.secret_fields and value else value)
            for name, value in credentials.items()
        }

    def fallback_display_name(self, normalized_account_id: Optional[str]) -> str:
        return f"{self.display_name} Account ({normalized_account_id or 'unknown'})"

    async def list_accounts(self) -> List[CloudAccount]:
        """
        List the caller's connected accounts for this provider.

        Returns:
            Connected accounts; entries that cannot be parsed are skipped

        Raises:
            PlatformAPIError: If the backend call fails
        """
        body = await self.platform_client.get_json(self.accounts_path)
        if isinstance(body, dict):
            body = body.get("accounts") or []
        accounts = []
        for item in body if isinstance(body, list) else []:
            if not isinstance(item, dict):
                continue
            account = self.parse_account(item)
            if account is not None:
                accounts.append(account)
        return accounts

    async def _post_connect(self, path: str, payload: Dict[str, Any], normalized_id: Optional[str]) -> ConnectResult:
        try:
            body = await self.platform_client.post_json(path, payload)
        except PlatformAPIError as error:
            logger.error(f"{self.display_name} connect failed for {mask_identifier(normalized_id)}: {error}")
            return ConnectResult(error=str(error))
        account_id = body.get("_id") or body.get("id") or body.get("accountId") or normalized_id
        if not account_id:
            return ConnectResult(error=body.get("error") or "Backend did not return an account id")
        return ConnectResult(account_id=str(account_id))

    @abstractmethod
    def parse_account(self, item: Dict[str, Any]) -> Optional[CloudAccount]:
        """Convert one backend account record into a CloudAccount."""

    @abstractmethod
    async def validate(self, credentials: Dict[str, str], region: str) -> CredentialCheck:
        """Check raw credentials. Never raises for a rejected credential."""

    @abstractmethod
    async def connect(
        self,
        credentials: Dict[str, str],
        region: str,
        display_name: str,
        check: CredentialCheck
    ) -> ConnectResult:
        """Store raw credentials as a connected account."""

    @abstractmethod
    def render_iac_header(self, region: str, credentials: Dict[str, str]) -> str:
        """Render the provider block of the IaC preview. Secrets are always redacted."""

    @abstractmethod
    def deploy_credentials(self, credentials: Dict[str, str]) -> Dict[str, str]:
        """Map raw credentials to the deploy backend's field names."""

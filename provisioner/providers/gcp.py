"""
GCP provider capability.
The service-account key is parsed locally; a key that parses is the GCP
equivalent of a successful connectivity test.
"""
from typing import Any, Dict, Optional
import json
import logging

from provisioner.domain.account_models import CloudAccount, ConnectResult, CredentialCheck
from provisioner.domain.providers import Provider
from provisioner.providers.base import ProviderCapability


logger = logging.getLogger(__name__)


REQUIRED_KEY_FIELDS = ("project_id", "client_email", "private_key")


def parse_service_account_key(key_json: str) -> Dict[str, str]:
    """
    Parse a GCP service-account key.

    Args:
        key_json: Raw JSON text of the key file

    Returns:
        The decoded key

    Raises:
        ValueError: If the text is not JSON or misses a required field
    """
    try:
        key = json.loads(key_json)
    except (TypeError, json.JSONDecodeError) as error:
        raise ValueError("Service account key is not valid JSON") from error
    if not isinstance(key, dict):
        raise ValueError("Service account key must be a JSON object")
    missing = [name for name in REQUIRED_KEY_FIELDS if not key.get(name)]
    if missing:
        raise ValueError(f"Service account key is missing: {', '.join(missing)}")
    return key


class GCPProvider(ProviderCapability):
    """Service-account key based GCP connections."""

    provider = Provider.GCP
    credential_fields = ("key_json",)
    secret_fields = ("key_json",)
    deploy_endpoint = "/api/gcp/terraform/deploy"
    accounts_path = "/api/gcp/accounts"
    connect_path = "/api/gcp/connect"

    async def validate(self, credentials: Dict[str, str], region: str) -> CredentialCheck:
        try:
            key = parse_service_account_key(credentials.get("key_json", ""))
        except ValueError as error:
            return CredentialCheck(valid=False, error=str(error))

        logger.info(f"GCP service account key parsed for project {key['project_id']}")
        return CredentialCheck(
            valid=True,
            normalized_account_id=key["project_id"],
            suggested_display_name=key["project_id"],
        )

    async def connect(
        self,
        credentials: Dict[str, str],
        region: str,
        display_name: str,
        check: CredentialCheck
    ) -> ConnectResult:
        try:
            key = parse_service_account_key(credentials.get("key_json", ""))
        except ValueError as error:
            return ConnectResult(error=str(error))
        payload = {
            "projectId": key["project_id"],
            "clientEmail": key["client_email"],
            "privateKey": credentials["key_json"],
            "accountName": display_name,
            "region": region,
        }
        return await self._post_connect(self.connect_path, payload, check.normalized_account_id)

    def parse_account(self, item: Dict[str, Any]) -> Optional[CloudAccount]:
        account_id = item.get("_id") or item.get("id")
        if not account_id:
            return None
        project_id = item.get("projectId")
        return CloudAccount(
            id=str(account_id),
            display_name=item.get("accountName") or project_id or self.fallback_display_name(None),
            provider=self.provider.value,
            default_region=item.get("region") or "",
            account_number=str(project_id) if project_id else None,
        )

    def render_iac_header(self, region: str, credentials: Dict[str, str]) -> str:
        try:
            project_id = parse_service_account_key(credentials.get("key_json", ""))["project_id"]
        except ValueError:
            project_id = "your-project-id"
        return (
            "# Terraform GCP Provider Configuration\n"
            "provider \"google\" {\n"
            f"  project     = \"{project_id}\"\n"
            f"  region      = \"{region}\"\n"
            "  credentials = file(\"service-account.json\")\n"
            "}\n"
        )

    def deploy_credentials(self, credentials: Dict[str, str]) -> Dict[str, str]:
        key_json = credentials.get("key_json", "")
        try:
            key = parse_service_account_key(key_json)
        except ValueError:
            key = {}
        return {
            "gcpKeyJson": key_json,
            "projectId": key.get("project_id", ""),
            "clientEmail": key.get("client_email", ""),
        }

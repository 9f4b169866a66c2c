"""
Domain models for connected cloud accounts and credential checks.
Accounts are created and destroyed outside the workflow; it only references them by id.
"""
from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass(frozen=True)
class CloudAccount:
    """An externally stored credential record owned by the calling user."""
    id: str
    display_name: str
    provider: str
    default_region: str
    account_number: Optional[str] = None  # AWS account id / Azure subscription / GCP project

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "provider": self.provider,
            "default_region": self.default_region,
            "account_number": self.account_number,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CloudAccount":
        """Rebuild an account from its serialized form."""
        if not isinstance(data, dict):
            raise TypeError("Account record must be a mapping")
        return cls(
            id=str(data["id"]),
            display_name=data.get("display_name") or str(data["id"]),
            provider=data["provider"],
            default_region=data.get("default_region") or "",
            account_number=data.get("account_number"),
        )


@dataclass
class CredentialCheck:
    """Result of validating raw credentials against a provider."""
    valid: bool
    error: Optional[str] = None
    normalized_account_id: Optional[str] = None
    suggested_display_name: Optional[str] = None


@dataclass
class ConnectResult:
    """Result of connecting raw credentials as a stored account."""
    account_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.account_id is not None and self.error is None

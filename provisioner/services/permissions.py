"""
Authorization capability.
The workflow only asks has_permission(resource, action); where grants come
from (session, identity provider) is decided by the caller.
"""
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple, Union
import logging


logger = logging.getLogger(__name__)


SESSION_PERMISSIONS_KEY = "permissions"

# (resource, action) pairs consulted by the workflow
ENTER_WIZARD = ("Agent", "Read")
CONNECT_CREDENTIALS = ("Credentials", "Create")
READ_CREDENTIALS = ("Credentials", "Read")
CONFIGURE_AGENT = ("Agent", "Configure")
READ_AGENT = ("Agent", "Read")
CREATE_AGENT = ("Agent", "Create")

Grant = Tuple[str, str]


def parse_grant(value: Union[str, Grant, Dict[str, Any]]) -> Optional[Grant]:
    """
    Normalize one grant.

    Accepts 'Resource/Action', ('Resource', 'Action') or
    {'resource': ..., 'action': ...}.
    """
    if isinstance(value, str):
        resource, _, action = value.partition("/")
        return (resource.strip(), action.strip()) if resource and action else None
    if isinstance(value, dict):
        resource, action = value.get("resource"), value.get("action")
        return (str(resource), str(action)) if resource and action else None
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return (str(value[0]), str(value[1]))
    return None


class PermissionChecker:
    """Base authorization capability: denies everything."""

    def has_permission(self, resource: str, action: str) -> bool:
        return False


class AllowAllPermissions(PermissionChecker):
    """Grants every capability. Used for trusted automated callers."""

    def has_permission(self, resource: str, action: str) -> bool:
        return True


class GrantSetPermissions(PermissionChecker):
    """Grants exactly the listed (resource, action) pairs. '*' matches any action."""

    def __init__(self, grants: Iterable[Union[str, Grant, Dict[str, Any]]]):
        parsed = (parse_grant(grant) for grant in grants)
        self.grants: FrozenSet[Grant] = frozenset(grant for grant in parsed if grant)

    def has_permission(self, resource: str, action: str) -> bool:
        return (resource, action) in self.grants or (resource, "*") in self.grants


def permissions_from_session(session: Dict[str, Any]) -> PermissionChecker:
    """
    Build the permission checker for a request session.

    Args:
        session: Session dictionary from Starlette SessionMiddleware

    Returns:
        Checker over the grants stored under 'permissions' (none if absent)
    """
    grants = session.get(SESSION_PERMISSIONS_KEY) or []
    if not isinstance(grants, list):
        logger.warning("Ignoring malformed session permissions")
        grants = []
    return GrantSetPermissions(grants)

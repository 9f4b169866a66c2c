"""
API routes for the provisioning wizard.
One WorkflowEngine per browser session; the session id and the caller's
permission grants live in the Starlette session.
"""
from typing import Any, Dict, List, Optional
from collections import OrderedDict
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from provisioner.core.config import config
from provisioner.domain.errors import (
    ConnectivityError,
    InvalidTransitionError,
    ModuleNotFoundError,
    PermissionDeniedError,
    ProvisioningError,
    ValidationError,
)
from provisioner.domain.providers import PROVIDER_REGIONS, Provider
from provisioner.services.permissions import PermissionChecker, permissions_from_session
from provisioner.services.platform_client import PlatformAPIError, PlatformClient
from provisioner.services.snapshot_service import SnapshotService, get_snapshot_service
from provisioner.services.validation_rules import advance_blockers
from provisioner.services.workflow_engine import WorkflowEngine


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/workflow")

SESSION_ID_KEY = "workflow_session_id"
ACCESS_TOKEN_KEY = "platform_access_token"

# Live engines of this process, keyed by workflow session id, least recently used first
_engines: "OrderedDict[str, WorkflowEngine]" = OrderedDict()


class ProviderRequest(BaseModel):
    """Request model for choosing a cloud provider."""
    provider: str = Field(..., description="Provider id: aws, azure or gcp")


class CredentialsRequest(BaseModel):
    """Request model for entering raw credentials."""
    values: Dict[str, str] = Field(default_factory=dict, description="Credential fields to set")
    account_name: Optional[str] = Field(None, description="Display name for a new account")


class RegionRequest(BaseModel):
    region: str = Field(..., description="Region code of the active provider")


class AccountRequest(BaseModel):
    account_id: str = Field(..., description="Id of a connected account")


class StageRequest(BaseModel):
    stage: int = Field(..., ge=1, le=5, description="Target stage number")


class ModuleRequest(BaseModel):
    module_id: str = Field(..., description="Module id from the provider catalog")
    multi: bool = Field(default=False, description="Add to the selection instead of replacing it")


class ModuleConfigRequest(BaseModel):
    """Request model for editing a module configuration."""
    changes: Dict[str, Any] = Field(..., description="Fields to merge into the module configuration")


class ConfirmationRequest(BaseModel):
    acknowledged: bool = Field(default=True, description="Whether the user acknowledged the deployment")


def get_permission_checker(request: Request) -> PermissionChecker:
    """Permission checker over the grants stored in the session."""
    return permissions_from_session(request.session)


def evict_idle_engines(
    snapshot_service: Optional[SnapshotService] = None,
    keep: Optional[str] = None
) -> List[str]:
    """
    Drop live engines that are no longer needed.

    Engines whose snapshot expired go first, then the least recently used ones
    while more than MAX_LIVE_ENGINES are live. An engine that is still polling
    a deployment is never dropped, nor is the engine of the session given as
    keep. A dropped engine whose snapshot is still stored is restored on its
    session's next request.

    Returns:
        Session ids of the dropped engines
    """
    snapshot_service = snapshot_service or get_snapshot_service()
    evicted = [
        session_id for session_id, engine in _engines.items()
        if session_id != keep and not engine.is_monitoring and not snapshot_service.has_snapshot(session_id)
    ]
    for session_id in evicted:
        del _engines[session_id]

    overflow = len(_engines) - config.MAX_LIVE_ENGINES
    if overflow > 0:
        idle = [
            session_id for session_id, engine in _engines.items()
            if session_id != keep and not engine.is_monitoring
        ]
        for session_id in idle[:overflow]:
            del _engines[session_id]
            evicted.append(session_id)

    if evicted:
        logger.info(f"Evicted {len(evicted)} idle workflow engines; {len(_engines)} live")
    return evicted


def get_workflow_engine(
    request: Request,
    permissions: PermissionChecker = Depends(get_permission_checker)
) -> WorkflowEngine:
    """
    Find or restore the engine of the caller's session.

    A new session id is issued on first contact. An engine that is not live in
    this process is restored from its snapshot, and idle engines are evicted.

    Args:
        request: FastAPI request object
        permissions: Caller's permission checker

    Returns:
        WorkflowEngine bound to the session
    """
    session_id = request.session.get(SESSION_ID_KEY)
    if not session_id:
        session_id = uuid.uuid4().hex
        request.session[SESSION_ID_KEY] = session_id

    engine = _engines.get(session_id)
    if engine is None:
        snapshot_service = get_snapshot_service()
        platform_client = PlatformClient(access_token=request.session.get(ACCESS_TOKEN_KEY))
        engine = WorkflowEngine.restore(
            session_id,
            snapshot_service,
            platform_client=platform_client,
        )
        _engines[session_id] = engine
        evict_idle_engines(snapshot_service, keep=session_id)
    else:
        _engines.move_to_end(session_id)
    engine.permissions = permissions
    return engine


def _to_http_exception(error: ProvisioningError) -> HTTPException:
    if isinstance(error, ValidationError):
        return HTTPException(status_code=400, detail={"message": str(error), "reasons": error.reasons})
    if isinstance(error, InvalidTransitionError):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, ModuleNotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, ConnectivityError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail="Provisioning workflow error")


def _unexpected(action: str, error: Exception) -> HTTPException:
    logger.error(f"Unexpected error while {action}: {error}")
    return HTTPException(
        status_code=500,
        detail=f"An unexpected error occurred while {action}"
    )


def workflow_view(engine: WorkflowEngine) -> Dict[str, Any]:
    """
    Build the client view of a session.

    Secret credential values are replaced by a redaction marker.
    """
    state = engine.state
    view = state.to_dict()
    view.update({
        "stage_label": state.current_stage.label,
        "create_phase": state.create_phase.value,
        "terminal_state": state.terminal_state,
        "connection_tested": state.connection_tested,
        "discovered_resources": list(state.discovered_resources),
        "advance_blockers": [],
        "credentials": {},
        "missing_credential_fields": [],
        "regions": [],
    })
    if state.provider is not None:
        capability = engine.capability
        view["credentials"] = capability.redact(state.credentials)
        view["missing_credential_fields"] = capability.missing_credential_fields(state.credentials, state.region)
        view["regions"] = list(PROVIDER_REGIONS[state.provider])
        view["advance_blockers"] = advance_blockers(state.current_stage, state, capability, engine.catalog)
    return view


@router.post("/session")
async def start_session(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """
    Enter the wizard, resuming the session's snapshot when one exists.

    Requires Agent/Read.
    """
    try:
        engine.ensure_can_enter()
        engine.resume_monitoring()
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("starting the workflow session", error) from error


@router.get("/state")
async def get_state(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    return workflow_view(engine)


@router.post("/provider")
async def select_provider(
    provider_request: ProviderRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """
    Choose the provider and load its connected accounts.

    Raises:
        HTTPException: 400 for an unknown provider or outside the connection stage
    """
    try:
        try:
            engine.select_provider(provider_request.provider)
        except ValueError as error:
            raise HTTPException(
                status_code=400,
                detail=f"Unsupported provider '{provider_request.provider}'. Use one of: "
                       f"{', '.join(p.value for p in Provider)}"
            ) from error
        await engine.refresh_accounts()
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("selecting the provider", error) from error


@router.delete("/provider")
async def clear_provider(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        engine.clear_provider()
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.put("/credentials")
async def update_credentials(
    credentials_request: CredentialsRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Set raw credential fields and, optionally, the new account's display name."""
    try:
        engine.update_credentials(credentials_request.values)
        if credentials_request.account_name is not None:
            engine.set_account_name(credentials_request.account_name)
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("updating credentials", error) from error


@router.put("/region")
async def set_region(
    region_request: RegionRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Change the region and re-resolve live prices for the selection."""
    try:
        engine.set_region(region_request.region)
        await engine.refresh_pricing()
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("changing the region", error) from error


@router.post("/connection/test")
async def test_connection(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """
    Test the entered credentials.

    Returns:
        Check outcome; a failed check is reported in the body, not as an error status
    """
    try:
        check = await engine.test_connection()
        return {
            "valid": check.valid,
            "error": check.error,
            "suggested_display_name": check.suggested_display_name,
            "state": workflow_view(engine),
        }
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("testing the connection", error) from error


@router.post("/accounts/connect")
async def connect_account(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """Store the entered credentials as a connected account. Requires Credentials/Create."""
    try:
        account = await engine.connect_account()
        return {
            "account": account.to_dict() if account else None,
            "state": workflow_view(engine),
        }
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("connecting the account", error) from error


@router.get("/accounts")
async def list_accounts(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        accounts = await engine.refresh_accounts()
        return {"accounts": [account.to_dict() for account in accounts]}
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("listing accounts", error) from error


@router.post("/accounts/select")
async def use_existing_account(
    account_request: AccountRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Use one of the connected accounts instead of raw credentials. Requires Credentials/Read."""
    try:
        engine.use_existing_account(account_request.account_id)
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.post("/accounts/new")
async def use_new_credentials(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        engine.use_new_credentials()
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.get("/resources")
async def discover_resources(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """List resources already deployed through the selected account."""
    try:
        resources = await engine.discover_resources()
        return {"resources": resources, "count": len(resources)}
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("discovering resources", error) from error


@router.post("/advance")
async def advance(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """
    Move to the next stage.

    Raises:
        HTTPException: 400 with the blocking reasons, 403 without the stage's permission
    """
    try:
        engine.advance()
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("advancing the workflow", error) from error


@router.post("/back")
async def back(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        engine.back()
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.post("/stage")
async def go_to_stage(
    stage_request: StageRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    try:
        engine.go_to_stage(stage_request.stage)
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.get("/modules")
async def list_modules(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """Catalog of the active provider with the selection's requirement report."""
    if engine.state.provider is None:
        raise HTTPException(status_code=400, detail="Choose a cloud provider first")
    modules = engine.catalog.modules_for(engine.state.provider)
    return {
        "provider": engine.state.provider.value,
        "modules": [module.to_dict() for module in modules],
        "selected_module_ids": list(engine.state.selected_module_ids),
        "requirements": [status.to_dict() for status in engine.module_requirements()],
    }


@router.post("/modules")
async def select_module(
    module_request: ModuleRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """Select a module (replacing the selection unless multi is set) and refresh its prices."""
    try:
        if module_request.multi:
            engine.add_module(module_request.module_id)
        else:
            engine.select_module(module_request.module_id)
        await engine.refresh_pricing()
        return workflow_view(engine)
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("selecting the module", error) from error


@router.delete("/modules/{module_id}")
async def remove_module(module_id: str, engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        engine.remove_module(module_id)
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.put("/modules/{module_id}/config")
async def update_module_config(
    module_id: str,
    config_request: ModuleConfigRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    """
    Merge changes into a selected module's configuration.

    Returns:
        The merged configuration, its validation errors and the updated state
    """
    try:
        module_config = engine.update_module_config(module_id, config_request.changes)
        return {
            "module_id": module_id,
            "config": module_config,
            "errors": engine.module_errors(module_id),
            "state": workflow_view(engine),
        }
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except Exception as error:
        raise _unexpected("updating the module configuration", error) from error


@router.post("/pricing/refresh")
async def refresh_pricing(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    try:
        await engine.refresh_pricing()
        return engine.cost_estimate().to_dict()
    except HTTPException:
        raise
    except Exception as error:
        raise _unexpected("refreshing prices", error) from error


@router.get("/estimate")
async def get_estimate(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    return engine.cost_estimate().to_dict()


@router.get("/iac", response_class=PlainTextResponse)
async def get_iac_preview(engine: WorkflowEngine = Depends(get_workflow_engine)) -> str:
    return engine.state.iac_preview_text


@router.post("/confirmation")
async def acknowledge_confirmation(
    confirmation_request: ConfirmationRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
) -> Dict[str, Any]:
    try:
        engine.acknowledge_confirmation(confirmation_request.acknowledged)
        return workflow_view(engine)
    except ProvisioningError as error:
        raise _to_http_exception(error) from error


@router.post("/deploy")
async def submit_deployment(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    """
    Submit the deployment and start following its log. Requires Agent/Create.

    Returns:
        The new run; a rejected submission returns a failed run, not an error status
    """
    try:
        run = await engine.submit_deployment()
        return {"deployment": run.to_dict(), "state": workflow_view(engine)}
    except HTTPException:
        raise
    except ProvisioningError as error:
        raise _to_http_exception(error) from error
    except PlatformAPIError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    except Exception as error:
        raise _unexpected("submitting the deployment", error) from error


@router.get("/deployment")
async def get_deployment(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    state = engine.state
    return {
        "deployment": state.deployment.to_dict() if state.deployment else None,
        "create_phase": state.create_phase.value,
        "terminal_state": state.terminal_state,
        "monitoring": engine.is_monitoring,
    }


@router.post("/reset")
async def reset(engine: WorkflowEngine = Depends(get_workflow_engine)) -> Dict[str, Any]:
    engine.reset()
    return workflow_view(engine)


@router.delete("/session")
async def end_session(request: Request) -> Dict[str, Any]:
    """
    Leave the wizard for good.

    Stops log polling, drops the live engine and deletes the session's snapshot,
    so the next visit starts a new session.
    """
    session_id = request.session.pop(SESSION_ID_KEY, None)
    if session_id:
        discard_engine(session_id)
    return {"ended": bool(session_id)}


def discard_engine(session_id: str, snapshot_service: Optional[SnapshotService] = None) -> None:
    """Stop and drop a session's engine and delete its snapshot."""
    engine = _engines.pop(session_id, None)
    if engine is not None:
        engine.cancel_monitoring()
    (snapshot_service or get_snapshot_service()).delete_snapshot(session_id)
    logger.info("Workflow session ended")


def clear_engines() -> List[str]:
    """Drop every live engine of this process, stopping their log polling."""
    session_ids = list(_engines)
    for engine in _engines.values():
        engine.cancel_monitoring()
    _engines.clear()
    return session_ids

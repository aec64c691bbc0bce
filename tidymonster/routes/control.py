"""
Control endpoints for operator actions.

Start/stop tidying, read and change settings, read recent log entries.

Settings are locked while the service runs: a run reads its configuration
once at start, so edits during a run would silently not apply.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict

from .. import __version__
from ..logs import set_minimum_severity
from ..service import ServiceAlreadyRunningError, ServiceStatus, TidyService
from ..settings import (
    InvalidSettingError,
    KeyValueStore,
    ShortcutFilter,
    TidySettings,
    load_settings,
    save_settings,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["control"])


class SettingsUpdate(BaseModel):
    """Partial settings update. Omitted fields are left unchanged."""

    model_config = ConfigDict(extra="forbid")

    tidy_all_users: Optional[bool] = None
    shortcut_filter: Optional[ShortcutFilter] = None
    search_pattern: Optional[str] = None
    minimum_severity: Optional[str] = None
    backoff_min_seconds: Optional[float] = None
    backoff_max_seconds: Optional[float] = None
    user_desktop: Optional[str] = None
    common_desktop: Optional[str] = None


def _service(request: Request) -> TidyService:
    return request.app.state.service


def _store(request: Request) -> KeyValueStore:
    return request.app.state.settings_store


@router.get("/health")
def health():
    return {"status": "ok", "version": __version__}


@router.get("/service", response_model=ServiceStatus)
def service_status(request: Request):
    return _service(request).status()


@router.post("/service/start", response_model=ServiceStatus)
def start_service(request: Request):
    service = _service(request)
    try:
        service.start()
    except ServiceAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return service.status()


@router.post("/service/stop", response_model=ServiceStatus)
def stop_service(
    request: Request,
    wait: bool = Query(False, description="Block until the run has torn down"),
):
    service = _service(request)
    service.stop(wait=wait)
    return service.status()


@router.get("/settings", response_model=TidySettings)
def get_settings(request: Request):
    try:
        return load_settings(_store(request))
    except InvalidSettingError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.put("/settings", response_model=TidySettings)
def update_settings(update: SettingsUpdate, request: Request):
    if _service(request).is_running:
        raise HTTPException(
            status_code=409, detail="Stop the service before changing settings"
        )

    store = _store(request)
    changes = update.model_dump(exclude_unset=True)

    try:
        settings = save_settings(store, changes)
    except InvalidSettingError as e:
        raise HTTPException(status_code=422, detail=str(e))

    if "minimum_severity" in changes:
        set_minimum_severity(settings.minimum_severity)

    return settings


@router.get("/logs")
def recent_logs(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
):
    buffer = request.app.state.log_buffer
    entries = buffer.entries(limit) if buffer is not None else []
    return {"count": len(entries), "entries": entries}

"""
Audit API endpoints.
"""
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from audit_engine.api.dependencies import get_state_machine, http_error
from audit_engine.errors import AuditBusyError, AuditEngineError
from audit_engine.logger import get_logger
from audit_engine.schemas.audit import (
    AuditCreateRequest,
    AuditResponse,
    CheckRecordResponse,
    ProgressResponse,
)
from audit_engine.services.state_machine import AuditStateMachine

logger = get_logger("api.audits")

router = APIRouter(prefix="/audits", tags=["Audits"])


async def _drive(machine: AuditStateMachine, audit_id: str):
    """Background task: run the audit until it stops making progress."""
    try:
        audit = await machine.drive(audit_id)
        logger.info(f"Audit {audit_id} finished driving ({audit.status.value})")
    except AuditBusyError:
        logger.info(f"Audit {audit_id} is already being processed by another worker")
    except Exception as e:
        logger.exception(f"Driving audit {audit_id} failed: {e}")


@router.post("", response_model=AuditResponse, status_code=201)
async def create_audit(
    request: AuditCreateRequest,
    background_tasks: BackgroundTasks,
    machine: AuditStateMachine = Depends(get_state_machine),
):
    """Create an audit and start it in the background."""
    try:
        audit = await machine.create_audit(
            kind=request.kind,
            url=request.url,
            organization_id=request.organization_id,
            max_pages=request.max_pages,
            target_urls=request.target_urls,
            ai_analysis_enabled=request.ai_analysis_enabled,
            sample_size=request.sample_size,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(_drive, machine, audit.id)
    return AuditResponse.model_validate(audit)


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(audit_id: str, machine: AuditStateMachine = Depends(get_state_machine)):
    try:
        audit = await machine.get_audit(audit_id)
    except AuditEngineError as e:
        raise http_error(e)
    return AuditResponse.model_validate(audit)


@router.get("/{audit_id}/progress", response_model=ProgressResponse)
async def get_progress(audit_id: str, machine: AuditStateMachine = Depends(get_state_machine)):
    """Snapshot for 2s polling: counters, current URL and the latest checks."""
    try:
        snapshot = await machine.progress(audit_id)
    except AuditEngineError as e:
        raise http_error(e)
    return ProgressResponse.model_validate(snapshot)


@router.get("/{audit_id}/checks", response_model=List[CheckRecordResponse])
async def get_checks(audit_id: str, machine: AuditStateMachine = Depends(get_state_machine)):
    try:
        records = await machine.list_checks(audit_id)
    except AuditEngineError as e:
        raise http_error(e)
    return [CheckRecordResponse.model_validate(r) for r in records]


@router.post("/{audit_id}/stop", response_model=AuditResponse)
async def stop_audit(audit_id: str, machine: AuditStateMachine = Depends(get_state_machine)):
    """Stop an in-progress audit. Stopping a finished audit is a no-op."""
    try:
        audit = await machine.stop(audit_id)
    except AuditEngineError as e:
        raise http_error(e)
    return AuditResponse.model_validate(audit)


@router.post("/{audit_id}/resume", response_model=AuditResponse)
async def resume_audit(
    audit_id: str,
    background_tasks: BackgroundTasks,
    machine: AuditStateMachine = Depends(get_state_machine),
):
    """Re-run checks for a failed audit using the pages already crawled."""
    try:
        audit = await machine.resume(audit_id)
    except AuditEngineError as e:
        raise http_error(e)

    background_tasks.add_task(_drive, machine, audit.id)
    return AuditResponse.model_validate(audit)

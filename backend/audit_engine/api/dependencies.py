"""
Shared engine instances for the HTTP layer.

One store, one state machine and one report service per process; tests
swap them through ``app.dependency_overrides``.
"""
from fastapi import HTTPException

from audit_engine.errors import (
    AuditBusyError,
    AuditEngineError,
    AuditNotFoundError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NothingToResumeError,
    ReportNotFoundError,
    ReportValidationError,
)
from audit_engine.services.reports.service import ReportService
from audit_engine.services.state_machine import AuditStateMachine
from audit_engine.store import AuditStore, InMemoryAuditStore

_store: AuditStore | None = None
_state_machine: AuditStateMachine | None = None
_report_service: ReportService | None = None


def get_store() -> AuditStore:
    global _store
    if _store is None:
        _store = InMemoryAuditStore()
    return _store


def get_state_machine() -> AuditStateMachine:
    global _state_machine
    if _state_machine is None:
        _state_machine = AuditStateMachine(get_store())
    return _state_machine


def get_report_service() -> ReportService:
    global _report_service
    if _report_service is None:
        _report_service = ReportService(get_store())
    return _report_service


def http_error(error: AuditEngineError) -> HTTPException:
    """Map an engine error onto the HTTP status the API promises."""
    if isinstance(error, (AuditNotFoundError, ReportNotFoundError)):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, (InvalidTransitionError, NothingToResumeError)):
        return HTTPException(status_code=400, detail=str(error))
    if isinstance(error, (AuditBusyError, ConcurrentModificationError)):
        return HTTPException(status_code=409, detail=str(error))
    if isinstance(error, ReportValidationError):
        return HTTPException(status_code=422, detail={"errors": error.errors, "warnings": error.warnings})
    return HTTPException(status_code=500, detail=str(error))

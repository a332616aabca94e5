"""
Combined report endpoints.
"""
from fastapi import APIRouter, Depends

from audit_engine.api.dependencies import get_report_service, http_error
from audit_engine.errors import AuditEngineError
from audit_engine.models import GeneratedReport
from audit_engine.schemas.report import (
    AuditEligibilityResponse,
    ReportRequest,
    ReportResponse,
    ReportValidationResponse,
)
from audit_engine.services.reports.combiner import (
    format_missing_audits,
    missing_audits,
    score_grade,
    score_status,
)
from audit_engine.services.reports.service import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"])


def _report_response(report: GeneratedReport) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        site_audit_id=report.site_audit_id,
        performance_audit_id=report.performance_audit_id,
        aio_audit_id=report.aio_audit_id,
        domain=report.domain,
        combined_score=report.combined_score,
        grade=score_grade(report.combined_score),
        status=score_status(report.combined_score).value,
        breakdown=report.breakdown,
        contributions=report.contributions,
        warnings=report.warnings,
        executive_summary=report.executive_summary,
        organization_id=report.organization_id,
        created_at=report.created_at,
    )


@router.post("/validate", response_model=ReportValidationResponse)
async def validate_report(request: ReportRequest, service: ReportService = Depends(get_report_service)):
    """Check whether three audits can be combined, listing every problem."""
    validation = await service.validate(request.site_audit_id, request.performance_audit_id, request.aio_audit_id)
    missing = missing_audits(validation)
    return ReportValidationResponse(
        is_valid=validation.is_valid,
        audits={k: AuditEligibilityResponse.model_validate(v) for k, v in validation.audits.items()},
        errors=validation.errors,
        warnings=validation.warnings,
        missing_audits=[m.value for m in missing],
        missing_label=format_missing_audits(missing),
    )


@router.post("", response_model=ReportResponse, status_code=201)
async def create_report(request: ReportRequest, service: ReportService = Depends(get_report_service)):
    try:
        report = await service.generate_report(
            request.site_audit_id, request.performance_audit_id, request.aio_audit_id
        )
    except AuditEngineError as e:
        raise http_error(e)
    return _report_response(report)


@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(report_id: str, service: ReportService = Depends(get_report_service)):
    try:
        report = await service.get_report(report_id)
    except AuditEngineError as e:
        raise http_error(e)
    return _report_response(report)

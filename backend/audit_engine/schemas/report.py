"""
Pydantic schemas for combined reports.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from audit_engine.services.reports.combiner import AuditSource


class ReportRequest(BaseModel):
    """The three audits to combine."""
    site_audit_id: str = Field(..., description="Completed site audit")
    performance_audit_id: str = Field(..., description="Completed performance audit")
    aio_audit_id: str = Field(..., description="Completed AIO audit")

    class Config:
        json_schema_extra = {
            "example": {
                "site_audit_id": "0b5f6c1e-...",
                "performance_audit_id": "5d1a9e3f-...",
                "aio_audit_id": "9c2e7b4a-...",
            }
        }


class AuditEligibilityResponse(BaseModel):
    audit_type: AuditSource
    audit_id: Optional[str] = None
    score: Optional[int] = None
    created_at: Optional[datetime] = None
    domain: Optional[str] = None
    is_eligible: bool = False
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class ReportValidationResponse(BaseModel):
    is_valid: bool
    audits: Dict[str, AuditEligibilityResponse]
    errors: List[str] = []
    warnings: List[str] = []
    missing_audits: List[str] = []
    missing_label: str = ""


class ReportResponse(BaseModel):
    """Persisted combined report."""
    id: str
    site_audit_id: str
    performance_audit_id: str
    aio_audit_id: str
    domain: str
    combined_score: int
    grade: str
    status: str
    breakdown: dict = {}
    contributions: Dict[str, Dict[str, int]] = {}
    warnings: List[str] = []
    executive_summary: Optional[str] = None
    organization_id: Optional[str] = None
    created_at: datetime

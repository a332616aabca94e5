"""
Pydantic schemas for audit requests and responses.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from audit_engine.models import AuditKind, AuditStatus, CheckCategory, CheckPriority, CheckStatus


class AuditCreateRequest(BaseModel):
    """Request to start an audit."""
    kind: Literal["site", "performance", "aio"] = Field(..., description="Audit variant")
    url: str = Field(..., min_length=1, description="Site root URL")
    organization_id: Optional[str] = None
    max_pages: Optional[int] = Field(None, ge=1, le=500, description="Crawl limit")
    target_urls: Optional[List[str]] = Field(None, description="Pages to measure (performance audits)")
    ai_analysis_enabled: bool = Field(False, description="Run AI content analysis (AIO audits)")
    sample_size: Optional[int] = Field(None, ge=0, le=50, description="Pages sent to AI analysis")

    class Config:
        json_schema_extra = {
            "example": {
                "kind": "aio",
                "url": "https://example.com",
                "max_pages": 20,
                "ai_analysis_enabled": True,
                "sample_size": 5,
            }
        }


class AuditResponse(BaseModel):
    """Audit record. Scores are null until the audit completes."""
    id: str
    kind: AuditKind
    url: str
    organization_id: Optional[str] = None
    status: AuditStatus

    pages_crawled: int = 0
    pages_checked: int = 0
    pages_analyzed: int = 0
    pages_total: Optional[int] = None
    current_url: Optional[str] = None

    max_pages: int
    target_urls: List[str] = []
    ai_analysis_enabled: bool = False
    sample_size: int = 0

    technical_score: Optional[int] = None
    strategic_score: Optional[int] = None
    overall_score: Optional[int] = None
    category_scores: Optional[Dict[str, int]] = None

    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0
    model_used: Optional[str] = None

    error_message: Optional[str] = None
    executive_summary: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    execution_time_ms: Optional[int] = None

    class Config:
        from_attributes = True


class CheckRecordResponse(BaseModel):
    """One stored check result."""
    id: str
    page_id: Optional[str] = None
    page_url: str
    check_name: str
    category: CheckCategory
    priority: CheckPriority
    status: CheckStatus
    details: dict = {}
    display_name: str = ""
    display_name_passed: str = ""
    description: str = ""
    learn_more_url: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RecentCheckResponse(BaseModel):
    check_name: str
    display_name: str
    page_url: str
    status: str
    category: str
    priority: str
    message: str
    created_at: datetime

    class Config:
        from_attributes = True


class ProgressResponse(BaseModel):
    """Polling snapshot."""
    audit_id: str
    status: AuditStatus
    pages_crawled: int
    pages_checked: int
    pages_total: Optional[int] = None
    current_url: Optional[str] = None
    checks: List[RecentCheckResponse] = []
    error_message: Optional[str] = None

    class Config:
        from_attributes = True
